"""Quote normalization.

Turns source-specific payloads into canonical ``Quote`` objects and enforces
the quote invariants. Every function here is pure; malformed input raises
``NormalizationError``.
"""

import math
import time
import uuid
from typing import Any, Callable, Iterable, Optional

from swapquote.errors import NormalizationError
from swapquote.routing.amounts import (
    AmountLike,
    canonical_amount,
    from_base_units,
    minimum_out,
    parse_amount,
)
from swapquote.routing.base import Hop, Quote, group_legs
from swapquote.tokens import Token

SPLIT_TOLERANCE = 0.01

TokenResolver = Callable[[str], Token]


def _preserve_amount(value: AmountLike, field_name: str, source_name: str) -> str:
    """Validate a positive amount, keeping decimal strings byte-for-byte."""
    try:
        amount = parse_amount(value)
    except ValueError as e:
        raise NormalizationError(f"{field_name}: {e}", source_name)
    if amount <= 0:
        raise NormalizationError(f"{field_name} must be positive, got {value!r}", source_name)
    if isinstance(value, str):
        return value.strip()
    return canonical_amount(amount)


def _finite_float(value: Any, field_name: str, source_name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise NormalizationError(f"{field_name} is not numeric: {value!r}", source_name)
    if not math.isfinite(number):
        raise NormalizationError(f"{field_name} is not finite: {value!r}", source_name)
    return number


def validate_route(
    route: Iterable[Hop],
    token_in: Token,
    token_out: Token,
    source_name: str = "",
) -> tuple[Hop, ...]:
    """Check that a route is non-empty, contiguous and ends at the right tokens."""
    hops = tuple(route)
    if not hops:
        raise NormalizationError("route is empty", source_name)

    for hop in hops:
        if hop.fee_basis_points < 0:
            raise NormalizationError(
                f"negative fee on pool {hop.pool_identifier}", source_name
            )
        if hop.percentage_of_split is not None and not 0 <= hop.percentage_of_split <= 100:
            raise NormalizationError(
                f"split percentage {hop.percentage_of_split} out of range", source_name
            )

    if hops[0].token_in != token_in:
        raise NormalizationError(
            f"route starts at {hops[0].token_in}, expected {token_in}", source_name
        )
    if hops[-1].token_out != token_out:
        raise NormalizationError(
            f"route ends at {hops[-1].token_out}, expected {token_out}", source_name
        )

    legs = group_legs(hops)
    for position, leg in enumerate(legs):
        if len(leg) > 1:
            if any(h.percentage_of_split is None for h in leg):
                raise NormalizationError(
                    f"split at position {position} is missing percentages", source_name
                )
            total = sum(h.percentage_of_split for h in leg)
            if abs(total - 100) > SPLIT_TOLERANCE:
                raise NormalizationError(
                    f"split at position {position} sums to {total}, expected 100", source_name
                )
        elif leg[0].percentage_of_split is not None and abs(leg[0].percentage_of_split - 100) > SPLIT_TOLERANCE:
            raise NormalizationError(
                f"single pool at position {position} carries {leg[0].percentage_of_split}%",
                source_name,
            )
        if position + 1 < len(legs) and leg[0].token_out != legs[position + 1][0].token_in:
            raise NormalizationError(
                f"route broken after position {position}: {leg[0].token_out} "
                f"!= {legs[position + 1][0].token_in}",
                source_name,
            )
    return hops


def build_quote(
    *,
    source_name: str,
    token_in: Token,
    token_out: Token,
    amount_in: AmountLike,
    amount_out: AmountLike,
    route: Iterable[Hop],
    price_impact_percent: Any = 0.0,
    gas_estimate: Any = 0,
    gas_cost_usd: Any = 0.0,
    slippage_percent: float = 0.5,
    validity_seconds: float = 30.0,
    is_simulated: bool = False,
    raw: Optional[dict] = None,
    now: Optional[float] = None,
) -> Quote:
    """Validate canonical fields and assemble a Quote."""
    amount_in_str = _preserve_amount(amount_in, "amount_in", source_name)
    amount_out_str = _preserve_amount(amount_out, "amount_out", source_name)

    impact = _finite_float(price_impact_percent, "price_impact_percent", source_name)
    gas_usd = _finite_float(gas_cost_usd or 0.0, "gas_cost_usd", source_name)
    if gas_usd < 0:
        raise NormalizationError(f"gas_cost_usd is negative: {gas_usd}", source_name)
    try:
        gas = int(gas_estimate or 0)
    except (TypeError, ValueError):
        raise NormalizationError(f"gas_estimate is not an integer: {gas_estimate!r}", source_name)
    if gas < 0:
        raise NormalizationError(f"gas_estimate is negative: {gas}", source_name)

    hops = validate_route(route, token_in, token_out, source_name)
    minimum = minimum_out(amount_out_str, slippage_percent, token_out.decimals)

    issued_at = time.time() if now is None else now
    return Quote(
        id=uuid.uuid4().hex,
        source_name=source_name,
        token_in=token_in,
        token_out=token_out,
        amount_in=amount_in_str,
        amount_out=amount_out_str,
        amount_out_minimum=minimum,
        price_impact_percent=impact,
        route=hops,
        gas_estimate=gas,
        gas_cost_usd=gas_usd,
        valid_until=issued_at + validity_seconds,
        slippage_percent=slippage_percent,
        is_simulated=is_simulated,
        raw=raw or {},
    )


def _base_units_to_amount(raw_value: Any, decimals: int, field_name: str, source_name: str) -> str:
    try:
        return from_base_units(raw_value, decimals)
    except ValueError as e:
        raise NormalizationError(f"{field_name}: {e}", source_name)


def normalize_oneinch(
    payload: dict,
    *,
    source_name: str,
    token_in: Token,
    token_out: Token,
    amount_in: str,
    resolve_token: TokenResolver,
    slippage_percent: float = 0.5,
    gas_cost_usd: float = 0.0,
    price_impact_percent: float = 0.0,
    validity_seconds: float = 30.0,
) -> Quote:
    """Normalize a 1inch v6 ``/quote`` response.

    ``protocols`` is a list of paths, each a list of steps, each a list of
    parts with a ``part`` percentage. A single path maps onto hops directly;
    multi-path answers collapse into one aggregate hop since their steps do
    not line up position by position.
    """
    if "dstAmount" not in payload and "toAmount" not in payload:
        raise NormalizationError("missing dstAmount", source_name)
    raw_out = payload.get("dstAmount", payload.get("toAmount"))
    amount_out = _base_units_to_amount(raw_out, token_out.decimals, "dstAmount", source_name)

    protocols = payload.get("protocols") or []
    route: list[Hop] = []
    if len(protocols) == 1:
        for step in protocols[0]:
            for part in step:
                try:
                    hop_in = resolve_token(part["fromTokenAddress"])
                    hop_out = resolve_token(part["toTokenAddress"])
                    percentage = float(part.get("part", 100))
                except (KeyError, TypeError, ValueError) as e:
                    raise NormalizationError(f"malformed protocol part: {e}", source_name)
                name = str(part.get("name", "unknown"))
                route.append(
                    Hop(
                        token_in=hop_in,
                        token_out=hop_out,
                        pool_identifier=f"{name}:{hop_in.address}:{hop_out.address}",
                        protocol_name=name,
                        percentage_of_split=percentage,
                    )
                )
    else:
        route.append(
            Hop(
                token_in=token_in,
                token_out=token_out,
                pool_identifier=f"1inch:{len(protocols)}-paths",
                protocol_name="1inch",
            )
        )

    return build_quote(
        source_name=source_name,
        token_in=token_in,
        token_out=token_out,
        amount_in=amount_in,
        amount_out=amount_out,
        route=route,
        price_impact_percent=price_impact_percent,
        gas_estimate=payload.get("gas", 0),
        gas_cost_usd=gas_cost_usd,
        slippage_percent=slippage_percent,
        validity_seconds=validity_seconds,
        raw=payload,
    )


def normalize_jupiter(
    payload: dict,
    *,
    source_name: str,
    token_in: Token,
    token_out: Token,
    amount_in: str,
    resolve_token: TokenResolver,
    slippage_percent: float = 0.5,
    gas_estimate: int = 0,
    gas_cost_usd: float = 0.0,
    validity_seconds: float = 30.0,
) -> Quote:
    """Normalize a Jupiter v6 ``/quote`` response."""
    if "outAmount" not in payload:
        raise NormalizationError("missing outAmount", source_name)
    amount_out = _base_units_to_amount(
        payload["outAmount"], token_out.decimals, "outAmount", source_name
    )
    # priceImpactPct is a fraction ("0.0012" means 0.12%)
    impact = _finite_float(payload.get("priceImpactPct", 0) or 0, "priceImpactPct", source_name) * 100

    route: list[Hop] = []
    for step in payload.get("routePlan") or []:
        try:
            info = step["swapInfo"]
            hop_in = resolve_token(info["inputMint"])
            hop_out = resolve_token(info["outputMint"])
            percentage = float(step.get("percent", 100))
        except (KeyError, TypeError, ValueError) as e:
            raise NormalizationError(f"malformed routePlan step: {e}", source_name)
        route.append(
            Hop(
                token_in=hop_in,
                token_out=hop_out,
                pool_identifier=str(info.get("ammKey", "")),
                protocol_name=str(info.get("label", "Unknown")),
                fee_basis_points=_fee_bps(info),
                percentage_of_split=percentage,
            )
        )
    if _is_mint_split_plan(route, token_in, token_out):
        route = [_aggregate_jupiter_hop(route, token_in, token_out)]

    return build_quote(
        source_name=source_name,
        token_in=token_in,
        token_out=token_out,
        amount_in=amount_in,
        amount_out=amount_out,
        route=route,
        price_impact_percent=impact,
        gas_estimate=gas_estimate,
        gas_cost_usd=gas_cost_usd,
        slippage_percent=slippage_percent,
        validity_seconds=validity_seconds,
        raw=payload,
    )


def _forms_legs(route: list[Hop]) -> bool:
    """True when the hops already read as consecutive legs with whole splits."""
    legs = group_legs(tuple(route))
    for position, leg in enumerate(legs):
        total = sum(100 if h.percentage_of_split is None else h.percentage_of_split for h in leg)
        if abs(total - 100) > SPLIT_TOLERANCE:
            return False
        if position + 1 < len(legs) and leg[0].token_out != legs[position + 1][0].token_in:
            return False
    return True


def _is_mint_split_plan(route: list[Hop], token_in: Token, token_out: Token) -> bool:
    """Detect a Jupiter plan whose percents are shares of each step's input mint.

    SOL->USDC 60%, SOL->mSOL 40%, mSOL->USDC 100% is such a plan: complete,
    but not a sequence of legs.
    """
    if len(route) < 2 or _forms_legs(route):
        return False
    shares: dict[Token, float] = {}
    for hop in route:
        shares[hop.token_in] = shares.get(hop.token_in, 0.0) + (hop.percentage_of_split or 0.0)
    produced = {hop.token_out for hop in route}
    if token_in not in shares or token_out not in produced or token_out in shares:
        return False
    if any(abs(total - 100) > SPLIT_TOLERANCE for total in shares.values()):
        return False
    intermediates = set(shares) - {token_in}
    return intermediates <= produced and produced - {token_out} <= set(shares)


def _aggregate_jupiter_hop(route: list[Hop], token_in: Token, token_out: Token) -> Hop:
    labels = list(dict.fromkeys(hop.protocol_name for hop in route))
    return Hop(
        token_in=token_in,
        token_out=token_out,
        pool_identifier="+".join(hop.pool_identifier for hop in route),
        protocol_name="+".join(labels),
    )


def _fee_bps(swap_info: dict) -> int:
    """Approximate pool fee in basis points from fee and input amounts."""
    try:
        fee = int(swap_info.get("feeAmount", 0))
        amount = int(swap_info.get("inAmount", 0))
    except (TypeError, ValueError):
        return 0
    if fee <= 0 or amount <= 0 or swap_info.get("feeMint") != swap_info.get("inputMint"):
        return 0
    return round(fee * 10000 / amount)
