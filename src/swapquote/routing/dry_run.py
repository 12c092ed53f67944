"""Simulated liquidity source for dry-run mode and tests."""

import asyncio
from decimal import ROUND_DOWN, Decimal, localcontext
from typing import Optional

from swapquote.errors import FailureKind
from swapquote.routing.amounts import canonical_amount, parse_amount
from swapquote.routing.base import Hop, Quote, SourceAdapter, SourceAdapterError
from swapquote.routing.normalizer import build_quote
from swapquote.tokens import Token

# Simulated market prices in USD
# These are for demonstration purposes only and should not be used for real trading
SIMULATED_PRICES: dict[str, Decimal] = {
    "ETH": Decimal("3900.00"),
    "WETH": Decimal("3900.00"),
    "WBTC": Decimal("100000.00"),
    "USDT": Decimal("1.00"),
    "USDC": Decimal("1.00"),
    "DAI": Decimal("1.00"),
    "SOL": Decimal("225.00"),
    "JUP": Decimal("1.25"),
}


class SimulatedAdapter(SourceAdapter):
    """Deterministic fake source.

    Output is either a fixed ``amount_out`` or derived from
    ``SIMULATED_PRICES`` minus the pool fee. Latency and failures can be
    injected to exercise timeouts and partial-failure handling.
    """

    def __init__(
        self,
        name: str = "dry_run",
        amount_out: Optional[str] = None,
        fee_basis_points: int = 30,
        price_impact_percent: float = 0.0,
        gas_estimate: int = 150000,
        gas_cost_usd: float = 0.0,
        latency_seconds: float = 0.0,
        failure: Optional[FailureKind] = None,
        via: Optional[Token] = None,
        broken_route: bool = False,
        prices: Optional[dict[str, Decimal]] = None,
        chain_id: Optional[int] = None,
        validity_seconds: float = 30.0,
        timeout: float = 4.0,
    ):
        super().__init__(timeout=timeout)
        self._name = name
        self.fixed_amount_out = amount_out
        self.fee_basis_points = fee_basis_points
        self.price_impact_percent = price_impact_percent
        self.gas_estimate = gas_estimate
        self.gas_cost_usd = gas_cost_usd
        self.latency_seconds = latency_seconds
        self.failure = failure
        self.via = via
        self.broken_route = broken_route
        self.prices = prices if prices is not None else SIMULATED_PRICES
        self.chain_id = chain_id
        self.validity_seconds = validity_seconds
        self.call_count = 0

    @property
    def name(self) -> str:
        return self._name

    def supports_pair(self, token_in: Token, token_out: Token) -> bool:
        if token_in == token_out:
            return False
        if self.chain_id is not None and {token_in.chain_id, token_out.chain_id} != {self.chain_id}:
            return False
        if self.fixed_amount_out is not None:
            return True
        return token_in.symbol.upper() in self.prices and token_out.symbol.upper() in self.prices

    async def _fetch(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: float,
    ) -> Quote:
        self.call_count += 1
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)
        if self.failure is not None:
            raise SourceAdapterError(self.failure, "simulated failure")

        return build_quote(
            source_name=self.name,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=self._amount_out(token_in, token_out, amount_in),
            route=self._route(token_in, token_out),
            price_impact_percent=self.price_impact_percent,
            gas_estimate=self.gas_estimate,
            gas_cost_usd=self.gas_cost_usd,
            slippage_percent=slippage_percent,
            validity_seconds=self.validity_seconds,
            is_simulated=True,
        )

    def _amount_out(self, token_in: Token, token_out: Token, amount_in: str) -> str:
        if self.fixed_amount_out is not None:
            return self.fixed_amount_out

        price_in = self.prices[token_in.symbol.upper()]
        price_out = self.prices[token_out.symbol.upper()]
        with localcontext() as ctx:
            ctx.prec = 80
            gross = parse_amount(amount_in) * price_in / price_out
            net = gross * (10000 - self.fee_basis_points) / Decimal(10000)
            net = net.quantize(Decimal(1).scaleb(-token_out.decimals), rounding=ROUND_DOWN)
        if net <= 0:
            raise SourceAdapterError(FailureKind.NO_LIQUIDITY, "amount too small")
        return canonical_amount(net)

    def _route(self, token_in: Token, token_out: Token) -> list[Hop]:
        pool = f"{self.name}_pool"
        if self.via is None:
            return [Hop(token_in, token_out, pool, self.name, self.fee_basis_points)]

        first = Hop(token_in, self.via, f"{pool}_1", self.name, self.fee_basis_points)
        second_in = token_out if self.broken_route else self.via
        second = Hop(second_in, token_out, f"{pool}_2", self.name, self.fee_basis_points)
        return [first, second]
