"""Canonical quote types and the abstract source adapter interface."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Optional, Union

import httpx

from swapquote.errors import AdapterFailure, FailureKind, NormalizationError
from swapquote.routing.amounts import canonical_amount, minimum_out, parse_amount
from swapquote.tokens import Token

logger = logging.getLogger(__name__)

DEFAULT_ADAPTER_TIMEOUT = 4.0

PRICE_IMPACT_LEVELS = (
    (1.0, "low"),
    (3.0, "medium"),
    (5.0, "high"),
)


@dataclass(frozen=True)
class Hop:
    """One pool traversal inside a route."""

    token_in: Token
    token_out: Token
    pool_identifier: str
    protocol_name: str
    fee_basis_points: int = 0
    percentage_of_split: Optional[float] = None


def group_legs(route: tuple[Hop, ...]) -> list[list[Hop]]:
    """Group consecutive hops sharing (token_in, token_out) into legs.

    A leg with several hops is a split across pools at the same position.
    """
    legs: list[list[Hop]] = []
    for hop in route:
        if legs and legs[-1][0].token_in == hop.token_in and legs[-1][0].token_out == hop.token_out:
            legs[-1].append(hop)
        else:
            legs.append([hop])
    return legs


@dataclass(frozen=True)
class Quote:
    """One source's priced offer for a swap."""

    id: str
    source_name: str
    token_in: Token
    token_out: Token
    amount_in: str
    amount_out: str
    amount_out_minimum: str
    price_impact_percent: float
    route: tuple[Hop, ...]
    gas_estimate: int
    gas_cost_usd: float
    valid_until: float
    slippage_percent: float = 0.5
    is_simulated: bool = False
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def amount_out_decimal(self) -> Decimal:
        return parse_amount(self.amount_out)

    @property
    def hop_count(self) -> int:
        """Number of route positions; parallel split pools count once."""
        return len(group_legs(self.route))

    @property
    def split_count(self) -> int:
        """Pools used side by side at the widest route position."""
        return max(len(leg) for leg in group_legs(self.route))

    @property
    def effective_rate(self) -> Decimal:
        """Output per unit of input."""
        amount_in = parse_amount(self.amount_in)
        if amount_in == 0:
            return Decimal("0")
        return self.amount_out_decimal / amount_in

    @property
    def is_expired(self) -> bool:
        return time.time() > self.valid_until

    @property
    def seconds_until_expiry(self) -> float:
        """Seconds until the quote expires (negative if expired)."""
        return self.valid_until - time.time()

    @property
    def price_impact_level(self) -> str:
        impact = abs(self.price_impact_percent)
        for limit, level in PRICE_IMPACT_LEVELS:
            if impact < limit:
                return level
        return "critical"

    def with_slippage(self, slippage_percent: float) -> "Quote":
        """Copy of this quote with the minimum re-derived for another tolerance."""
        if slippage_percent == self.slippage_percent:
            return self
        return replace(
            self,
            slippage_percent=slippage_percent,
            amount_out_minimum=minimum_out(
                self.amount_out, slippage_percent, self.token_out.decimals
            ),
        )


@dataclass(frozen=True)
class AggregatedResult:
    """Ranked outcome of one fan-out round."""

    best_quote: Quote
    all_quotes: tuple[Quote, ...]
    requested_at: float
    expires_at: float
    scores: tuple[float, ...] = ()

    @property
    def is_expired(self) -> bool:
        return time.time() > self.expires_at

    @property
    def worst_amount_out(self) -> Decimal:
        return min(q.amount_out_decimal for q in self.all_quotes)

    @property
    def savings(self) -> str:
        """How much more the best quote returns than the lowest offer."""
        diff = self.best_quote.amount_out_decimal - self.worst_amount_out
        return canonical_amount(max(diff, Decimal("0")))

    @property
    def comparison(self) -> dict[str, str]:
        amounts = [q.amount_out_decimal for q in self.all_quotes]
        average = sum(amounts, Decimal("0")) / len(amounts)
        return {
            "best": self.best_quote.amount_out,
            "worst": canonical_amount(self.worst_amount_out),
            "average": canonical_amount(average),
        }

    def with_slippage(self, slippage_percent: float) -> "AggregatedResult":
        if slippage_percent == self.best_quote.slippage_percent:
            return self
        quotes = tuple(q.with_slippage(slippage_percent) for q in self.all_quotes)
        return replace(self, best_quote=quotes[0], all_quotes=quotes)


QuoteOutcome = Union[Quote, AdapterFailure]

NO_ROUTE_MARKERS = ("liquidity", "no route", "could not find any route", "routes not found")


def _mentions_no_route(body: str) -> bool:
    lowered = body.lower()
    return any(marker in lowered for marker in NO_ROUTE_MARKERS)


class SourceAdapterError(Exception):
    """Raised inside an adapter's ``_fetch`` to report a typed failure."""

    def __init__(self, kind: FailureKind, message: str = ""):
        self.kind = kind
        super().__init__(message)


class SourceAdapter(ABC):
    """Uniform interface to one liquidity source.

    Subclasses implement ``_fetch`` and may raise freely; ``fetch_quote``
    enforces the per-call timeout and turns every ordinary problem into an
    ``AdapterFailure`` so the fan-out never sees an exception.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_ADAPTER_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self._client = client

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name identifier."""
        pass

    @abstractmethod
    def supports_pair(self, token_in: Token, token_out: Token) -> bool:
        """Check if this source can quote the pair."""
        pass

    @abstractmethod
    async def _fetch(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: float,
    ) -> Quote:
        """Query the source and return a normalized quote."""
        pass

    async def fetch_quote(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: float = 0.5,
    ) -> QuoteOutcome:
        """Get a quote, or a typed failure. Never raises for source problems."""
        if not self.supports_pair(token_in, token_out):
            return self._failure(
                FailureKind.NO_LIQUIDITY, f"pair {token_in}->{token_out} not supported"
            )

        try:
            quote = await asyncio.wait_for(
                self._fetch(token_in, token_out, amount_in, slippage_percent),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            return self._failure(FailureKind.TIMEOUT, f"no answer within {self.timeout}s", e)
        except httpx.TimeoutException as e:
            return self._failure(FailureKind.TIMEOUT, str(e) or type(e).__name__, e)
        except httpx.HTTPError as e:
            return self._failure(FailureKind.SOURCE_UNAVAILABLE, str(e) or type(e).__name__, e)
        except SourceAdapterError as e:
            return self._failure(e.kind, str(e), e)
        except NormalizationError as e:
            return self._failure(FailureKind.INVALID_RESPONSE, str(e), e)
        except (ValueError, KeyError, TypeError) as e:
            # malformed JSON bodies surface as these from response.json()/parsing
            return self._failure(FailureKind.INVALID_RESPONSE, f"{type(e).__name__}: {e}", e)

        logger.debug(
            f"Quote from {self.name}: {quote.amount_in} {quote.token_in.symbol} -> "
            f"{quote.amount_out} {quote.token_out.symbol} ({quote.hop_count} hop(s))"
        )
        return quote

    def _failure(
        self,
        kind: FailureKind,
        message: str = "",
        cause: Optional[BaseException] = None,
    ) -> AdapterFailure:
        return AdapterFailure(source_name=self.name, kind=kind, message=message, cause=cause)

    async def _get_json(self, url: str, **kwargs) -> dict:
        """GET a JSON document, using the shared client when one was given."""
        if self._client is not None:
            response = await self._client.get(url, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, **kwargs)
        return self._decode(response)

    async def _post_json(self, url: str, **kwargs) -> dict:
        if self._client is not None:
            response = await self._client.post(url, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, **kwargs)
        return self._decode(response)

    def _decode(self, response: httpx.Response) -> dict:
        if response.status_code in (400, 404) and _mentions_no_route(response.text):
            raise SourceAdapterError(FailureKind.NO_LIQUIDITY, response.text[:200])
        if response.status_code != 200:
            logger.warning(f"{self.name} API error: {response.status_code} - {response.text[:200]}")
            raise SourceAdapterError(
                FailureKind.SOURCE_UNAVAILABLE, f"HTTP {response.status_code}"
            )
        data = response.json()
        if not isinstance(data, dict):
            raise SourceAdapterError(FailureKind.INVALID_RESPONSE, "response is not a JSON object")
        return data
