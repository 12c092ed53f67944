"""Quote scoring and deterministic ranking.

Scores are expressed in output-token units. Gas cost arrives in USD and is
converted with the output token's USD price; when that price is unknown the
gas term is left out for every quote alike, so the comparison stays fair.
"""

import logging
import math
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Optional

from swapquote.errors import InvalidInput, RankingPreconditionError
from swapquote.routing.base import AggregatedResult, Quote

logger = logging.getLogger(__name__)

DEFAULT_IMPACT_THRESHOLD = 3.0
DEFAULT_IMPACT_MULTIPLIER = 0.5
DEFAULT_TIE_EPSILON = 1e-9


@dataclass(frozen=True)
class RouteFilters:
    """Route shapes a caller is willing to accept.

    ``protocols`` restricts every hop to the named protocols (case-insensitive);
    empty means any protocol.
    """

    max_hops: Optional[int] = None
    max_splits: Optional[int] = None
    protocols: tuple[str, ...] = ()

    def __post_init__(self):
        for name in ("max_hops", "max_splits"):
            limit = getattr(self, name)
            if limit is not None and limit < 1:
                raise InvalidInput(f"{name} must be at least 1, got {limit}")

    @property
    def is_empty(self) -> bool:
        return self.max_hops is None and self.max_splits is None and not self.protocols

    def allows(self, quote: Quote) -> bool:
        if self.max_hops is not None and quote.hop_count > self.max_hops:
            return False
        if self.max_splits is not None and quote.split_count > self.max_splits:
            return False
        if self.protocols:
            allowed = {p.lower() for p in self.protocols}
            return all(hop.protocol_name.lower() in allowed for hop in quote.route)
        return True

    def apply(self, quotes: Iterable[Quote]) -> list[Quote]:
        return [q for q in quotes if self.allows(q)]


class RouteRanker:
    """Computes comparable scores and orders quotes best-first.

    score = amount_out - gas_in_output_units - amount_out * impact_fraction

    where impact_fraction is impact/100 below the threshold and gains a
    quadratic term ``multiplier * excess**2 / 100`` above it.
    """

    def __init__(
        self,
        impact_threshold_percent: float = DEFAULT_IMPACT_THRESHOLD,
        impact_multiplier: float = DEFAULT_IMPACT_MULTIPLIER,
        tie_epsilon: float = DEFAULT_TIE_EPSILON,
        clock: Callable[[], float] = time.time,
    ):
        self.impact_threshold_percent = impact_threshold_percent
        self.impact_multiplier = impact_multiplier
        self.tie_epsilon = tie_epsilon
        self._clock = clock

    def impact_penalty_fraction(self, price_impact_percent: float) -> float:
        """Share of the output forfeited to the price-impact penalty."""
        impact = max(price_impact_percent, 0.0)
        excess = max(impact - self.impact_threshold_percent, 0.0)
        return impact / 100 + self.impact_multiplier * excess**2 / 100

    def gas_in_output_units(self, quote: Quote, output_price_usd: Optional[float]) -> float:
        if not output_price_usd or output_price_usd <= 0:
            return 0.0
        return quote.gas_cost_usd / output_price_usd

    def score(self, quote: Quote, output_price_usd: Optional[float] = None) -> float:
        amount_out = float(quote.amount_out_decimal)
        penalty = amount_out * self.impact_penalty_fraction(quote.price_impact_percent)
        return amount_out - self.gas_in_output_units(quote, output_price_usd) - penalty

    def _same_score(self, a: float, b: float) -> bool:
        return math.isclose(a, b, rel_tol=self.tie_epsilon, abs_tol=0.0)

    @staticmethod
    def _tie_key(quote: Quote) -> tuple:
        return (quote.hop_count, quote.source_name, -quote.amount_out_decimal, quote.id)

    def order(
        self,
        quotes: Iterable[Quote],
        output_price_usd: Optional[float] = None,
    ) -> list[tuple[float, Quote]]:
        """(score, quote) pairs best-first; independent of input order."""
        scored = [(self.score(q, output_price_usd), q) for q in quotes]
        scored.sort(key=lambda sq: (-sq[0],) + self._tie_key(sq[1]))

        # scores within epsilon of a run's leader are ties: hops, then name decide
        ordered: list[tuple[float, Quote]] = []
        run: list[tuple[float, Quote]] = []
        for item in scored:
            if run and not self._same_score(run[0][0], item[0]):
                ordered.extend(sorted(run, key=lambda sq: self._tie_key(sq[1])))
                run = []
            run.append(item)
        ordered.extend(sorted(run, key=lambda sq: self._tie_key(sq[1])))
        return ordered

    def rank(
        self,
        quotes: Iterable[Quote],
        output_price_usd: Optional[float] = None,
        requested_at: Optional[float] = None,
    ) -> AggregatedResult:
        """Rank quotes into an AggregatedResult.

        Raises:
            RankingPreconditionError: if ``quotes`` is empty
        """
        quotes = list(quotes)
        if not quotes:
            raise RankingPreconditionError(
                "rank() called with no quotes; check for NoQuotesAvailable first"
            )

        ordered = self.order(quotes, output_price_usd)
        ranked = tuple(q for _, q in ordered)
        best_score, best = ordered[0]
        now = self._clock()

        logger.info(
            f"Selected best quote: {best.source_name} - {best.amount_out} {best.token_out.symbol} "
            f"(score {best_score:.6f}, {best.hop_count} hop(s), "
            f"{len(ranked)} candidate(s))"
        )
        return AggregatedResult(
            best_quote=best,
            all_quotes=ranked,
            requested_at=requested_at if requested_at is not None else now,
            expires_at=min(q.valid_until for q in ranked),
            scores=tuple(s for s, _ in ordered),
        )


def best_by_output(quotes: Iterable[Quote]) -> Optional[Quote]:
    """Highest raw amount_out, ignoring gas and impact."""
    best: Optional[Quote] = None
    best_amount = Decimal("-1")
    for quote in quotes:
        amount = quote.amount_out_decimal
        if amount > best_amount:
            best, best_amount = quote, amount
    return best
