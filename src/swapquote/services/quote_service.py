"""Quote service: validation, cache, fan-out and ranking behind one call.

This service only prices swaps. It never builds or submits transactions.
"""

import logging
import time
from typing import Optional

from swapquote.config import Settings, get_settings
from swapquote.errors import InvalidInput, NoQuotesAvailable, UnknownSourceError
from swapquote.prices import PriceFeed
from swapquote.routing.amounts import fraction_digits, parse_amount
from swapquote.routing.base import AggregatedResult, Quote
from swapquote.routing.cache import QuoteCache, make_key
from swapquote.routing.collector import FanOutCollector
from swapquote.routing.ranker import RouteFilters, RouteRanker
from swapquote.tokens import Token

logger = logging.getLogger(__name__)


class QuoteService:
    """Aggregates quotes from every configured source.

    Results are cached per (pair, amount) for a short TTL. The cache key
    leaves slippage out: minimums are re-derived for each caller.
    """

    def __init__(
        self,
        collector: FanOutCollector,
        ranker: Optional[RouteRanker] = None,
        cache: Optional[QuoteCache] = None,
        price_feed: Optional[PriceFeed] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.collector = collector
        self.ranker = ranker or RouteRanker(
            impact_threshold_percent=self.settings.price_impact_threshold_percent,
            impact_multiplier=self.settings.price_impact_multiplier,
            tie_epsilon=self.settings.ranking_tie_epsilon,
        )
        self.cache = cache or QuoteCache(
            default_ttl_seconds=self.settings.quote_cache_ttl_seconds,
            sweep_interval_seconds=self.settings.cache_sweep_interval_seconds,
        )
        self.price_feed = price_feed

    def validate_request(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: float,
    ) -> str:
        """Check a request before any source is queried.

        Returns:
            The amount as given, stripped of whitespace

        Raises:
            InvalidInput: describing the first problem found
        """
        if token_in == token_out:
            raise InvalidInput(f"Cannot swap {token_in.symbol} to itself")

        try:
            amount = parse_amount(amount_in)
        except ValueError as e:
            raise InvalidInput(f"Invalid amount {amount_in!r}: {e}") from e
        if amount <= 0:
            raise InvalidInput("Amount must be greater than zero")
        if fraction_digits(amount) > token_in.decimals:
            raise InvalidInput(
                f"Amount {amount_in} has more than {token_in.decimals} decimal places "
                f"for {token_in.symbol}"
            )

        if isinstance(slippage_percent, bool) or not isinstance(slippage_percent, (int, float)):
            raise InvalidInput(f"Invalid slippage {slippage_percent!r}")
        if not 0 <= slippage_percent <= self.settings.max_slippage_percent:
            raise InvalidInput(
                f"Slippage must be between 0 and {self.settings.max_slippage_percent}%"
            )
        return str(amount_in).strip()

    async def get_aggregated(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: Optional[float] = None,
        force_refresh: bool = False,
        filters: Optional[RouteFilters] = None,
    ) -> AggregatedResult:
        """Best quote plus the full ranking for a swap.

        Args:
            force_refresh: skip the cache read; the fresh result is still stored
            filters: drop routes outside these limits before ranking; the
                cache always holds the unfiltered ranking

        Raises:
            InvalidInput: the request failed validation
            NoQuotesAvailable: every source failed or had no route, or no
                route passed ``filters``
        """
        if slippage_percent is None:
            slippage_percent = self.settings.default_slippage_percent
        amount_in = self.validate_request(token_in, token_out, amount_in, slippage_percent)
        key = make_key(token_in, token_out, amount_in)

        async def fetch() -> AggregatedResult:
            requested_at = time.time()
            quotes = await self.collector.collect(
                token_in, token_out, amount_in, slippage_percent
            )
            output_price = await self._output_price(token_out)
            return self.ranker.rank(quotes, output_price, requested_at=requested_at)

        if force_refresh:
            logger.debug(f"Forced refresh for {key}")
            result = await fetch()
            self.cache.set(key, result)
        else:
            result = await self.cache.get_or_fetch(key, fetch)

        if filters is not None and not filters.is_empty:
            result = await self._apply_filters(result, filters, token_out)
        return result.with_slippage(slippage_percent)

    async def _apply_filters(
        self, result: AggregatedResult, filters: RouteFilters, token_out: Token
    ) -> AggregatedResult:
        kept = filters.apply(result.all_quotes)
        if not kept:
            raise NoQuotesAvailable(
                message=f"No route among {len(result.all_quotes)} quote(s) satisfies {filters}"
            )
        if len(kept) == len(result.all_quotes):
            return result
        logger.debug(f"Route filters dropped {len(result.all_quotes) - len(kept)} quote(s)")
        output_price = await self._output_price(token_out)
        return self.ranker.rank(kept, output_price, requested_at=result.requested_at)

    async def get_quote_from_source(
        self,
        source_name: str,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: Optional[float] = None,
    ) -> Quote:
        """Quote from one named source, uncached.

        Raises:
            UnknownSourceError: no adapter with that name is configured
            NoQuotesAvailable: the source returned a failure
        """
        adapter = self.collector.get_adapter(source_name)
        if adapter is None:
            raise UnknownSourceError(
                f"Unknown source {source_name!r}; available: {', '.join(self.supported_sources())}"
            )
        if slippage_percent is None:
            slippage_percent = self.settings.default_slippage_percent
        amount_in = self.validate_request(token_in, token_out, amount_in, slippage_percent)

        outcome = await adapter.fetch_quote(token_in, token_out, amount_in, slippage_percent)
        if isinstance(outcome, Quote):
            return outcome
        logger.warning(f"Single-source quote failed: {outcome}")
        raise NoQuotesAvailable([outcome])

    def supported_sources(self) -> list[str]:
        return [adapter.name for adapter in self.collector.adapters]

    async def _output_price(self, token_out: Token) -> Optional[float]:
        if self.price_feed is None:
            return None
        price = await self.price_feed.usd_price(token_out)
        if price is None:
            logger.debug(f"No USD price for {token_out}; ranking without gas cost")
        return price

    def start(self) -> None:
        self.cache.start()

    async def close(self) -> None:
        await self.cache.close()
