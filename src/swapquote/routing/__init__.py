"""Routing module for swap quote aggregation.

Sources:
- 1inch: EVM DEX aggregator (Ethereum and other EVM chains)
- Jupiter: Solana DEX aggregator (SOL, SPL tokens)
- Simulated: deterministic dry-run source
"""

from swapquote.routing.base import (
    AggregatedResult,
    Hop,
    Quote,
    QuoteOutcome,
    SourceAdapter,
    SourceAdapterError,
)
from swapquote.routing.cache import CacheKey, QuoteCache, make_key
from swapquote.routing.collector import CollectionReport, FanOutCollector
from swapquote.routing.dry_run import SimulatedAdapter
from swapquote.routing.jupiter import JupiterAdapter
from swapquote.routing.oneinch import OneInchAdapter
from swapquote.routing.ranker import RouteFilters, RouteRanker

__all__ = [
    # Base classes
    "Hop",
    "Quote",
    "QuoteOutcome",
    "AggregatedResult",
    "SourceAdapter",
    "SourceAdapterError",
    # Sources
    "OneInchAdapter",
    "JupiterAdapter",
    "SimulatedAdapter",
    # Pipeline
    "FanOutCollector",
    "CollectionReport",
    "RouteFilters",
    "RouteRanker",
    "QuoteCache",
    "CacheKey",
    "make_key",
]
