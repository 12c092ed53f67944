"""Request and response contracts for the web layer."""

from swapquote.web.contracts.quotes import (
    AggregatedQuoteResponse,
    HopInfo,
    QuoteRequest,
    QuoteResponse,
    SourceFailureInfo,
    SourcesResponse,
    TokenInfo,
    TokenListResponse,
)

__all__ = [
    "QuoteRequest",
    "QuoteResponse",
    "AggregatedQuoteResponse",
    "HopInfo",
    "TokenInfo",
    "TokenListResponse",
    "SourcesResponse",
    "SourceFailureInfo",
]
