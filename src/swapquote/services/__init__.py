"""Services composing the routing layer into request-level operations."""

from swapquote.services.quote_service import QuoteService

__all__ = ["QuoteService"]
