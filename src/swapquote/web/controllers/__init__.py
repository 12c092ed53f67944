"""HTTP controllers for web API endpoints."""

from swapquote.web.controllers.quotes import router as quotes_router

__all__ = [
    "quotes_router",
]
