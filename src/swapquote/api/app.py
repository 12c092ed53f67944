"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from swapquote import __version__
from swapquote.config import get_settings
from swapquote.services.quote_service import QuoteService
from swapquote.tokens import TokenRegistry


def create_app(
    service: Optional[QuoteService] = None,
    registry: Optional[TokenRegistry] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: quote service to serve; built from settings when omitted
        registry: token registry used to resolve request tokens
    """
    settings = get_settings()
    registry = registry or TokenRegistry.with_defaults()
    if service is None:
        from swapquote.factory import create_quote_service

        service = create_quote_service(registry=registry, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        service.start()
        yield
        # Shutdown
        await service.close()

    app = FastAPI(
        title="swapquote API",
        description="Multi-source swap quote aggregation",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.quote_service = service
    app.state.token_registry = registry

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    from swapquote.api.routes import health
    from swapquote.web.controllers import quotes_router

    app.include_router(health.router, tags=["Health"])
    app.include_router(quotes_router)

    return app
