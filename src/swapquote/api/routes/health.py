"""Health check endpoints."""

from fastapi import APIRouter, Request

from swapquote import __version__
from swapquote.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "swapquote"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration and cache info."""
    settings = get_settings()
    service = request.app.state.quote_service
    return {
        "status": "healthy",
        "service": "swapquote",
        "version": __version__,
        "sources": service.supported_sources(),
        "cache": service.cache.stats(),
        "config": settings.get_safe_dict(),
    }
