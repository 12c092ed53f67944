"""Factory for creating source adapters, the collector and the quote service.

Creates real adapters when the settings allow live quoting, otherwise
falls back to simulated sources.
"""

import logging
from typing import Optional

import httpx

from swapquote.config import Settings, get_settings
from swapquote.prices import PriceFeed, StaticPriceFeed
from swapquote.routing.base import SourceAdapter
from swapquote.routing.collector import FanOutCollector
from swapquote.services.quote_service import QuoteService
from swapquote.tokens import SOLANA_CHAIN_ID, TokenRegistry

logger = logging.getLogger(__name__)


def create_price_feed(settings: Optional[Settings] = None) -> PriceFeed:
    settings = settings or get_settings()
    return StaticPriceFeed(prices_by_symbol=settings.usd_prices)


def create_oneinch_adapter(
    registry: TokenRegistry,
    chain_id: int = 1,
    price_feed: Optional[PriceFeed] = None,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> SourceAdapter:
    """Create a 1inch adapter for one EVM chain.

    1inch requires an API key; without one (or in dry-run mode) a simulated
    source named after the chain is returned instead.
    """
    settings = settings or get_settings()

    if settings.oneinch_api_key and not settings.dry_run:
        try:
            from swapquote.routing.oneinch import OneInchAdapter

            return OneInchAdapter(
                registry,
                api_key=settings.oneinch_api_key,
                chain_id=chain_id,
                base_url=settings.oneinch_api_url,
                price_feed=price_feed,
                rpc_url=settings.eth_rpc_url if chain_id == 1 else None,
                fallback_gas_price_gwei=settings.fallback_gas_price_gwei,
                validity_seconds=settings.quote_validity_seconds,
                timeout=settings.adapter_timeout_seconds,
                client=client,
            )
        except Exception as e:
            logger.warning(f"Failed to create real 1inch provider: {e}")

    # Fallback to simulated
    from swapquote.routing.dry_run import SimulatedAdapter

    return SimulatedAdapter(
        name=f"simulated 1inch ({chain_id})",
        chain_id=chain_id,
        fee_basis_points=30,
        gas_cost_usd=4.0,
        validity_seconds=settings.quote_validity_seconds,
        timeout=settings.adapter_timeout_seconds,
    )


def create_jupiter_adapter(
    registry: TokenRegistry,
    price_feed: Optional[PriceFeed] = None,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> SourceAdapter:
    """Create the Jupiter adapter for Solana. Jupiter works without an API key."""
    settings = settings or get_settings()

    if not settings.dry_run:
        try:
            from swapquote.routing.jupiter import JupiterAdapter

            return JupiterAdapter(
                registry,
                api_key=settings.jupiter_api_key,
                base_url=settings.jupiter_api_url,
                price_feed=price_feed,
                validity_seconds=settings.quote_validity_seconds,
                timeout=settings.adapter_timeout_seconds,
                client=client,
            )
        except Exception as e:
            logger.warning(f"Failed to create real Jupiter provider: {e}")

    # Fallback to simulated
    from swapquote.routing.dry_run import SimulatedAdapter

    return SimulatedAdapter(
        name="simulated Jupiter",
        chain_id=SOLANA_CHAIN_ID,
        fee_basis_points=25,
        gas_cost_usd=0.001,
        validity_seconds=settings.quote_validity_seconds,
        timeout=settings.adapter_timeout_seconds,
    )


def create_adapters(
    registry: TokenRegistry,
    price_feed: Optional[PriceFeed] = None,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> list[SourceAdapter]:
    """All configured sources: 1inch per configured EVM chain, plus Jupiter."""
    settings = settings or get_settings()
    adapters = [
        create_oneinch_adapter(registry, chain_id, price_feed, client, settings)
        for chain_id in settings.oneinch_chains
    ]
    adapters.append(create_jupiter_adapter(registry, price_feed, client, settings))

    for adapter in adapters:
        logger.info(f"Added {adapter.name} source")
    return adapters


def create_collector(
    registry: Optional[TokenRegistry] = None,
    price_feed: Optional[PriceFeed] = None,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> FanOutCollector:
    settings = settings or get_settings()
    registry = registry or TokenRegistry.with_defaults()
    return FanOutCollector(
        create_adapters(registry, price_feed, client, settings),
        deadline_seconds=settings.fanout_deadline_seconds,
    )


def create_quote_service(
    registry: Optional[TokenRegistry] = None,
    price_feed: Optional[PriceFeed] = None,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> QuoteService:
    """Wire the full quote pipeline from settings."""
    settings = settings or get_settings()
    price_feed = price_feed or create_price_feed(settings)
    collector = create_collector(registry, price_feed, client, settings)
    mode = "DRY RUN" if settings.dry_run else "LIVE"
    logger.info(f"Created quote service ({mode}) with {len(collector.adapters)} source(s)")
    return QuoteService(collector, price_feed=price_feed, settings=settings)


def create_session(
    service: Optional[QuoteService] = None,
    settings: Optional[Settings] = None,
):
    """Create a QuoteSession bound to ``service`` (or a fresh one)."""
    from swapquote.session import QuoteSession

    settings = settings or get_settings()
    return QuoteSession(
        service or create_quote_service(settings=settings),
        debounce_seconds=settings.debounce_seconds,
        staleness_seconds=settings.staleness_seconds,
    )
