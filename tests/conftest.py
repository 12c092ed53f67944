"""Pytest configuration and fixtures."""

import os

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DRY_RUN"] = "true"
os.environ["DEBUG"] = "true"
os.environ["ONEINCH_API_KEY"] = ""

from swapquote.config import Settings, get_settings
from swapquote.prices import StaticPriceFeed
from swapquote.routing.cache import QuoteCache
from swapquote.routing.collector import FanOutCollector
from swapquote.routing.ranker import RouteRanker
from swapquote.services.quote_service import QuoteService
from swapquote.tokens import ETHEREUM_CHAIN_ID, SOLANA_CHAIN_ID, TokenRegistry


class FakeClock:
    """Manually advanced clock for cache TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def registry() -> TokenRegistry:
    return TokenRegistry.with_defaults()


@pytest.fixture
def eth(registry):
    return registry.get_by_symbol(ETHEREUM_CHAIN_ID, "ETH")


@pytest.fixture
def weth(registry):
    return registry.get_by_symbol(ETHEREUM_CHAIN_ID, "WETH")


@pytest.fixture
def usdc(registry):
    return registry.get_by_symbol(ETHEREUM_CHAIN_ID, "USDC")


@pytest.fixture
def dai(registry):
    return registry.get_by_symbol(ETHEREUM_CHAIN_ID, "DAI")


@pytest.fixture
def sol(registry):
    return registry.get_by_symbol(SOLANA_CHAIN_ID, "SOL")


@pytest.fixture
def sol_usdc(registry):
    return registry.get_by_symbol(SOLANA_CHAIN_ID, "USDC")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def price_feed() -> StaticPriceFeed:
    return StaticPriceFeed({"ETH": 2000.0, "WETH": 2000.0, "USDC": 1.0, "DAI": 1.0, "SOL": 100.0})


@pytest.fixture
def make_service(settings, price_feed):
    """Build a QuoteService over the given adapters."""

    def _make(adapters, cache=None, deadline_seconds=10.0):
        return QuoteService(
            FanOutCollector(adapters, deadline_seconds=deadline_seconds),
            ranker=RouteRanker(),
            cache=cache or QuoteCache(default_ttl_seconds=15.0),
            price_feed=price_feed,
            settings=settings,
        )

    return _make
