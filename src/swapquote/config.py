"""Application configuration using pydantic-settings.

Timing defaults follow the quote lifecycle: adapters get a few seconds each,
the whole fan-out gets a bounded multiple of that, cached quotes live for
seconds and displayed quotes are flagged stale after half a minute.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    dry_run: bool = Field(
        default=True, description="Use simulated sources instead of live aggregator APIs"
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Fan-out timing
    # ======================
    adapter_timeout_seconds: float = Field(
        default=4.0, gt=0, description="Per-source quote timeout"
    )
    fanout_deadline_seconds: float = Field(
        default=10.0, gt=0, description="Overall wall-clock budget for one fan-out round"
    )

    # ======================
    # Cache / session timing
    # ======================
    quote_cache_ttl_seconds: float = Field(
        default=15.0, gt=0, description="How long an aggregated result is served from cache"
    )
    cache_sweep_interval_seconds: float = Field(
        default=60.0, gt=0, description="Interval of the background expired-entry sweep"
    )
    debounce_seconds: float = Field(
        default=0.5, ge=0, description="Input debounce before a session fetches"
    )
    staleness_seconds: float = Field(
        default=30.0, gt=0, description="Age after which a displayed result is flagged stale"
    )
    quote_validity_seconds: float = Field(
        default=30.0, gt=0, description="validUntil horizon stamped on each quote"
    )

    # ======================
    # Slippage / ranking
    # ======================
    default_slippage_percent: float = Field(
        default=0.5, description="Default slippage tolerance (0.5%)"
    )
    max_slippage_percent: float = Field(
        default=50.0, description="Largest slippage tolerance accepted from callers"
    )
    price_impact_threshold_percent: float = Field(
        default=3.0, ge=0, description="Impact above which the ranking penalty turns quadratic"
    )
    price_impact_multiplier: float = Field(
        default=0.5, ge=0, description="Weight of the quadratic impact penalty"
    )
    ranking_tie_epsilon: float = Field(
        default=1e-9, ge=0, description="Relative score difference treated as a tie"
    )

    # ======================
    # Sources
    # ======================
    oneinch_api_key: str = Field(default="", description="1inch developer portal API key")
    oneinch_api_url: str = Field(
        default="https://api.1inch.dev/swap/v6.0", description="1inch swap API base URL"
    )
    oneinch_chain_ids: str = Field(
        default="1", description="Comma-separated EVM chain IDs quoted through 1inch"
    )
    jupiter_api_url: str = Field(
        default="https://quote-api.jup.ag/v6", description="Jupiter quote API base URL"
    )
    jupiter_api_key: Optional[str] = Field(default=None, description="Jupiter API key")
    eth_rpc_url: str = Field(
        default="https://eth.llamarpc.com", description="Ethereum RPC URL for gas price"
    )
    fallback_gas_price_gwei: float = Field(
        default=30.0, description="Gas price used when the RPC cannot be reached"
    )

    # ======================
    # Prices
    # ======================
    usd_prices: dict[str, float] = Field(
        default_factory=lambda: {
            "ETH": 3900.0,
            "WETH": 3900.0,
            "USDC": 1.0,
            "USDT": 1.0,
            "DAI": 1.0,
            "WBTC": 100000.0,
            "SOL": 225.0,
            "JUP": 1.25,
        },
        description="Static USD prices by symbol, used for gas conversion",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def oneinch_chains(self) -> list[int]:
        """Parse 1inch chain IDs into a list of integers."""
        return [int(cid.strip()) for cid in self.oneinch_chain_ids.split(",") if cid.strip()]

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "timing": {
                "adapter_timeout": self.adapter_timeout_seconds,
                "fanout_deadline": self.fanout_deadline_seconds,
                "cache_ttl": self.quote_cache_ttl_seconds,
                "debounce": self.debounce_seconds,
                "staleness": self.staleness_seconds,
            },
            "ranking": {
                "impact_threshold": self.price_impact_threshold_percent,
                "impact_multiplier": self.price_impact_multiplier,
            },
            "sources": {
                "oneinch": {
                    "url": self.oneinch_api_url,
                    "chains": self.oneinch_chains,
                    "api_key": "***" if self.oneinch_api_key else "(not set)",
                },
                "jupiter": {
                    "url": self.jupiter_api_url,
                    "api_key": "***" if self.jupiter_api_key else "(not set)",
                },
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
