"""1inch DEX aggregator integration.

Uses the 1inch swap API (v6) for quotes on Ethereum and other EVM chains.
API docs: https://portal.1inch.dev/documentation/apis/swap/introduction
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

import httpx

from swapquote.errors import FailureKind, UnknownTokenError
from swapquote.prices import PriceFeed
from swapquote.routing.amounts import from_base_units, to_base_units
from swapquote.routing.base import DEFAULT_ADAPTER_TIMEOUT, Quote, SourceAdapter, SourceAdapterError
from swapquote.routing.normalizer import normalize_oneinch
from swapquote.tokens import Token, TokenRegistry

logger = logging.getLogger(__name__)

ONEINCH_API_V6 = "https://api.1inch.dev/swap/v6.0"

CHAIN_NAMES = {
    1: "ethereum",
    10: "optimism",
    56: "bsc",
    100: "gnosis",
    137: "polygon",
    250: "fantom",
    8453: "base",
    42161: "arbitrum",
    43114: "avalanche",
}

# used when the API omits a gas estimate
DEFAULT_GAS_UNITS = 200000


class OneInchAdapter(SourceAdapter):
    """1inch aggregation protocol quotes for one EVM chain."""

    def __init__(
        self,
        registry: TokenRegistry,
        api_key: Optional[str] = None,
        chain_id: int = 1,
        base_url: str = ONEINCH_API_V6,
        price_feed: Optional[PriceFeed] = None,
        rpc_url: Optional[str] = None,
        fallback_gas_price_gwei: float = 30.0,
        validity_seconds: float = 30.0,
        timeout: float = DEFAULT_ADAPTER_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize 1inch adapter.

        Args:
            registry: Token registry used to resolve intermediate route tokens
            api_key: 1inch API key (required for production)
            chain_id: EVM chain ID to quote on
            price_feed: USD prices for gas and price impact estimates
            rpc_url: JSON-RPC endpoint for eth_gasPrice
        """
        super().__init__(timeout=timeout, client=client)
        self.registry = registry
        self.api_key = api_key
        self.chain_id = chain_id
        self.chain = CHAIN_NAMES.get(chain_id, str(chain_id))
        self.base_url = f"{base_url.rstrip('/')}/{chain_id}"
        self.price_feed = price_feed
        self.rpc_url = rpc_url
        self.fallback_gas_price_wei = int(fallback_gas_price_gwei * 10**9)
        self.validity_seconds = validity_seconds

    @property
    def name(self) -> str:
        return f"1inch ({self.chain})"

    def supports_pair(self, token_in: Token, token_out: Token) -> bool:
        return (
            token_in.chain_id == self.chain_id
            and token_out.chain_id == self.chain_id
            and token_in != token_out
        )

    def _get_headers(self) -> dict:
        """Get API headers with authorization."""
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _resolve(self, address: str) -> Token:
        try:
            return self.registry.resolve_token(self.chain_id, address)
        except UnknownTokenError:
            # intermediate tokens only need an identity for contiguity checks
            return Token(self.chain_id, address, symbol=address[:8], decimals=18)

    async def _fetch(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: float,
    ) -> Quote:
        amount_wei = to_base_units(amount_in, token_in.decimals)

        data, gas_price = await asyncio.gather(
            self._get_json(
                f"{self.base_url}/quote",
                headers=self._get_headers(),
                params={
                    "src": token_in.address,
                    "dst": token_out.address,
                    "amount": str(amount_wei),
                    "includeGas": "true",
                    "includeProtocols": "true",
                },
            ),
            self._get_gas_price(),
        )

        raw_out = str(data.get("dstAmount", data.get("toAmount", "0")))
        if raw_out.isdigit() and int(raw_out) == 0:
            raise SourceAdapterError(FailureKind.NO_LIQUIDITY, "dstAmount is zero")

        gas = int(data.get("gas") or DEFAULT_GAS_UNITS)
        gas_cost_usd = await self._gas_cost_usd(gas, gas_price)
        price_impact = 0.0
        if raw_out.isdigit():
            price_impact = await self._estimate_price_impact(
                token_in, token_out, amount_in, from_base_units(raw_out, token_out.decimals)
            )

        return normalize_oneinch(
            data,
            source_name=self.name,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            resolve_token=self._resolve,
            slippage_percent=slippage_percent,
            gas_cost_usd=gas_cost_usd,
            price_impact_percent=price_impact,
            validity_seconds=self.validity_seconds,
        )

    async def _get_gas_price(self) -> int:
        """Get current gas price in wei."""
        if not self.rpc_url:
            return self.fallback_gas_price_wei

        try:
            data = await self._post_json(
                self.rpc_url,
                json={
                    "jsonrpc": "2.0",
                    "method": "eth_gasPrice",
                    "params": [],
                    "id": 1,
                },
            )
            return int(data.get("result", "0x0"), 16) or self.fallback_gas_price_wei
        except (httpx.HTTPError, SourceAdapterError, ValueError) as e:
            logger.debug(f"{self.name} gas price lookup failed, using fallback: {e}")
            return self.fallback_gas_price_wei

    async def _gas_cost_usd(self, gas: int, gas_price_wei: int) -> float:
        if self.price_feed is None:
            return 0.0
        native = self.registry.native_token(self.chain_id)
        if native is None:
            return 0.0
        native_usd = await self.price_feed.usd_price(native)
        if not native_usd:
            return 0.0
        gas_cost_native = Decimal(gas * gas_price_wei) / Decimal(10**18)
        return float(gas_cost_native) * native_usd

    async def _estimate_price_impact(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        amount_out: str,
    ) -> float:
        """Percent of input value lost, from USD prices. 0 when either is unknown."""
        if self.price_feed is None:
            return 0.0
        price_in = await self.price_feed.usd_price(token_in)
        price_out = await self.price_feed.usd_price(token_out)
        if not price_in or not price_out:
            return 0.0
        value_in = float(amount_in) * price_in
        value_out = float(amount_out) * price_out
        if value_in == 0:
            return 0.0
        return (value_in - value_out) / value_in * 100
