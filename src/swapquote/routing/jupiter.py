"""Jupiter DEX aggregator integration for Solana.

Uses Jupiter Aggregator API for quotes on Solana.
API docs: https://station.jup.ag/docs/apis/swap-api
"""

import logging
from typing import Optional

import httpx

from swapquote.errors import FailureKind, UnknownTokenError
from swapquote.prices import PriceFeed
from swapquote.routing.amounts import to_base_units
from swapquote.routing.base import DEFAULT_ADAPTER_TIMEOUT, Quote, SourceAdapter, SourceAdapterError
from swapquote.routing.normalizer import normalize_jupiter
from swapquote.tokens import SOLANA_CHAIN_ID, Token, TokenRegistry

logger = logging.getLogger(__name__)

JUPITER_API_V6 = "https://quote-api.jup.ag/v6"

# base signature fee, 5000 lamports
BASE_FEE_LAMPORTS = 5000
LAMPORTS_PER_SOL = 10**9


class JupiterAdapter(SourceAdapter):
    """Jupiter aggregator quotes for Solana.

    Jupiter aggregates liquidity from Raydium, Orca, Meteora and other
    Solana DEXes; its route plan already expresses splits as percentages.
    """

    def __init__(
        self,
        registry: TokenRegistry,
        api_key: Optional[str] = None,
        base_url: str = JUPITER_API_V6,
        price_feed: Optional[PriceFeed] = None,
        only_direct_routes: bool = False,
        validity_seconds: float = 30.0,
        timeout: float = DEFAULT_ADAPTER_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.registry = registry
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.price_feed = price_feed
        self.only_direct_routes = only_direct_routes
        self.validity_seconds = validity_seconds

    @property
    def name(self) -> str:
        return "Jupiter"

    def supports_pair(self, token_in: Token, token_out: Token) -> bool:
        return (
            token_in.chain_id == SOLANA_CHAIN_ID
            and token_out.chain_id == SOLANA_CHAIN_ID
            and token_in != token_out
        )

    def _get_headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _resolve(self, mint: str) -> Token:
        try:
            return self.registry.resolve_token(SOLANA_CHAIN_ID, mint)
        except UnknownTokenError:
            return Token(SOLANA_CHAIN_ID, mint, symbol=mint[:8], decimals=9)

    async def _fetch(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: float,
    ) -> Quote:
        amount_lamports = to_base_units(amount_in, token_in.decimals)
        slippage_bps = int(round(slippage_percent * 100))

        data = await self._get_json(
            f"{self.base_url}/quote",
            headers=self._get_headers(),
            params={
                "inputMint": token_in.address,
                "outputMint": token_out.address,
                "amount": str(amount_lamports),
                "slippageBps": str(slippage_bps),
                "onlyDirectRoutes": "true" if self.only_direct_routes else "false",
            },
        )

        if data.get("error"):
            raise SourceAdapterError(FailureKind.NO_LIQUIDITY, str(data["error"]))
        if str(data.get("outAmount", "")) == "0":
            raise SourceAdapterError(FailureKind.NO_LIQUIDITY, "outAmount is zero")

        return normalize_jupiter(
            data,
            source_name=self.name,
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            resolve_token=self._resolve,
            slippage_percent=slippage_percent,
            gas_estimate=BASE_FEE_LAMPORTS,
            gas_cost_usd=await self._fee_usd(),
            validity_seconds=self.validity_seconds,
        )

    async def _fee_usd(self) -> float:
        if self.price_feed is None:
            return 0.0
        sol = self.registry.native_token(SOLANA_CHAIN_ID)
        if sol is None:
            return 0.0
        sol_usd = await self.price_feed.usd_price(sol)
        if not sol_usd:
            return 0.0
        return BASE_FEE_LAMPORTS / LAMPORTS_PER_SOL * sol_usd
