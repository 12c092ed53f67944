"""Quote request and response contracts.

Amounts are decimal strings on the wire so no precision is lost to floats.
"""

from typing import Optional

from pydantic import BaseModel, Field

from swapquote.routing.base import AggregatedResult, Hop, Quote
from swapquote.routing.ranker import RouteFilters
from swapquote.tokens import Token


class QuoteRequest(BaseModel):
    """Request for aggregated swap quotes."""

    chain_id: int = Field(..., description="Chain of both tokens (1 = Ethereum, 101 = Solana)")
    token_in: str = Field(..., min_length=1, description="Input token address or symbol")
    token_out: str = Field(..., min_length=1, description="Output token address or symbol")
    amount: str = Field(..., min_length=1, description="Amount to swap, as a decimal string")
    slippage: Optional[float] = Field(
        default=None,
        description="Slippage tolerance in percent (defaults to the configured value)",
    )
    source: Optional[str] = Field(
        default=None, description="Quote only this source (None = all sources)"
    )
    force_refresh: bool = Field(default=False, description="Bypass the quote cache")
    max_hops: Optional[int] = Field(default=None, ge=1, description="Drop routes with more hops")
    max_splits: Optional[int] = Field(
        default=None, ge=1, description="Drop routes splitting across more pools"
    )
    protocols: list[str] = Field(
        default_factory=list, description="Only routes through these protocols (empty = any)"
    )

    def route_filters(self) -> RouteFilters:
        return RouteFilters(
            max_hops=self.max_hops,
            max_splits=self.max_splits,
            protocols=tuple(self.protocols),
        )


class TokenInfo(BaseModel):
    chain_id: int
    address: str
    symbol: str
    decimals: int
    name: Optional[str] = None
    logo_uri: Optional[str] = None

    @classmethod
    def from_token(cls, token: Token) -> "TokenInfo":
        return cls(
            chain_id=token.chain_id,
            address=token.address,
            symbol=token.symbol,
            decimals=token.decimals,
            name=token.name,
            logo_uri=token.logo_uri,
        )


class HopInfo(BaseModel):
    token_in: str = Field(..., description="Input token symbol")
    token_out: str = Field(..., description="Output token symbol")
    pool: str = Field(..., description="Pool identifier")
    protocol: str = Field(..., description="Protocol name (Uniswap V3, Raydium, etc.)")
    fee_bps: int = Field(..., description="Pool fee in basis points")
    percentage: Optional[float] = Field(None, description="Share of a split leg in percent")

    @classmethod
    def from_hop(cls, hop: Hop) -> "HopInfo":
        return cls(
            token_in=hop.token_in.symbol,
            token_out=hop.token_out.symbol,
            pool=hop.pool_identifier,
            protocol=hop.protocol_name,
            fee_bps=hop.fee_basis_points,
            percentage=hop.percentage_of_split,
        )


class QuoteResponse(BaseModel):
    """One source's quote."""

    id: str
    source: str = Field(..., description="Quote source (1inch, Jupiter, etc.)")
    token_in: TokenInfo
    token_out: TokenInfo
    amount_in: str
    amount_out: str
    amount_out_minimum: str = Field(..., description="Minimum output after slippage")
    rate: str = Field(..., description="Output per unit of input")
    slippage: float
    price_impact: float = Field(..., description="Price impact in percent")
    price_impact_level: str
    gas_estimate: int
    gas_cost_usd: float
    hop_count: int
    route: list[HopInfo] = Field(default_factory=list)
    expires_at: float = Field(..., description="Quote expiry timestamp")
    simulated: bool = False
    score: Optional[float] = Field(None, description="Ranking score in output-token units")

    @classmethod
    def from_quote(cls, quote: Quote, score: Optional[float] = None) -> "QuoteResponse":
        return cls(
            id=quote.id,
            source=quote.source_name,
            token_in=TokenInfo.from_token(quote.token_in),
            token_out=TokenInfo.from_token(quote.token_out),
            amount_in=quote.amount_in,
            amount_out=quote.amount_out,
            amount_out_minimum=quote.amount_out_minimum,
            rate=format(quote.effective_rate.normalize(), "f"),
            slippage=quote.slippage_percent,
            price_impact=quote.price_impact_percent,
            price_impact_level=quote.price_impact_level,
            gas_estimate=quote.gas_estimate,
            gas_cost_usd=quote.gas_cost_usd,
            hop_count=quote.hop_count,
            route=[HopInfo.from_hop(hop) for hop in quote.route],
            expires_at=quote.valid_until,
            simulated=quote.is_simulated,
            score=score,
        )


class AggregatedQuoteResponse(BaseModel):
    """Best quote plus every quote that was received, best first."""

    success: bool = True
    best_quote: QuoteResponse
    quotes: list[QuoteResponse] = Field(default_factory=list)
    savings: str = Field(..., description="Best minus worst output amount")
    comparison: dict[str, str] = Field(default_factory=dict)
    requested_at: float
    expires_at: float

    @classmethod
    def from_result(cls, result: AggregatedResult) -> "AggregatedQuoteResponse":
        scores = list(result.scores) or [None] * len(result.all_quotes)
        quotes = [QuoteResponse.from_quote(q, s) for q, s in zip(result.all_quotes, scores)]
        return cls(
            best_quote=quotes[0],
            quotes=quotes,
            savings=result.savings,
            comparison=result.comparison,
            requested_at=result.requested_at,
            expires_at=result.expires_at,
        )


class SourceFailureInfo(BaseModel):
    source: str
    kind: str
    message: str = ""


class SourcesResponse(BaseModel):
    success: bool = True
    sources: list[str] = Field(default_factory=list)


class TokenListResponse(BaseModel):
    success: bool = True
    chain_id: int
    tokens: list[TokenInfo] = Field(default_factory=list)
