"""Quote API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request

from swapquote.errors import InvalidInput, NoQuotesAvailable, UnknownSourceError
from swapquote.services.quote_service import QuoteService
from swapquote.tokens import Token, TokenRegistry
from swapquote.web.contracts.quotes import (
    AggregatedQuoteResponse,
    QuoteRequest,
    SourceFailureInfo,
    SourcesResponse,
    TokenInfo,
    TokenListResponse,
)

router = APIRouter(prefix="/quotes", tags=["quotes"])


def get_quote_service(request: Request) -> QuoteService:
    return request.app.state.quote_service


def get_token_registry(request: Request) -> TokenRegistry:
    return request.app.state.token_registry


def resolve_token(registry: TokenRegistry, chain_id: int, identifier: str) -> Token:
    """Resolve an address, falling back to a symbol lookup."""
    token = registry.get_by_symbol(chain_id, identifier)
    if token is not None:
        return token
    return registry.resolve_token(chain_id, identifier)


@router.post("/", response_model=AggregatedQuoteResponse)
async def get_quotes(
    request: QuoteRequest,
    service: QuoteService = Depends(get_quote_service),
    registry: TokenRegistry = Depends(get_token_registry),
) -> AggregatedQuoteResponse:
    """Get the best swap quote and the full ranking.

    Queries every configured source (or only ``source``) and ranks the
    answers by net output. This is a READ-ONLY operation.
    """
    try:
        token_in = resolve_token(registry, request.chain_id, request.token_in)
        token_out = resolve_token(registry, request.chain_id, request.token_out)
        filters = request.route_filters()

        if request.source:
            quote = await service.get_quote_from_source(
                request.source, token_in, token_out, request.amount, request.slippage
            )
            if not filters.allows(quote):
                raise NoQuotesAvailable(message=f"{request.source} route does not satisfy {filters}")
            result = service.ranker.rank([quote])
        else:
            result = await service.get_aggregated(
                token_in,
                token_out,
                request.amount,
                request.slippage,
                force_refresh=request.force_refresh,
                filters=filters,
            )
    except (InvalidInput, UnknownSourceError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NoQuotesAvailable as e:
        raise HTTPException(
            status_code=404,
            detail={
                "message": str(e),
                "failures": [
                    SourceFailureInfo(
                        source=f.source_name, kind=f.kind.value, message=f.message
                    ).model_dump()
                    for f in e.failures
                ],
            },
        )

    return AggregatedQuoteResponse.from_result(result)


@router.get("/sources", response_model=SourcesResponse)
async def get_sources(service: QuoteService = Depends(get_quote_service)) -> SourcesResponse:
    """List the configured quote sources."""
    return SourcesResponse(sources=service.supported_sources())


@router.get("/tokens/{chain_id}", response_model=TokenListResponse)
async def get_tokens(
    chain_id: int,
    registry: TokenRegistry = Depends(get_token_registry),
) -> TokenListResponse:
    """List the tokens known for a chain."""
    tokens = registry.list_supported_tokens(chain_id)
    return TokenListResponse(
        chain_id=chain_id,
        tokens=[TokenInfo.from_token(t) for t in tokens],
    )
