"""USD price lookups used to express gas cost in output-token units."""

import logging
from typing import Mapping, Optional, Protocol

from swapquote.tokens import Token

logger = logging.getLogger(__name__)


class PriceFeed(Protocol):
    """Anything that can price a token in USD."""

    async def usd_price(self, token: Token) -> Optional[float]:
        ...


class StaticPriceFeed:
    """Price feed backed by a fixed symbol -> USD mapping.

    Address overrides win over symbols so that two tokens sharing a symbol on
    different chains can still be priced separately.
    """

    def __init__(
        self,
        prices_by_symbol: Optional[Mapping[str, float]] = None,
        prices_by_token: Optional[Mapping[Token, float]] = None,
    ):
        self._by_symbol = {s.upper(): float(p) for s, p in (prices_by_symbol or {}).items()}
        self._by_token = {t.key: float(p) for t, p in (prices_by_token or {}).items()}

    def set_price(self, token: Token, price: float) -> None:
        self._by_token[token.key] = float(price)

    async def usd_price(self, token: Token) -> Optional[float]:
        price = self._by_token.get(token.key)
        if price is None:
            price = self._by_symbol.get(token.symbol.upper())
        if price is None:
            logger.debug(f"No USD price for {token}")
            return None
        return price
