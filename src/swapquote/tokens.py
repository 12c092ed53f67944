"""Token metadata and registry.

The registry is the authoritative, read-only source of token metadata for the
quote core. It is preloaded with the common Ethereum mainnet and Solana
tokens that the aggregator adapters can quote.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from swapquote.errors import UnknownTokenError

logger = logging.getLogger(__name__)

ETHEREUM_CHAIN_ID = 1
SOLANA_CHAIN_ID = 101  # token-list convention for Solana mainnet-beta

# 1inch and most EVM aggregators use this sentinel for the native coin
NATIVE_EVM_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"
NATIVE_SOL_MINT = "So11111111111111111111111111111111111111112"


@dataclass(frozen=True, eq=False)
class Token:
    """An immutable token reference.

    Two tokens are equal when they live on the same chain and their
    addresses match case-insensitively; symbol and decimals are metadata.
    """

    chain_id: int
    address: str
    symbol: str
    decimals: int
    name: Optional[str] = None
    logo_uri: Optional[str] = None

    def __post_init__(self):
        if self.decimals < 0:
            raise ValueError(f"Token decimals must be non-negative, got {self.decimals}")
        if not self.address:
            raise ValueError("Token address must not be empty")

    @property
    def key(self) -> tuple[int, str]:
        """Identity tuple used for equality, hashing and cache keys."""
        return (self.chain_id, self.address.lower())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Token):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return f"{self.symbol}@{self.chain_id}"


DEFAULT_TOKENS: list[Token] = [
    # ========== Ethereum mainnet ==========
    Token(ETHEREUM_CHAIN_ID, NATIVE_EVM_ADDRESS, "ETH", 18, "Ethereum"),
    Token(ETHEREUM_CHAIN_ID, "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "WETH", 18, "Wrapped Ether"),
    Token(ETHEREUM_CHAIN_ID, "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USDC", 6, "USD Coin"),
    Token(ETHEREUM_CHAIN_ID, "0xdAC17F958D2ee523a2206206994597C13D831ec7", "USDT", 6, "Tether USD"),
    Token(ETHEREUM_CHAIN_ID, "0x6B175474E89094C44Da98b954EedeAC495271d0F", "DAI", 18, "Dai Stablecoin"),
    Token(ETHEREUM_CHAIN_ID, "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", "WBTC", 8, "Wrapped Bitcoin"),
    # ========== Solana ==========
    Token(SOLANA_CHAIN_ID, NATIVE_SOL_MINT, "SOL", 9, "Solana"),
    Token(SOLANA_CHAIN_ID, "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "USDC", 6, "USD Coin"),
    Token(SOLANA_CHAIN_ID, "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", "USDT", 6, "Tether USD"),
    Token(SOLANA_CHAIN_ID, "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN", "JUP", 6, "Jupiter"),
]

NATIVE_ADDRESSES: dict[int, str] = {
    ETHEREUM_CHAIN_ID: NATIVE_EVM_ADDRESS,
    SOLANA_CHAIN_ID: NATIVE_SOL_MINT,
}


@dataclass
class TokenRegistry:
    """In-memory token registry keyed by (chain_id, lower-cased address)."""

    _tokens: dict[tuple[int, str], Token] = field(default_factory=dict)
    _by_symbol: dict[tuple[int, str], Token] = field(default_factory=dict)

    @classmethod
    def with_defaults(cls) -> "TokenRegistry":
        """Create a registry preloaded with the default token list."""
        registry = cls()
        for token in DEFAULT_TOKENS:
            registry.add_token(token)
        return registry

    def add_token(self, token: Token) -> None:
        """Add or replace a token."""
        self._tokens[token.key] = token
        self._by_symbol[(token.chain_id, token.symbol.upper())] = token

    def resolve_token(self, chain_id: int, address: str) -> Token:
        """Look up a token by chain and address.

        Raises:
            UnknownTokenError: if the token is not registered
        """
        token = self._tokens.get((chain_id, address.lower()))
        if token is None:
            raise UnknownTokenError(f"Unknown token {address} on chain {chain_id}")
        return token

    def get_by_symbol(self, chain_id: int, symbol: str) -> Optional[Token]:
        return self._by_symbol.get((chain_id, symbol.upper()))

    def list_supported_tokens(self, chain_id: int) -> list[Token]:
        """All tokens registered for a chain, sorted by symbol."""
        tokens = [t for t in self._tokens.values() if t.chain_id == chain_id]
        return sorted(tokens, key=lambda t: t.symbol)

    def native_token(self, chain_id: int) -> Optional[Token]:
        """The chain's native gas token, if registered."""
        address = NATIVE_ADDRESSES.get(chain_id)
        if address is None:
            return None
        return self._tokens.get((chain_id, address.lower()))

    def __contains__(self, token: Token) -> bool:
        return token.key in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
