"""Error taxonomy for quote aggregation.

Adapter-level problems are values (``AdapterFailure``), not exceptions: the
fan-out collector drops them after logging. Only ``NoQuotesAvailable`` and
``InvalidInput`` are meant to reach a session's caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    """Why a single source produced no quote."""

    NO_LIQUIDITY = "no_liquidity"
    TIMEOUT = "timeout"
    SOURCE_UNAVAILABLE = "source_unavailable"
    INVALID_RESPONSE = "invalid_response"


@dataclass(frozen=True)
class AdapterFailure:
    """Typed failure returned by a source adapter instead of a quote."""

    source_name: str
    kind: FailureKind
    message: str = ""
    cause: Optional[BaseException] = None

    def __str__(self) -> str:
        if self.message:
            return f"{self.source_name}: {self.kind.value} ({self.message})"
        return f"{self.source_name}: {self.kind.value}"


class QuoteError(Exception):
    """Base class for quote aggregation errors."""

    pass


class InvalidInput(QuoteError):
    """Request rejected before any source was queried."""

    pass


class UnknownTokenError(InvalidInput):
    """Token could not be resolved by the registry."""

    pass


class NormalizationError(QuoteError):
    """A source payload was received but is malformed or inconsistent."""

    def __init__(self, message: str, source_name: Optional[str] = None):
        self.source_name = source_name
        prefix = f"{source_name}: " if source_name else ""
        super().__init__(f"{prefix}{message}")


class NoQuotesAvailable(QuoteError):
    """Every source failed or reported no liquidity."""

    def __init__(
        self,
        failures: Optional[list[AdapterFailure]] = None,
        message: Optional[str] = None,
    ):
        self.failures: list[AdapterFailure] = list(failures or [])
        if message is None and self.failures:
            detail = "; ".join(str(f) for f in self.failures)
            message = f"No quotes available from {len(self.failures)} source(s): {detail}"
        elif message is None:
            message = "No quotes available: no sources configured"
        super().__init__(message)


class UnknownSourceError(QuoteError):
    """A named source is not configured."""

    pass


class SessionDisposedError(QuoteError):
    """A disposed session was asked to do more work."""

    pass


class RankingPreconditionError(QuoteError, ValueError):
    """The ranker was called without quotes; the caller skipped its check."""

    pass
