"""Interactive quote session.

A session owns the lifecycle of "the quote currently shown" for one user:
it debounces input changes, runs at most one fetch at a time, discards
results that arrive for superseded input and flags results as stale after
a while. Listeners receive an immutable snapshot after every change.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from swapquote.errors import InvalidInput, NoQuotesAvailable, SessionDisposedError
from swapquote.routing.base import AggregatedResult, Quote
from swapquote.routing.ranker import RouteFilters
from swapquote.services.quote_service import QuoteService
from swapquote.tokens import Token

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5
DEFAULT_STALENESS_SECONDS = 30.0


class SessionStatus(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FETCHING = "fetching"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class SessionParams:
    """The last input a session accepted."""

    token_in: Token
    token_out: Token
    amount_in: str
    slippage_percent: float
    deadline_minutes: Optional[int] = None


@dataclass(frozen=True)
class SessionState:
    """Snapshot handed to listeners and returned by ``get_state``."""

    status: SessionStatus = SessionStatus.IDLE
    last_params: Optional[SessionParams] = None
    current_result: Optional[AggregatedResult] = None
    is_stale: bool = False
    error: Optional[Exception] = None
    showing_previous_result: bool = False
    selected_quote: Optional[Quote] = None
    updated_at: Optional[float] = None

    @property
    def best_quote(self) -> Optional[Quote]:
        return self.current_result.best_quote if self.current_result else None

    @property
    def active_quote(self) -> Optional[Quote]:
        """The quote the user picked, else the best one."""
        return self.selected_quote or self.best_quote


Listener = Callable[[SessionState], None]


class QuoteSession:
    """Debounced, cancellable quote fetching for one consumer.

    Every accepted input and every fetch takes a new sequence number. A fetch
    only commits its outcome if its number is still the latest, so a slow
    response for old input can never replace the result for newer input.
    """

    def __init__(
        self,
        service: QuoteService,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        staleness_seconds: float = DEFAULT_STALENESS_SECONDS,
        filters: Optional[RouteFilters] = None,
    ):
        self.service = service
        self.filters = filters
        self.debounce_seconds = debounce_seconds
        self.staleness_seconds = staleness_seconds

        self._state = SessionState()
        self._listeners: list[Listener] = []
        self._sequence = 0
        self._debounce_task: Optional[asyncio.Task] = None
        self._fetch_task: Optional[asyncio.Task] = None
        self._stale_task: Optional[asyncio.Task] = None
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def get_state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_input(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: Optional[float] = None,
        deadline_minutes: Optional[int] = None,
    ) -> None:
        """Accept new input and (re)start the debounce timer.

        Invalid input is reported through the state immediately and never
        reaches a source.
        """
        self._ensure_active()
        if slippage_percent is None:
            slippage_percent = self.service.settings.default_slippage_percent

        # anything in flight belongs to the previous input now
        self._sequence += 1
        self._cancel(self._debounce_task)
        self._cancel(self._fetch_task)

        try:
            amount_in = self.service.validate_request(
                token_in, token_out, amount_in, slippage_percent
            )
            if deadline_minutes is not None and deadline_minutes <= 0:
                raise InvalidInput("Deadline must be a positive number of minutes")
        except InvalidInput as e:
            logger.debug(f"Rejected session input: {e}")
            # nothing to refresh until valid input arrives
            self._set_error(e, last_params=None)
            return

        params = SessionParams(token_in, token_out, amount_in, slippage_percent, deadline_minutes)
        self._update(
            status=SessionStatus.DEBOUNCING,
            last_params=params,
            error=None,
            showing_previous_result=False,
        )
        self._debounce_task = asyncio.create_task(self._debounce(), name="quote-session-debounce")

    def refresh(self, force: bool = False) -> asyncio.Task:
        """Fetch now for the last input, skipping any pending debounce.

        Args:
            force: bypass the quote cache read

        Returns:
            The fetch task; awaiting it never raises for fetch errors
        """
        self._ensure_active()
        if self._state.last_params is None:
            raise InvalidInput("No valid input to refresh; call set_input first")
        self._cancel(self._debounce_task)
        return self._start_fetch(force)

    def select_quote(self, quote_id: Optional[str]) -> Quote:
        """Pick a quote from the current ranking instead of the best one.

        ``None`` goes back to the best quote. The choice lasts until the next
        result is committed.

        Raises:
            InvalidInput: no result is shown or the id is not in the ranking
        """
        self._ensure_active()
        result = self._state.current_result
        if result is None:
            raise InvalidInput("No quotes to select from")
        if quote_id is None:
            self._update(selected_quote=None)
            return result.best_quote
        for quote in result.all_quotes:
            if quote.id == quote_id:
                self._update(selected_quote=quote)
                return quote
        raise InvalidInput(f"Unknown quote id {quote_id!r}")

    def dispose(self) -> None:
        """Cancel all pending work and drop listeners. Safe to call twice."""
        if self._disposed:
            return
        self._disposed = True
        self._sequence += 1
        for task in (self._debounce_task, self._fetch_task, self._stale_task):
            self._cancel(task)
        self._listeners.clear()
        logger.debug("Quote session disposed")

    async def wait_until_settled(self) -> SessionState:
        """Wait until no debounce or fetch is pending and return the state."""
        while True:
            pending = [
                task
                for task in (self._debounce_task, self._fetch_task)
                if task is not None and not task.done()
            ]
            if not pending:
                return self._state
            await asyncio.wait(pending)

    async def _debounce(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._start_fetch(force=False)

    def _start_fetch(self, force: bool) -> asyncio.Task:
        self._sequence += 1
        sequence = self._sequence
        self._cancel(self._fetch_task)
        params = self._state.last_params

        self._update(status=SessionStatus.FETCHING)
        self._fetch_task = asyncio.create_task(
            self._fetch(sequence, params, force), name=f"quote-session-fetch-{sequence}"
        )
        return self._fetch_task

    async def _fetch(self, sequence: int, params: SessionParams, force: bool) -> None:
        try:
            result = await self.service.get_aggregated(
                params.token_in,
                params.token_out,
                params.amount_in,
                params.slippage_percent,
                force_refresh=force,
                filters=self.filters,
            )
        except (NoQuotesAvailable, InvalidInput) as e:
            if self._is_current(sequence):
                self._set_error(e)
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error fetching quotes: {e}")
            if self._is_current(sequence):
                self._set_error(e)
            return

        if not self._is_current(sequence):
            logger.debug(f"Discarding result of superseded fetch #{sequence}")
            return

        self._update(
            status=SessionStatus.SUCCESS,
            current_result=result,
            is_stale=False,
            error=None,
            showing_previous_result=False,
            selected_quote=None,
            updated_at=time.time(),
        )
        self._restart_staleness_timer()

    def _restart_staleness_timer(self) -> None:
        self._cancel(self._stale_task)
        self._stale_task = asyncio.create_task(self._mark_stale(), name="quote-session-stale")

    async def _mark_stale(self) -> None:
        await asyncio.sleep(self.staleness_seconds)
        if not self._disposed and self._state.current_result is not None:
            self._update(is_stale=True)

    def _is_current(self, sequence: int) -> bool:
        return not self._disposed and sequence == self._sequence

    def _set_error(self, error: Exception, **changes) -> None:
        self._update(
            status=SessionStatus.ERROR,
            error=error,
            showing_previous_result=self._state.current_result is not None,
            **changes,
        )

    def _update(self, **changes) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)

    def _ensure_active(self) -> None:
        if self._disposed:
            raise SessionDisposedError("Quote session has been disposed")

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()
