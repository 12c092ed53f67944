"""Concurrent fan-out of one quote request to every configured source."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

from swapquote.errors import AdapterFailure, FailureKind, NoQuotesAvailable
from swapquote.routing.base import Quote, SourceAdapter
from swapquote.tokens import Token

logger = logging.getLogger(__name__)

DEFAULT_FANOUT_DEADLINE = 10.0


@dataclass
class CollectionReport:
    """Everything one fan-out round produced, in adapter order."""

    quotes: list[Quote] = field(default_factory=list)
    failures: list[AdapterFailure] = field(default_factory=list)
    elapsed_seconds: float = 0.0


class FanOutCollector:
    """Queries all adapters concurrently and keeps the ones that answered.

    The collector waits for every adapter to settle, but never past
    ``deadline_seconds``: adapters still running at the deadline are
    cancelled and counted as timeouts.
    """

    def __init__(
        self,
        adapters: Optional[Sequence[SourceAdapter]] = None,
        deadline_seconds: float = DEFAULT_FANOUT_DEADLINE,
    ):
        self.adapters: list[SourceAdapter] = list(adapters or [])
        self.deadline_seconds = deadline_seconds

    def add_adapter(self, adapter: SourceAdapter) -> None:
        self.adapters.append(adapter)

    def get_adapter(self, name: str) -> Optional[SourceAdapter]:
        for adapter in self.adapters:
            if adapter.name == name:
                return adapter
        return None

    async def collect(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: float = 0.5,
        adapters: Optional[Sequence[SourceAdapter]] = None,
    ) -> list[Quote]:
        """Return the successful quotes, in adapter order.

        Raises:
            NoQuotesAvailable: if no adapter produced a quote
        """
        report = await self.collect_report(
            token_in, token_out, amount_in, slippage_percent, adapters
        )
        if not report.quotes:
            logger.error(
                f"No quotes available for {amount_in} {token_in.symbol}->{token_out.symbol} "
                f"from {len(report.failures)} source(s)"
            )
            raise NoQuotesAvailable(report.failures)
        return report.quotes

    async def collect_report(
        self,
        token_in: Token,
        token_out: Token,
        amount_in: str,
        slippage_percent: float = 0.5,
        adapters: Optional[Sequence[SourceAdapter]] = None,
    ) -> CollectionReport:
        """Run the fan-out and report quotes and failures without raising."""
        selected = list(adapters) if adapters is not None else self.adapters
        started = time.monotonic()
        report = CollectionReport()
        if not selected:
            logger.warning("Fan-out requested with no adapters configured")
            return report

        logger.debug(
            f"Fanning out {amount_in} {token_in.symbol}->{token_out.symbol} "
            f"to {len(selected)} source(s)"
        )
        tasks = [
            asyncio.create_task(
                adapter.fetch_quote(token_in, token_out, amount_in, slippage_percent),
                name=f"quote:{adapter.name}",
            )
            for adapter in selected
        ]

        try:
            _, pending = await asyncio.wait(tasks, timeout=self.deadline_seconds)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            # let cancelled adapters unwind so their HTTP calls are released
            await asyncio.gather(*pending, return_exceptions=True)

        for adapter, task in zip(selected, tasks):
            if task in pending or task.cancelled():
                outcome = AdapterFailure(
                    adapter.name,
                    FailureKind.TIMEOUT,
                    f"still running at {self.deadline_seconds}s fan-out deadline",
                )
            elif task.exception() is not None:
                # adapters are expected to return failures, this is a bug in one of them
                error = task.exception()
                logger.error(
                    f"{adapter.name} raised instead of returning a failure: "
                    f"{type(error).__name__}: {error}",
                    exc_info=error,
                )
                outcome = AdapterFailure(
                    adapter.name, FailureKind.SOURCE_UNAVAILABLE, str(error), error
                )
            else:
                outcome = task.result()

            if isinstance(outcome, Quote):
                report.quotes.append(outcome)
            else:
                self._log_failure(outcome)
                report.failures.append(outcome)

        report.elapsed_seconds = time.monotonic() - started
        logger.info(
            f"Fan-out {token_in.symbol}->{token_out.symbol}: {len(report.quotes)} quote(s), "
            f"{len(report.failures)} failure(s) in {report.elapsed_seconds:.2f}s"
        )
        return report

    @staticmethod
    def _log_failure(failure: AdapterFailure) -> None:
        if failure.kind == FailureKind.NO_LIQUIDITY:
            logger.debug(f"No liquidity: {failure}")
        else:
            logger.warning(f"Source failed: {failure}")
