"""Tests for the interactive quote session."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from swapquote.errors import FailureKind, InvalidInput, NoQuotesAvailable, SessionDisposedError
from swapquote.routing.dry_run import SimulatedAdapter
from swapquote.routing.ranker import RouteFilters
from swapquote.session import QuoteSession, SessionStatus


class DelayedAdapter(SimulatedAdapter):
    """Simulated source whose latency depends on the requested amount."""

    def __init__(self, delays: dict, **kwargs):
        super().__init__(**kwargs)
        self.delays = delays

    async def _fetch(self, token_in, token_out, amount_in, slippage_percent):
        await asyncio.sleep(self.delays.get(amount_in, 0))
        return await super()._fetch(token_in, token_out, amount_in, slippage_percent)


@pytest.fixture
def adapter():
    return SimulatedAdapter(name="A")


@pytest.fixture
def session(make_service, adapter):
    session = QuoteSession(make_service([adapter]), debounce_seconds=0.02, staleness_seconds=30)
    yield session
    session.dispose()


class TestSessionInput:
    """Tests for input handling and debounce."""

    @pytest.mark.asyncio
    async def test_fetches_after_debounce(self, session, adapter, eth, usdc):
        session.set_input(eth, usdc, "1")
        assert session.get_state().status == SessionStatus.DEBOUNCING
        assert adapter.call_count == 0

        state = await session.wait_until_settled()

        assert state.status == SessionStatus.SUCCESS
        assert state.current_result.best_quote.source_name == "A"
        assert state.error is None
        assert state.is_stale is False
        assert adapter.call_count == 1

    @pytest.mark.asyncio
    async def test_rapid_input_coalesces(self, session, adapter, eth, usdc):
        for amount in ("1", "1.2", "1.25", "1.3"):
            session.set_input(eth, usdc, amount)
            await asyncio.sleep(0.005)

        state = await session.wait_until_settled()

        assert adapter.call_count == 1
        assert state.current_result.best_quote.amount_in == "1.3"

    @pytest.mark.asyncio
    async def test_invalid_input_never_fetches(self, session, adapter, eth, usdc):
        session.set_input(eth, usdc, "-5")
        state = session.get_state()

        assert state.status == SessionStatus.ERROR
        assert isinstance(state.error, InvalidInput)
        await asyncio.sleep(0.05)
        assert adapter.call_count == 0

    @pytest.mark.asyncio
    async def test_invalid_deadline(self, session, eth, usdc):
        session.set_input(eth, usdc, "1", deadline_minutes=0)
        assert isinstance(session.get_state().error, InvalidInput)

    @pytest.mark.asyncio
    async def test_params_recorded(self, session, eth, usdc):
        session.set_input(eth, usdc, "2", slippage_percent=1.0, deadline_minutes=20)
        params = session.get_state().last_params
        assert params.amount_in == "2"
        assert params.slippage_percent == 1.0
        assert params.deadline_minutes == 20


class TestSessionConcurrency:
    """Tests for superseded and failed fetches."""

    @pytest.mark.asyncio
    async def test_latest_input_wins(self, make_service, eth, usdc):
        adapter = DelayedAdapter({"1": 0.3, "2": 0.0}, name="A")
        session = QuoteSession(make_service([adapter]), debounce_seconds=0.01)

        session.set_input(eth, usdc, "1")
        await asyncio.sleep(0.05)
        assert session.get_state().status == SessionStatus.FETCHING

        session.set_input(eth, usdc, "2")
        state = await session.wait_until_settled()
        await asyncio.sleep(0.35)

        assert session.get_state() is state
        assert state.current_result.best_quote.amount_in == "2"
        session.dispose()

    @pytest.mark.asyncio
    async def test_refresh_skips_debounce(self, make_service, adapter, eth, usdc):
        session = QuoteSession(make_service([adapter]), debounce_seconds=10)
        session.set_input(eth, usdc, "1")

        await session.refresh()

        assert session.get_state().status == SessionStatus.SUCCESS
        assert adapter.call_count == 1
        session.dispose()

    @pytest.mark.asyncio
    async def test_refresh_without_input(self, session):
        with pytest.raises(InvalidInput):
            session.refresh()

    @pytest.mark.asyncio
    async def test_no_quotes_keeps_previous_result(self, session, adapter, eth, usdc):
        session.set_input(eth, usdc, "1")
        first = await session.wait_until_settled()

        adapter.failure = FailureKind.NO_LIQUIDITY
        await session.refresh(force=True)
        state = session.get_state()

        assert state.status == SessionStatus.ERROR
        assert isinstance(state.error, NoQuotesAvailable)
        assert state.showing_previous_result is True
        assert state.current_result is first.current_result

    @pytest.mark.asyncio
    async def test_refresh_after_invalid_input(self, session, adapter, eth, usdc):
        session.set_input(eth, usdc, "1")
        first = await session.wait_until_settled()

        session.set_input(eth, usdc, "-5")
        with pytest.raises(InvalidInput):
            session.refresh()

        state = session.get_state()
        assert state.status == SessionStatus.ERROR
        assert state.last_params is None
        assert state.showing_previous_result is True
        assert state.current_result is first.current_result
        assert adapter.call_count == 1

        session.set_input(eth, usdc, "2")
        await session.refresh()
        assert session.get_state().best_quote.amount_in == "2"

    @pytest.mark.asyncio
    async def test_late_result_for_old_input_is_discarded(self, make_service, eth, usdc):
        service = make_service([SimulatedAdapter(name="A")])
        aggregate = service.get_aggregated

        async def ignores_cancellation(token_in, token_out, amount_in, slippage_percent, **kwargs):
            if amount_in == "1":
                try:
                    await asyncio.sleep(0.1)
                except asyncio.CancelledError:
                    await asyncio.sleep(0.1)
            return await aggregate(token_in, token_out, amount_in, slippage_percent, **kwargs)

        service.get_aggregated = ignores_cancellation
        session = QuoteSession(service, debounce_seconds=0)
        committed = []

        def record(state):
            if state.status == SessionStatus.SUCCESS:
                committed.append(state.best_quote.amount_in)

        session.subscribe(record)

        session.set_input(eth, usdc, "1")
        await asyncio.sleep(0.02)
        session.set_input(eth, usdc, "2")
        await session.wait_until_settled()
        await asyncio.sleep(0.25)

        assert committed == ["2"]
        assert session.get_state().best_quote.amount_in == "2"
        session.dispose()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded(self, make_service, adapter, eth, usdc):
        service = make_service([adapter])
        service.get_aggregated = AsyncMock(side_effect=RuntimeError("boom"))
        session = QuoteSession(service, debounce_seconds=0)

        session.set_input(eth, usdc, "1")
        state = await session.wait_until_settled()

        assert state.status == SessionStatus.ERROR
        assert isinstance(state.error, RuntimeError)
        assert state.showing_previous_result is False
        session.dispose()


class TestSessionLifecycle:
    """Tests for staleness, listeners and disposal."""

    @pytest.mark.asyncio
    async def test_result_goes_stale(self, make_service, adapter, eth, usdc):
        session = QuoteSession(make_service([adapter]), debounce_seconds=0, staleness_seconds=0.05)
        session.set_input(eth, usdc, "1")
        await session.wait_until_settled()
        assert session.get_state().is_stale is False

        await asyncio.sleep(0.1)
        assert session.get_state().is_stale is True

        await session.refresh(force=True)
        assert session.get_state().is_stale is False
        session.dispose()

    @pytest.mark.asyncio
    async def test_listeners_receive_snapshots(self, session, eth, usdc):
        seen = []
        unsubscribe = session.subscribe(lambda state: seen.append(state.status))

        session.set_input(eth, usdc, "1")
        await session.wait_until_settled()
        unsubscribe()
        session.set_input(eth, usdc, "2")

        assert seen == [SessionStatus.DEBOUNCING, SessionStatus.FETCHING, SessionStatus.SUCCESS]

    @pytest.mark.asyncio
    async def test_failing_listener_is_isolated(self, session, eth, usdc):
        def broken(state):
            raise ValueError("listener bug")

        seen = []
        session.subscribe(broken)
        session.subscribe(lambda state: seen.append(state.status))

        session.set_input(eth, usdc, "1")
        state = await session.wait_until_settled()

        assert state.status == SessionStatus.SUCCESS
        assert seen[-1] == SessionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_dispose_cancels_pending_work(self, session, adapter, eth, usdc):
        session.set_input(eth, usdc, "1")
        session.dispose()
        session.dispose()

        await asyncio.sleep(0.05)
        assert adapter.call_count == 0
        assert session.disposed is True

    @pytest.mark.asyncio
    async def test_disposed_session_rejects_work(self, session, eth, usdc):
        session.dispose()
        with pytest.raises(SessionDisposedError):
            session.set_input(eth, usdc, "1")
        with pytest.raises(SessionDisposedError):
            session.refresh()


class TestSessionScenarios:
    """Timing scenarios from typing in a swap form."""

    @pytest.mark.asyncio
    async def test_amount_changed_within_debounce(self, make_service, adapter, eth, usdc):
        session = QuoteSession(make_service([adapter]), debounce_seconds=0.3)

        session.set_input(eth, usdc, "1")
        await asyncio.sleep(0.2)
        session.set_input(eth, usdc, "10")
        state = await session.wait_until_settled()

        assert adapter.call_count == 1
        assert state.current_result.best_quote.amount_in == "10"
        session.dispose()

    @pytest.mark.asyncio
    async def test_all_sources_fail(self, make_service, eth, usdc):
        adapters = [
            SimulatedAdapter(name="A", failure=FailureKind.SOURCE_UNAVAILABLE),
            SimulatedAdapter(name="B", failure=FailureKind.TIMEOUT),
        ]
        session = QuoteSession(make_service(adapters), debounce_seconds=0)

        session.set_input(eth, usdc, "1")
        state = await session.wait_until_settled()

        assert state.status == SessionStatus.ERROR
        assert isinstance(state.error, NoQuotesAvailable)
        assert state.current_result is None
        assert state.showing_previous_result is False
        session.dispose()


class TestQuoteSelection:
    """Tests for picking a non-best quote and for session route filters."""

    @pytest.fixture
    def adapters(self):
        return [
            SimulatedAdapter(name="A", amount_out="1000"),
            SimulatedAdapter(name="B", amount_out="990"),
        ]

    @pytest.mark.asyncio
    async def test_select_and_reset(self, make_service, adapters, eth, usdc):
        session = QuoteSession(make_service(adapters), debounce_seconds=0)
        session.set_input(eth, usdc, "1")
        state = await session.wait_until_settled()
        runner_up = state.current_result.all_quotes[1]

        assert state.selected_quote is None
        assert state.active_quote is state.best_quote

        assert session.select_quote(runner_up.id) is runner_up
        assert session.get_state().active_quote is runner_up

        await session.refresh(force=True)
        state = session.get_state()
        assert state.selected_quote is None
        assert state.active_quote.source_name == "A"
        session.dispose()

    @pytest.mark.asyncio
    async def test_select_none_returns_to_best(self, make_service, adapters, eth, usdc):
        session = QuoteSession(make_service(adapters), debounce_seconds=0)
        session.set_input(eth, usdc, "1")
        state = await session.wait_until_settled()

        session.select_quote(state.current_result.all_quotes[1].id)
        assert session.select_quote(None) is state.best_quote
        assert session.get_state().selected_quote is None
        session.dispose()

    @pytest.mark.asyncio
    async def test_unknown_id_rejected(self, make_service, adapters, eth, usdc):
        session = QuoteSession(make_service(adapters), debounce_seconds=0)
        with pytest.raises(InvalidInput, match="No quotes"):
            session.select_quote("abc")

        session.set_input(eth, usdc, "1")
        await session.wait_until_settled()
        with pytest.raises(InvalidInput, match="Unknown quote id"):
            session.select_quote("abc")
        assert session.get_state().selected_quote is None
        session.dispose()

    @pytest.mark.asyncio
    async def test_session_filters(self, make_service, eth, weth, usdc):
        adapters = [
            SimulatedAdapter(name="direct", amount_out="1000"),
            SimulatedAdapter(name="via-weth", amount_out="1010", via=weth),
        ]
        session = QuoteSession(
            make_service(adapters), debounce_seconds=0, filters=RouteFilters(max_hops=1)
        )

        session.set_input(eth, usdc, "1")
        state = await session.wait_until_settled()

        assert [q.source_name for q in state.current_result.all_quotes] == ["direct"]
        session.dispose()
