"""
Unit tests for the client reconciliation loop.

Uses short intervals so timing-based cases run quickly.
"""

import asyncio
import time

import pytest

from app.client.reconciliation import ReconciliationLoop
from app.domain.subscription import PlanTier, UserPreferences


USER = "user-1"


def prefs(tier: PlanTier) -> UserPreferences:
    return UserPreferences(user_id=USER, plan_tier=tier)


class ScriptedFetch:
    """Returns free until `pro_after` calls, tracking overlap."""

    def __init__(self, pro_after=None, delay=0.0, fail_first=0):
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.pro_after = pro_after
        self.delay = delay
        self.fail_first = fail_first

    async def __call__(self) -> UserPreferences:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.calls <= self.fail_first:
                raise RuntimeError("network down")
            if self.pro_after is not None and self.calls > self.pro_after:
                return prefs(PlanTier.PRO)
            return prefs(PlanTier.FREE)
        finally:
            self.in_flight -= 1


class TestReconciliationLoop:

    @pytest.mark.asyncio
    async def test_already_converged_on_initial_refresh(self):
        fetch = ScriptedFetch(pro_after=0)

        result = await ReconciliationLoop(fetch, poll_interval=0.01, timeout=1).run()

        assert result.converged is True
        assert result.source == "initial"
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_poll_converges(self):
        fetch = ScriptedFetch(pro_after=2)

        result = await ReconciliationLoop(fetch, poll_interval=0.01, timeout=1).run()

        assert result.converged is True
        assert result.source == "poll"
        assert result.preferences.plan_tier == PlanTier.PRO
        assert fetch.calls == 3

    @pytest.mark.asyncio
    async def test_stops_within_ceiling_when_nothing_changes(self):
        fetch = ScriptedFetch()

        started = time.monotonic()
        result = await ReconciliationLoop(fetch, poll_interval=0.02, timeout=0.15).run()
        elapsed = time.monotonic() - started

        assert result.converged is False
        assert result.preferences.plan_tier == PlanTier.FREE
        assert elapsed < 1.0
        # No refresh happens after the loop returned
        calls = fetch.calls
        await asyncio.sleep(0.1)
        assert fetch.calls == calls

    @pytest.mark.asyncio
    async def test_refreshes_never_overlap(self):
        fetch = ScriptedFetch(delay=0.03)

        await ReconciliationLoop(fetch, poll_interval=0.005, timeout=0.2).run()

        assert fetch.max_in_flight == 1
        assert fetch.calls >= 2

    @pytest.mark.asyncio
    async def test_push_wins_and_cancels_poll(self):
        fetch = ScriptedFetch()
        stream_closed = asyncio.Event()

        async def changes():
            try:
                await asyncio.sleep(0.02)
                yield prefs(PlanTier.PRO)
                await asyncio.sleep(10)
            finally:
                stream_closed.set()

        loop = ReconciliationLoop(fetch, changes, poll_interval=5, timeout=2)
        result = await loop.run()

        assert result.converged is True
        assert result.source == "push"
        assert fetch.calls == 1
        await asyncio.wait_for(stream_closed.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_fetch_errors_keep_last_state(self):
        fetch = ScriptedFetch(pro_after=3, fail_first=2)

        result = await ReconciliationLoop(fetch, poll_interval=0.01, timeout=1).run()

        assert result.converged is True
        assert fetch.calls == 4

    @pytest.mark.asyncio
    async def test_push_failure_falls_back_to_polling(self):
        fetch = ScriptedFetch(pro_after=1)

        async def broken_changes():
            raise ConnectionError("stream refused")
            yield  # pragma: no cover

        result = await ReconciliationLoop(
            fetch, broken_changes, poll_interval=0.01, timeout=1
        ).run()

        assert result.converged is True
        assert result.source == "poll"

    @pytest.mark.asyncio
    async def test_context_exit_cancels_everything(self):
        fetch = ScriptedFetch()
        listening = asyncio.Event()
        stream_closed = asyncio.Event()

        async def changes():
            listening.set()
            try:
                await asyncio.sleep(10)
                yield prefs(PlanTier.PRO)  # pragma: no cover
            finally:
                stream_closed.set()

        async with ReconciliationLoop(fetch, changes, poll_interval=0.01, timeout=10) as loop:
            await asyncio.wait_for(listening.wait(), timeout=1)
            task = loop.start()

        assert task.cancelled()
        assert stream_closed.is_set()
        calls = fetch.calls
        await asyncio.sleep(0.05)
        assert fetch.calls == calls

    @pytest.mark.asyncio
    async def test_cancelling_run_task_tears_down_children(self):
        fetch = ScriptedFetch()
        before = asyncio.all_tasks()

        task = asyncio.create_task(
            ReconciliationLoop(fetch, poll_interval=0.01, timeout=10).run()
        )
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        leftover = [
            t for t in asyncio.all_tasks() - before
            if t is not task and not t.done()
        ]
        assert leftover == []

    @pytest.mark.asyncio
    async def test_on_update_called_on_change(self):
        fetch = ScriptedFetch(pro_after=2)
        seen = []

        await ReconciliationLoop(
            fetch, poll_interval=0.01, timeout=1, on_update=seen.append
        ).run()

        assert [p.plan_tier for p in seen] == [PlanTier.FREE, PlanTier.PRO]

    @pytest.mark.asyncio
    async def test_hung_initial_refresh_stops_at_ceiling(self):
        cancelled = asyncio.Event()

        async def hung_fetch():
            try:
                await asyncio.sleep(3600)
            finally:
                cancelled.set()

        loop = ReconciliationLoop(hung_fetch, poll_interval=0.05, timeout=0.2)
        result = await asyncio.wait_for(loop.wait(), timeout=2.0)

        assert result.converged is False
        assert result.preferences is None
        assert result.refreshes == 1
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_polling(self):
        fetch = ScriptedFetch(pro_after=2)

        def listener(preferences):
            raise RuntimeError("view gone")

        result = await ReconciliationLoop(
            fetch, poll_interval=0.01, timeout=1, on_update=listener
        ).run()

        assert result.converged is True
        assert result.source == "poll"
        assert fetch.calls == 3

    @pytest.mark.asyncio
    async def test_failing_listener_on_initial_refresh(self):
        fetch = ScriptedFetch(pro_after=0)

        def listener(preferences):
            raise RuntimeError("view gone")

        result = await ReconciliationLoop(
            fetch, poll_interval=0.01, timeout=1, on_update=listener
        ).run()

        assert result.converged is True
        assert result.source == "initial"

    def test_invalid_parameters(self):
        fetch = ScriptedFetch()
        with pytest.raises(ValueError):
            ReconciliationLoop(fetch, poll_interval=0)
        with pytest.raises(ValueError):
            ReconciliationLoop(fetch, timeout=-1)
