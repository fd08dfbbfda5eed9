"""
Client Reconciliation Loop

After a checkout redirect the webhook may not have landed yet. This loop
bridges the gap: one immediate refresh, then a bounded polling task and a
push-subscription task race to observe the expected plan tier. The first
observation wins and both tasks are cancelled. On timeout the loop stops
quietly and keeps the last preferences it saw.

The loop only reads preferences; it never writes them.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from app.domain.subscription import PlanTier, UserPreferences


logger = logging.getLogger(__name__)

FetchPreferences = Callable[[], Awaitable[UserPreferences]]
PreferencesChanges = Callable[[], AsyncIterator[UserPreferences]]
PreferencesListener = Callable[[UserPreferences], None]


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation run."""
    converged: bool
    preferences: Optional[UserPreferences]
    refreshes: int
    source: Optional[str] = None  # "initial", "poll" or "push"


class ReconciliationLoop:
    """
    Converge the client's view of plan_tier on the server value.

    Usage:
        async with ReconciliationLoop(client.fetch_preferences,
                                      client.stream_changes) as loop:
            result = await loop.wait()

    Leaving the `async with` block (the owning view going away) cancels
    every task the loop started. Refreshes are strictly sequential: the
    next poll interval starts only after the previous refresh finished.
    """

    def __init__(
        self,
        fetch: FetchPreferences,
        changes: Optional[PreferencesChanges] = None,
        expected_tier: PlanTier = PlanTier.PRO,
        poll_interval: float = 3.0,
        timeout: float = 60.0,
        on_update: Optional[PreferencesListener] = None,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self._fetch = fetch
        self._changes = changes
        self._expected_tier = expected_tier
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._on_update = on_update

        self._converged = asyncio.Event()
        self._latest: Optional[UserPreferences] = None
        self._source: Optional[str] = None
        self._refreshes = 0
        self._run_task: Optional[asyncio.Task] = None

    @property
    def latest(self) -> Optional[UserPreferences]:
        """Last preferences observed by either path."""
        return self._latest

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> asyncio.Task:
        """Run the loop in the background."""
        if self._run_task is None:
            self._run_task = asyncio.create_task(self.run())
        return self._run_task

    async def wait(self) -> ReconciliationResult:
        """Wait for the background run to finish."""
        return await self.start()

    async def close(self) -> None:
        """Cancel the loop and every task it owns."""
        task = self._run_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "ReconciliationLoop":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self) -> ReconciliationResult:
        """
        Refresh once, then poll and listen until convergence or timeout.

        The timeout covers the initial refresh too. Cancelling the task
        running this coroutine tears down the poll and push tasks before the
        cancellation propagates.
        """
        try:
            await asyncio.wait_for(self._reconcile(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.info(
                f"Plan tier did not reach {self._expected_tier.value} within "
                f"{self._timeout}s, stopping reconciliation"
            )

        return self._result()

    async def _reconcile(self) -> None:
        await self._refresh("initial")
        if self._converged.is_set():
            return

        tasks = [asyncio.create_task(self._poll(), name="preferences-poll")]
        if self._changes is not None:
            tasks.append(asyncio.create_task(self._listen(), name="preferences-push"))

        try:
            await self._converged.wait()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _poll(self) -> None:
        while not self._converged.is_set():
            await asyncio.sleep(self._poll_interval)
            await self._refresh("poll")

    async def _listen(self) -> None:
        stream = self._changes()
        try:
            async for preferences in stream:
                self._observe(preferences, "push")
                if self._converged.is_set():
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Polling keeps running without the push path
            logger.warning(f"Preferences push subscription failed: {e}")
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _refresh(self, source: str) -> None:
        self._refreshes += 1
        try:
            preferences = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Error refreshing preferences: {e}")
            return
        self._observe(preferences, source)

    def _observe(self, preferences: UserPreferences, source: str) -> None:
        if self._converged.is_set():
            return

        changed = self._latest is None or preferences != self._latest
        self._latest = preferences
        if changed and self._on_update is not None:
            try:
                self._on_update(preferences)
            except Exception as e:
                logger.warning(f"Preferences listener failed: {e}")

        if preferences.plan_tier == self._expected_tier:
            self._source = source
            self._converged.set()
            logger.info(f"Plan tier {self._expected_tier.value} observed via {source}")

    def _result(self) -> ReconciliationResult:
        return ReconciliationResult(
            converged=self._converged.is_set(),
            preferences=self._latest,
            refreshes=self._refreshes,
            source=self._source,
        )
