# lessonflow/realtime/reconciler.py
"""
Realtime reconciliation loop.

Keeps one viewer's availability view fresh from two independent sources:
- push: relevant change events from the change feed (best-effort)
- interval: a fixed poll that bounds staleness when pushes are lost

Both sources, plus explicit user refreshes and post-mutation passes, funnel
into one asyncio.Queue. A single consumer drains it and collapses everything
queued into one refresh. At most one refresh runs at a time: a caller that
arrives while one is in flight joins it and gets the same result.

A refresh is bounded by a timeout and always frees the in-flight slot on
success, timeout or error, so later triggers are never starved.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
import logging
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Generic,
    List,
    Optional,
    Set,
    TypeVar,
)

from lessonflow.core.config import settings
from lessonflow.core.time_utils import utc_now
from lessonflow.monitoring.prometheus_metrics import prometheus_metrics
from lessonflow.schemas.realtime import LessonChangeEvent

logger = logging.getLogger(__name__)

V = TypeVar("V")


class RefreshTrigger(str, Enum):
    PUSH = "push"
    INTERVAL = "interval"
    USER = "user"
    MUTATION = "mutation"


# Triggers that show a loading state; background refreshes stay silent
VISIBLE_TRIGGERS = frozenset({RefreshTrigger.USER, RefreshTrigger.MUTATION})

# When several triggers collapse into one refresh, the most visible one wins
_PRIORITY = {
    RefreshTrigger.INTERVAL: 0,
    RefreshTrigger.PUSH: 1,
    RefreshTrigger.USER: 2,
    RefreshTrigger.MUTATION: 3,
}


class ReconciliationLoop(Generic[V]):
    """Coalescing refresh scheduler for one viewer."""

    def __init__(
        self,
        refresh_fn: Callable[[], Awaitable[V]],
        *,
        change_source: Optional[Callable[[], AsyncIterator[LessonChangeEvent]]] = None,
        relevance: Optional[Callable[[LessonChangeEvent], bool]] = None,
        poll_interval: Optional[float] = None,
        refresh_timeout: Optional[float] = None,
        on_view: Optional[Callable[[V], Any]] = None,
    ):
        self._refresh_fn = refresh_fn
        self._change_source = change_source
        self._relevance = relevance
        self.poll_interval = poll_interval or settings.realtime_poll_interval_seconds
        self.refresh_timeout = refresh_timeout or settings.refresh_timeout_seconds
        self._on_view = on_view

        self.view: Optional[V] = None
        self.loading = False
        self.last_error: Optional[BaseException] = None
        self.last_refreshed_at: Optional[datetime] = None
        self.refresh_count = 0
        self.coalesced_count = 0

        self._queue: asyncio.Queue[RefreshTrigger] = asyncio.Queue()
        self._queued: Set[RefreshTrigger] = set()
        self._inflight: Optional[asyncio.Task[Optional[V]]] = None
        self._tasks: List[asyncio.Task[None]] = []
        self._started = False
        self._closed = False

    # ---------------------------------------------------------------- lifecycle

    async def start(self, initial_refresh: bool = True) -> None:
        """Start the consumer, interval timer and (if configured) push listener."""
        if self._closed:
            raise RuntimeError("ReconciliationLoop is closed")
        if self._started:
            return
        self._started = True

        self._tasks.append(asyncio.create_task(self._consume(), name="reconcile-consumer"))
        self._tasks.append(asyncio.create_task(self._poll(), name="reconcile-interval"))
        if self._change_source is not None:
            self._tasks.append(asyncio.create_task(self._listen(), name="reconcile-push"))
        if initial_refresh:
            self.trigger(RefreshTrigger.USER)

    async def aclose(self) -> None:
        """Release the push subscription, the timer and any in-flight refresh together."""
        if self._closed:
            return
        self._closed = True

        tasks: List[asyncio.Task[Any]] = list(self._tasks)
        if self._inflight is not None and not self._inflight.done():
            tasks.append(self._inflight)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._tasks.clear()
        self._inflight = None
        self.loading = False
        logger.debug("[RECONCILE] Loop closed")

    async def __aenter__(self) -> "ReconciliationLoop[V]":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # ----------------------------------------------------------------- triggers

    def trigger(self, trigger: RefreshTrigger) -> None:
        """Queue a refresh request; duplicates already waiting are absorbed."""
        if self._closed:
            return
        if trigger in self._queued:
            self._record_coalesced(trigger)
            return
        self._queued.add(trigger)
        self._queue.put_nowait(trigger)

    async def refresh(self, trigger: RefreshTrigger = RefreshTrigger.USER) -> Optional[V]:
        """
        Refresh now, or join the refresh already in flight.

        Never raises for a failed or timed-out refresh: the previous view is
        returned and the failure is kept on ``last_error``.
        """
        if self._closed:
            raise RuntimeError("ReconciliationLoop is closed")

        current = self._inflight
        if trigger is RefreshTrigger.MUTATION and current is not None and not current.done():
            # That refresh may have read pre-mutation state; wait it out first
            await asyncio.wait({current})
            current = self._inflight

        if current is not None and not current.done():
            self._record_coalesced(trigger)
            if trigger in VISIBLE_TRIGGERS:
                self.loading = True
            return await asyncio.shield(current)

        task = asyncio.create_task(self._run_refresh(trigger))
        self._inflight = task
        return await asyncio.shield(task)

    async def notify_mutation(self) -> Optional[V]:
        """Reconcile after a successful cancel/acknowledge instead of patching local state."""
        return await self.refresh(RefreshTrigger.MUTATION)

    # ---------------------------------------------------------------- internals

    async def _run_refresh(self, trigger: RefreshTrigger) -> Optional[V]:
        if trigger in VISIBLE_TRIGGERS:
            self.loading = True
        try:
            view = await asyncio.wait_for(self._refresh_fn(), timeout=self.refresh_timeout)
        except asyncio.TimeoutError as exc:
            self.last_error = exc
            prometheus_metrics.record_refresh(trigger.value, "timeout")
            logger.warning(
                "[RECONCILE] Refresh timed out after %.1fs; keeping previous view",
                self.refresh_timeout,
                extra={"trigger": trigger.value},
            )
            return self.view
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.last_error = exc
            prometheus_metrics.record_refresh(trigger.value, "error")
            logger.warning(
                "[RECONCILE] Refresh failed: %s; keeping previous view",
                exc,
                extra={"trigger": trigger.value, "error_type": type(exc).__name__},
            )
            return self.view
        finally:
            self.loading = False
            if self._inflight is asyncio.current_task():
                self._inflight = None

        self.view = view
        self.last_error = None
        self.last_refreshed_at = utc_now()
        self.refresh_count += 1
        prometheus_metrics.record_refresh(trigger.value, "success")
        if self._on_view is not None:
            try:
                self._on_view(view)
            except Exception as exc:
                # The new view stays stored even when the listener fails
                logger.warning(
                    "[RECONCILE] on_view callback failed: %s",
                    exc,
                    extra={"trigger": trigger.value, "error_type": type(exc).__name__},
                )
        return view

    async def _consume(self) -> None:
        while True:
            trigger = await self._queue.get()
            batch = [trigger]
            while not self._queue.empty():
                batch.append(self._queue.get_nowait())
            self._queued.clear()

            chosen = max(batch, key=lambda t: _PRIORITY[t])
            for extra in batch:
                if extra is not chosen:
                    self._record_coalesced(extra)
            try:
                await self.refresh(chosen)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "[RECONCILE] Refresh pass failed: %s; waiting for the next trigger",
                    exc,
                    extra={"trigger": chosen.value, "error_type": type(exc).__name__},
                )

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            self.trigger(RefreshTrigger.INTERVAL)

    async def _listen(self) -> None:
        assert self._change_source is not None
        try:
            async for event in self._change_source():
                if self._relevance is None or self._relevance(event):
                    self.trigger(RefreshTrigger.PUSH)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # The interval poll keeps the view bounded-stale without push
            logger.warning(
                "[RECONCILE] Push channel lost: %s; relying on interval poll",
                exc,
                extra={"error_type": type(exc).__name__},
            )

    def _record_coalesced(self, trigger: RefreshTrigger) -> None:
        self.coalesced_count += 1
        prometheus_metrics.record_coalesced(trigger.value)
