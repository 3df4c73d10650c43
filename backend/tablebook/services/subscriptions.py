"""Subscription broker — live booking lists for customers and restaurant staff.

A subscriber registers filters and a callback. Whenever a booking in scope
of those filters is created or changes status, the subscriber receives the
complete, freshly sorted list of matching bookings, read from committed
state. Each subscriber has its own queue and worker task, so deliveries to
one subscriber are strictly ordered and a slow subscriber never delays
another.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any

from tablebook.services.booking_store import BookingFilters

logger = logging.getLogger(__name__)

Snapshot = Sequence[Any]
SnapshotLoader = Callable[[BookingFilters], Awaitable[Snapshot]]
OnChange = Callable[[Snapshot], Any]


class _Subscription:
    def __init__(self, filters: BookingFilters, on_change: OnChange) -> None:
        self.id = uuid.uuid4()
        self.filters = filters
        self.on_change = on_change
        self.queue: asyncio.Queue[str] = asyncio.Queue()
        self.task: asyncio.Task | None = None


class SubscriptionBroker:
    """Delivers ordered, consistent booking-list snapshots to live viewers."""

    def __init__(self, load_snapshot: SnapshotLoader) -> None:
        self._load_snapshot = load_snapshot
        self._subscriptions: dict[uuid.UUID, _Subscription] = {}
        # Cancelled workers that have not finished yet.
        self._retiring: set[asyncio.Task] = set()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _register(self, filters: BookingFilters, on_change: OnChange, initial: bool) -> _Subscription:
        if self._closed:
            raise RuntimeError("Subscription broker is closed")

        sub = _Subscription(filters, on_change)
        self._subscriptions[sub.id] = sub
        sub.task = asyncio.create_task(self._worker(sub), name=f"booking-subscription-{sub.id}")
        if initial:
            sub.queue.put_nowait("initial")
        logger.debug("Subscription %s registered (%s)", sub.id, filters)
        return sub

    def subscribe(self, filters: BookingFilters, on_change: OnChange, *, initial: bool = True) -> Callable[[], None]:
        """Register ``on_change`` for bookings matching ``filters``.

        ``on_change`` may be a plain function or a coroutine function. With
        ``initial`` the current list is delivered straight away. Returns an
        idempotent ``unsubscribe`` callable.
        """
        sub = self._register(filters, on_change, initial)

        def unsubscribe() -> None:
            self._remove(sub.id)

        return unsubscribe

    def _remove(self, sub_id: uuid.UUID) -> asyncio.Task | None:
        """Drop a subscription and cancel its worker. Returns the worker if it is still winding down."""
        sub = self._subscriptions.pop(sub_id, None)
        if sub is None or sub.task is None or sub.task.done():
            return None
        sub.task.cancel()
        self._retiring.add(sub.task)
        sub.task.add_done_callback(self._retiring.discard)
        logger.debug("Subscription %s removed", sub_id)
        return sub.task

    async def publish(self, booking: Any, event: str) -> None:
        """Notify every subscriber whose filters cover ``booking``.

        Must be called after the change has been committed.
        """
        for sub in list(self._subscriptions.values()):
            if sub.filters.in_scope(booking):
                sub.queue.put_nowait(event)

    async def _worker(self, sub: _Subscription) -> None:
        while True:
            event = await sub.queue.get()
            try:
                snapshot = await self._load_snapshot(sub.filters)
                result = sub.on_change(snapshot)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Delivering %s to subscription %s failed", event, sub.id)
            finally:
                sub.queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued change has been delivered."""
        for sub in list(self._subscriptions.values()):
            await sub.queue.join()

    async def stream(self, filters: BookingFilters) -> AsyncIterator[Snapshot]:
        """Async iterator over snapshots, starting with the current list.

        Closing the iterator unsubscribes and waits for the worker to stop.
        """
        queue: asyncio.Queue[Snapshot] = asyncio.Queue()
        sub = self._register(filters, queue.put_nowait, initial=True)
        try:
            while True:
                yield await queue.get()
        finally:
            task = self._remove(sub.id)
            if task is not None:
                await asyncio.gather(task, return_exceptions=True)

    async def close(self) -> None:
        """Cancel every subscription. Later ``unsubscribe`` calls are no-ops."""
        self._closed = True
        for sub_id in list(self._subscriptions):
            self._remove(sub_id)
        if self._retiring:
            await asyncio.gather(*self._retiring, return_exceptions=True)
