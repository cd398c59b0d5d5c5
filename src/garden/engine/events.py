"""Run event fan-out.

Every lifecycle event of a run is delivered to the live subscribers of that run
and then appended to the persisted event log. Delivery is best effort: a
subscriber that cannot take an event is dropped. Persistence failures are logged
and never reach the run.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal, Protocol

from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = frozenset({"run.success", "run.failed"})


class RunEvent(BaseModel):
    type: str
    run_id: int
    data: dict[str, Any] = {}
    created_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def payload(self) -> dict[str, Any]:
        return {"type": self.type, "runId": self.run_id, **self.data}


class RunEventSink(Protocol):
    def add_run_event(self, run_id: int, type: str, payload: str, created_at: datetime) -> Any: ...


class Subscriber(Protocol):
    def deliver(self, event: RunEvent) -> None:
        """Take one event; raising drops the subscriber."""


class SubscriberClosed(Exception):
    pass


@dataclass(frozen=True)
class StreamMessage:
    """One server-sent event of a run subscription."""

    event: Literal["ready", "message", "keepalive"]
    data: dict[str, Any] | None = None

    def encode(self) -> str:
        if self.event == "keepalive":
            return ": ping\n\n"
        return f"event: {self.event}\ndata: {json.dumps(self.data, default=str)}\n\n"


class EventBus:
    """Registry of live subscribers per run, plus the event log writer.

    Owned by the run server; safe to use from several runs at once.
    """

    def __init__(self, sink: RunEventSink | None = None, keepalive_seconds: float = 15.0) -> None:
        self.sink = sink
        self.keepalive_seconds = keepalive_seconds
        self._lock = threading.Lock()
        self._subscribers: dict[int, set[Subscriber]] = {}

    def add_subscriber(self, run_id: int, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.setdefault(run_id, set()).add(subscriber)

    def remove_subscriber(self, run_id: int, subscriber: Subscriber) -> None:
        with self._lock:
            subscribers = self._subscribers.get(run_id)
            if subscribers is None:
                return
            subscribers.discard(subscriber)
            if not subscribers:
                del self._subscribers[run_id]

    def subscriber_count(self, run_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(run_id, ()))

    def subscribe(self, run_id: int) -> Subscription:
        subscription = Subscription(self, run_id, self.keepalive_seconds)
        self.add_subscriber(run_id, subscription)
        return subscription

    def publish(self, run_id: int, type: str, **data: Any) -> RunEvent:
        event = RunEvent(type=type, run_id=run_id, data=data, created_at=datetime.now(UTC))

        with self._lock:
            targets = list(self._subscribers.get(run_id, ()))
        for subscriber in targets:
            try:
                subscriber.deliver(event)
            except Exception:  # noqa: BLE001
                logger.debug("Dropping subscriber of run %s", run_id, exc_info=True)
                self.remove_subscriber(run_id, subscriber)

        self._persist(event)
        return event

    def _persist(self, event: RunEvent) -> None:
        if self.sink is None:
            return
        try:
            self.sink.add_run_event(event.run_id, event.type, json.dumps(event.payload(), default=str), event.created_at)
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to persist run event %s for run %s: %s", event.type, event.run_id, e)


class Subscription:
    """A live view of one run's events: ``ready``, then messages, with keepalives.

    The stream ends after the run's terminal event.
    """

    def __init__(self, bus: EventBus, run_id: int, keepalive_seconds: float) -> None:
        self.bus = bus
        self.run_id = run_id
        self.keepalive_seconds = keepalive_seconds
        self.closed = False
        self._queue: asyncio.Queue[RunEvent] = asyncio.Queue()

    def deliver(self, event: RunEvent) -> None:
        if self.closed:
            raise SubscriberClosed(f"Subscription to run {self.run_id} is closed")
        self._queue.put_nowait(event)

    def close(self) -> None:
        self.closed = True
        self.bus.remove_subscriber(self.run_id, self)

    async def stream(self) -> AsyncIterator[StreamMessage]:
        try:
            yield StreamMessage("ready", {"type": "ready", "runId": self.run_id})
            while True:
                try:
                    event = await asyncio.wait_for(self._queue.get(), timeout=self.keepalive_seconds)
                except TimeoutError:
                    yield StreamMessage("keepalive")
                    continue
                yield StreamMessage("message", event.payload())
                if event.is_terminal:
                    return
        finally:
            self.close()

    def __aiter__(self) -> AsyncIterator[StreamMessage]:
        return self.stream()
