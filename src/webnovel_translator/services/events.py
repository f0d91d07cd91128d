"""Event pub/sub for chapter translation runs.

The pipeline emits; the CLI subscribes and renders with rich, tests
subscribe and record.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable, Iterable, Optional

import structlog

logger = structlog.get_logger()


class EventType(StrEnum):
    """Events emitted during a chapter run, in the order they can occur."""

    RUN_STARTED = "run_started"
    CHAPTER_STARTED = "chapter_started"
    CHAPTER_TRANSLATED = "chapter_translated"
    CHAPTER_FAILED = "chapter_failed"
    RUN_HALTED = "run_halted"
    RUN_CANCELLED = "run_cancelled"
    RUN_COMPLETED = "run_completed"


@dataclass
class RunEvent:
    """A single run event."""

    type: str
    data: dict = field(default_factory=dict)
    run_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "type": str(self.type),
            "data": self.data,
            "run_id": self.run_id,
            "timestamp": self.timestamp,
        }


@dataclass
class _Subscription:
    callback: Callable[[RunEvent], None]
    types: Optional[frozenset[str]] = None

    def wants(self, event: RunEvent) -> bool:
        return self.types is None or str(event.type) in self.types


class EventBus:
    """Synchronous event bus.

    Subscribers are called in subscription order in the emitter's task,
    optionally only for the event types they asked for.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, _Subscription] = {}

    def subscribe(
        self,
        callback: Callable[[RunEvent], None],
        types: Optional[Iterable[str]] = None,
    ) -> str:
        """Register a callback. Returns subscription ID for unsubscribe."""
        sub_id = str(uuid.uuid4())
        wanted = frozenset(str(t) for t in types) if types is not None else None
        self._subscriptions[sub_id] = _Subscription(callback, wanted)
        return sub_id

    def unsubscribe(self, sub_id: str) -> None:
        self._subscriptions.pop(sub_id, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def emit(self, event: RunEvent) -> None:
        """Send event to interested subscribers.

        A failing subscriber is logged and does not stop delivery to the others.
        """
        for subscription in list(self._subscriptions.values()):
            if not subscription.wants(event):
                continue
            try:
                subscription.callback(event)
            except Exception:
                logger.exception("event_subscriber_failed", event_type=str(event.type))
