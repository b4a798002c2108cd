"""Delivery of canonical events to the processor.

Sources deliver at-least-once: the same event may reach the callback more
than once, and the processor's dedupe ledger absorbs that.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from .events import CanonicalEvent

logger = logging.getLogger(__name__)

Callback = Callable[[CanonicalEvent], None]


class BaseEventSource(ABC):
    """Abstract event delivery mechanism."""

    @abstractmethod
    def subscribe(self, callback: Callback) -> None:
        """Deliver events to ``callback`` until the source is exhausted or stopped."""
        raise NotImplementedError

    def stop(self) -> None:
        """Ask a running subscription to return after the current batch."""
        pass


class ReplayEventSource(BaseEventSource):
    """Replays a fixed sequence of events, duplicates included."""

    def __init__(self, events: Iterable[CanonicalEvent]):
        self.events = list(events)

    def subscribe(self, callback):
        for event in self.events:
            callback(event)


class ModelEventSource(BaseEventSource):
    """
    Polls the Event table in insertion order.

    The cursor follows ``recorded_at`` (when the row was written), not the
    caller-supplied logical ``timestamp``, so an event emitted with an older
    logical time is still picked up. Each poll re-reads a ``grace`` window
    behind the cursor to catch rows whose transaction committed after a
    later row became visible. Ids already delivered inside that window are
    skipped; anything older that shows up again is absorbed by the
    processor's dedupe ledger.
    """

    def __init__(
        self,
        since: datetime,
        batch_size: int = 100,
        interval: float = 2.0,
        once: bool = False,
        grace: timedelta = timedelta(seconds=60),
    ):
        self.cursor = since
        self.batch_size = batch_size
        self.interval = interval
        self.once = once
        self.grace = grace
        self._delivered: dict[str, datetime] = {}
        self._stopped = False

    def poll(self) -> list[CanonicalEvent]:
        """Fetch the next batch of undelivered events and advance the cursor."""
        from .models import Event

        window_start = self.cursor - self.grace
        self._delivered = {
            event_id: recorded_at
            for event_id, recorded_at in self._delivered.items()
            if recorded_at >= window_start
        }

        records = list(
            Event.objects.filter(recorded_at__gte=window_start)
            .exclude(pk__in=list(self._delivered))
            .order_by("recorded_at", "pk")[: self.batch_size]
        )

        for record in records:
            self._delivered[str(record.pk)] = record.recorded_at
            if record.recorded_at > self.cursor:
                self.cursor = record.recorded_at
        return [record.to_canonical() for record in records]

    def subscribe(self, callback):
        self._stopped = False
        while not self._stopped:
            batch = self.poll()
            for event in batch:
                callback(event)
            if self.once and len(batch) < self.batch_size:
                return
            if not batch:
                time.sleep(self.interval)

    def stop(self):
        self._stopped = True


@dataclass
class ListenerStats:
    delivered: int = 0
    processed: int = 0
    duplicates: int = 0
    unhandled: int = 0
    failed: int = 0


class EventListener:
    """
    Feeds a source into a processor.

    A failing handler does not stop the listener: the failure is logged and
    counted, and the event is left for redelivery or manual replay.
    """

    def __init__(self, source: BaseEventSource, processor, on_failure: Optional[Callback] = None):
        self.source = source
        self.processor = processor
        self.on_failure = on_failure
        self.stats = ListenerStats()

    def handle(self, event: CanonicalEvent) -> None:
        from .processor import ProcessOutcome

        self.stats.delivered += 1
        try:
            outcome = self.processor.process(event)
        except Exception:
            self.stats.failed += 1
            logger.exception(f"Handler failed for event {event.id} ({event.type})")
            if self.on_failure is not None:
                self.on_failure(event)
            return

        if outcome == ProcessOutcome.PROCESSED:
            self.stats.processed += 1
        elif outcome == ProcessOutcome.DUPLICATE:
            self.stats.duplicates += 1
        else:
            self.stats.unhandled += 1

    def run(self) -> ListenerStats:
        logger.info("Listening for canonical events")
        self.source.subscribe(self.handle)
        return self.stats
