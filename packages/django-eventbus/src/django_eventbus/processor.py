"""Event processor: at most one handler run per canonical event id.

Delivery upstream is at-least-once. The processor turns that into
best-effort exactly-once with a dedupe ledger:

1. No handler for the event type -> log and return (no ledger record).
2. Atomically claim ``event.id`` in the ledger with a TTL. Lost the
   claim -> duplicate, log and return.
3. Run the handler. If it raises, release the claim and re-raise so a
   redelivery can retry; handlers are idempotent by deterministic ids.

Claims older than the TTL expire; a replay after that window runs the
handler again and relies on the handler-level idempotency.
"""

import logging
from datetime import timedelta
from functools import lru_cache
from typing import Mapping

from django.db import models
from django.utils import timezone

from .conf import get_dedupe_ttl, get_setting, get_store
from .events import CanonicalEvent, EventType
from .handlers import Handler, HandlerContext, build_handlers
from .notifiers import notifiers_from_settings
from .stores import BaseDocumentStore

logger = logging.getLogger(__name__)


class ProcessOutcome(models.TextChoices):
    UNHANDLED = "unhandled", "Unhandled"
    DUPLICATE = "duplicate", "Duplicate"
    PROCESSED = "processed", "Processed"


class EventProcessor:
    """Dispatches canonical events to handlers, deduplicating by event id."""

    def __init__(
        self,
        store: BaseDocumentStore,
        handlers: Mapping[EventType, Handler],
        *,
        dedupe_collection: str = "automation-processed",
        ttl: timedelta = timedelta(days=30),
    ):
        self.store = store
        self.handlers = handlers
        self.dedupe_collection = dedupe_collection
        self.ttl = ttl

    def _claim(self, event: CanonicalEvent) -> bool:
        now = timezone.now()
        return self.store.create(
            self.dedupe_collection,
            event.id,
            {
                "eventId": event.id,
                "type": event.type,
                "processedAt": int(now.timestamp() * 1000),
            },
            expires_at=now + self.ttl,
        )

    def _release(self, event: CanonicalEvent) -> None:
        try:
            self.store.delete(self.dedupe_collection, event.id)
        except Exception:
            logger.exception(f"Could not release dedupe claim for event {event.id}")

    def process(self, event: CanonicalEvent) -> ProcessOutcome:
        """
        Process one canonical event.

        Returns:
            ProcessOutcome describing what happened

        Raises:
            Any exception raised by the handler (after releasing the claim)
        """
        handler = self.handlers.get(event.known_type)
        if handler is None:
            logger.debug(f"{event.type} has no handler (event {event.id})")
            return ProcessOutcome.UNHANDLED

        if not self._claim(event):
            logger.info(f"Event {event.id} already processed, skipping")
            return ProcessOutcome.DUPLICATE

        try:
            handler(event)
        except Exception:
            self._release(event)
            raise

        logger.info(f"Processed {event.type} event {event.id}")
        return ProcessOutcome.PROCESSED

    def is_processed(self, event_id: str) -> bool:
        """Whether a live dedupe record exists for ``event_id``."""
        return self.store.get(self.dedupe_collection, event_id) is not None


def create_event_processor(
    store: BaseDocumentStore = None,
    notify_chat=None,
    notify_email=None,
) -> EventProcessor:
    """
    Build an EventProcessor from EVENTBUS_* settings.

    Explicit collaborators override the configured ones.
    """
    if store is None:
        store = get_store()
    if notify_chat is None and notify_email is None:
        notify_chat, notify_email = notifiers_from_settings()

    handlers = build_handlers(HandlerContext(
        store=store,
        notify_chat=notify_chat,
        notify_email=notify_email,
    ))
    return EventProcessor(
        store,
        handlers,
        dedupe_collection=get_setting("DEDUPE_COLLECTION"),
        ttl=get_dedupe_ttl(),
    )


@lru_cache(maxsize=1)
def get_default_processor() -> EventProcessor:
    """Process-wide processor built once from settings."""
    return create_event_processor()
