"""Canonical event emission and event store queries.

Provides:
- emit: Append a canonical event to the event store
- get_event: Load one event by id
- events_for_subject: Timeline of events about one entity
- events_since: Events at or after a logical timestamp
"""

import logging
import uuid

from django.core.exceptions import ValidationError
from django.db import transaction

from .conf import get_setting
from .events import CanonicalEvent, EventSubject, now_millis
from .models import Event

logger = logging.getLogger(__name__)


def emit(
    event_type: str,
    subject,
    *,
    actor_user_id: str = None,
    meta: dict = None,
    timestamp: int = None,
) -> CanonicalEvent:
    """
    Emit a canonical event.

    Assigns a fresh id, assigns ``timestamp`` when absent and durably
    appends the event before returning. Safe to call concurrently: ids are
    random and emission is a single insert.

    Args:
        event_type: Namespaced type tag, e.g. 'Quote.Accepted'
        subject: EventSubject, ``{kind, id}`` mapping or ``(kind, id)`` pair
        actor_user_id: Optional user or system that caused the event
        meta: Optional event-specific payload (must be JSON serializable)
        timestamp: Optional logical event time in epoch milliseconds

    Returns:
        The stored CanonicalEvent

    Raises:
        InvalidEvent: If the type or subject are malformed
    """
    event = CanonicalEvent(
        id=str(uuid.uuid4()),
        type=event_type,
        subject=EventSubject.coerce(subject),
        actor_user_id=actor_user_id,
        timestamp=timestamp if timestamp is not None else now_millis(),
        meta=meta or {},
    )

    Event.objects.create(
        id=uuid.UUID(event.id),
        type=event.type,
        subject_kind=event.subject.kind,
        subject_id=event.subject.id,
        actor_user_id=event.actor_user_id or "",
        timestamp=event.timestamp,
        meta=dict(event.meta),
    )
    logger.debug(f"Emitted {event.type} {event.id} for {event.subject.kind}:{event.subject.id}")

    if get_setting("PROCESS_ON_COMMIT"):
        transaction.on_commit(lambda: _process_after_commit(event))

    return event


def _process_after_commit(event: CanonicalEvent) -> None:
    """Run automation for a freshly committed event; failures stay out of the emitter."""
    from .processor import get_default_processor

    try:
        get_default_processor().process(event)
    except Exception:
        logger.exception(f"Automation failed for event {event.id} ({event.type})")


def get_event(event_id) -> CanonicalEvent | None:
    """Load one event by id, or None if it does not exist."""
    try:
        record = Event.objects.get(pk=event_id)
    except (Event.DoesNotExist, ValidationError):
        return None
    return record.to_canonical()


def events_for_subject(kind: str, subject_id: str, limit: int = 200) -> list[CanonicalEvent]:
    """Events about one subject in ascending timestamp order."""
    records = Event.objects.filter(
        subject_kind=kind,
        subject_id=str(subject_id),
    ).order_by("timestamp", "recorded_at")[:limit]
    return [record.to_canonical() for record in records]


def events_since(timestamp: int, limit: int = 100) -> list[CanonicalEvent]:
    """Events with timestamp >= ``timestamp`` in ascending timestamp order."""
    records = Event.objects.filter(timestamp__gte=timestamp).order_by("timestamp", "recorded_at")[:limit]
    return [record.to_canonical() for record in records]
