"""django-eventbus: Canonical event bus with idempotent automation handlers.

Provides:
- CanonicalEvent: Immutable "something happened" record (type, subject, actor, meta)
- emit: Append a canonical event to the event store
- EventProcessor: At-most-once handler dispatch under at-least-once delivery
- build_handlers: Side-effect automation (tasks, KPI rows, notifications)
- Document stores: Django-backed and in-memory
"""

__version__ = "0.1.0"

__all__ = [
    # Events
    "CanonicalEvent",
    "EventSubject",
    "EventType",
    "SubjectKind",
    # Emission and queries
    "emit",
    "get_event",
    "events_for_subject",
    "events_since",
    # Processing
    "EventProcessor",
    "ProcessOutcome",
    "create_event_processor",
    "get_default_processor",
    # Handlers
    "HandlerContext",
    "build_handlers",
    # Stores
    "BaseDocumentStore",
    "DjangoDocumentStore",
    "InMemoryDocumentStore",
    # Exceptions
    "EventBusError",
    "InvalidEvent",
    "StoreError",
]


def __getattr__(name):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name in ("CanonicalEvent", "EventSubject", "EventType", "SubjectKind"):
        from django_eventbus import events
        return getattr(events, name)
    if name in ("emit", "get_event", "events_for_subject", "events_since"):
        from django_eventbus import api
        return getattr(api, name)
    if name in ("EventProcessor", "ProcessOutcome", "create_event_processor", "get_default_processor"):
        from django_eventbus import processor
        return getattr(processor, name)
    if name in ("HandlerContext", "build_handlers"):
        from django_eventbus import handlers
        return getattr(handlers, name)
    if name in ("BaseDocumentStore", "DjangoDocumentStore", "InMemoryDocumentStore"):
        from django_eventbus import stores
        return getattr(stores, name)
    if name in ("EventBusError", "InvalidEvent", "StoreError"):
        from django_eventbus import exceptions
        return getattr(exceptions, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
