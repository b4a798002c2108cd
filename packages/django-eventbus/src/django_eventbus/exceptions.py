"""Custom exceptions for django-eventbus."""


class EventBusError(Exception):
    """Base exception for event bus errors."""
    pass


class InvalidEvent(EventBusError):
    """Raised when a canonical event payload is malformed."""

    def __init__(self, reason: str, payload=None):
        self.reason = reason
        self.payload = payload
        super().__init__(f"Invalid canonical event: {reason}")


class ImmutableEventError(EventBusError):
    """Raised when attempting to update or delete a stored canonical event."""

    def __init__(self, event_id):
        self.event_id = event_id
        super().__init__(f"Canonical event '{event_id}' is append-only and cannot be changed")


class StoreError(EventBusError):
    """Raised when a document store operation fails."""
    pass


class StoreLoadError(StoreError):
    """Raised when the configured document store cannot be loaded."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load document store '{path}': {reason}")
