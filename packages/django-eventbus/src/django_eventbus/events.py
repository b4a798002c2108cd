"""Canonical event vocabulary shared by emitters, the processor and handlers.

A canonical event is created once at emission and never updated. Its ``id``
is the idempotency key used by the processor's dedupe ledger.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from django.db import models
from django.utils import timezone

from .exceptions import InvalidEvent


class SubjectKind(models.TextChoices):
    PATIENT = "patient", "Patient"
    EPISODE = "episode", "Episode"
    PLAN = "plan", "Plan"
    PROCEDURE = "procedure", "Procedure"
    APPOINTMENT = "appointment", "Appointment"
    QUOTE = "quote", "Quote"


class EventType(models.TextChoices):
    """
    Known canonical event types (``Noun.Verb``).

    The vocabulary is open: types outside this list are valid events that
    parse to UNKNOWN and have no automation attached.
    """

    LEAD_CREATED = "Lead.Created", "Lead created"
    LEAD_QUALIFIED = "Lead.Qualified", "Lead qualified"
    TRIAGE_SUBMITTED = "Triage.Submitted", "Triage submitted"
    TRIAGE_ROUTED = "Triage.Routed", "Triage routed"
    APPOINTMENT_BOOKED = "Appointment.Booked", "Appointment booked"
    APPOINTMENT_CONFIRMED = "Appointment.Confirmed", "Appointment confirmed"
    APPOINTMENT_COMPLETED = "Appointment.Completed", "Appointment completed"
    APPOINTMENT_CANCELLED = "Appointment.Cancelled", "Appointment cancelled"
    CONSENT_BASE_SIGNED = "Consent.Signed.Base", "Base consent signed"
    CONSENT_SPECIFIC_SIGNED = "Consent.Signed.Specific", "Specific consent signed"
    EXPLORATION_COMPLETED = "Exploration.Completed", "Exploration completed"
    PLAN_CREATED = "Plan.Created", "Plan created"
    PLAN_PROPOSED = "Plan.Proposed", "Plan proposed"
    PLAN_APPROVED = "Plan.Approved", "Plan approved"
    QUOTE_PRESENTED = "Quote.Presented", "Quote presented"
    QUOTE_ACCEPTED = "Quote.Accepted", "Quote accepted"
    QUOTE_DECLINED = "Quote.Declined", "Quote declined"
    PROCEDURE_COMPLETED = "Procedure.Completed", "Procedure completed"
    TREATMENT_CONTROL_REACHED = "Treatment.ControlReached", "Treatment control reached"
    FOLLOWUP_SCHEDULED = "FollowUp.Scheduled", "Follow-up scheduled"
    EPISODE_STATE_CHANGED = "Episode.StateChanged", "Episode state changed"
    EPISODE_CLOSED = "Episode.Closed", "Episode closed"
    RECALL_SCHEDULED = "Recall.Scheduled", "Recall scheduled"
    INVENTORY_DEDUCTED = "Inventory.Deducted", "Inventory deducted"
    INVENTORY_REPLENISH_ALERT = "Inventory.ReplenishAlert", "Inventory replenish alert"
    NPS_SENT = "NPS.Sent", "NPS sent"
    NPS_RECEIVED = "NPS.Received", "NPS received"
    UNKNOWN = "__unknown__", "Unknown"

    @classmethod
    def parse(cls, value) -> "EventType":
        """Map a raw type tag to a known type, or UNKNOWN. Never raises."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


def now_millis() -> int:
    """Current time as epoch milliseconds."""
    return int(timezone.now().timestamp() * 1000)


@dataclass(frozen=True)
class EventSubject:
    """The entity an event is about."""

    kind: str
    id: str

    def __post_init__(self):
        if self.kind not in SubjectKind.values:
            raise InvalidEvent(f"unknown subject kind '{self.kind}'")
        if not self.id:
            raise InvalidEvent("subject id is required")
        object.__setattr__(self, "kind", str(self.kind))
        object.__setattr__(self, "id", str(self.id))

    @classmethod
    def coerce(cls, value) -> "EventSubject":
        """Accept an EventSubject, a ``{kind, id}`` mapping or a ``(kind, id)`` pair."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls(kind=value.get("kind"), id=value.get("id"))
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls(kind=value[0], id=value[1])
        raise InvalidEvent(f"cannot build subject from {value!r}")

    def to_dict(self) -> dict:
        return {"kind": self.kind, "id": self.id}


@dataclass(frozen=True)
class CanonicalEvent:
    """
    Immutable record of something that happened.

    ``meta`` is an open, loosely-typed payload. Consumers must treat missing
    or null keys as unknown.
    """

    id: str
    type: str
    subject: EventSubject
    actor_user_id: Optional[str] = None
    timestamp: Optional[int] = None
    meta: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            raise InvalidEvent("event id is required")
        if not self.type:
            raise InvalidEvent("event type is required")
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "type", str(self.type))
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta or {})))

    @property
    def known_type(self) -> EventType:
        return EventType.parse(self.type)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], event_id=None) -> "CanonicalEvent":
        """
        Build an event from its wire shape.

        Accepts camelCase (``actorUserId``) and snake_case keys. ``event_id``
        overrides ``payload['id']`` (listeners receive the id separately from
        the document body).

        Raises:
            InvalidEvent: If type, id or subject are missing, or any field is malformed
        """
        if not isinstance(payload, Mapping):
            raise InvalidEvent("payload must be a mapping", payload)

        subject = payload.get("subject")
        if subject is None:
            raise InvalidEvent("subject is required", payload)

        timestamp = payload.get("timestamp")
        if timestamp is not None:
            try:
                timestamp = int(timestamp)
            except (TypeError, ValueError):
                raise InvalidEvent("timestamp must be epoch milliseconds", payload)

        meta = payload.get("meta")
        if meta is not None and not isinstance(meta, Mapping):
            raise InvalidEvent("meta must be a mapping", payload)

        return cls(
            id=event_id if event_id is not None else payload.get("id"),
            type=payload.get("type"),
            subject=EventSubject.coerce(subject),
            actor_user_id=payload.get("actorUserId", payload.get("actor_user_id")),
            timestamp=timestamp,
            meta=meta or {},
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "subject": self.subject.to_dict(),
            "actorUserId": self.actor_user_id,
            "timestamp": self.timestamp,
            "meta": dict(self.meta),
        }
