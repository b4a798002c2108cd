"""Models for django-eventbus.

Provides:
- Event: Append-only canonical event store
- StoredDocument: Keyed JSON documents backing DjangoDocumentStore
  (tasks, KPI rows, dedupe records)

NOTE: Events are append-only. No soft delete - they're the durable audit trail.
"""

import uuid

from django.db import models

from .events import CanonicalEvent, EventSubject, SubjectKind
from .exceptions import ImmutableEventError


class Event(models.Model):
    """
    Immutable canonical event.

    The primary key is the canonical event id and doubles as the
    idempotency key for automation.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Namespaced type tag, e.g. 'Quote.Accepted'"
    )
    subject_kind = models.CharField(
        max_length=20,
        choices=SubjectKind.choices,
        help_text="Kind of entity the event is about"
    )
    subject_id = models.CharField(
        max_length=255,
        help_text="ID of the subject (CharField for UUID support)"
    )
    actor_user_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="User or system that caused the event"
    )
    timestamp = models.BigIntegerField(
        db_index=True,
        help_text="Logical event time in epoch milliseconds, assigned at emission"
    )
    meta = models.JSONField(
        default=dict,
        blank=True,
        help_text="Event-specific payload"
    )
    recorded_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the event store received the event"
    )

    class Meta:
        ordering = ["timestamp", "recorded_at"]
        indexes = [
            models.Index(
                fields=["subject_kind", "subject_id", "timestamp"],
                name="eventbus_event_subject_idx",
            ),
        ]

    def __str__(self):
        return f"{self.type} {self.subject_kind}:{self.subject_id}"

    def save(self, *args, **kwargs):
        # Events are append-only - prevent updates
        if not self._state.adding and Event.objects.filter(pk=self.pk).exists():
            raise ImmutableEventError(self.pk)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableEventError(self.pk)

    def to_canonical(self) -> CanonicalEvent:
        """Convert the stored row to a CanonicalEvent."""
        return CanonicalEvent(
            id=str(self.pk),
            type=self.type,
            subject=EventSubject(kind=self.subject_kind, id=self.subject_id),
            actor_user_id=self.actor_user_id or None,
            timestamp=self.timestamp,
            meta=self.meta or {},
        )


class StoredDocument(models.Model):
    """
    A JSON document addressed by (collection, doc_id).

    Expired documents (expires_at in the past) are treated as absent by the
    store and removed by the cleanup command.
    """

    collection = models.CharField(
        max_length=100,
        help_text="Collection name, e.g. 'tasks', 'kpi-events'"
    )
    doc_id = models.CharField(
        max_length=255,
        help_text="Document id, unique within its collection"
    )
    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Document fields"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When this document can be cleaned up"
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["collection", "doc_id"],
                name="eventbus_unique_document_per_collection",
            ),
        ]
        indexes = [
            models.Index(fields=["collection", "expires_at"], name="eventbus_doc_expiry_idx"),
        ]

    def __str__(self):
        return f"{self.collection}/{self.doc_id}"
