"""Models for django-episodes.

Provides:
- Episode: A bounded clinical journey for one patient
"""

import uuid

from django.db import models

from .exceptions import DirectStateWrite
from .machine import EpisodeState, INITIAL_STATE


class Episode(models.Model):
    """
    A patient's clinical episode, from intake to discharge and recall.

    ``state`` is governed by the transition table: it may only change through
    django_episodes.services. Saving an instance whose state differs from the
    value loaded from the database raises DirectStateWrite.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Patient that owns the episode (immutable)"
    )
    state = models.CharField(
        max_length=20,
        choices=EpisodeState.choices,
        default=INITIAL_STATE,
        help_text="Current clinical state"
    )
    owner_user_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Clinician responsible for the episode"
    )
    reason = models.TextField(
        blank=True,
        help_text="Reason for consultation"
    )
    risk_flags = models.JSONField(
        default=list,
        blank=True,
        help_text="Free-form clinical risk flags"
    )
    tags = models.JSONField(
        default=list,
        blank=True,
    )
    started_at = models.DateTimeField(
        auto_now_add=True,
        help_text="When the episode was opened"
    )
    closed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the episode was discharged (set once)"
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["state", "-updated_at"], name="episodes_state_updated_idx"),
        ]

    def __str__(self):
        return f"Episode {self.pk} ({self.state})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        if "state" in field_names:
            instance._loaded_state = instance.state
        return instance

    def refresh_from_db(self, *args, **kwargs):
        super().refresh_from_db(*args, **kwargs)
        self._loaded_state = self.state

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    def save(self, *args, **kwargs):
        loaded_state = getattr(self, "_loaded_state", None)
        if not self._state.adding and loaded_state is not None and self.state != loaded_state:
            raise DirectStateWrite(self.pk, loaded_state, self.state)
        super().save(*args, **kwargs)
        self._loaded_state = self.state
