"""Service functions for episode management.

Provides:
- create_episode: Open a new episode in the initial state
- apply_transition: Ask the machine, persist the next state, emit Episode.StateChanged
- transition: Strict apply_transition that raises InvalidTransition on rejection
- update_episode_details: Mutate free-form metadata (never the state)
- get_allowed_triggers: Triggers with a transition out of the current state
- get_episode_events: Canonical event timeline for an episode
- count_episodes_by_state: Dashboard counts per state

State is the source of truth. The StateChanged event is emitted after the
state write; an emission failure is logged and does not undo the transition.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import transaction as db_transaction
from django.db.models import Count
from django.utils import timezone

from django_eventbus.api import emit, events_for_subject
from django_eventbus.events import CanonicalEvent, EventType, SubjectKind

from .exceptions import EpisodeNotFound, InvalidTransition
from .machine import CLOSED_STATES, INITIAL_STATE, EpisodeState, GuardContext, default_machine
from .models import Episode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    changed: bool
    previous_state: str
    next_state: str
    event: Optional[CanonicalEvent] = None


def create_episode(
    patient_id: str,
    reason: str = "",
    owner_user_id: str = "",
    tags: list = None,
    risk_flags: list = None,
) -> Episode:
    """
    Open a new episode for a patient in the initial state.

    Args:
        patient_id: Owning patient (immutable afterwards)
        reason: Optional reason for consultation
        owner_user_id: Optional responsible clinician
        tags: Optional list of tags
        risk_flags: Optional list of risk flags

    Returns:
        The created Episode
    """
    return Episode.objects.create(
        patient_id=str(patient_id),
        state=INITIAL_STATE,
        reason=reason or "",
        owner_user_id=owner_user_id or "",
        tags=list(tags or []),
        risk_flags=list(risk_flags or []),
    )


def get_episode(episode_id) -> Episode:
    """
    Raises:
        EpisodeNotFound: If no episode has this id
    """
    try:
        return Episode.objects.get(pk=episode_id)
    except (Episode.DoesNotExist, ValidationError):
        raise EpisodeNotFound(episode_id)


def _emit_state_changed(episode_id, result, trigger, actor_user_id, meta):
    try:
        with db_transaction.atomic():
            return emit(
                EventType.EPISODE_STATE_CHANGED,
                (SubjectKind.EPISODE, str(episode_id)),
                actor_user_id=actor_user_id,
                meta={
                    **(meta or {}),
                    "from": str(result.previous_state),
                    "to": str(result.next_state),
                    "trigger": str(trigger),
                },
            )
    except Exception:
        logger.exception(
            f"Episode {episode_id} moved {result.previous_state} -> {result.next_state} "
            f"but Episode.StateChanged could not be emitted"
        )
        return None


def apply_transition(
    episode_id,
    trigger: str,
    *,
    actor_user_id: str = None,
    context=None,
    meta: dict = None,
    machine=None,
) -> TransitionResult:
    """
    Move an episode along the transition table if the machine allows it.

    The episode row is locked for the duration of the state write, which
    serializes concurrent transition attempts on the same episode.

    Args:
        episode_id: The episode to transition
        trigger: Trigger name, usually a canonical event type
        actor_user_id: Optional user performing the transition
        context: GuardContext or mapping of guard preconditions
        meta: Optional extra payload for the Episode.StateChanged event
        machine: Optional EpisodeMachine (defaults to the standard table)

    Returns:
        TransitionResult; ``changed`` is False when the machine rejected the
        trigger, in which case nothing was written or emitted

    Raises:
        EpisodeNotFound: If the episode does not exist
    """
    machine = machine or default_machine
    context = GuardContext.coerce(context)

    with db_transaction.atomic():
        try:
            episode = Episode.objects.select_for_update().get(pk=episode_id)
        except (Episode.DoesNotExist, ValidationError):
            raise EpisodeNotFound(episode_id)

        current = episode.state
        target = machine.next_state(current, trigger, context)
        if target is None or target == current:
            logger.info(f"Episode {episode_id}: trigger {trigger} rejected in state {current}")
            return TransitionResult(changed=False, previous_state=current, next_state=current)

        now = timezone.now()
        updates = {"state": str(target), "updated_at": now}
        if target in CLOSED_STATES and episode.closed_at is None:
            updates["closed_at"] = now
        Episode.objects.filter(pk=episode.pk).update(**updates)

    result = TransitionResult(changed=True, previous_state=current, next_state=str(target))
    event = _emit_state_changed(episode_id, result, trigger, actor_user_id, meta)
    return TransitionResult(
        changed=True,
        previous_state=result.previous_state,
        next_state=result.next_state,
        event=event,
    )


def transition(
    episode_id,
    trigger: str,
    *,
    actor_user_id: str = None,
    context=None,
    meta: dict = None,
    machine=None,
) -> TransitionResult:
    """
    Like apply_transition, but a rejected trigger is an error.

    Raises:
        EpisodeNotFound: If the episode does not exist
        InvalidTransition: If the machine rejects the trigger; the message
            names the blocked transition when the pair exists but its guard
            failed
    """
    machine = machine or default_machine
    result = apply_transition(
        episode_id,
        trigger,
        actor_user_id=actor_user_id,
        context=context,
        meta=meta,
        machine=machine,
    )
    if not result.changed:
        description = machine.get_transition_description(result.previous_state, trigger)
        reason = None
        if description:
            reason = f"Preconditions not met: {description}"
        raise InvalidTransition(result.previous_state, trigger, reason)
    return result


def update_episode_details(
    episode: Episode,
    reason: str = None,
    tags: list = None,
    risk_flags: list = None,
    owner_user_id: str = None,
) -> Episode:
    """Update free-form metadata. Only the given fields change; state never does."""
    update_fields = ["updated_at"]
    if reason is not None:
        episode.reason = reason
        update_fields.append("reason")
    if tags is not None:
        episode.tags = list(tags)
        update_fields.append("tags")
    if risk_flags is not None:
        episode.risk_flags = list(risk_flags)
        update_fields.append("risk_flags")
    if owner_user_id is not None:
        episode.owner_user_id = owner_user_id
        update_fields.append("owner_user_id")
    episode.save(update_fields=update_fields)
    return episode


def get_allowed_triggers(episode: Episode, machine=None) -> list[str]:
    """Triggers with a transition out of the episode's current state."""
    return (machine or default_machine).allowed_triggers(episode.state)


def get_episode_events(episode_id, limit: int = 200) -> list[CanonicalEvent]:
    """Canonical events about the episode in ascending timestamp order."""
    return events_for_subject(SubjectKind.EPISODE, str(episode_id), limit=limit)


def count_episodes_by_state() -> list[tuple[str, int]]:
    """(state, total) for every state in workflow order, zeros included."""
    totals = dict(
        Episode.objects.order_by().values_list("state").annotate(total=Count("id"))
    )
    return [(state.value, totals.get(state.value, 0)) for state in EpisodeState]
