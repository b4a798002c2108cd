"""Clinical episode state machine.

A pure mapping (current state, trigger, guard context) -> next state. The
transition table is static, validated once when the machine is built and
read-only afterwards, so the full legal graph is enumerable and testable
independent of data.

Rejection (no transition for the pair, or a failing guard) is the REJECTED
sentinel, not an exception. Callers check it and surface their own message.
"""

from dataclasses import dataclass, fields
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from django.db import models

from .exceptions import TransitionTableError
from .graph import validate_transition_table

REJECTED = None


class EpisodeState(models.TextChoices):
    CAPTACION = "CAPTACION", "Captación"
    TRIAJE = "TRIAJE", "Triaje"
    CITACION = "CITACION", "Citación"
    RECIBIMIENTO = "RECIBIMIENTO", "Recibimiento"
    EXPLORACION = "EXPLORACION", "Exploración"
    DIAGNOSTICO = "DIAGNOSTICO", "Diagnóstico"
    PLAN = "PLAN", "Plan"
    PRESUPUESTO = "PRESUPUESTO", "Presupuesto"
    TRATAMIENTO = "TRATAMIENTO", "Tratamiento"
    SEGUIMIENTO = "SEGUIMIENTO", "Seguimiento"
    ALTA = "ALTA", "Alta"
    MANTENIMIENTO = "MANTENIMIENTO", "Mantenimiento"


INITIAL_STATE = EpisodeState.CAPTACION

# Entering one of these closes the episode (closed_at is set once).
CLOSED_STATES = frozenset({EpisodeState.ALTA, EpisodeState.MANTENIMIENTO})


class EpisodeTrigger(models.TextChoices):
    LEAD_QUALIFIED = "Lead.Qualified", "Lead qualified"
    TRIAGE_ROUTED = "Triage.Routed", "Triage routed"
    APPOINTMENT_CONFIRMED = "Appointment.Confirmed", "Appointment confirmed"
    CONSENT_BASE_SIGNED = "Consent.Signed.Base", "Base consent signed"
    EXPLORATION_COMPLETED = "Exploration.Completed", "Exploration completed"
    PLAN_CREATED = "Plan.Created", "Plan created"
    PLAN_PROPOSED = "Plan.Proposed", "Plan proposed"
    QUOTE_ACCEPTED = "Quote.Accepted", "Quote accepted"
    TREATMENT_CONTROL_REACHED = "Treatment.ControlReached", "Treatment control reached"
    EPISODE_CLOSED = "Episode.Closed", "Episode closed"
    RECALL_SCHEDULED = "Recall.Scheduled", "Recall scheduled"


class QuoteStatus(models.TextChoices):
    PRESENTED = "PRESENTED", "Presented"
    ACCEPTED = "ACCEPTED", "Accepted"
    DECLINED = "DECLINED", "Declined"


_CAMEL_CASE_KEYS = {
    "hasBaseConsent": "has_base_consent",
    "hasSpecificConsent": "has_specific_consent",
    "quoteStatus": "quote_status",
    "explorationCompleted": "exploration_completed",
    "treatmentControlled": "treatment_controlled",
    "dischargeReady": "discharge_ready",
    "recallScheduled": "recall_scheduled",
}


@dataclass(frozen=True)
class GuardContext:
    """Preconditions evaluated by transition guards. Unknown means False."""

    has_base_consent: bool = False
    has_specific_consent: bool = False
    quote_status: Optional[str] = None
    exploration_completed: bool = False
    treatment_controlled: bool = False
    discharge_ready: bool = False
    recall_scheduled: bool = False

    @classmethod
    def coerce(cls, value) -> "GuardContext":
        """
        Build a context from None, a mapping or an existing instance.

        Mapping keys may be camelCase (``hasBaseConsent``) or snake_case;
        unrecognised keys are ignored.
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise TypeError(f"Cannot build GuardContext from {type(value).__name__}")

        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, item in value.items():
            name = _CAMEL_CASE_KEYS.get(key, key)
            if name in known and item is not None:
                kwargs[name] = item
        return cls(**kwargs)


Guard = Callable[[GuardContext], bool]


def require_base_consent(context: GuardContext) -> bool:
    return bool(context.has_base_consent)


def require_specific_consent_and_quote(context: GuardContext) -> bool:
    return bool(context.has_specific_consent and context.quote_status == QuoteStatus.ACCEPTED)


def require_treatment_control(context: GuardContext) -> bool:
    return bool(context.treatment_controlled)


def require_discharge_ready(context: GuardContext) -> bool:
    return bool(context.discharge_ready)


def require_recall_scheduled(context: GuardContext) -> bool:
    return bool(context.recall_scheduled)


@dataclass(frozen=True)
class StateTransition:
    from_state: str
    to_state: str
    trigger: str
    description: str
    guard: Optional[Guard] = None


TRANSITIONS = (
    StateTransition(
        EpisodeState.CAPTACION, EpisodeState.TRIAJE, EpisodeTrigger.LEAD_QUALIFIED,
        "Lead validado pasa a triaje",
    ),
    StateTransition(
        EpisodeState.TRIAJE, EpisodeState.CITACION, EpisodeTrigger.TRIAGE_ROUTED,
        "Triaje asignado genera orden de citación",
    ),
    StateTransition(
        EpisodeState.CITACION, EpisodeState.RECIBIMIENTO, EpisodeTrigger.APPOINTMENT_CONFIRMED,
        "Cita confirmada, se prepara recibimiento",
    ),
    StateTransition(
        EpisodeState.RECIBIMIENTO, EpisodeState.EXPLORACION, EpisodeTrigger.CONSENT_BASE_SIGNED,
        "Consentimiento base firmado habilita exploración",
        guard=require_base_consent,
    ),
    StateTransition(
        EpisodeState.EXPLORACION, EpisodeState.DIAGNOSTICO, EpisodeTrigger.EXPLORATION_COMPLETED,
        "Exploración completada produce diagnóstico",
    ),
    StateTransition(
        EpisodeState.DIAGNOSTICO, EpisodeState.PLAN, EpisodeTrigger.PLAN_CREATED,
        "Se crea plan inicial tras diagnóstico",
    ),
    StateTransition(
        EpisodeState.PLAN, EpisodeState.PRESUPUESTO, EpisodeTrigger.PLAN_PROPOSED,
        "Plan propuesto al paciente",
    ),
    StateTransition(
        EpisodeState.PRESUPUESTO, EpisodeState.TRATAMIENTO, EpisodeTrigger.QUOTE_ACCEPTED,
        "Presupuesto aceptado con consentimiento específico",
        guard=require_specific_consent_and_quote,
    ),
    StateTransition(
        EpisodeState.TRATAMIENTO, EpisodeState.SEGUIMIENTO, EpisodeTrigger.TREATMENT_CONTROL_REACHED,
        "Control clínico alcanzado, pasa a seguimiento",
        guard=require_treatment_control,
    ),
    StateTransition(
        EpisodeState.SEGUIMIENTO, EpisodeState.ALTA, EpisodeTrigger.EPISODE_CLOSED,
        "Episodio cerrado tras seguimiento",
        guard=require_discharge_ready,
    ),
    StateTransition(
        EpisodeState.ALTA, EpisodeState.MANTENIMIENTO, EpisodeTrigger.RECALL_SCHEDULED,
        "Se agenda recall preventivo",
        guard=require_recall_scheduled,
    ),
)


class EpisodeMachine:
    """
    State machine over a static transition table.

    Raises:
        TransitionTableError: If the table fails validation (duplicate
            (from, trigger) pairs, unknown or unreachable states)
    """

    def __init__(
        self,
        transitions=TRANSITIONS,
        states=tuple(EpisodeState),
        initial_state=INITIAL_STATE,
    ):
        errors = validate_transition_table(
            states=[str(s) for s in states],
            transitions=[(str(t.from_state), str(t.trigger), str(t.to_state)) for t in transitions],
            initial_state=str(initial_state),
        )
        if errors:
            raise TransitionTableError(errors)

        self.states = tuple(states)
        self.initial_state = initial_state
        self._transitions = tuple(transitions)
        self._index = MappingProxyType({
            (str(t.from_state), str(t.trigger)): t for t in transitions
        })

    @property
    def transitions(self) -> tuple:
        return self._transitions

    def find(self, current, trigger) -> Optional[StateTransition]:
        """The unique transition for (current, trigger), ignoring guards."""
        return self._index.get((str(current), str(trigger)))

    def next_state(self, current, trigger, context=None):
        """
        Resolve the next state.

        Returns:
            The target state, or REJECTED if no transition matches or its
            guard fails
        """
        transition = self.find(current, trigger)
        if transition is None:
            return REJECTED
        if transition.guard is not None and not transition.guard(GuardContext.coerce(context)):
            return REJECTED
        return transition.to_state

    def can_transition(self, current, trigger, context=None) -> bool:
        return self.next_state(current, trigger, context) is not REJECTED

    def get_transition_description(self, current, trigger) -> Optional[str]:
        transition = self.find(current, trigger)
        return transition.description if transition is not None else None

    def allowed_triggers(self, current) -> list[str]:
        """Triggers with a transition out of ``current`` (guards not evaluated)."""
        return [t.trigger for t in self._transitions if t.from_state == current]


default_machine = EpisodeMachine()


def next_state(current, trigger, context=None):
    return default_machine.next_state(current, trigger, context)


def can_transition(current, trigger, context=None) -> bool:
    return default_machine.can_transition(current, trigger, context)


def get_transition_description(current, trigger) -> Optional[str]:
    return default_machine.get_transition_description(current, trigger)
