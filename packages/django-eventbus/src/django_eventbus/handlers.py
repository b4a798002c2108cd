"""Automation handlers: side effects bound to canonical event types.

Every record a handler writes has an id derived from the triggering event's
id, so a redelivered event overwrites the same document instead of creating
a duplicate. Notifications are best-effort: failures are logged, never raised.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from functools import partial
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from django.utils import timezone

from .events import CanonicalEvent, EventType, now_millis
from .stores import BaseDocumentStore

logger = logging.getLogger(__name__)

TASKS = "tasks"
KPI_EVENTS = "kpi-events"
AUTOMATION_ACTOR = "automation"

NotifyChat = Callable[[str], None]
NotifyEmail = Callable[[str, str], None]
Handler = Callable[[CanonicalEvent], None]


@dataclass(frozen=True)
class HandlerContext:
    """Collaborators injected into every handler."""

    store: BaseDocumentStore
    notify_chat: Optional[NotifyChat] = None
    notify_email: Optional[NotifyEmail] = None


# Meta coercion -------------------------------------------------------------

def _or(value, default):
    """Null-coalesce: only None falls back to the default."""
    return default if value is None else value


def _display(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_millis(value) -> Optional[int]:
    """Parse epoch millis from a number or numeric string; None if unparseable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    try:
        datetime.fromtimestamp(number / 1000, tz=dt_timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
    return int(number)


@dataclass(frozen=True)
class InventoryMeta:
    sku: Any = None
    qty: Any = None

    @classmethod
    def from_meta(cls, meta: Mapping[str, Any]) -> "InventoryMeta":
        return cls(sku=meta.get("sku"), qty=meta.get("qty"))


@dataclass(frozen=True)
class FollowUpMeta:
    kind: Optional[str] = None
    date: Optional[int] = None
    follow_up_id: Optional[str] = None

    @classmethod
    def from_meta(cls, meta: Mapping[str, Any]) -> "FollowUpMeta":
        return cls(
            kind=meta.get("kind"),
            date=_as_millis(meta.get("date")),
            follow_up_id=meta.get("followUpId"),
        )


@dataclass(frozen=True)
class StateChangeMeta:
    from_state: Optional[str] = None
    to_state: Optional[str] = None
    trigger: Optional[str] = None

    @classmethod
    def from_meta(cls, meta: Mapping[str, Any]) -> "StateChangeMeta":
        return cls(
            from_state=meta.get("from"),
            to_state=meta.get("to"),
            trigger=meta.get("trigger"),
        )


@dataclass(frozen=True)
class QuoteMeta:
    episode_id: Optional[str] = None
    quote_id: Optional[str] = None
    total: Any = None

    @classmethod
    def from_meta(cls, meta: Mapping[str, Any]) -> "QuoteMeta":
        return cls(
            episode_id=meta.get("episodeId"),
            quote_id=meta.get("quoteId"),
            total=meta.get("total"),
        )


def format_human_date(millis: int) -> str:
    """Format epoch millis as 'd/m/yyyy, H:MM:SS' in the active time zone."""
    moment = timezone.localtime(datetime.fromtimestamp(millis / 1000, tz=dt_timezone.utc))
    return f"{moment.day}/{moment.month}/{moment.year}, {moment.hour}:{moment.minute:02d}:{moment.second:02d}"


def _notify(channel: str, notifier, *args) -> None:
    if notifier is None:
        return
    try:
        notifier(*args)
    except Exception as e:
        logger.warning(f"{channel} notification failed: {e}")


def _task(kind: str, priority: str, summary: str, event: CanonicalEvent, **fields) -> dict:
    return {
        "kind": kind,
        "status": "pending",
        "priority": priority,
        "summary": summary,
        "eventId": event.id,
        "createdAt": now_millis(),
        "createdBy": AUTOMATION_ACTOR,
        **fields,
    }


# Handlers ------------------------------------------------------------------

def handle_inventory_deducted(ctx: HandlerContext, event: CanonicalEvent) -> None:
    meta = InventoryMeta.from_meta(event.meta)
    summary = f"Reponer SKU {_display(_or(meta.sku, 'desconocido'))} ({_display(_or(meta.qty, '?'))} uds)"
    ctx.store.set(
        TASKS,
        f"inventory-{event.id}",
        _task(
            "INVENTORY_ALERT",
            "high",
            summary,
            event,
            description="Generado automáticamente por la monitorización de inventario.",
            sku=meta.sku,
            quantity=meta.qty,
        ),
    )
    _notify("Chat", ctx.notify_chat, f":warehouse: {summary}")
    _notify("Email", ctx.notify_email, "Alerta de inventario", f"Inventario: {summary}")
    logger.info(f"Inventory alert recorded: {summary}")


def handle_follow_up_scheduled(ctx: HandlerContext, event: CanonicalEvent) -> None:
    meta = FollowUpMeta.from_meta(event.meta)
    kind = _or(meta.kind, "REVIEW")
    target = _or(meta.date, now_millis())
    ctx.store.set(
        TASKS,
        f"followup-{event.id}",
        _task(
            "FOLLOW_UP_REMINDER",
            "medium" if meta.kind == "PROs" else "high",
            f"Recordar {kind} al paciente",
            event,
            followUpId=meta.follow_up_id,
            dueAt=target,
        ),
    )
    message = f"Nuevo seguimiento ({kind}) programado para {format_human_date(target)}"
    _notify("Chat", ctx.notify_chat, f":spiral_calendar_pad: {message}")
    _notify("Email", ctx.notify_email, "Recordatorio de seguimiento", message)
    logger.info(f"Follow-up reminder recorded for event {event.id}")


def handle_episode_state_changed(ctx: HandlerContext, event: CanonicalEvent) -> None:
    meta = StateChangeMeta.from_meta(event.meta)
    ctx.store.set(
        KPI_EVENTS,
        event.id,
        {
            "episodeId": event.subject.id,
            "from": meta.from_state,
            "to": meta.to_state,
            "trigger": meta.trigger,
            "timestamp": _or(event.timestamp, now_millis()),
        },
    )
    logger.info(
        f"Episode {event.subject.id} moved {meta.from_state} -> {meta.to_state} "
        f"(trigger {meta.trigger})"
    )


def handle_quote_presented(ctx: HandlerContext, event: CanonicalEvent) -> None:
    meta = QuoteMeta.from_meta(event.meta)
    total = _display(_or(meta.total, "N/A"))
    ctx.store.set(
        TASKS,
        f"quote-presented-{event.id}",
        _task(
            "QUOTE_FOLLOWUP",
            "medium",
            f"Dar seguimiento a presupuesto (episodio {_or(meta.episode_id, 'desconocido')})",
            event,
            description=f"Total presentado: €{total}",
            episodeId=meta.episode_id,
        ),
    )
    message = (
        f"Se presentó un presupuesto para el episodio {_or(meta.episode_id, 'N/A')}. "
        f"Total estimado: €{total}."
    )
    _notify("Chat", ctx.notify_chat, f":page_facing_up: {message}")
    _notify("Email", ctx.notify_email, "Nuevo presupuesto presentado", message)
    logger.info(f"Quote follow-up recorded for event {event.id}")


def handle_quote_accepted(ctx: HandlerContext, event: CanonicalEvent) -> None:
    meta = QuoteMeta.from_meta(event.meta)
    ctx.store.set(
        KPI_EVENTS,
        f"quote-{event.id}",
        {
            "episodeId": meta.episode_id,
            "quoteId": meta.quote_id,
            "type": EventType.QUOTE_ACCEPTED.value,
            "timestamp": _or(event.timestamp, now_millis()),
        },
    )
    message = f"Presupuesto aceptado (episodio {_or(meta.episode_id, 'N/A')})"
    _notify("Chat", ctx.notify_chat, f":white_check_mark: {message}")
    _notify("Email", ctx.notify_email, "Presupuesto aceptado", message)
    logger.info(f"Quote acceptance recorded for event {event.id}")


HANDLERS = MappingProxyType({
    EventType.INVENTORY_DEDUCTED: handle_inventory_deducted,
    EventType.FOLLOWUP_SCHEDULED: handle_follow_up_scheduled,
    EventType.EPISODE_STATE_CHANGED: handle_episode_state_changed,
    EventType.QUOTE_PRESENTED: handle_quote_presented,
    EventType.QUOTE_ACCEPTED: handle_quote_accepted,
})


def build_handlers(ctx: HandlerContext) -> Mapping[EventType, Handler]:
    """
    Bind every handler to its collaborators.

    Returns:
        Read-only mapping of EventType -> handler(event)
    """
    return MappingProxyType({
        event_type: partial(handler, ctx)
        for event_type, handler in HANDLERS.items()
    })
