from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotifyContext:
    event: str  # project.status_changed | request.created | request.assigned | discussion.created | discussion.reviewed | ...
    actor_name: str
    entity_type: str
    entity_id: str
    actor_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[NotifyContext], None]

_listeners: List[Listener] = []


def register_listener(fn: Listener) -> Listener:
    """Subscribe a delivery channel (email, chat, ...). Usable as a decorator."""
    _listeners.append(fn)
    return fn


def unregister_listener(fn: Listener) -> None:
    if fn in _listeners:
        _listeners.remove(fn)


def build_message(ctx: NotifyContext) -> str:
    base = f"{ctx.entity_type} {ctx.entity_id}"

    if ctx.event == "project.status_changed":
        return (
            f"Project {ctx.payload.get('code', ctx.entity_id)} moved "
            f"{ctx.payload.get('from_status')} → {ctx.payload.get('to_status')} by {ctx.actor_name}."
        )

    if ctx.event == "request.assigned":
        return f"Assigned: {base} to {ctx.payload.get('engineer_name')} ({ctx.payload.get('hours')}h)."

    if ctx.event == "discussion.created":
        return f"Hours discussion raised on {base} by {ctx.actor_name}."

    if ctx.event == "discussion.reviewed":
        return f"Hours discussion on {base} {ctx.payload.get('status', 'reviewed').lower()} by {ctx.actor_name}."

    return f"Update on {base} ({ctx.event})."


def dispatch(ctx: NotifyContext) -> None:
    """
    Fan an already-committed event out to every listener.

    Called after commit. A listener failure is logged and never reaches the
    caller, so it cannot undo core state.
    """
    logger.info(
        "notify",
        extra={"event": ctx.event, "entity_type": ctx.entity_type, "entity_id": ctx.entity_id},
    )
    if not _listeners:
        return

    for listener in list(_listeners):
        try:
            listener(ctx)
        except Exception:
            logger.exception("notification listener failed: %s", build_message(ctx))
