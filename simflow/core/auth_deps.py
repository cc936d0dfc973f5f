#simflow/core/auth_deps.py
from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, Request

from simflow.models.enums import UserRole
from simflow.policies.rbac import Actor, allowed_actions


def get_current_actor(
    request: Request,
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Actor:
    """
    Canonical identity dependency.

    The authenticating gateway in front of this service has already verified
    the caller and forwards X-User-Id / X-User-Name / X-User-Role.

    Guarantees:
    - name and role are present
    - role is a valid UserRole
    """
    if not x_user_name or not x_user_role:
        raise HTTPException(status_code=401, detail="Missing caller identity headers.")

    try:
        role = UserRole(x_user_role)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid role header.")

    actor = Actor(actor_id=x_user_id or None, name=x_user_name, role=role)

    # Make actor available to downstream middleware / handlers
    request.state.actor = actor
    return actor


def require_action(action: str) -> Callable[..., Actor]:
    """Dependency factory: 403 unless the caller's role may perform `action`."""

    def _dep(actor: Actor = Depends(get_current_actor)) -> Actor:
        if action not in allowed_actions(actor.role):
            raise HTTPException(status_code=403, detail=f"Role {actor.role.value} not permitted.")
        return actor

    return _dep
