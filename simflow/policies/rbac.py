#simflow/policies/rbac.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Set

from simflow.models.enums import UserRole


@dataclass(frozen=True)
class Actor:
    """Already-authenticated caller identity supplied by the gateway."""

    actor_id: Optional[str]
    name: str
    role: UserRole


def system_actor(name: str = "System") -> Actor:
    return Actor(actor_id=None, name=name, role=UserRole.ADMIN)


# --- Core action constants ---
ACTION_CREATE_PROJECT = "CREATE_PROJECT"
ACTION_TRANSITION_PROJECT = "TRANSITION_PROJECT"
ACTION_MANAGE_HOURS = "MANAGE_HOURS"
ACTION_CREATE_REQUEST = "CREATE_REQUEST"
ACTION_ASSIGN_ENGINEER = "ASSIGN_ENGINEER"
ACTION_RAISE_DISCUSSION = "RAISE_DISCUSSION"
ACTION_REVIEW_DISCUSSION = "REVIEW_DISCUSSION"
ACTION_RUN_JOBS = "RUN_JOBS"
ACTION_UPDATE_REQUEST_STATUS = "UPDATE_REQUEST_STATUS"
ACTION_COMPLETE_REQUEST = "COMPLETE_REQUEST"

_MANAGER_ACTIONS = {
    ACTION_CREATE_PROJECT,
    ACTION_TRANSITION_PROJECT,
    ACTION_MANAGE_HOURS,
    ACTION_CREATE_REQUEST,
    ACTION_ASSIGN_ENGINEER,
    ACTION_REVIEW_DISCUSSION,
    ACTION_UPDATE_REQUEST_STATUS,
    ACTION_COMPLETE_REQUEST,
}


def allowed_actions(role: UserRole) -> Set[str]:
    """
    Pure RBAC: which actions a role may attempt.
    """

    if role == UserRole.ADMIN:
        return _MANAGER_ACTIONS | {ACTION_RAISE_DISCUSSION, ACTION_RUN_JOBS}

    if role == UserRole.MANAGER:
        return set(_MANAGER_ACTIONS)

    if role == UserRole.ENGINEER:
        return {
            ACTION_CREATE_REQUEST,
            ACTION_RAISE_DISCUSSION,
            ACTION_UPDATE_REQUEST_STATUS,
            ACTION_COMPLETE_REQUEST,
        }

    if role == UserRole.END_USER:
        return {ACTION_CREATE_REQUEST, ACTION_UPDATE_REQUEST_STATUS}

    return set()


def creates_active_projects(role: UserRole) -> bool:
    # Managers and admins skip the Pending approval step; anyone else
    # creating a project (imports, scripts) starts it in Pending.
    return role in {UserRole.ADMIN, UserRole.MANAGER}
