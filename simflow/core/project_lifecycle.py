# simflow/core/project_lifecycle.py
from __future__ import annotations

from types import MappingProxyType
from typing import FrozenSet, Mapping, Union

from simflow.models.enums import ProjectStatus

S = ProjectStatus

# Approved is kept only for legacy rows; it behaves like Active.
ALLOWED_PROJECT_TRANSITIONS: Mapping[ProjectStatus, FrozenSet[ProjectStatus]] = MappingProxyType({
    S.PENDING: frozenset({S.ACTIVE, S.CANCELLED, S.ARCHIVED}),
    S.APPROVED: frozenset({
        S.ACTIVE, S.ON_HOLD, S.SUSPENDED, S.COMPLETED, S.CANCELLED, S.EXPIRED, S.ARCHIVED,
    }),
    S.ACTIVE: frozenset({
        S.ON_HOLD, S.SUSPENDED, S.COMPLETED, S.CANCELLED, S.EXPIRED, S.ARCHIVED,
    }),
    S.ON_HOLD: frozenset({S.ACTIVE, S.SUSPENDED, S.CANCELLED, S.EXPIRED, S.ARCHIVED}),
    S.SUSPENDED: frozenset({S.ACTIVE, S.ON_HOLD, S.CANCELLED, S.ARCHIVED}),
    S.COMPLETED: frozenset({S.ARCHIVED}),
    S.CANCELLED: frozenset({S.ARCHIVED}),
    S.EXPIRED: frozenset({S.ACTIVE, S.ARCHIVED}),  # reactivation allowed
    S.ARCHIVED: frozenset(),
})

REASON_REQUIRED_STATUSES: FrozenSet[ProjectStatus] = frozenset({
    S.ON_HOLD, S.SUSPENDED, S.CANCELLED, S.EXPIRED,
})

ALLOCATABLE_STATUSES: FrozenSet[ProjectStatus] = frozenset({S.ACTIVE, S.APPROVED})

REQUEST_ACCEPTING_STATUSES: FrozenSet[ProjectStatus] = frozenset({S.ACTIVE, S.APPROVED})

TERMINAL_STATUSES: FrozenSet[ProjectStatus] = frozenset({
    S.COMPLETED, S.CANCELLED, S.EXPIRED, S.ARCHIVED,
})

# Statuses the deadline sweep moves to Expired.
EXPIRABLE_STATUSES: FrozenSet[ProjectStatus] = frozenset({S.ACTIVE, S.APPROVED, S.ON_HOLD})


StatusLike = Union[ProjectStatus, str]


def _coerce(status: StatusLike) -> ProjectStatus:
    return status if isinstance(status, ProjectStatus) else ProjectStatus(status)


def valid_next_states(status: StatusLike) -> FrozenSet[ProjectStatus]:
    return ALLOWED_PROJECT_TRANSITIONS[_coerce(status)]


def is_valid_transition(from_status: StatusLike, to_status: StatusLike) -> bool:
    return _coerce(to_status) in valid_next_states(from_status)


def requires_reason(to_status: StatusLike) -> bool:
    return _coerce(to_status) in REASON_REQUIRED_STATUSES


def can_allocate_hours(status: StatusLike) -> bool:
    return _coerce(status) in ALLOCATABLE_STATUSES


def can_create_requests(status: StatusLike) -> bool:
    return _coerce(status) in REQUEST_ACCEPTING_STATUSES


def is_terminal_status(status: StatusLike) -> bool:
    return _coerce(status) in TERMINAL_STATUSES


def sorted_next_states(status: StatusLike) -> list[str]:
    """Valid targets as plain strings, in enum declaration order (for messages)."""
    targets = valid_next_states(status)
    return [s.value for s in ProjectStatus if s in targets]
