# simflow/core/request_lifecycle.py
from __future__ import annotations

from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from simflow.models.enums import RequestStatus

R = RequestStatus

ALLOWED_REQUEST_TRANSITIONS: Mapping[RequestStatus, FrozenSet[RequestStatus]] = MappingProxyType({
    R.SUBMITTED: frozenset({R.FEASIBILITY_REVIEW, R.DENIED}),
    R.FEASIBILITY_REVIEW: frozenset({R.RESOURCE_ALLOCATION, R.DENIED}),
    R.RESOURCE_ALLOCATION: frozenset({R.ENGINEERING_REVIEW, R.DENIED}),
    R.ENGINEERING_REVIEW: frozenset({R.IN_PROGRESS, R.DISCUSSION, R.RESOURCE_ALLOCATION}),
    R.DISCUSSION: frozenset({R.ENGINEERING_REVIEW}),
    R.IN_PROGRESS: frozenset({R.COMPLETED, R.RESOURCE_ALLOCATION}),
    R.COMPLETED: frozenset({R.REVISION_REQUESTED, R.REVISION_APPROVAL, R.ACCEPTED}),
    R.REVISION_REQUESTED: frozenset({R.REVISION_APPROVAL, R.FEASIBILITY_REVIEW}),
    R.REVISION_APPROVAL: frozenset({R.IN_PROGRESS, R.COMPLETED}),
    R.ACCEPTED: frozenset(),
    R.DENIED: frozenset(),
})

# Edges that carry side effects and may only be taken by their own operation.
RESERVED_EDGES: Mapping[Tuple[RequestStatus, RequestStatus], str] = MappingProxyType({
    (R.RESOURCE_ALLOCATION, R.ENGINEERING_REVIEW): "assign_engineer",
    (R.ENGINEERING_REVIEW, R.DISCUSSION): "create_discussion_request",
    (R.DISCUSSION, R.ENGINEERING_REVIEW): "review_discussion_request",
    (R.ENGINEERING_REVIEW, R.RESOURCE_ALLOCATION): "unassign_engineer",
    (R.IN_PROGRESS, R.RESOURCE_ALLOCATION): "unassign_engineer",
    (R.IN_PROGRESS, R.COMPLETED): "complete_request",
})

# An engineer must be assigned while the request sits in any of these.
ASSIGNED_STATUSES: FrozenSet[RequestStatus] = frozenset({
    R.ENGINEERING_REVIEW,
    R.DISCUSSION,
    R.IN_PROGRESS,
    R.COMPLETED,
    R.REVISION_REQUESTED,
    R.REVISION_APPROVAL,
    R.ACCEPTED,
})

DISCUSSION_SOURCE_STATUSES: FrozenSet[RequestStatus] = frozenset({R.ENGINEERING_REVIEW})

UNASSIGNABLE_STATUSES: FrozenSet[RequestStatus] = frozenset({R.ENGINEERING_REVIEW, R.IN_PROGRESS})

TERMINAL_REQUEST_STATUSES: FrozenSet[RequestStatus] = frozenset({R.ACCEPTED, R.DENIED})


def valid_next_request_states(status: RequestStatus | str) -> FrozenSet[RequestStatus]:
    return ALLOWED_REQUEST_TRANSITIONS[RequestStatus(status)]


def is_valid_request_transition(from_status: RequestStatus | str, to_status: RequestStatus | str) -> bool:
    return RequestStatus(to_status) in valid_next_request_states(from_status)


def reserved_operation(from_status: RequestStatus | str, to_status: RequestStatus | str) -> Optional[str]:
    return RESERVED_EDGES.get((RequestStatus(from_status), RequestStatus(to_status)))
