import pytest

from simflow.core.project_lifecycle import (
    ALLOWED_PROJECT_TRANSITIONS,
    can_allocate_hours,
    can_create_requests,
    is_terminal_status,
    is_valid_transition,
    requires_reason,
    sorted_next_states,
    valid_next_states,
)
from simflow.core.request_lifecycle import (
    ALLOWED_REQUEST_TRANSITIONS,
    RESERVED_EDGES,
    is_valid_request_transition,
    reserved_operation,
    valid_next_request_states,
)
from simflow.models.enums import ProjectStatus, RequestStatus


def test_every_project_status_has_next_states():
    for status in ProjectStatus:
        assert status in ALLOWED_PROJECT_TRANSITIONS
        assert isinstance(valid_next_states(status), frozenset)


def test_archived_is_a_dead_end():
    assert valid_next_states(ProjectStatus.ARCHIVED) == frozenset()
    for target in ProjectStatus:
        assert is_valid_transition(ProjectStatus.ARCHIVED, target) is False


def test_reason_required_exactly_for_sensitive_statuses():
    expected = {ProjectStatus.ON_HOLD, ProjectStatus.SUSPENDED, ProjectStatus.CANCELLED, ProjectStatus.EXPIRED}
    assert {s for s in ProjectStatus if requires_reason(s)} == expected


def test_allocation_and_request_creation_only_when_active_or_approved():
    expected = {ProjectStatus.ACTIVE, ProjectStatus.APPROVED}
    assert {s for s in ProjectStatus if can_allocate_hours(s)} == expected
    assert {s for s in ProjectStatus if can_create_requests(s)} == expected


def test_terminal_statuses():
    expected = {ProjectStatus.COMPLETED, ProjectStatus.CANCELLED, ProjectStatus.EXPIRED, ProjectStatus.ARCHIVED}
    assert {s for s in ProjectStatus if is_terminal_status(s)} == expected


def test_no_self_transitions():
    for status in ProjectStatus:
        assert not is_valid_transition(status, status)


@pytest.mark.parametrize(
    "src,dst,ok",
    [
        ("Pending", "Active", True),
        ("Pending", "On Hold", False),
        ("Active", "Pending", False),
        ("Active", "Expired", True),
        ("On Hold", "Expired", True),
        ("Expired", "Active", True),
        ("Completed", "Active", False),
        ("Cancelled", "Archived", True),
    ],
)
def test_transitions_accept_plain_strings(src, dst, ok):
    assert is_valid_transition(src, dst) is ok


def test_sorted_next_states_follow_declaration_order():
    assert sorted_next_states("Active") == ["On Hold", "Suspended", "Completed", "Cancelled", "Expired", "Archived"]
    assert sorted_next_states("Archived") == []


def test_tables_are_read_only():
    with pytest.raises(TypeError):
        ALLOWED_PROJECT_TRANSITIONS[ProjectStatus.ARCHIVED] = frozenset({ProjectStatus.ACTIVE})


def test_every_request_status_has_next_states():
    for status in RequestStatus:
        assert status in ALLOWED_REQUEST_TRANSITIONS
    assert valid_next_request_states(RequestStatus.ACCEPTED) == frozenset()
    assert valid_next_request_states(RequestStatus.DENIED) == frozenset()


def test_reserved_edges_are_valid_edges():
    for (src, dst), op in RESERVED_EDGES.items():
        assert is_valid_request_transition(src, dst), (src, dst, op)


def test_reserved_operation_lookup():
    assert reserved_operation("Resource Allocation", "Engineering Review") == "assign_engineer"
    assert reserved_operation("In Progress", "Completed") == "complete_request"
    assert reserved_operation("Submitted", "Feasibility Review") is None
