import uuid
from datetime import date, timedelta

import pytest

from simflow.core.results import ErrorCategory, ErrorCode
from simflow.models.discussion_request import DiscussionRequest
from simflow.models.enums import RequestStatus
from simflow.models.project import Project
from simflow.models.sim_request import SimRequest
from simflow.services.hour_ledger import HourLedger
from simflow.services.request_workflow import RequestWorkflowCoordinator
from simflow.services.transition_engine import TransitionEngine


@pytest.fixture
def wf():
    return RequestWorkflowCoordinator()


@pytest.fixture
def new_request(db, wf, end_user):
    def _new(project, title="Side impact sled run"):
        res = wf.create_request(
            db,
            project_id=project.id,
            title=title,
            description="Run the Q3 sled configuration",
            vendor="ACME",
            actor=end_user,
        )
        assert res.is_success, res.error
        return res.value

    return _new


@pytest.fixture
def ready_request(db, wf, new_request, manager):
    """A request waiting in Resource Allocation."""

    def _ready(project):
        req = new_request(project)
        for status in (RequestStatus.FEASIBILITY_REVIEW, RequestStatus.RESOURCE_ALLOCATION):
            res = wf.transition_request(db, request_id=req.id, to_status=status, actor=manager)
            assert res.is_success, res.error
        return req

    return _ready


@pytest.fixture
def assigned_request(db, wf, ready_request, manager, engineer):
    def _assigned(project, hours=20):
        req = ready_request(project)
        res = wf.assign_engineer(
            db,
            request_id=req.id,
            engineer_id=engineer.actor_id,
            engineer_name=engineer.name,
            estimated_hours=hours,
            actor=manager,
        )
        assert res.is_success, res.error
        return res.value

    return _assigned


def _used(db, project_id):
    db.expire_all()
    return db.get(Project, project_id).used_hours


# ─────────────────────────────────────────────
# create_request
# ─────────────────────────────────────────────


def test_create_request_starts_submitted(db, wf, make_project, new_request, end_user):
    p = make_project()
    req = new_request(p)

    assert req.status == "Submitted"
    assert req.project_id == p.id
    assert req.allocated_hours == 0
    assert req.created_by_name == end_user.name
    assert [a.action for a in wf.list_activity(db, request_id=req.id)] == ["created"]


def test_create_request_requires_project(db, wf, end_user):
    res = wf.create_request(
        db, project_id=None, title="t", description="d", vendor="v", actor=end_user
    )
    assert res.code == ErrorCode.PROJECT_REQUIRED


def test_create_request_requires_fields(db, wf, make_project, end_user):
    p = make_project()
    res = wf.create_request(db, project_id=p.id, title=" ", description="d", vendor="v", actor=end_user)
    assert res.code == ErrorCode.INVALID_INPUT


def test_create_request_on_held_project(db, wf, make_project, manager, end_user):
    p = make_project()
    TransitionEngine().transition_project_status(
        db, project_id=p.id, to_status="On Hold", actor=manager, reason="Budget review"
    )

    res = wf.create_request(db, project_id=p.id, title="t", description="d", vendor="v", actor=end_user)

    assert res.code == ErrorCode.PROJECT_NOT_ACCEPTING_REQUESTS
    assert db.query(SimRequest).count() == 0


def test_create_request_after_deadline(db, wf, make_project, end_user):
    today = date(2026, 5, 1)
    p = make_project(deadline=today - timedelta(days=1))

    res = wf.create_request(
        db, project_id=p.id, title="t", description="d", vendor="v", actor=end_user, today=today
    )

    assert res.code == ErrorCode.PROJECT_NOT_ACCEPTING_REQUESTS


def test_create_request_unknown_project(db, wf, end_user):
    res = wf.create_request(db, project_id=uuid.uuid4(), title="t", description="d", vendor="v", actor=end_user)
    assert res.code == ErrorCode.NOT_FOUND


# ─────────────────────────────────────────────
# transition_request
# ─────────────────────────────────────────────


def test_reserved_edges_are_refused(db, wf, make_project, ready_request, manager):
    p = make_project()
    req = ready_request(p)

    res = wf.transition_request(db, request_id=req.id, to_status="Engineering Review", actor=manager)

    assert res.code == ErrorCode.INVALID_TRANSITION
    assert "use assign_engineer" in res.error.message
    db.expire_all()
    assert db.get(SimRequest, req.id).status == "Resource Allocation"


def test_invalid_request_edge(db, wf, make_project, new_request, manager):
    req = new_request(make_project())

    res = wf.transition_request(db, request_id=req.id, to_status="Completed", actor=manager)

    assert res.code == ErrorCode.INVALID_TRANSITION
    assert res.error.details["valid_next_states"] == ["Feasibility Review", "Denied"]


def test_denied_is_terminal(db, wf, make_project, new_request, manager):
    req = new_request(make_project())
    assert wf.transition_request(db, request_id=req.id, to_status="Denied", actor=manager, note="Out of scope").is_success

    res = wf.transition_request(db, request_id=req.id, to_status="Feasibility Review", actor=manager)
    assert res.code == ErrorCode.INVALID_TRANSITION
    assert res.error.details["valid_next_states"] == []


# ─────────────────────────────────────────────
# assignment
# ─────────────────────────────────────────────


def test_assign_allocates_hours_with_request_link(db, wf, make_project, assigned_request, engineer):
    p = make_project(total_hours=100)
    req = assigned_request(p, hours=20)

    assert req.status == "Engineering Review"
    assert req.assigned_to == engineer.actor_id
    assert (req.estimated_hours, req.allocated_hours) == (20, 20)
    assert _used(db, p.id) == 20
    assert HourLedger().request_allocated_hours(db, request_id=req.id) == 20


def test_assign_over_budget_rolls_back_everything(db, wf, make_project, ready_request, manager, engineer):
    p = make_project(total_hours=50, used_hours=40)
    req = ready_request(p)

    res = wf.assign_engineer(
        db,
        request_id=req.id,
        engineer_id=engineer.actor_id,
        engineer_name=engineer.name,
        estimated_hours=20,
        actor=manager,
    )

    assert res.code == ErrorCode.INSUFFICIENT_BUDGET
    db.expire_all()
    fresh = db.get(SimRequest, req.id)
    assert fresh.status == "Resource Allocation"
    assert fresh.assigned_to is None
    assert fresh.allocated_hours == 0
    assert _used(db, p.id) == 40


def test_assign_requires_resource_allocation(db, wf, make_project, new_request, manager, engineer):
    req = new_request(make_project())
    res = wf.assign_engineer(
        db, request_id=req.id, engineer_id="eng-1", engineer_name="E", estimated_hours=5, actor=manager
    )
    assert res.code == ErrorCode.INVALID_TRANSITION


def test_unassign_releases_hours(db, wf, make_project, assigned_request, manager):
    p = make_project()
    req = assigned_request(p, hours=30)

    res = wf.unassign_engineer(db, request_id=req.id, actor=manager, reason="Engineer on leave")

    assert res.is_success
    assert res.value.status == "Resource Allocation"
    assert res.value.assigned_to is None
    assert res.value.allocated_hours == 0
    assert _used(db, p.id) == 0
    assert HourLedger().verify_balance(db, project_id=p.id).ok


def test_unassign_after_manual_release_does_not_release_twice(db, wf, make_project, assigned_request, manager):
    p = make_project(total_hours=100)
    first = assigned_request(p, hours=20)
    second = assigned_request(p, hours=50)

    manual = HourLedger().deallocate(
        db, project_id=p.id, hours=20, actor=manager, reason="Returned early", request_id=first.id
    )
    assert manual.is_success
    res = wf.unassign_engineer(db, request_id=first.id, actor=manager)

    assert res.is_success
    assert res.value.allocated_hours == 0
    assert _used(db, p.id) == 50
    assert db.get(SimRequest, second.id).allocated_hours == 50
    assert HourLedger().request_allocated_hours(db, request_id=first.id) == 0
    assert HourLedger().verify_balance(db, project_id=p.id).ok


def test_manual_release_is_bounded_by_request_hours(db, wf, make_project, assigned_request, manager):
    p = make_project(total_hours=100)
    first = assigned_request(p, hours=20)
    assigned_request(p, hours=50)

    res = HourLedger().deallocate(db, project_id=p.id, hours=30, actor=manager, request_id=first.id)

    assert res.code == ErrorCode.INVALID_HOURS
    assert _used(db, p.id) == 70
    assert db.get(SimRequest, first.id).allocated_hours == 20


def test_manual_adjustment_is_reconciled_on_completion(db, wf, make_project, assigned_request, manager, engineer):
    p = make_project(total_hours=100)
    req = assigned_request(p, hours=20)
    HourLedger().adjust(db, project_id=p.id, hours=10, actor=manager, reason="re-estimate", request_id=req.id)
    _start(db, wf, req, engineer)

    res = wf.complete_request(db, request_id=req.id, actor=engineer, actual_hours=25)

    assert res.is_success
    assert res.value.allocated_hours == 25
    assert _used(db, p.id) == 25
    assert HourLedger().request_allocated_hours(db, request_id=req.id) == 25


# ─────────────────────────────────────────────
# completion
# ─────────────────────────────────────────────


def _start(db, wf, req, actor):
    res = wf.transition_request(db, request_id=req.id, to_status="In Progress", actor=actor)
    assert res.is_success, res.error


def test_complete_reconciles_actual_hours(db, wf, make_project, assigned_request, engineer):
    p = make_project()
    req = assigned_request(p, hours=20)
    _start(db, wf, req, engineer)

    res = wf.complete_request(db, request_id=req.id, actor=engineer, actual_hours=26)

    assert res.is_success
    assert res.value.status == "Completed"
    assert (res.value.actual_hours, res.value.allocated_hours) == (26, 26)
    assert _used(db, p.id) == 26
    kinds = [t.transaction_type for t in HourLedger().list_transactions(db, project_id=p.id)]
    assert kinds == ["allocation", "completion"]


def test_complete_without_actual_hours_keeps_allocation(db, wf, make_project, assigned_request, engineer):
    p = make_project()
    req = assigned_request(p, hours=20)
    _start(db, wf, req, engineer)

    res = wf.complete_request(db, request_id=req.id, actor=engineer)

    assert res.is_success
    assert res.value.actual_hours is None
    assert _used(db, p.id) == 20


def test_complete_requires_in_progress(db, wf, make_project, assigned_request, engineer):
    req = assigned_request(make_project())
    res = wf.complete_request(db, request_id=req.id, actor=engineer, actual_hours=5)
    assert res.code == ErrorCode.INVALID_TRANSITION
    assert "Valid transitions" in res.error.message


# ─────────────────────────────────────────────
# discussions
# ─────────────────────────────────────────────


def _open(db, wf, req, engineer, suggested=35):
    res = wf.create_discussion_request(
        db,
        request_id=req.id,
        engineer_id=engineer.actor_id,
        reason="Mesh refinement doubles solve time",
        actor=engineer,
        suggested_hours=suggested,
    )
    assert res.is_success, res.error
    return res.value


def test_open_discussion_moves_request(db, wf, make_project, assigned_request, engineer):
    req = assigned_request(make_project())

    d = _open(db, wf, req, engineer)

    assert d.status == "Pending"
    db.expire_all()
    assert db.get(SimRequest, req.id).status == "Discussion"


def test_only_one_pending_discussion(db, wf, make_project, assigned_request, engineer):
    req = assigned_request(make_project())
    _open(db, wf, req, engineer)

    res = wf.create_discussion_request(
        db, request_id=req.id, engineer_id=engineer.actor_id, reason="again", actor=engineer
    )

    assert res.code == ErrorCode.DISCUSSION_ALREADY_PENDING
    assert res.error.category == ErrorCategory.CONFLICT


def test_discussion_needs_assigned_engineer(db, wf, make_project, assigned_request):
    from simflow.models.enums import UserRole
    from simflow.policies.rbac import Actor

    req = assigned_request(make_project())
    other = Actor(actor_id="eng-2", name="Other Engineer", role=UserRole.ENGINEER)

    res = wf.create_discussion_request(
        db, request_id=req.id, engineer_id=other.actor_id, reason="too few hours", actor=other
    )

    assert res.code == ErrorCode.NOT_ASSIGNED_ENGINEER


def test_discussion_needs_engineering_review(db, wf, make_project, ready_request, engineer):
    req = ready_request(make_project())
    res = wf.create_discussion_request(
        db, request_id=req.id, engineer_id=engineer.actor_id, reason="x", actor=engineer
    )
    assert res.code == ErrorCode.INVALID_TRANSITION


@pytest.mark.parametrize(
    "action,override_hours,expected_status,expected_hours",
    [
        ("approve", None, "Approved", 35),
        ("deny", None, "Denied", 20),
        ("override", 28, "Override", 28),
    ],
)
def test_review_outcomes(
    db, wf, make_project, assigned_request, engineer, manager,
    action, override_hours, expected_status, expected_hours,
):
    p = make_project()
    req = assigned_request(p, hours=20)
    d = _open(db, wf, req, engineer, suggested=35)

    res = wf.review_discussion_request(
        db,
        discussion_id=d.id,
        action=action,
        actor=manager,
        manager_response="Reviewed",
        allocated_hours=override_hours,
    )

    assert res.is_success, res.error
    assert res.value.status == expected_status
    assert res.value.reviewed_by_name == manager.name
    assert res.value.allocated_hours == expected_hours
    db.expire_all()
    fresh = db.get(SimRequest, req.id)
    assert fresh.status == "Engineering Review"
    assert fresh.allocated_hours == expected_hours
    assert _used(db, p.id) == expected_hours
    assert HourLedger().verify_balance(db, project_id=p.id).ok


def test_override_requires_hours(db, wf, make_project, assigned_request, engineer, manager):
    req = assigned_request(make_project())
    d = _open(db, wf, req, engineer)

    res = wf.review_discussion_request(db, discussion_id=d.id, action="override", actor=manager)

    assert res.code == ErrorCode.INVALID_HOURS


def test_review_rejected_by_ledger_is_undone(db, wf, make_project, assigned_request, engineer, manager):
    p = make_project(total_hours=30)
    req = assigned_request(p, hours=20)
    d = _open(db, wf, req, engineer, suggested=60)

    res = wf.review_discussion_request(db, discussion_id=d.id, action="approve", actor=manager)

    assert res.code == ErrorCode.INSUFFICIENT_BUDGET
    db.expire_all()
    assert db.get(DiscussionRequest, d.id).status == "Pending"
    assert db.get(SimRequest, req.id).status == "Discussion"
    assert _used(db, p.id) == 20


def test_concurrent_reviews_resolve_once(session_factory, db, wf, make_project, assigned_request, engineer, manager):
    """
    Two managers load the same Pending discussion. The first approve wins;
    the second, acting on its stale copy, gets AlreadyReviewed and the hours
    move only once.
    """
    p = make_project()
    req = assigned_request(p, hours=20)
    d = _open(db, wf, req, engineer, suggested=35)

    a = session_factory()
    b = session_factory()
    try:
        assert a.get(DiscussionRequest, d.id).status == "Pending"
        assert b.get(DiscussionRequest, d.id).status == "Pending"

        first = wf.review_discussion_request(a, discussion_id=d.id, action="approve", actor=manager)
        second = wf.review_discussion_request(b, discussion_id=d.id, action="override", actor=manager, allocated_hours=50)

        assert first.is_success
        assert second.code == ErrorCode.ALREADY_REVIEWED
        assert second.error.category == ErrorCategory.CONFLICT
    finally:
        a.close()
        b.close()

    assert _used(db, p.id) == 35
    adjustments = [
        t for t in HourLedger().list_transactions(db, project_id=p.id) if t.transaction_type == "adjustment"
    ]
    assert len(adjustments) == 1


def test_review_from_stale_session_uses_committed_hours(
    session_factory, db, wf, make_project, assigned_request, engineer, manager
):
    p = make_project()
    req = assigned_request(p, hours=20)
    d = _open(db, wf, req, engineer, suggested=35)

    stale = session_factory()
    try:
        assert stale.get(SimRequest, req.id).allocated_hours == 20
        HourLedger().adjust(db, project_id=p.id, hours=5, actor=manager, reason="re-estimate", request_id=req.id)

        denied = wf.review_discussion_request(stale, discussion_id=d.id, action="deny", actor=manager)

        assert denied.is_success, denied.error
        assert denied.value.allocated_hours == 25
    finally:
        stale.close()

    db.expire_all()
    assert db.get(SimRequest, req.id).status == "Engineering Review"
    assert _used(db, p.id) == 25


def test_approve_from_stale_session_adjusts_from_committed_hours(
    session_factory, db, wf, make_project, assigned_request, engineer, manager
):
    p = make_project()
    req = assigned_request(p, hours=20)
    d = _open(db, wf, req, engineer, suggested=35)

    stale = session_factory()
    try:
        assert stale.get(SimRequest, req.id).allocated_hours == 20
        HourLedger().adjust(db, project_id=p.id, hours=10, actor=manager, reason="re-estimate", request_id=req.id)

        approved = wf.review_discussion_request(stale, discussion_id=d.id, action="approve", actor=manager)

        assert approved.is_success, approved.error
    finally:
        stale.close()

    db.expire_all()
    assert db.get(SimRequest, req.id).allocated_hours == 35
    assert _used(db, p.id) == 35
    assert HourLedger().verify_balance(db, project_id=p.id).ok


def test_review_unknown_discussion(db, wf, manager):
    res = wf.review_discussion_request(db, discussion_id=uuid.uuid4(), action="approve", actor=manager)
    assert res.code == ErrorCode.NOT_FOUND


def test_activity_trail_records_each_step(db, wf, make_project, assigned_request, engineer, manager):
    req = assigned_request(make_project())
    d = _open(db, wf, req, engineer)
    wf.review_discussion_request(db, discussion_id=d.id, action="deny", actor=manager, manager_response="No")

    actions = [a.action for a in wf.list_activity(db, request_id=req.id)]

    assert actions == [
        "created",
        "status_changed",
        "status_changed",
        "assigned",
        "discussion_opened",
        "discussion_reviewed",
    ]
    assert len(wf.list_discussions(db, request_id=req.id)) == 1
