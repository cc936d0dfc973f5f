# simflow/services/request_workflow.py
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from simflow.core.request_lifecycle import (
    DISCUSSION_SOURCE_STATUSES,
    UNASSIGNABLE_STATUSES,
    is_valid_request_transition,
    reserved_operation,
    valid_next_request_states,
)
from simflow.core.results import ErrorCode, Result
from simflow.db.locking import lock_project, lock_request
from simflow.integrations.notify import NotifyContext, dispatch
from simflow.models.discussion_request import DiscussionRequest
from simflow.models.enums import (
    DiscussionAction,
    DiscussionStatus,
    RequestPriority,
    RequestStatus,
    UserRole,
)
from simflow.models.sim_request import RequestActivity, SimRequest
from simflow.policies.rbac import Actor
from simflow.services.hour_ledger import HourLedger
from simflow.services.transition_engine import TransitionEngine

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


_REVIEW_OUTCOME = {
    DiscussionAction.APPROVE: DiscussionStatus.APPROVED,
    DiscussionAction.DENY: DiscussionStatus.DENIED,
    DiscussionAction.OVERRIDE: DiscussionStatus.OVERRIDE,
}


class RequestWorkflowCoordinator:
    """
    Drives requests through their lifecycle and keeps the project hour ledger
    in step with assignment, discussion review and completion.

    Every mutating method owns its transaction. Ledger calls join it
    (owns_transaction=False), so a ledger rejection rolls back the whole step.
    Lock order: request row, then project row (taken inside the ledger).
    """

    def __init__(self, ledger: Optional[HourLedger] = None, engine: Optional[TransitionEngine] = None):
        self.ledger = ledger or HourLedger()
        self.engine = engine or TransitionEngine()

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def _activity(self, db: Session, req: SimRequest, actor: Actor, action: str, **details: Any) -> None:
        db.add(
            RequestActivity(
                request_id=req.id,
                actor_id=actor.actor_id,
                actor_name=actor.name,
                action=action,
                details_json={k: v for k, v in details.items() if v is not None},
                created_at=_now(),
            )
        )

    def _move(self, req: SimRequest, to_status: RequestStatus) -> None:
        req.status = to_status.value
        req.updated_at = _now()

    def _invalid_edge(self, req: SimRequest, to_status: RequestStatus, hint: Optional[str] = None) -> Result:
        valid = [s.value for s in RequestStatus if s in valid_next_request_states(req.status)]
        listed = ", ".join(f"'{s}'" for s in valid) or "none"
        message = f"Invalid transition from '{req.status}' to '{to_status.value}'. Valid transitions: {listed}"
        if hint:
            message = f"{message} ({hint})"
        return Result.failure(
            ErrorCode.INVALID_TRANSITION,
            message,
            from_status=req.status,
            to_status=to_status.value,
            valid_next_states=valid,
        )

    def _notify(self, event: str, actor: Actor, req: SimRequest, **payload: Any) -> None:
        dispatch(
            NotifyContext(
                event=event,
                actor_name=actor.name,
                actor_id=actor.actor_id,
                entity_type="request",
                entity_id=str(req.id),
                payload=payload,
            )
        )

    # ─────────────────────────────────────────────
    # CREATE
    # ─────────────────────────────────────────────

    def create_request(
        self,
        db: Session,
        *,
        project_id: Optional[uuid.UUID],
        title: str,
        description: str,
        vendor: str,
        actor: Actor,
        priority: RequestPriority = RequestPriority.MEDIUM,
        today: Optional[date] = None,
    ) -> Result[SimRequest]:
        title = (title or "").strip()
        description = (description or "").strip()
        vendor = (vendor or "").strip()
        if not title or not description or not vendor:
            return Result.failure(ErrorCode.INVALID_INPUT, "Title, description and vendor are required")

        if project_id is None:
            return Result.failure(ErrorCode.PROJECT_REQUIRED, "A project must be selected for the request")

        today = today or _now().date()

        try:
            # holds the project steady while the request is attached to it
            lock_project(db, project_id)
            gate = self.engine.can_project_accept_requests(db, project_id=project_id, today=today)
            if not gate.is_success:
                db.rollback()
                logger.warning("[requests] create rejected project=%s: %s", project_id, gate.error.message)
                return Result.from_error(gate.error)

            now = _now()
            req = SimRequest(
                title=title,
                description=description,
                vendor=vendor,
                status=RequestStatus.SUBMITTED.value,
                priority=RequestPriority(priority).value,
                created_by=actor.actor_id,
                created_by_name=actor.name,
                allocated_hours=0,
                project_id=project_id,
                created_at=now,
                updated_at=now,
            )
            db.add(req)
            db.flush()
            self._activity(db, req, actor, "created", project_id=str(project_id), vendor=vendor)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        db.refresh(req)
        logger.info("[requests] created request=%s project=%s by %s", req.id, project_id, actor.name)
        self._notify("request.created", actor, req, title=req.title)
        return Result.success(req)

    # ─────────────────────────────────────────────
    # GENERIC TRANSITION
    # ─────────────────────────────────────────────

    def transition_request(
        self,
        db: Session,
        *,
        request_id: uuid.UUID,
        to_status: RequestStatus | str,
        actor: Actor,
        note: Optional[str] = None,
    ) -> Result[SimRequest]:
        """
        Move a request along an edge with no side effects.
        Edges owned by assign/unassign/discussion/complete are refused here.
        """
        try:
            target = RequestStatus(to_status)
        except ValueError:
            return Result.failure(
                ErrorCode.INVALID_TRANSITION, f"Unknown request status '{to_status}'", to_status=str(to_status)
            )

        try:
            req = lock_request(db, request_id)
            if req is None:
                db.rollback()
                return Result.failure(ErrorCode.NOT_FOUND, "Request not found", request_id=str(request_id))

            current = req.status
            if not is_valid_request_transition(current, target):
                db.rollback()
                return self._invalid_edge(req, target)

            operation = reserved_operation(current, target)
            if operation is not None:
                db.rollback()
                return self._invalid_edge(req, target, hint=f"use {operation}")

            self._move(req, target)
            self._activity(db, req, actor, "status_changed", from_status=current, to_status=target.value, note=note)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        logger.info("[requests] request=%s %s -> %s by %s", req.id, current, target.value, actor.name)
        self._notify("request.status_changed", actor, req, from_status=current, to_status=target.value)
        return Result.success(req)

    # ─────────────────────────────────────────────
    # ASSIGNMENT
    # ─────────────────────────────────────────────

    def assign_engineer(
        self,
        db: Session,
        *,
        request_id: uuid.UUID,
        engineer_id: str,
        engineer_name: str,
        estimated_hours: int,
        actor: Actor,
    ) -> Result[SimRequest]:
        """
        Resource Allocation -> Engineering Review with the estimate drawn from
        the project budget. Assignment and allocation commit together.
        """
        if estimated_hours is None or estimated_hours <= 0:
            return Result.failure(
                ErrorCode.INVALID_HOURS, "Estimated hours must be positive", hours=estimated_hours
            )

        try:
            req = lock_request(db, request_id)
            if req is None:
                db.rollback()
                return Result.failure(ErrorCode.NOT_FOUND, "Request not found", request_id=str(request_id))

            if req.status != RequestStatus.RESOURCE_ALLOCATION.value:
                db.rollback()
                return self._invalid_edge(req, RequestStatus.ENGINEERING_REVIEW)

            if req.project_id is None:
                db.rollback()
                return Result.failure(ErrorCode.PROJECT_REQUIRED, "Request is not linked to a project")

            allocation = self.ledger.allocate(
                db,
                project_id=req.project_id,
                hours=estimated_hours,
                actor=actor,
                request_id=req.id,
                notes=f"Assigned to {engineer_name}",
                owns_transaction=False,
            )
            if not allocation.is_success:
                db.rollback()
                logger.warning("[requests] assign rejected request=%s: %s", request_id, allocation.error.message)
                return Result.from_error(allocation.error)

            req.assigned_to = engineer_id
            req.assigned_to_name = engineer_name
            req.estimated_hours = estimated_hours
            self._move(req, RequestStatus.ENGINEERING_REVIEW)
            self._activity(
                db, req, actor, "assigned",
                engineer_id=engineer_id, engineer_name=engineer_name, hours=estimated_hours,
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        logger.info("[requests] request=%s assigned to %s hours=%s", req.id, engineer_name, estimated_hours)
        self._notify("request.assigned", actor, req, engineer_name=engineer_name, hours=estimated_hours)
        return Result.success(req)

    def unassign_engineer(
        self,
        db: Session,
        *,
        request_id: uuid.UUID,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Result[SimRequest]:
        """Release the request's hours and send it back to Resource Allocation."""
        try:
            req = lock_request(db, request_id)
            if req is None:
                db.rollback()
                return Result.failure(ErrorCode.NOT_FOUND, "Request not found", request_id=str(request_id))

            if RequestStatus(req.status) not in UNASSIGNABLE_STATUSES:
                db.rollback()
                return self._invalid_edge(req, RequestStatus.RESOURCE_ALLOCATION)

            released = req.allocated_hours
            if released > 0 and req.project_id is not None:
                dealloc = self.ledger.deallocate(
                    db,
                    project_id=req.project_id,
                    hours=released,
                    actor=actor,
                    reason=reason or f"Unassigned {req.assigned_to_name}",
                    request_id=req.id,
                    owns_transaction=False,
                )
                if not dealloc.is_success:
                    db.rollback()
                    return Result.from_error(dealloc.error)

            previous = req.assigned_to_name
            req.assigned_to = None
            req.assigned_to_name = None
            self._move(req, RequestStatus.RESOURCE_ALLOCATION)
            self._activity(db, req, actor, "unassigned", engineer_name=previous, hours=released, reason=reason)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        logger.info("[requests] request=%s unassigned, released %s hours", req.id, released)
        self._notify("request.unassigned", actor, req, hours=released)
        return Result.success(req)

    # ─────────────────────────────────────────────
    # COMPLETION
    # ─────────────────────────────────────────────

    def complete_request(
        self,
        db: Session,
        *,
        request_id: uuid.UUID,
        actor: Actor,
        actual_hours: Optional[int] = None,
    ) -> Result[SimRequest]:
        if actual_hours is not None and actual_hours < 0:
            return Result.failure(ErrorCode.INVALID_HOURS, "Actual hours cannot be negative", hours=actual_hours)

        try:
            req = lock_request(db, request_id)
            if req is None:
                db.rollback()
                return Result.failure(ErrorCode.NOT_FOUND, "Request not found", request_id=str(request_id))

            if req.status != RequestStatus.IN_PROGRESS.value:
                db.rollback()
                return self._invalid_edge(req, RequestStatus.COMPLETED)

            if actual_hours is not None and req.project_id is not None:
                reconciled = self.ledger.completion(
                    db,
                    project_id=req.project_id,
                    request_id=req.id,
                    allocated_hours=req.allocated_hours,
                    actual_hours=actual_hours,
                    actor=actor,
                    owns_transaction=False,
                )
                if not reconciled.is_success:
                    db.rollback()
                    return Result.from_error(reconciled.error)

            if actual_hours is not None:
                req.actual_hours = actual_hours
            self._move(req, RequestStatus.COMPLETED)
            self._activity(db, req, actor, "completed", actual_hours=actual_hours)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        logger.info("[requests] request=%s completed actual_hours=%s", req.id, actual_hours)
        self._notify("request.completed", actor, req, actual_hours=actual_hours)
        return Result.success(req)

    # ─────────────────────────────────────────────
    # DISCUSSIONS
    # ─────────────────────────────────────────────

    def create_discussion_request(
        self,
        db: Session,
        *,
        request_id: uuid.UUID,
        engineer_id: str,
        reason: str,
        actor: Actor,
        suggested_hours: Optional[int] = None,
    ) -> Result[DiscussionRequest]:
        reason = (reason or "").strip()
        if not reason:
            return Result.failure(ErrorCode.INVALID_INPUT, "A reason is required to open a discussion")
        if suggested_hours is not None and suggested_hours < 0:
            return Result.failure(ErrorCode.INVALID_HOURS, "Suggested hours cannot be negative", hours=suggested_hours)

        try:
            req = lock_request(db, request_id)
            if req is None:
                db.rollback()
                return Result.failure(ErrorCode.NOT_FOUND, "Request not found", request_id=str(request_id))

            # checked under the request lock, so two engineers cannot both open one
            pending = db.execute(
                select(DiscussionRequest.id).where(
                    DiscussionRequest.request_id == req.id,
                    DiscussionRequest.status == DiscussionStatus.PENDING.value,
                )
            ).first()
            if pending is not None:
                db.rollback()
                return Result.failure(
                    ErrorCode.DISCUSSION_ALREADY_PENDING,
                    "A discussion is already pending for this request",
                    request_id=str(req.id),
                    discussion_id=str(pending[0]),
                )

            if RequestStatus(req.status) not in DISCUSSION_SOURCE_STATUSES:
                db.rollback()
                return self._invalid_edge(req, RequestStatus.DISCUSSION)

            if req.assigned_to != engineer_id and actor.role != UserRole.ADMIN:
                db.rollback()
                return Result.failure(
                    ErrorCode.NOT_ASSIGNED_ENGINEER,
                    "Only the assigned engineer can raise a discussion on this request",
                    request_id=str(req.id),
                )

            discussion = DiscussionRequest(
                request_id=req.id,
                engineer_id=engineer_id,
                reason=reason,
                suggested_hours=suggested_hours,
                status=DiscussionStatus.PENDING.value,
                created_at=_now(),
            )
            db.add(discussion)
            self._move(req, RequestStatus.DISCUSSION)
            self._activity(db, req, actor, "discussion_opened", suggested_hours=suggested_hours, reason=reason)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        db.refresh(discussion)
        logger.info("[discussions] opened discussion=%s request=%s", discussion.id, req.id)
        self._notify("discussion.created", actor, req, discussion_id=str(discussion.id))
        return Result.success(discussion)

    def review_discussion_request(
        self,
        db: Session,
        *,
        discussion_id: uuid.UUID,
        action: DiscussionAction | str,
        actor: Actor,
        manager_response: Optional[str] = None,
        allocated_hours: Optional[int] = None,
    ) -> Result[DiscussionRequest]:
        """
        Resolve a Pending discussion exactly once.

        The status flip is a conditional UPDATE ... WHERE status = 'Pending';
        whoever matches zero rows lost the race and gets AlreadyReviewed.
        approve finalizes suggested_hours, override finalizes allocated_hours,
        deny keeps the current allocation. Any ledger rejection undoes the review.
        """
        try:
            action = DiscussionAction(action)
        except ValueError:
            return Result.failure(ErrorCode.INVALID_INPUT, f"Unknown review action '{action}'")

        if action == DiscussionAction.OVERRIDE and (allocated_hours is None or allocated_hours < 0):
            return Result.failure(
                ErrorCode.INVALID_HOURS,
                "Override requires a non-negative number of hours",
                hours=allocated_hours,
            )

        try:
            discussion = db.execute(
                select(DiscussionRequest)
                .where(DiscussionRequest.id == discussion_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if discussion is None:
                return Result.failure(ErrorCode.NOT_FOUND, "Discussion not found", discussion_id=str(discussion_id))

            if action == DiscussionAction.APPROVE:
                final_hours = discussion.suggested_hours
            elif action == DiscussionAction.OVERRIDE:
                final_hours = allocated_hours
            else:
                final_hours = None

            current_hours = (
                select(SimRequest.allocated_hours)
                .where(SimRequest.id == discussion.request_id)
                .scalar_subquery()
            )
            outcome = _REVIEW_OUTCOME[action]
            now = _now()
            flipped = db.execute(
                update(DiscussionRequest)
                .where(
                    DiscussionRequest.id == discussion_id,
                    DiscussionRequest.status == DiscussionStatus.PENDING.value,
                )
                .values(
                    status=outcome.value,
                    reviewed_by=actor.actor_id,
                    reviewed_by_name=actor.name,
                    manager_response=manager_response,
                    allocated_hours=final_hours if final_hours is not None else current_hours,
                    reviewed_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount == 0:
                db.rollback()
                logger.warning("[discussions] discussion=%s already reviewed", discussion_id)
                return Result.failure(
                    ErrorCode.ALREADY_REVIEWED,
                    "This discussion has already been reviewed",
                    discussion_id=str(discussion_id),
                )

            # only the winner of the flip touches the request
            req = lock_request(db, discussion.request_id)
            if req is None:
                db.rollback()
                return Result.failure(
                    ErrorCode.NOT_FOUND, "Request not found", request_id=str(discussion.request_id)
                )

            if final_hours is not None and req.project_id is not None:
                delta = final_hours - req.allocated_hours
                adjusted = self.ledger.adjust(
                    db,
                    project_id=req.project_id,
                    hours=delta,
                    actor=actor,
                    reason=f"Discussion {outcome.value.lower()}: {req.allocated_hours}h -> {final_hours}h",
                    request_id=req.id,
                    owns_transaction=False,
                )
                if not adjusted.is_success:
                    db.rollback()
                    logger.warning(
                        "[discussions] review of discussion=%s undone: %s", discussion_id, adjusted.error.message
                    )
                    return Result.from_error(adjusted.error)
                req.estimated_hours = final_hours

            if req.status == RequestStatus.DISCUSSION.value:
                self._move(req, RequestStatus.ENGINEERING_REVIEW)
            self._activity(
                db, req, actor, "discussion_reviewed",
                discussion_id=str(discussion_id), outcome=outcome.value, hours=final_hours,
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        db.refresh(discussion)
        logger.info("[discussions] discussion=%s %s by %s", discussion_id, outcome.value, actor.name)
        self._notify("discussion.reviewed", actor, req, discussion_id=str(discussion_id), status=outcome.value)
        return Result.success(discussion)

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get_request(self, db: Session, *, request_id: uuid.UUID) -> Optional[SimRequest]:
        return db.get(SimRequest, request_id)

    def list_requests(
        self,
        db: Session,
        *,
        project_id: Optional[uuid.UUID] = None,
        status: Optional[RequestStatus] = None,
        limit: int = 200,
        offset: int = 0,
    ) -> Sequence[SimRequest]:
        stmt = select(SimRequest)
        if project_id is not None:
            stmt = stmt.where(SimRequest.project_id == project_id)
        if status is not None:
            stmt = stmt.where(SimRequest.status == RequestStatus(status).value)
        stmt = stmt.order_by(SimRequest.created_at.desc()).limit(limit).offset(offset)
        return db.execute(stmt).scalars().all()

    def list_discussions(self, db: Session, *, request_id: uuid.UUID) -> Sequence[DiscussionRequest]:
        return db.execute(
            select(DiscussionRequest)
            .where(DiscussionRequest.request_id == request_id)
            .order_by(DiscussionRequest.created_at.asc())
        ).scalars().all()

    def list_activity(self, db: Session, *, request_id: uuid.UUID) -> Sequence[RequestActivity]:
        return db.execute(
            select(RequestActivity)
            .where(RequestActivity.request_id == request_id)
            .order_by(RequestActivity.created_at.asc())
        ).scalars().all()
