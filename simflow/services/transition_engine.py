# simflow/services/transition_engine.py
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from simflow.core.project_lifecycle import (
    EXPIRABLE_STATUSES,
    can_create_requests,
    is_valid_transition,
    requires_reason,
    sorted_next_states,
)
from simflow.core.results import ErrorCode, Result
from simflow.db.locking import lock_project
from simflow.db.session import TransactionScope
from simflow.integrations.notify import NotifyContext, dispatch
from simflow.models.enums import ProjectStatus
from simflow.models.project import Project, ProjectStatusHistory
from simflow.policies.rbac import Actor

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


class TransitionEngine:
    """
    Single write path for projects.status.

    Public methods:
    - transition_project_status(db, project_id, to_status, actor, ...) -> Result[Project]
    - list_status_history(db, project_id) -> list of ProjectStatusHistory (oldest first)
    - projects_near_deadline(db, today, days_ahead) -> active projects due soon
    - can_project_accept_requests(db, project_id, today) -> Result[Project]
    """

    def transition_project_status(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        to_status: ProjectStatus | str,
        actor: Actor,
        reason: Optional[str] = None,
        completion_notes: Optional[str] = None,
        cancellation_reason: Optional[str] = None,
        expected_status: Optional[ProjectStatus | str] = None,
        owns_transaction: bool = True,
    ) -> Result[Project]:
        """
        Validate and apply one status change under a row lock.

        Guarantees:
        - validation runs against the status read under the lock
        - the update and its history row commit together or not at all
        - a rejected transition writes nothing

        expected_status, when given, is the status the caller last saw; if the
        locked row says otherwise the call fails with StaleState (a conflict)
        instead of being validated against a status the caller never observed.
        """
        scope = TransactionScope(db, owned=owns_transaction)

        try:
            target = ProjectStatus(to_status)
        except ValueError:
            return Result.failure(
                ErrorCode.INVALID_TRANSITION,
                f"Unknown project status '{to_status}'",
                to_status=str(to_status),
            )

        expected = None
        if expected_status is not None:
            try:
                expected = ProjectStatus(expected_status)
            except ValueError:
                return Result.failure(
                    ErrorCode.INVALID_INPUT,
                    f"Unknown project status '{expected_status}'",
                    expected_status=str(expected_status),
                )

        reason = (reason or "").strip() or None

        try:
            # 🔒 SERIALIZE PER PROJECT
            project = lock_project(db, project_id)
            if project is None:
                scope.rollback()
                return Result.failure(ErrorCode.NOT_FOUND, "Project not found", project_id=str(project_id))

            current = project.status

            if expected is not None and expected.value != current:
                scope.rollback()
                return Result.failure(
                    ErrorCode.STALE_STATE,
                    f"Project status changed to '{current}' since it was read as '{expected.value}'",
                    expected_status=expected.value,
                    current_status=current,
                )

            if not is_valid_transition(current, target):
                scope.rollback()
                valid = sorted_next_states(current)
                listed = ", ".join(f"'{s}'" for s in valid) or "none"
                logger.warning(
                    "[transition] rejected project=%s %s -> %s", project.code, current, target.value
                )
                return Result.failure(
                    ErrorCode.INVALID_TRANSITION,
                    f"Invalid transition from '{current}' to '{target.value}'. Valid transitions: {listed}",
                    from_status=current,
                    to_status=target.value,
                    valid_next_states=valid,
                )

            if requires_reason(target) and not reason:
                scope.rollback()
                return Result.failure(
                    ErrorCode.REASON_REQUIRED,
                    f"A reason is required when changing status to '{target.value}'",
                    to_status=target.value,
                )

            now = _now()
            project.status = target.value
            project.updated_at = now

            if target == ProjectStatus.COMPLETED:
                project.completed_at = now
                if completion_notes:
                    project.completion_notes = completion_notes
            elif target == ProjectStatus.CANCELLED:
                project.cancelled_at = now
                project.cancellation_reason = cancellation_reason or reason

            db.add(
                ProjectStatusHistory(
                    project_id=project.id,
                    from_status=current,
                    to_status=target.value,
                    changed_by=actor.actor_id,
                    changed_by_name=actor.name,
                    reason=reason,
                    created_at=now,
                )
            )
            scope.commit()
        except SQLAlchemyError:
            scope.rollback()
            raise

        logger.info(
            "[transition] project=%s %s -> %s by %s", project.code, current, target.value, actor.name
        )

        if owns_transaction:
            dispatch(
                NotifyContext(
                    event="project.status_changed",
                    actor_name=actor.name,
                    actor_id=actor.actor_id,
                    entity_type="project",
                    entity_id=str(project.id),
                    payload={"code": project.code, "from_status": current, "to_status": target.value},
                )
            )

        return Result.success(project)

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def list_status_history(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        limit: int = 100,
        offset: int = 0,
    ) -> Sequence[ProjectStatusHistory]:
        return db.execute(
            select(ProjectStatusHistory)
            .where(ProjectStatusHistory.project_id == project_id)
            .order_by(ProjectStatusHistory.created_at.asc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()

    def projects_near_deadline(
        self,
        db: Session,
        *,
        today: date,
        days_ahead: int = 7,
    ) -> Sequence[Project]:
        """Expirable projects whose deadline falls within [today, today + days_ahead]."""
        return db.execute(
            select(Project)
            .where(
                Project.status.in_([s.value for s in EXPIRABLE_STATUSES]),
                Project.deadline.is_not(None),
                Project.deadline >= today,
                Project.deadline <= today + timedelta(days=days_ahead),
            )
            .order_by(Project.deadline.asc(), Project.code.asc())
        ).scalars().all()

    def can_project_accept_requests(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        today: date,
    ) -> Result[Project]:
        project = db.get(Project, project_id)
        if project is None:
            return Result.failure(ErrorCode.NOT_FOUND, "Project not found", project_id=str(project_id))

        if not can_create_requests(project.status):
            return Result.failure(
                ErrorCode.PROJECT_NOT_ACCEPTING_REQUESTS,
                f"Project is {project.status}",
                project_id=str(project.id),
                status=project.status,
            )

        if project.available_hours <= 0:
            return Result.failure(
                ErrorCode.PROJECT_NOT_ACCEPTING_REQUESTS,
                "Project has no available hours",
                project_id=str(project.id),
            )

        if project.deadline is not None and project.deadline < today:
            return Result.failure(
                ErrorCode.PROJECT_NOT_ACCEPTING_REQUESTS,
                "Project deadline has passed",
                project_id=str(project.id),
                deadline=project.deadline.isoformat(),
            )

        return Result.success(project)
