#simflow/services/hour_ledger.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from simflow.core.project_lifecycle import can_allocate_hours, is_terminal_status
from simflow.core.results import ErrorCode, Result
from simflow.db.locking import lock_project, lock_request
from simflow.db.session import TransactionScope
from simflow.models.enums import HourTransactionType
from simflow.models.hour_transaction import ProjectHourTransaction
from simflow.models.project import Project
from simflow.models.sim_request import SimRequest
from simflow.policies.rbac import Actor

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


@dataclass
class BalanceCheck:
    project_id: uuid.UUID
    used_hours: int
    ledger_total: int
    entries: int
    issues: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


class HourLedger:
    """
    Append-only hour ledger per project.

    Every mutation:
    - locks the linked request row, if any, then the project row (SELECT ... FOR UPDATE)
    - validates against the locked balance
    - appends one entry with the next seq
    - updates projects.used_hours / total_hours, and the request's allocated_hours,
      in the same transaction

    Business failures come back as Result.failure with nothing written.
    Database errors roll back the owned transaction and propagate.
    """

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def _next_seq(self, db: Session, project_id: uuid.UUID) -> int:
        last = db.execute(
            select(func.max(ProjectHourTransaction.seq)).where(
                ProjectHourTransaction.project_id == project_id
            )
        ).scalar_one_or_none()
        return 1 if last is None else last + 1

    def _check_delta(self, project: Project, delta: int) -> Optional[Result]:
        """Rules for a signed change to used_hours against the locked project."""
        if delta > 0:
            if not can_allocate_hours(project.status):
                return Result.failure(
                    ErrorCode.PROJECT_NOT_ACTIVE,
                    f"Project {project.code} is {project.status}; hours can only be allocated "
                    f"while it is Active or Approved",
                    project_id=str(project.id),
                    status=project.status,
                )
            if delta > project.available_hours:
                return Result.failure(
                    ErrorCode.INSUFFICIENT_BUDGET,
                    f"Insufficient hours. Available: {project.available_hours}, requested: {delta}",
                    project_id=str(project.id),
                    available=project.available_hours,
                    requested=delta,
                )
        elif project.used_hours + delta < 0:
            return Result.failure(
                ErrorCode.INVALID_HOURS,
                f"Cannot release {-delta} hours; only {project.used_hours} are in use",
                project_id=str(project.id),
                used=project.used_hours,
                requested=-delta,
            )
        return None

    def append_locked(
        self,
        db: Session,
        *,
        project: Project,
        transaction_type: HourTransactionType,
        hours: int,
        actor: Actor,
        request_id: Optional[uuid.UUID] = None,
        budget_delta: int = 0,
        notes: Optional[str] = None,
    ) -> ProjectHourTransaction:
        """
        Append one entry against a project row the caller already locked.
        No validation here; callers run _check_delta first.
        """
        before = project.used_hours
        after = before + hours

        row = ProjectHourTransaction(
            project_id=project.id,
            seq=self._next_seq(db, project.id),
            request_id=request_id,
            transaction_type=transaction_type.value,
            hours=hours,
            balance_before=before,
            balance_after=after,
            budget_delta=budget_delta,
            performed_by=actor.actor_id,
            performed_by_name=actor.name,
            notes=notes,
            created_at=_now(),
        )
        db.add(row)

        project.used_hours = after
        project.total_hours = project.total_hours + budget_delta
        project.updated_at = _now()
        db.flush()
        return row

    def _check_request(
        self, req: Optional[SimRequest], request_id: uuid.UUID, project_id: uuid.UUID, delta: int
    ) -> Optional[Result]:
        """A request-linked entry must name a request of this project and cannot release more than it drew."""
        if req is None:
            return Result.failure(ErrorCode.NOT_FOUND, "Request not found", request_id=str(request_id))
        if req.project_id != project_id:
            return Result.failure(
                ErrorCode.INVALID_INPUT,
                "Request does not belong to this project",
                request_id=str(request_id),
                project_id=str(project_id),
            )
        if req.allocated_hours + delta < 0:
            return Result.failure(
                ErrorCode.INVALID_HOURS,
                f"Cannot release {-delta} hours; request holds {req.allocated_hours}",
                request_id=str(request_id),
                allocated=req.allocated_hours,
                requested=-delta,
            )
        return None

    # ─────────────────────────────────────────────
    # PUBLIC API
    # ─────────────────────────────────────────────

    def record_transaction(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        transaction_type: HourTransactionType,
        hours: int,
        actor: Actor,
        request_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        owns_transaction: bool = True,
    ) -> Result[ProjectHourTransaction]:
        """
        Core primitive: apply a signed change to used_hours and append it.

        With a request_id the request row is locked first (then the project)
        and its allocated_hours moves by the same delta, so a request's
        allocation always equals the sum of its ledger entries.
        """
        scope = TransactionScope(db, owned=owns_transaction)
        try:
            req = None
            if request_id is not None:
                req = lock_request(db, request_id)
                problem = self._check_request(req, request_id, project_id, hours)
                if problem is not None:
                    scope.rollback()
                    return problem

            project = lock_project(db, project_id)
            if project is None:
                scope.rollback()
                return Result.failure(ErrorCode.NOT_FOUND, "Project not found", project_id=str(project_id))

            problem = self._check_delta(project, hours)
            if problem is not None:
                scope.rollback()
                logger.warning(
                    "[hours] %s rejected project=%s delta=%s: %s",
                    transaction_type.value, project.code, hours, problem.error.message,
                )
                return problem

            row = self.append_locked(
                db,
                project=project,
                transaction_type=transaction_type,
                hours=hours,
                actor=actor,
                request_id=request_id,
                notes=notes,
            )
            if req is not None:
                req.allocated_hours = req.allocated_hours + hours
                req.updated_at = _now()
                db.flush()
            scope.commit()
        except SQLAlchemyError:
            scope.rollback()
            raise

        logger.info(
            "[hours] %s project=%s seq=%s hours=%s balance=%s->%s",
            row.transaction_type, project.code, row.seq, row.hours, row.balance_before, row.balance_after,
        )
        return Result.success(row)

    def allocate(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        hours: int,
        actor: Actor,
        request_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        owns_transaction: bool = True,
    ) -> Result[ProjectHourTransaction]:
        if hours <= 0:
            return Result.failure(ErrorCode.INVALID_HOURS, "Hours to allocate must be positive", hours=hours)
        return self.record_transaction(
            db,
            project_id=project_id,
            transaction_type=HourTransactionType.ALLOCATION,
            hours=hours,
            actor=actor,
            request_id=request_id,
            notes=notes,
            owns_transaction=owns_transaction,
        )

    def deallocate(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        hours: int,
        actor: Actor,
        reason: Optional[str] = None,
        request_id: Optional[uuid.UUID] = None,
        owns_transaction: bool = True,
    ) -> Result[ProjectHourTransaction]:
        if hours <= 0:
            return Result.failure(ErrorCode.INVALID_HOURS, "Hours to deallocate must be positive", hours=hours)
        return self.record_transaction(
            db,
            project_id=project_id,
            transaction_type=HourTransactionType.DEALLOCATION,
            hours=-hours,
            actor=actor,
            request_id=request_id,
            notes=reason,
            owns_transaction=owns_transaction,
        )

    def adjust(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        hours: int,
        actor: Actor,
        reason: Optional[str] = None,
        request_id: Optional[uuid.UUID] = None,
        owns_transaction: bool = True,
    ) -> Result[Optional[ProjectHourTransaction]]:
        """Signed correction. A zero delta succeeds without writing anything."""
        if hours == 0:
            return Result.success(None)
        return self.record_transaction(
            db,
            project_id=project_id,
            transaction_type=HourTransactionType.ADJUSTMENT,
            hours=hours,
            actor=actor,
            request_id=request_id,
            notes=reason,
            owns_transaction=owns_transaction,
        )

    def completion(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        request_id: uuid.UUID,
        allocated_hours: int,
        actual_hours: int,
        actor: Actor,
        owns_transaction: bool = True,
    ) -> Result[Optional[ProjectHourTransaction]]:
        """
        Reconcile the estimate with the hours a request actually used.
        delta = actual - allocated; zero writes nothing.
        """
        if actual_hours < 0 or allocated_hours < 0:
            return Result.failure(
                ErrorCode.INVALID_HOURS,
                "Hours cannot be negative",
                allocated_hours=allocated_hours,
                actual_hours=actual_hours,
            )

        delta = actual_hours - allocated_hours
        if delta == 0:
            return Result.success(None)

        return self.record_transaction(
            db,
            project_id=project_id,
            transaction_type=HourTransactionType.COMPLETION,
            hours=delta,
            actor=actor,
            request_id=request_id,
            notes=f"Completed: allocated {allocated_hours}h, actual {actual_hours}h",
            owns_transaction=owns_transaction,
        )

    def extend(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        hours: int,
        actor: Actor,
        reason: Optional[str] = None,
        owns_transaction: bool = True,
    ) -> Result[ProjectHourTransaction]:
        """
        Grow the project budget. used_hours is untouched, so the entry carries
        hours=0 and budget_delta=+hours.
        """
        if hours <= 0:
            return Result.failure(ErrorCode.INVALID_HOURS, "Extension hours must be positive", hours=hours)

        scope = TransactionScope(db, owned=owns_transaction)
        try:
            project = lock_project(db, project_id)
            if project is None:
                scope.rollback()
                return Result.failure(ErrorCode.NOT_FOUND, "Project not found", project_id=str(project_id))

            if is_terminal_status(project.status):
                scope.rollback()
                return Result.failure(
                    ErrorCode.PROJECT_NOT_ACTIVE,
                    f"Cannot extend hours on a {project.status} project",
                    project_id=str(project.id),
                    status=project.status,
                )

            row = self.append_locked(
                db,
                project=project,
                transaction_type=HourTransactionType.EXTENSION,
                hours=0,
                budget_delta=hours,
                actor=actor,
                notes=reason,
            )
            scope.commit()
        except SQLAlchemyError:
            scope.rollback()
            raise

        logger.info("[hours] extension project=%s +%s total=%s", project.code, hours, project.total_hours)
        return Result.success(row)

    def rollover(
        self,
        db: Session,
        *,
        source_project_id: uuid.UUID,
        target_project_id: uuid.UUID,
        hours: int,
        actor: Actor,
        reason: Optional[str] = None,
        owns_transaction: bool = True,
    ) -> Result[List[ProjectHourTransaction]]:
        """
        Move unused budget from one project to another.
        Returns [source_entry, target_entry].
        """
        if hours <= 0:
            return Result.failure(ErrorCode.INVALID_HOURS, "Rollover hours must be positive", hours=hours)
        if source_project_id == target_project_id:
            return Result.failure(ErrorCode.INVALID_HOURS, "Cannot roll hours over into the same project")

        scope = TransactionScope(db, owned=owns_transaction)
        try:
            # fixed lock order across concurrent rollovers
            locked = {}
            for pid in sorted([source_project_id, target_project_id], key=str):
                locked[pid] = lock_project(db, pid)

            source = locked[source_project_id]
            target = locked[target_project_id]
            if source is None or target is None:
                scope.rollback()
                missing = source_project_id if source is None else target_project_id
                return Result.failure(ErrorCode.NOT_FOUND, "Project not found", project_id=str(missing))

            if hours > source.available_hours:
                scope.rollback()
                return Result.failure(
                    ErrorCode.INSUFFICIENT_BUDGET,
                    f"Insufficient unused hours to roll over. Available: {source.available_hours}, "
                    f"requested: {hours}",
                    project_id=str(source.id),
                    available=source.available_hours,
                    requested=hours,
                )

            if is_terminal_status(target.status):
                scope.rollback()
                return Result.failure(
                    ErrorCode.PROJECT_NOT_ACTIVE,
                    f"Cannot roll hours into a {target.status} project",
                    project_id=str(target.id),
                    status=target.status,
                )

            out_row = self.append_locked(
                db,
                project=source,
                transaction_type=HourTransactionType.ROLLOVER,
                hours=0,
                budget_delta=-hours,
                actor=actor,
                notes=reason or f"Rolled over to {target.code}",
            )
            in_row = self.append_locked(
                db,
                project=target,
                transaction_type=HourTransactionType.ROLLOVER,
                hours=0,
                budget_delta=hours,
                actor=actor,
                notes=reason or f"Rolled over from {source.code}",
            )
            scope.commit()
        except SQLAlchemyError:
            scope.rollback()
            raise

        logger.info("[hours] rollover %s -> %s hours=%s", source.code, target.code, hours)
        return Result.success([out_row, in_row])

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def list_transactions(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        limit: int = 100,
        offset: int = 0,
    ) -> Sequence[ProjectHourTransaction]:
        return db.execute(
            select(ProjectHourTransaction)
            .where(ProjectHourTransaction.project_id == project_id)
            .order_by(ProjectHourTransaction.seq.asc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()

    def request_allocated_hours(self, db: Session, *, request_id: uuid.UUID) -> int:
        total = db.execute(
            select(func.coalesce(func.sum(ProjectHourTransaction.hours), 0)).where(
                ProjectHourTransaction.request_id == request_id
            )
        ).scalar_one()
        return int(total)

    def verify_balance(self, db: Session, *, project_id: uuid.UUID) -> Optional[BalanceCheck]:
        """
        Walk the chain: balance_before(n) == balance_after(n-1),
        balance_after == balance_before + hours, and used_hours == Σ hours.
        """
        project = db.get(Project, project_id)
        if project is None:
            return None

        entries = db.execute(
            select(ProjectHourTransaction)
            .where(ProjectHourTransaction.project_id == project_id)
            .order_by(ProjectHourTransaction.seq.asc())
        ).scalars().all()

        check = BalanceCheck(
            project_id=project_id,
            used_hours=project.used_hours,
            ledger_total=sum(e.hours for e in entries),
            entries=len(entries),
        )

        prev_after = 0
        for e in entries:
            if e.balance_before != prev_after:
                check.issues.append(f"seq {e.seq}: balance_before {e.balance_before} != previous {prev_after}")
            if e.balance_after != e.balance_before + e.hours:
                check.issues.append(f"seq {e.seq}: balance_after does not equal balance_before + hours")
            prev_after = e.balance_after

        if check.ledger_total != project.used_hours:
            check.issues.append(
                f"used_hours {project.used_hours} != ledger total {check.ledger_total}"
            )
        return check
