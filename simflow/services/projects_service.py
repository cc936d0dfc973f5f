# simflow/services/projects_service.py
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from simflow.core.results import ErrorCode, Result
from simflow.models.enums import ProjectPriority, ProjectStatus
from simflow.models.project import Project, ProjectStatusHistory
from simflow.policies.rbac import Actor, creates_active_projects

logger = logging.getLogger(__name__)

CODE_SEQUENCE_START = 100001
_CODE_ATTEMPTS = 3


def _now():
    return datetime.now(timezone.utc)


def format_project_code(number: int, year: int) -> str:
    return f"{number:06d}-{year}"


class ProjectsService:
    """
    Project registry: creation, reads and renames.
    Status and hours are not written here (see TransitionEngine / HourLedger).
    """

    def next_project_code(self, db: Session, *, year: int) -> str:
        """NNNNNN-YYYY, numbered from 100001 within each year."""
        suffix = f"-{year}"
        codes = db.execute(
            select(Project.code).where(Project.code.like(f"%{suffix}"))
        ).scalars().all()

        numbers = [int(c[: -len(suffix)]) for c in codes if c[: -len(suffix)].isdigit()]
        nxt = max(numbers) + 1 if numbers else CODE_SEQUENCE_START
        return format_project_code(nxt, year)

    def create(
        self,
        db: Session,
        *,
        name: str,
        total_hours: int,
        actor: Actor,
        priority: ProjectPriority = ProjectPriority.MEDIUM,
        category: Optional[str] = None,
        deadline: Optional[date] = None,
    ) -> Result[Project]:
        name = (name or "").strip()
        if not name:
            return Result.failure(ErrorCode.INVALID_INPUT, "Project name is required")
        if total_hours < 0:
            return Result.failure(ErrorCode.INVALID_HOURS, "Total hours cannot be negative", hours=total_hours)

        status = ProjectStatus.ACTIVE if creates_active_projects(actor.role) else ProjectStatus.PENDING

        # max+1 races with concurrent creators; the unique index decides, then we retry
        for attempt in range(1, _CODE_ATTEMPTS + 1):
            now = _now()
            code = self.next_project_code(db, year=now.year)
            p = Project(
                name=name,
                code=code,
                status=status.value,
                total_hours=total_hours,
                used_hours=0,
                priority=ProjectPriority(priority).value,
                category=category,
                deadline=deadline,
                created_by=actor.actor_id,
                created_by_name=actor.name,
                created_at=now,
                updated_at=now,
            )
            db.add(p)
            try:
                db.flush()
                db.add(
                    ProjectStatusHistory(
                        project_id=p.id,
                        from_status=None,
                        to_status=status.value,
                        changed_by=actor.actor_id,
                        changed_by_name=actor.name,
                        reason="Project created",
                        created_at=now,
                    )
                )
                db.commit()
            except IntegrityError:
                db.rollback()
                if attempt == _CODE_ATTEMPTS:
                    raise
                logger.warning("[projects] code collision on %s, retrying", code)
                continue
            except SQLAlchemyError:
                db.rollback()
                raise
            break

        db.refresh(p)
        logger.info("[projects] created %s status=%s hours=%s by %s", p.code, p.status, p.total_hours, actor.name)
        return Result.success(p)

    def get(self, db: Session, *, project_id: uuid.UUID) -> Optional[Project]:
        return db.get(Project, project_id)

    def list(
        self,
        db: Session,
        *,
        status: Optional[ProjectStatus] = None,
        limit: int = 200,
        offset: int = 0,
    ) -> List[Project]:
        stmt = select(Project)
        if status is not None:
            stmt = stmt.where(Project.status == ProjectStatus(status).value)

        stmt = stmt.order_by(Project.created_at.desc()).limit(limit).offset(offset)
        return db.execute(stmt).scalars().all()

    def count(self, db: Session, *, status: Optional[ProjectStatus] = None) -> int:
        stmt = select(func.count(Project.id))
        if status is not None:
            stmt = stmt.where(Project.status == ProjectStatus(status).value)
        return db.execute(stmt).scalar_one()

    def rename(self, db: Session, *, project_id: uuid.UUID, name: str) -> Result[Project]:
        name = (name or "").strip()
        if not name:
            return Result.failure(ErrorCode.INVALID_INPUT, "Project name is required")

        p = self.get(db, project_id=project_id)
        if p is None:
            return Result.failure(ErrorCode.NOT_FOUND, "Project not found", project_id=str(project_id))

        p.name = name
        p.updated_at = _now()
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        db.refresh(p)
        return Result.success(p)
