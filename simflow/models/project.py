# /simflow/models/project.py
from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from simflow.db.base import Base
from simflow.models.enums import ProjectPriority, ProjectStatus


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text(f"'{ProjectStatus.PENDING.value}'")
    )

    total_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    # cached running balance of project_hour_transactions.hours
    used_hours: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))

    priority: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text(f"'{ProjectPriority.MEDIUM.value}'")
    )
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_by_name: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    status_history = relationship(
        "ProjectStatusHistory",
        back_populates="project",
        order_by="ProjectStatusHistory.created_at",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("total_hours >= 0", name="ck_projects_total_hours_nonneg"),
        CheckConstraint("used_hours >= 0", name="ck_projects_used_hours_nonneg"),
        CheckConstraint("used_hours <= total_hours", name="ck_projects_hours_valid"),
        Index("ix_projects_status", "status"),
        Index("ix_projects_status_deadline", "status", "deadline"),
    )

    @property
    def available_hours(self) -> int:
        return self.total_hours - self.used_hours


class ProjectStatusHistory(Base):
    """
    Append-only record of one project status change (never UPDATE).
    from_status is NULL for the row written when the project is created.
    """

    __tablename__ = "project_status_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )

    from_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)

    changed_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    changed_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    project = relationship("Project", back_populates="status_history")

    __table_args__ = (
        Index("ix_project_status_history_project", "project_id"),
        Index("ix_project_status_history_created", "created_at"),
    )
