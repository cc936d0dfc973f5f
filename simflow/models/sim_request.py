#simflow/models/sim_request.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
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
from simflow.models.enums import RequestPriority, RequestStatus


class SimRequest(Base):
    __tablename__ = "requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    vendor: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[str] = mapped_column(
        String(32), nullable=False, server_default=text(f"'{RequestStatus.SUBMITTED.value}'")
    )
    priority: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text(f"'{RequestPriority.MEDIUM.value}'")
    )

    created_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_by_name: Mapped[str] = mapped_column(String(255), nullable=False)

    assigned_to: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    assigned_to_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    estimated_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # hours currently drawn from the project ledger for this request
    allocated_hours: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    actual_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    project = relationship("Project")

    __table_args__ = (
        CheckConstraint("allocated_hours >= 0", name="ck_requests_allocated_nonneg"),
        Index("ix_requests_status", "status"),
        Index("ix_requests_project", "project_id"),
        Index("ix_requests_assigned_to", "assigned_to"),
    )


class RequestActivity(Base):
    """
    Append-only activity trail for a request (created, status_changed, assigned, ...).
    """

    __tablename__ = "request_activity"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False
    )

    actor_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    actor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    details_json: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_request_activity_request", "request_id"),
        Index("ix_request_activity_created", "created_at"),
    )
