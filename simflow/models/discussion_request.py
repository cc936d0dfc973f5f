from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from simflow.db.base import Base
from simflow.models.enums import DiscussionStatus


class DiscussionRequest(Base):
    """
    Engineer-raised dispute over the hours allocated to a request.
    Leaves Pending exactly once; the review is a conditional UPDATE.
    """

    __tablename__ = "discussion_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False
    )
    engineer_id: Mapped[str] = mapped_column(String(128), nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    suggested_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=text(f"'{DiscussionStatus.PENDING.value}'")
    )

    reviewed_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    reviewed_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    manager_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    allocated_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('Pending','Approved','Denied','Override')", name="ck_discussion_requests_status"
        ),
        Index("ix_discussion_requests_request_id", "request_id"),
        Index("ix_discussion_requests_status", "status"),
    )
