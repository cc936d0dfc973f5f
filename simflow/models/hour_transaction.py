# simflow/models/hour_transaction.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from simflow.db.base import Base


class ProjectHourTransaction(Base):
    """
    Append-only hour ledger entry.

    hours is the signed change to projects.used_hours:
        balance_after = balance_before + hours
    budget_delta is the signed change to projects.total_hours (extension, rollover).
    seq is monotonic per project and orders the balance chain.
    """

    __tablename__ = "project_hour_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("requests.id", ondelete="SET NULL"), nullable=True
    )

    transaction_type: Mapped[str] = mapped_column(String(32), nullable=False)

    hours: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    budget_delta: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))

    performed_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    performed_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("project_id", "seq", name="uq_hour_transactions_project_seq"),
        CheckConstraint(
            "transaction_type IN ('allocation','deallocation','adjustment','completion','rollover','extension')",
            name="ck_hour_transactions_type",
        ),
        CheckConstraint("balance_after = balance_before + hours", name="ck_hour_transactions_balance"),
        Index("ix_hour_transactions_project", "project_id"),
        Index("ix_hour_transactions_request", "request_id"),
        Index("ix_hour_transactions_type", "transaction_type"),
    )
