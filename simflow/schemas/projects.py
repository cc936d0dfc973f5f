#simflow/schemas/projects.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from simflow.models.enums import ProjectPriority, ProjectStatus


# -----------------------
# Requests
# -----------------------


class ProjectCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=255)
    total_hours: int = Field(..., ge=0)
    priority: ProjectPriority = ProjectPriority.MEDIUM
    category: Optional[str] = Field(default=None, max_length=100)
    deadline: Optional[date] = None


class ProjectRenameRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=255)


class ProjectTransitionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    to_status: ProjectStatus
    reason: Optional[str] = Field(default=None, max_length=2000)
    completion_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    # status the client last saw; a mismatch is reported as a 409 conflict
    expected_status: Optional[ProjectStatus] = None


class HoursChangeRequest(BaseModel):
    """allocate / deallocate / extend take positive hours; adjust takes a signed delta."""

    model_config = ConfigDict(extra="forbid")

    hours: int
    request_id: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=2000)


class RolloverRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_project_id: str
    hours: int = Field(..., gt=0)
    reason: Optional[str] = Field(default=None, max_length=2000)


# -----------------------
# Responses
# -----------------------


class ProjectResponse(BaseModel):
    projectId: str
    code: str
    name: str
    status: ProjectStatus

    totalHours: int
    usedHours: int
    availableHours: int

    priority: str
    category: Optional[str] = None
    deadline: Optional[str] = None

    completedAtIso: Optional[str] = None
    completionNotes: Optional[str] = None
    cancelledAtIso: Optional[str] = None
    cancellationReason: Optional[str] = None

    createdBy: Optional[str] = None
    createdByName: str
    createdAtIso: str
    updatedAtIso: str

    validNextStatuses: List[str]


class ProjectListResponse(BaseModel):
    total: int
    projects: List[ProjectResponse]


class StatusHistoryEntry(BaseModel):
    id: str
    fromStatus: Optional[str] = None
    toStatus: str
    changedBy: Optional[str] = None
    changedByName: str
    reason: Optional[str] = None
    createdAtIso: str


class StatusHistoryResponse(BaseModel):
    projectId: str
    entries: List[StatusHistoryEntry]


class HourTransactionResponse(BaseModel):
    id: str
    projectId: str
    seq: int
    requestId: Optional[str] = None
    transactionType: str
    hours: int
    balanceBefore: int
    balanceAfter: int
    budgetDelta: int
    performedBy: Optional[str] = None
    performedByName: str
    notes: Optional[str] = None
    createdAtIso: str


class HourLedgerResponse(BaseModel):
    projectId: str
    totalHours: int
    usedHours: int
    availableHours: int
    balanced: bool
    transactions: List[HourTransactionResponse]


class HoursChangeResponse(BaseModel):
    project: ProjectResponse
    transaction: Optional[HourTransactionResponse] = None


class RolloverResponse(BaseModel):
    source: ProjectResponse
    target: ProjectResponse
    transactions: List[HourTransactionResponse]
