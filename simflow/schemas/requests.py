#simflow/schemas/requests.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from simflow.models.enums import DiscussionAction, RequestPriority, RequestStatus


class RequestCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: str
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    vendor: str = Field(..., min_length=1, max_length=100)
    priority: RequestPriority = RequestPriority.MEDIUM


class RequestStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    to_status: RequestStatus
    note: Optional[str] = Field(default=None, max_length=2000)


class AssignEngineerRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    engineer_id: str = Field(..., min_length=1)
    engineer_name: str = Field(..., min_length=1, max_length=255)
    estimated_hours: int = Field(..., gt=0)


class UnassignEngineerRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: Optional[str] = Field(default=None, max_length=2000)


class CompleteRequestRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    actual_hours: Optional[int] = Field(default=None, ge=0)


class DiscussionCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str = Field(..., min_length=1)
    suggested_hours: Optional[int] = Field(default=None, ge=0)


class DiscussionReviewRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: DiscussionAction
    manager_response: Optional[str] = None
    allocated_hours: Optional[int] = Field(default=None, ge=0)


class SimRequestResponse(BaseModel):
    requestId: str
    projectId: Optional[str] = None
    title: str
    description: str
    vendor: str
    status: RequestStatus
    priority: str

    createdBy: Optional[str] = None
    createdByName: str
    assignedTo: Optional[str] = None
    assignedToName: Optional[str] = None

    estimatedHours: Optional[int] = None
    allocatedHours: int
    actualHours: Optional[int] = None

    createdAtIso: str
    updatedAtIso: str


class RequestListResponse(BaseModel):
    requests: List[SimRequestResponse]


class DiscussionResponse(BaseModel):
    discussionId: str
    requestId: str
    engineerId: str
    reason: str
    suggestedHours: Optional[int] = None
    status: str
    reviewedBy: Optional[str] = None
    reviewedByName: Optional[str] = None
    managerResponse: Optional[str] = None
    allocatedHours: Optional[int] = None
    createdAtIso: str
    reviewedAtIso: Optional[str] = None


class DiscussionListResponse(BaseModel):
    requestId: str
    discussions: List[DiscussionResponse]


class ActivityEntry(BaseModel):
    id: str
    actorId: Optional[str] = None
    actorName: str
    action: str
    details: Dict[str, Any]
    createdAtIso: str


class ActivityListResponse(BaseModel):
    requestId: str
    entries: List[ActivityEntry]
