# simflow/api/v1/requests.py
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from simflow.core.auth_deps import get_current_actor, require_action
from simflow.core.deps import unwrap
from simflow.db.session import get_db
from simflow.models.enums import RequestStatus
from simflow.policies.rbac import (
    ACTION_ASSIGN_ENGINEER,
    ACTION_COMPLETE_REQUEST,
    ACTION_CREATE_REQUEST,
    ACTION_RAISE_DISCUSSION,
    ACTION_UPDATE_REQUEST_STATUS,
    Actor,
)
from simflow.schemas.requests import (
    ActivityListResponse,
    AssignEngineerRequest,
    CompleteRequestRequest,
    DiscussionCreateRequest,
    DiscussionListResponse,
    DiscussionResponse,
    RequestCreateRequest,
    RequestListResponse,
    RequestStatusRequest,
    SimRequestResponse,
    UnassignEngineerRequest,
)
from simflow.services.request_workflow import RequestWorkflowCoordinator

router = APIRouter(prefix="/requests")


def _iso(dt):
    return dt.isoformat() if dt else None


def request_resp(r) -> dict:
    return {
        "requestId": str(r.id),
        "projectId": str(r.project_id) if r.project_id else None,
        "title": r.title,
        "description": r.description,
        "vendor": r.vendor,
        "status": r.status,
        "priority": r.priority,
        "createdBy": r.created_by,
        "createdByName": r.created_by_name,
        "assignedTo": r.assigned_to,
        "assignedToName": r.assigned_to_name,
        "estimatedHours": r.estimated_hours,
        "allocatedHours": r.allocated_hours,
        "actualHours": r.actual_hours,
        "createdAtIso": _iso(r.created_at),
        "updatedAtIso": _iso(r.updated_at),
    }


def discussion_resp(d) -> dict:
    return {
        "discussionId": str(d.id),
        "requestId": str(d.request_id),
        "engineerId": d.engineer_id,
        "reason": d.reason,
        "suggestedHours": d.suggested_hours,
        "status": d.status,
        "reviewedBy": d.reviewed_by,
        "reviewedByName": d.reviewed_by_name,
        "managerResponse": d.manager_response,
        "allocatedHours": d.allocated_hours,
        "createdAtIso": _iso(d.created_at),
        "reviewedAtIso": _iso(d.reviewed_at),
    }


def _get_or_404(db: Session, request_id: uuid.UUID):
    r = RequestWorkflowCoordinator().get_request(db, request_id=request_id)
    if not r:
        raise HTTPException(status_code=404, detail="Request not found.")
    return r


@router.post("", response_model=SimRequestResponse, status_code=201)
def create_request(
    body: RequestCreateRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_CREATE_REQUEST)),
):
    try:
        project_id = uuid.UUID(body.project_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid project_id.")

    r = unwrap(
        RequestWorkflowCoordinator().create_request(
            db,
            project_id=project_id,
            title=body.title,
            description=body.description,
            vendor=body.vendor,
            priority=body.priority,
            actor=actor,
        )
    )
    return request_resp(r)


@router.get("", response_model=RequestListResponse)
def list_requests(
    project_id: Optional[uuid.UUID] = Query(default=None),
    status: Optional[RequestStatus] = Query(default=None),
    limit: int = Query(default=200, ge=1, le=2000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    rows = RequestWorkflowCoordinator().list_requests(
        db, project_id=project_id, status=status, limit=limit, offset=offset
    )
    return {"requests": [request_resp(r) for r in rows]}


@router.get("/{request_id}", response_model=SimRequestResponse)
def get_request(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return request_resp(_get_or_404(db, request_id))


@router.post("/{request_id}/status", response_model=SimRequestResponse)
def update_request_status(
    request_id: uuid.UUID,
    body: RequestStatusRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_UPDATE_REQUEST_STATUS)),
):
    r = unwrap(
        RequestWorkflowCoordinator().transition_request(
            db, request_id=request_id, to_status=body.to_status, actor=actor, note=body.note
        )
    )
    return request_resp(r)


@router.post("/{request_id}/assign", response_model=SimRequestResponse)
def assign_engineer(
    request_id: uuid.UUID,
    body: AssignEngineerRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_ASSIGN_ENGINEER)),
):
    r = unwrap(
        RequestWorkflowCoordinator().assign_engineer(
            db,
            request_id=request_id,
            engineer_id=body.engineer_id,
            engineer_name=body.engineer_name,
            estimated_hours=body.estimated_hours,
            actor=actor,
        )
    )
    return request_resp(r)


@router.post("/{request_id}/unassign", response_model=SimRequestResponse)
def unassign_engineer(
    request_id: uuid.UUID,
    body: UnassignEngineerRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_ASSIGN_ENGINEER)),
):
    r = unwrap(
        RequestWorkflowCoordinator().unassign_engineer(db, request_id=request_id, actor=actor, reason=body.reason)
    )
    return request_resp(r)


@router.post("/{request_id}/complete", response_model=SimRequestResponse)
def complete_request(
    request_id: uuid.UUID,
    body: CompleteRequestRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_COMPLETE_REQUEST)),
):
    r = unwrap(
        RequestWorkflowCoordinator().complete_request(
            db, request_id=request_id, actor=actor, actual_hours=body.actual_hours
        )
    )
    return request_resp(r)


@router.post("/{request_id}/discussions", response_model=DiscussionResponse, status_code=201)
def create_discussion(
    request_id: uuid.UUID,
    body: DiscussionCreateRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_RAISE_DISCUSSION)),
):
    d = unwrap(
        RequestWorkflowCoordinator().create_discussion_request(
            db,
            request_id=request_id,
            engineer_id=actor.actor_id or "",
            reason=body.reason,
            suggested_hours=body.suggested_hours,
            actor=actor,
        )
    )
    return discussion_resp(d)


@router.get("/{request_id}/discussions", response_model=DiscussionListResponse)
def list_discussions(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    _get_or_404(db, request_id)
    rows = RequestWorkflowCoordinator().list_discussions(db, request_id=request_id)
    return {"requestId": str(request_id), "discussions": [discussion_resp(d) for d in rows]}


@router.get("/{request_id}/activity", response_model=ActivityListResponse)
def list_activity(
    request_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    _get_or_404(db, request_id)
    rows = RequestWorkflowCoordinator().list_activity(db, request_id=request_id)
    return {
        "requestId": str(request_id),
        "entries": [
            {
                "id": str(a.id),
                "actorId": a.actor_id,
                "actorName": a.actor_name,
                "action": a.action,
                "details": a.details_json or {},
                "createdAtIso": _iso(a.created_at),
            }
            for a in rows
        ],
    }
