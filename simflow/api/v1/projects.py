# simflow/api/v1/projects.py
from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from simflow.core.auth_deps import get_current_actor, require_action
from simflow.core.config import get_settings
from simflow.core.deps import unwrap
from simflow.core.project_lifecycle import sorted_next_states
from simflow.db.session import get_db
from simflow.models.enums import ProjectStatus
from simflow.policies.rbac import (
    ACTION_CREATE_PROJECT,
    ACTION_MANAGE_HOURS,
    ACTION_TRANSITION_PROJECT,
    Actor,
)
from simflow.schemas.projects import (
    HourLedgerResponse,
    HoursChangeRequest,
    HoursChangeResponse,
    ProjectCreateRequest,
    ProjectListResponse,
    ProjectRenameRequest,
    ProjectResponse,
    ProjectTransitionRequest,
    RolloverRequest,
    RolloverResponse,
    StatusHistoryResponse,
)
from simflow.services.hour_ledger import HourLedger
from simflow.services.projects_service import ProjectsService
from simflow.services.transition_engine import TransitionEngine

router = APIRouter(prefix="/projects")


def _iso(dt):
    return dt.isoformat() if dt else None


def _parse_uuid(raw: Optional[str], field: str) -> Optional[uuid.UUID]:
    if raw is None:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field}.")


def project_resp(p) -> dict:
    return {
        "projectId": str(p.id),
        "code": p.code,
        "name": p.name,
        "status": p.status,
        "totalHours": p.total_hours,
        "usedHours": p.used_hours,
        "availableHours": p.available_hours,
        "priority": p.priority,
        "category": p.category,
        "deadline": p.deadline.isoformat() if p.deadline else None,
        "completedAtIso": _iso(p.completed_at),
        "completionNotes": p.completion_notes,
        "cancelledAtIso": _iso(p.cancelled_at),
        "cancellationReason": p.cancellation_reason,
        "createdBy": p.created_by,
        "createdByName": p.created_by_name,
        "createdAtIso": _iso(p.created_at),
        "updatedAtIso": _iso(p.updated_at),
        "validNextStatuses": sorted_next_states(p.status),
    }


def txn_resp(t) -> dict:
    return {
        "id": str(t.id),
        "projectId": str(t.project_id),
        "seq": t.seq,
        "requestId": str(t.request_id) if t.request_id else None,
        "transactionType": t.transaction_type,
        "hours": t.hours,
        "balanceBefore": t.balance_before,
        "balanceAfter": t.balance_after,
        "budgetDelta": t.budget_delta,
        "performedBy": t.performed_by,
        "performedByName": t.performed_by_name,
        "notes": t.notes,
        "createdAtIso": _iso(t.created_at),
    }


def _get_or_404(db: Session, project_id: uuid.UUID):
    p = ProjectsService().get(db, project_id=project_id)
    if not p:
        raise HTTPException(status_code=404, detail="Project not found.")
    return p


# ------------------------------------------------------------------
# REGISTRY
# ------------------------------------------------------------------


@router.post("", response_model=ProjectResponse, status_code=201)
def create_project(
    body: ProjectCreateRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_CREATE_PROJECT)),
):
    p = unwrap(
        ProjectsService().create(
            db,
            name=body.name,
            total_hours=body.total_hours,
            actor=actor,
            priority=body.priority,
            category=body.category,
            deadline=body.deadline,
        )
    )
    return project_resp(p)


@router.get("", response_model=ProjectListResponse)
def list_projects(
    status: Optional[ProjectStatus] = Query(default=None),
    limit: int = Query(default=200, ge=1, le=2000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    svc = ProjectsService()
    rows = svc.list(db, status=status, limit=limit, offset=offset)
    return {"total": svc.count(db, status=status), "projects": [project_resp(p) for p in rows]}


# declared before /{project_id} so the literal path wins
@router.get("/near-deadline", response_model=ProjectListResponse)
def near_deadline(
    days: Optional[int] = Query(default=None, ge=0, le=365),
    today: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    days_ahead = days if days is not None else get_settings().near_deadline_days
    rows = TransitionEngine().projects_near_deadline(db, today=today or date.today(), days_ahead=days_ahead)
    return {"total": len(rows), "projects": [project_resp(p) for p in rows]}


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return project_resp(_get_or_404(db, project_id))


@router.patch("/{project_id}", response_model=ProjectResponse)
def rename_project(
    project_id: uuid.UUID,
    body: ProjectRenameRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_CREATE_PROJECT)),
):
    p = unwrap(ProjectsService().rename(db, project_id=project_id, name=body.name))
    return project_resp(p)


# ------------------------------------------------------------------
# LIFECYCLE
# ------------------------------------------------------------------


@router.post("/{project_id}/transition", response_model=ProjectResponse)
def transition_project(
    project_id: uuid.UUID,
    body: ProjectTransitionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_TRANSITION_PROJECT)),
):
    p = unwrap(
        TransitionEngine().transition_project_status(
            db,
            project_id=project_id,
            to_status=body.to_status,
            actor=actor,
            reason=body.reason,
            completion_notes=body.completion_notes,
            cancellation_reason=body.cancellation_reason,
            expected_status=body.expected_status,
        )
    )
    return project_resp(p)


@router.get("/{project_id}/history", response_model=StatusHistoryResponse)
def project_history(
    project_id: uuid.UUID,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    _get_or_404(db, project_id)
    rows = TransitionEngine().list_status_history(db, project_id=project_id, limit=limit, offset=offset)
    return {
        "projectId": str(project_id),
        "entries": [
            {
                "id": str(h.id),
                "fromStatus": h.from_status,
                "toStatus": h.to_status,
                "changedBy": h.changed_by,
                "changedByName": h.changed_by_name,
                "reason": h.reason,
                "createdAtIso": _iso(h.created_at),
            }
            for h in rows
        ],
    }


# ------------------------------------------------------------------
# HOURS
# ------------------------------------------------------------------


@router.get("/{project_id}/hours", response_model=HourLedgerResponse)
def project_hours(
    project_id: uuid.UUID,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    p = _get_or_404(db, project_id)
    ledger = HourLedger()
    rows = ledger.list_transactions(db, project_id=project_id, limit=limit, offset=offset)
    check = ledger.verify_balance(db, project_id=project_id)
    return {
        "projectId": str(p.id),
        "totalHours": p.total_hours,
        "usedHours": p.used_hours,
        "availableHours": p.available_hours,
        "balanced": check.ok,
        "transactions": [txn_resp(t) for t in rows],
    }


def _hours_change(db: Session, project_id: uuid.UUID, res) -> dict:
    txn = unwrap(res)
    p = _get_or_404(db, project_id)
    db.refresh(p)
    return {"project": project_resp(p), "transaction": txn_resp(txn) if txn is not None else None}


@router.post("/{project_id}/hours/allocate", response_model=HoursChangeResponse)
def allocate_hours(
    project_id: uuid.UUID,
    body: HoursChangeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_MANAGE_HOURS)),
):
    res = HourLedger().allocate(
        db,
        project_id=project_id,
        hours=body.hours,
        actor=actor,
        request_id=_parse_uuid(body.request_id, "request_id"),
        notes=body.reason,
    )
    return _hours_change(db, project_id, res)


@router.post("/{project_id}/hours/deallocate", response_model=HoursChangeResponse)
def deallocate_hours(
    project_id: uuid.UUID,
    body: HoursChangeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_MANAGE_HOURS)),
):
    res = HourLedger().deallocate(
        db,
        project_id=project_id,
        hours=body.hours,
        actor=actor,
        reason=body.reason,
        request_id=_parse_uuid(body.request_id, "request_id"),
    )
    return _hours_change(db, project_id, res)


@router.post("/{project_id}/hours/adjust", response_model=HoursChangeResponse)
def adjust_hours(
    project_id: uuid.UUID,
    body: HoursChangeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_MANAGE_HOURS)),
):
    res = HourLedger().adjust(
        db,
        project_id=project_id,
        hours=body.hours,
        actor=actor,
        reason=body.reason,
        request_id=_parse_uuid(body.request_id, "request_id"),
    )
    return _hours_change(db, project_id, res)


@router.post("/{project_id}/hours/extend", response_model=HoursChangeResponse)
def extend_hours(
    project_id: uuid.UUID,
    body: HoursChangeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_MANAGE_HOURS)),
):
    res = HourLedger().extend(db, project_id=project_id, hours=body.hours, actor=actor, reason=body.reason)
    return _hours_change(db, project_id, res)


@router.post("/{project_id}/hours/rollover", response_model=RolloverResponse)
def rollover_hours(
    project_id: uuid.UUID,
    body: RolloverRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_MANAGE_HOURS)),
):
    target_id = _parse_uuid(body.target_project_id, "target_project_id")
    rows = unwrap(
        HourLedger().rollover(
            db,
            source_project_id=project_id,
            target_project_id=target_id,
            hours=body.hours,
            actor=actor,
            reason=body.reason,
        )
    )
    source = _get_or_404(db, project_id)
    target = _get_or_404(db, target_id)
    db.refresh(source)
    db.refresh(target)
    return {
        "source": project_resp(source),
        "target": project_resp(target),
        "transactions": [txn_resp(t) for t in rows],
    }
