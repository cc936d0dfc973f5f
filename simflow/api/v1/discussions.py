# simflow/api/v1/discussions.py
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from simflow.api.v1.requests import discussion_resp
from simflow.core.auth_deps import require_action
from simflow.core.deps import unwrap
from simflow.db.session import get_db
from simflow.policies.rbac import ACTION_REVIEW_DISCUSSION, Actor
from simflow.schemas.requests import DiscussionResponse, DiscussionReviewRequest
from simflow.services.request_workflow import RequestWorkflowCoordinator

router = APIRouter(prefix="/discussions")


@router.post("/{discussion_id}/review", response_model=DiscussionResponse)
def review_discussion(
    discussion_id: uuid.UUID,
    body: DiscussionReviewRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(ACTION_REVIEW_DISCUSSION)),
):
    d = unwrap(
        RequestWorkflowCoordinator().review_discussion_request(
            db,
            discussion_id=discussion_id,
            action=body.action,
            actor=actor,
            manager_response=body.manager_response,
            allocated_hours=body.allocated_hours,
        )
    )
    return discussion_resp(d)
