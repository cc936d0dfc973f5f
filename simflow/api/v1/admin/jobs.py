from fastapi import APIRouter, Depends, HTTPException

from simflow.core.auth_deps import require_action
from simflow.db.session import get_session_factory
from simflow.policies.rbac import ACTION_RUN_JOBS, Actor
from simflow.services.scheduled_jobs import get_registered_jobs, run_job

router = APIRouter(prefix="/admin/jobs", tags=["admin"])


@router.get("")
def list_jobs(actor: Actor = Depends(require_action(ACTION_RUN_JOBS))):
    return {
        "jobs": [
            {"name": name, "description": (fn.__doc__ or "").strip()}
            for name, fn in sorted(get_registered_jobs().items())
        ]
    }


@router.post("/{name}/run")
def trigger_job(
    name: str,
    session_factory=Depends(get_session_factory),
    actor: Actor = Depends(require_action(ACTION_RUN_JOBS)),
):
    if name not in get_registered_jobs():
        raise HTTPException(status_code=404, detail=f"Unknown job: {name}")
    return run_job(name, session_factory)
