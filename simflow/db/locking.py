# simflow/db/locking.py
from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from simflow.models.project import Project
from simflow.models.sim_request import SimRequest


# Lock order everywhere: request row first, then project row.
# populate_existing makes the locked read overwrite anything already in the
# identity map, so callers validate against the committed state.


def lock_project(db: Session, project_id: uuid.UUID) -> Optional[Project]:
    return db.execute(
        select(Project)
        .where(Project.id == project_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def lock_request(db: Session, request_id: uuid.UUID) -> Optional[SimRequest]:
    return db.execute(
        select(SimRequest)
        .where(SimRequest.id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
