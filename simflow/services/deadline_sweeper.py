# simflow/services/deadline_sweeper.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from simflow.core.config import get_settings
from simflow.core.project_lifecycle import EXPIRABLE_STATUSES
from simflow.core.results import ErrorCode, Result
from simflow.models.enums import ProjectStatus
from simflow.models.project import Project
from simflow.policies.rbac import Actor, system_actor
from simflow.services.transition_engine import TransitionEngine

logger = logging.getLogger(__name__)

EXPIRY_REASON = "Project deadline has passed"


@dataclass
class SweepReport:
    expired_count: int = 0
    project_codes: List[str] = field(default_factory=list)
    # project code -> error message
    failures: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "expired_count": self.expired_count,
            "project_codes": list(self.project_codes),
            "failures": dict(self.failures),
        }


def _still_expirable(res: Result) -> bool:
    return res.error.details.get("from_status") in {s.value for s in EXPIRABLE_STATUSES}


def _overdue_candidates(session_factory: Callable[[], Session], now: datetime) -> List[tuple]:
    with session_factory() as db:
        rows = db.execute(
            select(Project.id, Project.code)
            .where(
                Project.status.in_([s.value for s in EXPIRABLE_STATUSES]),
                Project.deadline.is_not(None),
                Project.deadline < now.date(),
            )
            .order_by(Project.deadline.asc(), Project.code.asc())
        ).all()
    return [(r.id, r.code) for r in rows]


def sweep_expired_projects(
    session_factory: Callable[[], Session],
    now: Optional[datetime] = None,
    *,
    actor: Optional[Actor] = None,
    engine: Optional[TransitionEngine] = None,
) -> SweepReport:
    """
    Expire every Active/Approved/On Hold project whose deadline is before today.

    Each project runs in its own session and transaction through the
    TransitionEngine, so one failure never blocks the rest. A project that was
    already moved (expired, completed, ...) by someone else between the scan
    and the lock is skipped, not reported as a failure.
    """
    now = now or datetime.now(timezone.utc)
    actor = actor or system_actor(get_settings().system_actor_name)
    engine = engine or TransitionEngine()

    report = SweepReport()
    candidates = _overdue_candidates(session_factory, now)
    logger.info("[sweep] %d overdue project(s) as of %s", len(candidates), now.date().isoformat())

    for project_id, code in candidates:
        try:
            with session_factory() as db:
                res = engine.transition_project_status(
                    db,
                    project_id=project_id,
                    to_status=ProjectStatus.EXPIRED,
                    actor=actor,
                    reason=EXPIRY_REASON,
                )
        except Exception as exc:
            report.failures[code] = str(exc)
            logger.exception("[sweep] failed to expire project %s", code)
            continue

        if res.is_success:
            report.expired_count += 1
            report.project_codes.append(code)
        elif res.code == ErrorCode.INVALID_TRANSITION and not _still_expirable(res):
            logger.info("[sweep] project %s no longer expirable, skipped", code)
        else:
            report.failures[code] = res.error.message
            logger.warning("[sweep] project %s not expired: %s", code, res.error.message)

    logger.info(
        "[sweep] done expired=%d failed=%d", report.expired_count, len(report.failures)
    )
    return report

