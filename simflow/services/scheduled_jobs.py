"""
Scheduled jobs.

A small in-process registry of periodic jobs plus a blocking runner loop.
Jobs are plain functions registered by name; each receives a session factory
and returns a JSON-friendly dict.

Jobs:
    - deadline_sweep: expires projects whose deadline has passed

Run the loop with:
    python -m simflow.services.scheduled_jobs            # every sweep_interval_seconds
    python -m simflow.services.scheduled_jobs --once     # single pass, then exit
"""
from __future__ import annotations

import argparse
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from simflow.services.deadline_sweeper import sweep_expired_projects

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]
JobFn = Callable[[SessionFactory], Dict[str, Any]]


# ─────────────────────────────────────────────
# JOB REGISTRY
# ─────────────────────────────────────────────

_job_registry: Dict[str, JobFn] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("deadline_sweep")
        def run_deadline_sweep(session_factory):
            ...
    """
    def decorator(fn: JobFn) -> JobFn:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> Dict[str, JobFn]:
    return dict(_job_registry)


def run_job(name: str, session_factory: SessionFactory) -> Dict[str, Any]:
    """
    Execute a single job by name.

    Returns a dict with status, duration_ms and either result or error.
    A failing job is logged and reported; it never raises.
    """
    fn = _job_registry.get(name)
    if fn is None:
        return {"job": name, "status": "error", "error": f"Unknown job: {name}"}

    start = time.monotonic()
    out: Dict[str, Any] = {"job": name, "status": "success"}
    try:
        out["result"] = fn(session_factory)
    except Exception as exc:
        out["status"] = "failed"
        out["error"] = str(exc)
        logger.exception("[jobs] %s failed", name)

    out["duration_ms"] = int((time.monotonic() - start) * 1000)
    logger.info("[jobs] %s %s in %sms", name, out["status"], out["duration_ms"])
    return out


def run_all(session_factory: SessionFactory) -> Dict[str, Dict[str, Any]]:
    return {name: run_job(name, session_factory) for name in sorted(_job_registry)}


def run_forever(
    session_factory: SessionFactory,
    *,
    interval_seconds: int,
    max_cycles: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Run every registered job each interval. Returns the number of cycles run."""
    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        run_all(session_factory)
        cycles += 1
        if max_cycles is not None and cycles >= max_cycles:
            break
        sleep(interval_seconds)
    return cycles


# ─────────────────────────────────────────────
# JOBS
# ─────────────────────────────────────────────

@register_job("deadline_sweep")
def run_deadline_sweep(session_factory: SessionFactory) -> Dict[str, Any]:
    """Move overdue Active/Approved/On Hold projects to Expired."""
    report = sweep_expired_projects(session_factory, datetime.now(timezone.utc))
    return report.as_dict()


def main(argv: Optional[list] = None) -> int:
    from simflow.core.config import get_settings
    from simflow.core.logging import configure_logging
    from simflow.db.session import SessionLocal

    parser = argparse.ArgumentParser(prog="simflow-jobs", description="Run scheduled jobs")
    parser.add_argument("--once", action="store_true", help="run every job once and exit")
    parser.add_argument("--job", help="run only this job once and exit")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)

    if args.job:
        out = run_job(args.job, SessionLocal)
        return 0 if out["status"] == "success" else 1

    if args.once:
        results = run_all(SessionLocal)
        return 0 if all(r["status"] == "success" for r in results.values()) else 1

    logger.info("[jobs] runner started interval=%ss jobs=%s", settings.sweep_interval_seconds, sorted(_job_registry))
    run_forever(SessionLocal, interval_seconds=settings.sweep_interval_seconds)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
