"""
Development seed: a handful of projects and requests walked through the real
services, so the ledger and history tables start out consistent.

    python -m simflow.seed
"""
from datetime import date, timedelta

from sqlalchemy.orm import Session

from simflow.db.session import SessionLocal
from simflow.models.enums import ProjectPriority, ProjectStatus, RequestStatus, UserRole
from simflow.policies.rbac import Actor
from simflow.services.projects_service import ProjectsService
from simflow.services.request_workflow import RequestWorkflowCoordinator
from simflow.services.transition_engine import TransitionEngine

MANAGER = Actor(actor_id="seed-manager", name="Seed Manager", role=UserRole.MANAGER)
ENGINEER = Actor(actor_id="seed-engineer", name="Seed Engineer", role=UserRole.ENGINEER)
REQUESTER = Actor(actor_id="seed-user", name="Seed Requester", role=UserRole.END_USER)


def seed():
    db: Session = SessionLocal()
    projects = ProjectsService()
    engine = TransitionEngine()
    workflow = RequestWorkflowCoordinator()

    try:
        today = date.today()

        crash = projects.create(
            db,
            name="Seed Crash Simulation",
            total_hours=400,
            actor=MANAGER,
            priority=ProjectPriority.HIGH,
            category="Crash",
            deadline=today + timedelta(days=60),
        ).value

        projects.create(
            db,
            name="Seed Thermal Study",
            total_hours=120,
            actor=MANAGER,
            category="Thermal",
            deadline=today + timedelta(days=5),
        )

        paused = projects.create(db, name="Seed Paused Program", total_hours=80, actor=MANAGER).value
        engine.transition_project_status(
            db, project_id=paused.id, to_status=ProjectStatus.ON_HOLD, actor=MANAGER, reason="Awaiting funding"
        )

        req = workflow.create_request(
            db,
            project_id=crash.id,
            title="Frontal impact run",
            description="Full-vehicle frontal impact at 56 km/h",
            vendor="Internal",
            actor=REQUESTER,
        ).value
        workflow.transition_request(db, request_id=req.id, to_status=RequestStatus.FEASIBILITY_REVIEW, actor=MANAGER)
        workflow.transition_request(db, request_id=req.id, to_status=RequestStatus.RESOURCE_ALLOCATION, actor=MANAGER)
        workflow.assign_engineer(
            db,
            request_id=req.id,
            engineer_id=ENGINEER.actor_id,
            engineer_name=ENGINEER.name,
            estimated_hours=40,
            actor=MANAGER,
        )

        print("Seed complete.")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
