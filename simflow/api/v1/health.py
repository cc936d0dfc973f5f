from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from simflow.core.config import get_settings
from simflow.db.session import get_db

router = APIRouter()


@router.get("/health")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    settings = get_settings()
    return {"status": "ok", "app": settings.app_name, "environment": settings.environment}
