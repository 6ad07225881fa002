import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.db.session import get_db

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)


def _database_ok(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("health database check failed error=%s", exc)
        return False
    return True


@router.get("/health")
def health(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "database": _database_ok(db),
        "emailConfigured": settings.email_configured,
        "smsConfigured": settings.sms_configured,
        "environment": settings.ENVIRONMENT,
    }
