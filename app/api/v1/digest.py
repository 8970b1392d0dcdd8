import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_identity
from app.core.database import get_db
from app.core.identity import IdentityContext
from app.schemas.notification import DigestRunResponse
from app.services.authorization import Action, ensure_allowed, load_resource_context
from app.services.digest import run_digest
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/send", response_model=DigestRunResponse)
def send_digest(
    day: Optional[date] = Query(None, alias="date", description="UTC day, defaults to today"),
    project_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    """
    Run the daily digest on demand for one day and optionally one project
    """
    ensure_allowed(identity, Action.RUN_DIGEST, load_resource_context(db, identity))
    day = day or utcnow().date()
    logger.info(f"Digest requested by user {identity.user_id} for {day.isoformat()}")
    sent = run_digest(db, day=day, project_id=project_id)
    return {"date": day, "project_id": project_id, "emails_sent": sent}
