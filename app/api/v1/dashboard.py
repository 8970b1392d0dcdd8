from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_identity
from app.core.database import get_db
from app.core.identity import IdentityContext
from app.schemas.dashboard import (
    OverviewDashboardResponse,
    PersonalDashboardResponse,
    ProjectDashboardResponse,
)
from app.services import dashboard

router = APIRouter()


@router.get("/personal", response_model=PersonalDashboardResponse)
def get_personal_dashboard(
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    """
    Upcoming (next 7 days) and overdue tasks assigned to the caller, with
    per-status counts and the priority spread of open tasks.
    """
    return dashboard.personal_dashboard(db, identity)


@router.get("/project/{project_id}", response_model=ProjectDashboardResponse)
def get_project_dashboard(
    project_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return dashboard.project_dashboard(db, identity, project_id)


@router.get("/overview", response_model=OverviewDashboardResponse)
def get_overview_dashboard(
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return dashboard.overview_dashboard(db, identity)
