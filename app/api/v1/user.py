from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_identity
from app.core.database import get_db
from app.core.identity import IdentityContext
from app.schemas.user import UserProfileResponse, UserSearchResponse
from app.services import user_admin

router = APIRouter()


@router.get("/me", response_model=UserProfileResponse)
def get_user_profile(
    identity: IdentityContext = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    Profile of the signed-in user with active project and open task counts
    """
    return user_admin.get_profile(db, identity)


@router.get("/search", response_model=List[UserSearchResponse])
def search_users(
    q: str = Query(..., description="Part of a username or email"),
    identity: IdentityContext = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    Find active users to invite to a project (Admin / ProjectManager)
    """
    return user_admin.search_users(db, identity, q)
