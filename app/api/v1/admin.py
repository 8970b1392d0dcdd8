from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_identity
from app.core.database import get_db
from app.core.identity import IdentityContext
from app.schemas.user import (
    AdminStatisticsResponse,
    UpdateUserRoleRequest,
    UpdateUserStatusRequest,
    UserDetailResponse,
    UserResponse,
)
from app.services import user_admin

router = APIRouter()


@router.get("/users", response_model=List[UserResponse])
def get_users(
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return user_admin.list_users(db, identity)


@router.get("/users/{user_id}", response_model=UserDetailResponse)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return user_admin.get_user_detail(db, identity, user_id)


@router.put("/users/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: int,
    body: UpdateUserRoleRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return user_admin.change_global_role(db, identity, user_id, body.role)


@router.put("/users/{user_id}/status", response_model=UserResponse)
def update_user_status(
    user_id: int,
    body: UpdateUserStatusRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    """
    Ban (is_active=false) or unban a user. Admin accounts cannot be banned.
    """
    return user_admin.set_user_status(db, identity, user_id, body.is_active)


@router.get("/statistics", response_model=AdminStatisticsResponse)
def get_statistics(
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return user_admin.statistics(db, identity)
