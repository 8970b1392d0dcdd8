import logging
from datetime import timedelta
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import NotFound, ValidationViolation
from app.core.identity import IdentityContext
from app.models.project import Project
from app.models.project_member import ProjectMember
from app.models.task import Task
from app.models.user import User
from app.schemas.enums import Role, TaskStatus
from app.services.authorization import Action, ensure_allowed, load_resource_context
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 10


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


def _open_task_count(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(Task.id))
        .filter(Task.assigned_to_user_id == user_id, Task.status != TaskStatus.DONE.value)
        .scalar()
        or 0
    )


def search_users(db: Session, identity: IdentityContext, q: str) -> List[User]:
    """Active users whose username or email contains ``q``, for member invites."""
    ensure_allowed(identity, Action.SEARCH_USERS, load_resource_context(db, identity))

    q = (q or "").strip()
    if len(q) < SEARCH_MIN_LENGTH:
        raise ValidationViolation(
            f"Search query must be at least {SEARCH_MIN_LENGTH} characters", "query_too_short"
        )
    pattern = f"%{q.lower()}%"
    return (
        db.query(User)
        .filter(
            User.is_active == True,
            (func.lower(User.username).like(pattern)) | (func.lower(User.email).like(pattern)),
        )
        .order_by(User.username)
        .limit(SEARCH_LIMIT)
        .all()
    )


def get_profile(db: Session, identity: IdentityContext) -> dict:
    user = get_user_or_404(db, identity.user_id)
    project_count = (
        db.query(func.count(ProjectMember.id))
        .filter(ProjectMember.user_id == user.id, ProjectMember.is_active == True)
        .scalar()
    )
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "is_active": user.is_active,
        "created_at": user.created_at,
        "project_count": project_count or 0,
        "task_count": _open_task_count(db, user.id),
    }


def list_users(db: Session, identity: IdentityContext) -> List[User]:
    ensure_allowed(identity, Action.MANAGE_USERS, load_resource_context(db, identity))
    return db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def get_user_detail(db: Session, identity: IdentityContext, user_id: int) -> dict:
    ensure_allowed(identity, Action.MANAGE_USERS, load_resource_context(db, identity))
    user = get_user_or_404(db, user_id)

    project_count = (
        db.query(func.count(ProjectMember.id)).filter(ProjectMember.user_id == user.id).scalar()
    )
    created_project_count = (
        db.query(func.count(Project.id)).filter(Project.created_by_user_id == user.id).scalar()
    )
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "is_active": user.is_active,
        "created_at": user.created_at,
        "project_count": project_count or 0,
        "created_project_count": created_project_count or 0,
        "assigned_task_count": _open_task_count(db, user.id),
    }


def change_global_role(
    db: Session, identity: IdentityContext, user_id: int, role: Role
) -> User:
    user = get_user_or_404(db, user_id)
    ensure_allowed(
        identity,
        Action.CHANGE_GLOBAL_ROLE,
        load_resource_context(db, identity, target_user=user),
    )
    user.role = role.value
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} global role changed to {role.value} by user {identity.user_id}")
    return user


def set_user_status(
    db: Session, identity: IdentityContext, user_id: int, is_active: bool
) -> User:
    """Ban (``is_active=False``) or unban a user."""
    user = get_user_or_404(db, user_id)
    ensure_allowed(
        identity,
        Action.BAN_USER,
        load_resource_context(db, identity, target_user=user),
    )
    user.is_active = is_active
    db.commit()
    db.refresh(user)
    logger.info(
        f"User {user.id} {'unbanned' if is_active else 'banned'} by user {identity.user_id}"
    )
    return user


def statistics(db: Session, identity: IdentityContext) -> dict:
    ensure_allowed(identity, Action.MANAGE_USERS, load_resource_context(db, identity))

    month_ago = utcnow() - timedelta(days=30)
    by_role = dict(db.query(User.role, func.count(User.id)).group_by(User.role).all())
    return {
        "total_users": db.query(func.count(User.id)).scalar() or 0,
        "total_projects": db.query(func.count(Project.id)).scalar() or 0,
        "total_tasks": db.query(func.count(Task.id)).scalar() or 0,
        "active_projects": db.query(func.count(Project.id))
        .filter(Project.is_archived == False)
        .scalar()
        or 0,
        "projects_created_last_month": db.query(func.count(Project.id))
        .filter(Project.created_at >= month_ago)
        .scalar()
        or 0,
        "users_by_role": [
            {"role": role.value, "count": by_role.get(role.value, 0)} for role in Role
        ],
    }
