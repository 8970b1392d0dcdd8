import logging
from typing import List, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.identity import IdentityContext
from app.models.notification import Notification
from app.models.project import Project
from app.models.project_member import ProjectMember
from app.models.task import Task
from app.models.task_attachment import TaskAttachment
from app.models.task_comment import TaskComment
from app.models.user import User
from app.schemas.enums import Role, TaskStatus
from app.schemas.project import ProjectCreate, ProjectUpdate
from app.services.authorization import Action, ensure_allowed, load_resource_context
from app.services.membership import get_project_or_404
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


def task_counts(db: Session, project_id: int) -> Tuple[int, int]:
    total = db.query(func.count(Task.id)).filter(Task.project_id == project_id).scalar()
    done = (
        db.query(func.count(Task.id))
        .filter(Task.project_id == project_id, Task.status == TaskStatus.DONE.value)
        .scalar()
    )
    return total or 0, done or 0


def create_project(db: Session, identity: IdentityContext, body: ProjectCreate) -> Project:
    ensure_allowed(identity, Action.CREATE_PROJECT, load_resource_context(db, identity))

    now = utcnow()
    project = Project(
        name=body.name,
        description=body.description,
        start_date=body.start_date or now,
        end_date=body.end_date,
        created_by_user_id=identity.user_id,
        created_at=now,
        updated_at=now,
    )
    db.add(project)
    db.flush()

    # The creator joins as project Admin
    db.add(
        ProjectMember(
            project_id=project.id,
            user_id=identity.user_id,
            role=Role.ADMIN.value,
            is_active=True,
            joined_at=now,
        )
    )
    db.commit()
    db.refresh(project)
    logger.info(f"Project {project.id} created by user {identity.user_id}")
    return project


def list_projects(db: Session, identity: IdentityContext) -> List[Tuple[Project, str]]:
    """Projects the caller is an active member of, with the caller's role."""
    return (
        db.query(Project, ProjectMember.role)
        .join(ProjectMember, ProjectMember.project_id == Project.id)
        .filter(ProjectMember.user_id == identity.user_id, ProjectMember.is_active == True)
        .order_by(Project.created_at.desc(), Project.id.desc())
        .all()
    )


def get_project(db: Session, identity: IdentityContext, project_id: int) -> Project:
    project = get_project_or_404(db, project_id)
    ensure_allowed(
        identity, Action.VIEW_PROJECT, load_resource_context(db, identity, project=project)
    )
    return project


def list_members(
    db: Session, project_id: int, include_inactive: bool = False
) -> List[Tuple[ProjectMember, User]]:
    query = (
        db.query(ProjectMember, User)
        .join(User, User.id == ProjectMember.user_id)
        .filter(ProjectMember.project_id == project_id)
    )
    if not include_inactive:
        query = query.filter(ProjectMember.is_active == True)
    return query.order_by(ProjectMember.id).all()


def update_project(
    db: Session, identity: IdentityContext, project_id: int, body: ProjectUpdate
) -> Project:
    project = get_project_or_404(db, project_id)
    ensure_allowed(
        identity, Action.UPDATE_PROJECT, load_resource_context(db, identity, project=project)
    )

    project.name = body.name
    project.description = body.description
    project.start_date = body.start_date or project.start_date
    project.end_date = body.end_date
    project.is_archived = body.is_archived
    project.updated_at = utcnow()
    db.commit()
    db.refresh(project)
    return project


def delete_project(db: Session, identity: IdentityContext, project_id: int) -> None:
    project = get_project_or_404(db, project_id)
    ensure_allowed(
        identity, Action.DELETE_PROJECT, load_resource_context(db, identity, project=project)
    )

    task_ids = select(Task.id).where(Task.project_id == project.id)
    db.query(Notification).filter(Notification.related_task_id.in_(task_ids)).delete(
        synchronize_session=False
    )
    db.query(TaskComment).filter(TaskComment.task_id.in_(task_ids)).delete(
        synchronize_session=False
    )
    db.query(TaskAttachment).filter(TaskAttachment.task_id.in_(task_ids)).delete(
        synchronize_session=False
    )
    db.query(Task).filter(Task.project_id == project.id).update(
        {"parent_task_id": None}, synchronize_session=False
    )
    db.query(Task).filter(Task.project_id == project.id).delete(synchronize_session=False)
    db.query(ProjectMember).filter(ProjectMember.project_id == project.id).delete(
        synchronize_session=False
    )
    db.delete(project)
    db.commit()
    logger.info(f"Project {project_id} deleted by user {identity.user_id}")
