import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core import file_store
from app.core.exceptions import DependencyFailure, NotFound, ValidationViolation
from app.core.identity import IdentityContext
from app.models.notification import Notification
from app.models.project_member import ProjectMember
from app.models.task import Task
from app.models.task_attachment import TaskAttachment
from app.models.task_comment import TaskComment
from app.models.user import User
from app.schemas.enums import PRIORITY_RANK, TaskPriority, TaskStatus
from app.schemas.task import TaskCreate, TaskUpdate
from app.services.authorization import (
    Action,
    ensure_allowed,
    get_active_membership,
    load_resource_context,
)
from app.services.membership import get_project_or_404
from app.services.notification_dispatcher import EventKind, NotificationEvent, record_event
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


def get_task_or_404(db: Session, task_id: int) -> Task:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise NotFound("Task not found")
    return task


def _ensure_assignable(db: Session, project_id: int, user_id: int) -> None:
    """An assignee must be an active user holding an active membership."""
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise ValidationViolation("Assigned user is not an active user", "invalid_assignee")
    if get_active_membership(db, project_id, user_id) is None:
        raise ValidationViolation(
            "Assigned user is not a member of this project", "invalid_assignee"
        )


def _sort_key(task: Task):
    # Highest priority first, then earliest due date, undated last
    return (
        -PRIORITY_RANK[TaskPriority(task.priority)],
        task.due_date is None,
        task.due_date or datetime.max,
    )


def create_task(db: Session, identity: IdentityContext, body: TaskCreate) -> Task:
    project = get_project_or_404(db, body.project_id)
    context = load_resource_context(db, identity, project=project)
    ensure_allowed(identity, Action.CREATE_TASK, context)

    if body.assigned_to_user_id is not None:
        ensure_allowed(identity, Action.ASSIGN_TASK, context)
        _ensure_assignable(db, project.id, body.assigned_to_user_id)

    if body.parent_task_id is not None:
        parent = db.query(Task).filter(Task.id == body.parent_task_id).first()
        if parent is None:
            raise NotFound("Parent task not found")
        if parent.project_id != project.id:
            raise ValidationViolation(
                "Parent task belongs to another project", "invalid_parent"
            )

    task = Task(
        project_id=project.id,
        title=body.title,
        description=body.description,
        priority=body.priority.value,
        due_date=body.due_date,
        status=TaskStatus.TODO.value,
        created_by_user_id=identity.user_id,
        assigned_to_user_id=body.assigned_to_user_id,
        parent_task_id=body.parent_task_id,
    )
    db.add(task)
    db.flush()

    if task.assigned_to_user_id is not None:
        record_event(
            db,
            NotificationEvent(
                kind=EventKind.TASK_ASSIGNED,
                actor_id=identity.user_id,
                project_id=project.id,
                task_id=task.id,
                target_user_id=task.assigned_to_user_id,
            ),
        )
    db.commit()
    db.refresh(task)
    logger.info(f"Task {task.id} created in project {project.id}")
    return task


def get_task(db: Session, identity: IdentityContext, task_id: int) -> Task:
    task = get_task_or_404(db, task_id)
    ensure_allowed(identity, Action.VIEW_PROJECT, load_resource_context(db, identity, task=task))
    return task


def list_tasks(
    db: Session,
    identity: IdentityContext,
    project_id: Optional[int] = None,
    status: Optional[TaskStatus] = None,
    assigned_to_me: bool = False,
) -> List[Task]:
    """Top-level tasks of the caller's projects."""
    query = db.query(Task).filter(Task.parent_task_id.is_(None))

    if project_id is not None:
        project = get_project_or_404(db, project_id)
        ensure_allowed(
            identity, Action.VIEW_PROJECT, load_resource_context(db, identity, project=project)
        )
        query = query.filter(Task.project_id == project_id)
    else:
        member_projects = select(ProjectMember.project_id).where(
            ProjectMember.user_id == identity.user_id, ProjectMember.is_active == True
        )
        query = query.filter(Task.project_id.in_(member_projects))

    if status is not None:
        query = query.filter(Task.status == status.value)
    if assigned_to_me:
        query = query.filter(Task.assigned_to_user_id == identity.user_id)

    return sorted(query.all(), key=_sort_key)


def list_my_tasks(db: Session, identity: IdentityContext) -> List[Task]:
    member_projects = select(ProjectMember.project_id).where(
        ProjectMember.user_id == identity.user_id, ProjectMember.is_active == True
    )
    tasks = (
        db.query(Task)
        .filter(
            Task.assigned_to_user_id == identity.user_id,
            Task.project_id.in_(member_projects),
        )
        .all()
    )
    return sorted(
        tasks,
        key=lambda t: (
            t.due_date is None,
            t.due_date or datetime.max,
            -PRIORITY_RANK[TaskPriority(t.priority)],
        ),
    )


def update_task(
    db: Session, identity: IdentityContext, task_id: int, body: TaskUpdate
) -> Task:
    """Edit task fields. Status is never changed here."""
    task = get_task_or_404(db, task_id)
    context = load_resource_context(db, identity, task=task)
    ensure_allowed(identity, Action.UPDATE_TASK, context)

    reassigned = body.assigned_to_user_id != task.assigned_to_user_id
    if reassigned:
        ensure_allowed(identity, Action.ASSIGN_TASK, context)
        if body.assigned_to_user_id is not None:
            _ensure_assignable(db, task.project_id, body.assigned_to_user_id)

    task.title = body.title
    task.description = body.description
    task.priority = body.priority.value
    task.due_date = body.due_date
    task.assigned_to_user_id = body.assigned_to_user_id
    task.updated_at = utcnow()
    db.flush()

    if reassigned and task.assigned_to_user_id is not None:
        record_event(
            db,
            NotificationEvent(
                kind=EventKind.TASK_ASSIGNED,
                actor_id=identity.user_id,
                project_id=task.project_id,
                task_id=task.id,
                target_user_id=task.assigned_to_user_id,
            ),
        )
    db.commit()
    db.refresh(task)
    return task


def delete_task(db: Session, identity: IdentityContext, task_id: int) -> None:
    task = get_task_or_404(db, task_id)
    ensure_allowed(identity, Action.DELETE_TASK, load_resource_context(db, identity, task=task))

    stored_paths = [
        row.file_path
        for row in db.query(TaskAttachment.file_path).filter(TaskAttachment.task_id == task.id)
    ]
    db.query(Task).filter(Task.parent_task_id == task.id).update(
        {"parent_task_id": None}, synchronize_session=False
    )
    db.query(Notification).filter(Notification.related_task_id == task.id).delete(
        synchronize_session=False
    )
    db.query(TaskComment).filter(TaskComment.task_id == task.id).delete(
        synchronize_session=False
    )
    db.query(TaskAttachment).filter(TaskAttachment.task_id == task.id).delete(
        synchronize_session=False
    )
    db.delete(task)
    db.commit()
    logger.info(f"Task {task_id} deleted")

    for path in stored_paths:
        try:
            file_store.delete_file(path)
        except DependencyFailure:
            logger.warning(f"Stored file '{path}' of deleted task {task_id} was not removed")


def create_comment(db: Session, task: Task, user_id: int, content: str) -> TaskComment:
    """Insert a comment and notify mentioned members. Flushes, does not commit."""
    comment = TaskComment(task_id=task.id, user_id=user_id, content=content)
    db.add(comment)
    db.flush()
    record_event(
        db,
        NotificationEvent(
            kind=EventKind.COMMENT_ADDED,
            actor_id=user_id,
            project_id=task.project_id,
            task_id=task.id,
            comment=content,
        ),
    )
    return comment


def add_comment(
    db: Session, identity: IdentityContext, task_id: int, content: str
) -> TaskComment:
    task = get_task_or_404(db, task_id)
    ensure_allowed(identity, Action.COMMENT_TASK, load_resource_context(db, identity, task=task))
    comment = create_comment(db, task, identity.user_id, content)
    db.commit()
    db.refresh(comment)
    return comment


def list_comments(db: Session, task_id: int) -> List[TaskComment]:
    return (
        db.query(TaskComment)
        .filter(TaskComment.task_id == task_id)
        .order_by(TaskComment.created_at, TaskComment.id)
        .all()
    )


def store_attachment(
    db: Session, task: Task, user_id: int, filename: str, data: bytes, content_type: str
) -> TaskAttachment:
    """Upload to the file store and insert the attachment row. Flushes, does not commit."""
    path = file_store.upload_file(task.id, filename, data, content_type)
    attachment = TaskAttachment(
        task_id=task.id,
        uploaded_by_user_id=user_id,
        file_name=filename,
        file_path=path,
        content_type=content_type or "",
        file_size=len(data),
    )
    db.add(attachment)
    db.flush()
    return attachment


def upload_attachment(
    db: Session,
    identity: IdentityContext,
    task_id: int,
    filename: str,
    data: bytes,
    content_type: str,
) -> TaskAttachment:
    task = get_task_or_404(db, task_id)
    ensure_allowed(
        identity, Action.UPLOAD_ATTACHMENT, load_resource_context(db, identity, task=task)
    )
    attachment = store_attachment(db, task, identity.user_id, filename, data, content_type)
    db.commit()
    db.refresh(attachment)
    return attachment


def list_attachments(
    db: Session, identity: IdentityContext, task_id: int
) -> List[TaskAttachment]:
    task = get_task(db, identity, task_id)
    return (
        db.query(TaskAttachment)
        .filter(TaskAttachment.task_id == task.id)
        .order_by(TaskAttachment.uploaded_at, TaskAttachment.id)
        .all()
    )


def _get_attachment_or_404(db: Session, attachment_id: int) -> TaskAttachment:
    attachment = db.query(TaskAttachment).filter(TaskAttachment.id == attachment_id).first()
    if not attachment:
        raise NotFound("Attachment not found")
    return attachment


def download_attachment(
    db: Session, identity: IdentityContext, attachment_id: int
) -> Tuple[TaskAttachment, bytes]:
    attachment = _get_attachment_or_404(db, attachment_id)
    get_task(db, identity, attachment.task_id)
    return attachment, file_store.download_file(attachment.file_path)


def delete_attachment(db: Session, identity: IdentityContext, attachment_id: int) -> None:
    attachment = _get_attachment_or_404(db, attachment_id)
    task = get_task_or_404(db, attachment.task_id)
    ensure_allowed(
        identity,
        Action.DELETE_ATTACHMENT,
        load_resource_context(
            db, identity, task=task, attachment_uploader_id=attachment.uploaded_by_user_id
        ),
    )
    file_store.delete_file(attachment.file_path)
    db.delete(attachment)
    db.commit()
