"""Task status workflow.

::

    ToDo -> InProgress -> InReview -> Done
                 ^            |
                 +------------+   (changes requested)

The assignee drives work forward, managers (project Admin / ProjectManager,
the project creator, or a global Admin) review it. Done is terminal.
Anything not listed in ``TRANSITIONS`` is a workflow violation, whatever
the caller's role.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.exceptions import AccessDenied, ValidationViolation
from app.core.identity import IdentityContext
from app.models.task import Task
from app.schemas.enums import MANAGER_ROLES, TaskStatus
from app.services.authorization import (
    Action,
    ResourceContext,
    ensure_allowed,
    load_resource_context,
)
from app.services.notification_dispatcher import EventKind, NotificationEvent, record_event
from app.services.task_service import create_comment, get_task_or_404, store_attachment
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


class ActorClass(str, Enum):
    ASSIGNEE = "assignee"
    MANAGER = "manager"


TRANSITIONS: Dict[Tuple[TaskStatus, TaskStatus], ActorClass] = {
    (TaskStatus.TODO, TaskStatus.IN_PROGRESS): ActorClass.ASSIGNEE,
    (TaskStatus.IN_PROGRESS, TaskStatus.IN_REVIEW): ActorClass.ASSIGNEE,
    (TaskStatus.IN_REVIEW, TaskStatus.IN_PROGRESS): ActorClass.MANAGER,
    (TaskStatus.IN_REVIEW, TaskStatus.DONE): ActorClass.MANAGER,
}

TRANSITION_EVENTS: Dict[Tuple[TaskStatus, TaskStatus], EventKind] = {
    (TaskStatus.IN_PROGRESS, TaskStatus.IN_REVIEW): EventKind.TASK_SUBMITTED_FOR_REVIEW,
    (TaskStatus.IN_REVIEW, TaskStatus.IN_PROGRESS): EventKind.TASK_CHANGES_REQUESTED,
    (TaskStatus.IN_REVIEW, TaskStatus.DONE): EventKind.TASK_APPROVED,
}


@dataclass(frozen=True)
class AttachmentUpload:
    filename: str
    data: bytes
    content_type: str = "application/octet-stream"


def required_actor(current: TaskStatus, target: TaskStatus) -> Optional[ActorClass]:
    return TRANSITIONS.get((current, target))


def is_manager(identity: IdentityContext, resource: ResourceContext) -> bool:
    if identity.is_admin or resource.project_creator_id == identity.user_id:
        return True
    return resource.caller_project_role in MANAGER_ROLES


def check_transition(
    identity: IdentityContext,
    resource: ResourceContext,
    current: TaskStatus,
    target: TaskStatus,
) -> ActorClass:
    """Raise unless ``identity`` may move a task from ``current`` to ``target``."""
    actor = required_actor(current, target)
    if actor is None:
        raise ValidationViolation(
            f"Cannot change task status from {current.value} to {target.value}",
            "workflow_violation",
        )
    if actor == ActorClass.ASSIGNEE and resource.task_assignee_id != identity.user_id:
        raise AccessDenied("Only the assignee can make this status change", "not_assignee")
    if actor == ActorClass.MANAGER and not is_manager(identity, resource):
        raise AccessDenied("Only a project manager can review this task", "not_reviewer")
    return actor


def transition_task(
    db: Session,
    identity: IdentityContext,
    task_id: int,
    target: TaskStatus,
    comment: Optional[str] = None,
    attachment: Optional[AttachmentUpload] = None,
) -> Task:
    """Move a task along the workflow, optionally with a comment and a file."""
    task = get_task_or_404(db, task_id)
    resource = load_resource_context(db, identity, task=task)
    ensure_allowed(identity, Action.TRANSITION_TASK, resource)

    current = TaskStatus(task.status)
    check_transition(identity, resource, current, target)

    # Only applies if nobody moved the task since it was read
    updated = (
        db.query(Task)
        .filter(Task.id == task.id, Task.status == current.value)
        .update(
            {"status": target.value, "updated_at": utcnow()},
            synchronize_session=False,
        )
    )
    if updated == 0:
        db.rollback()
        raise ValidationViolation(
            "Task status was changed by another request", "workflow_violation"
        )

    try:
        if attachment is not None:
            store_attachment(
                db,
                task,
                identity.user_id,
                attachment.filename,
                attachment.data,
                attachment.content_type,
            )
        if comment:
            create_comment(db, task, identity.user_id, comment)
    except Exception:
        db.rollback()
        raise

    db.refresh(task)
    event_kind = TRANSITION_EVENTS.get((current, target))
    if event_kind is not None:
        record_event(
            db,
            NotificationEvent(
                kind=event_kind,
                actor_id=identity.user_id,
                project_id=task.project_id,
                task_id=task.id,
            ),
        )
    db.commit()
    db.refresh(task)
    logger.info(
        f"Task {task.id} moved {current.value} -> {target.value} by user {identity.user_id}"
    )
    return task
