"""Turns successful task and membership mutations into notification rows.

The dispatcher never gates anything: callers invoke :func:`record_event`
after the mutation is applied, inside the same session, and commit both
together.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models.notification import Notification
from app.models.project import Project
from app.models.project_member import ProjectMember
from app.models.task import Task
from app.models.user import User
from app.schemas.auth import USERNAME_PATTERN
from app.schemas.enums import MANAGER_ROLES, Role
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

MENTION_PATTERN = re.compile(rf"@({USERNAME_PATTERN})")
MAX_MESSAGE_LENGTH = 500


class EventKind(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    COMMENT_ADDED = "comment_added"
    TASK_SUBMITTED_FOR_REVIEW = "task_submitted_for_review"
    TASK_CHANGES_REQUESTED = "task_changes_requested"
    TASK_APPROVED = "task_approved"
    MEMBER_ADDED = "member_added"


@dataclass(frozen=True)
class NotificationEvent:
    kind: EventKind
    actor_id: int
    project_id: int
    task_id: Optional[int] = None
    # New assignee or added member
    target_user_id: Optional[int] = None
    comment: Optional[str] = None
    member_role: Optional[Role] = None


def extract_mentions(text: str) -> List[str]:
    seen = []
    for username in MENTION_PATTERN.findall(text or ""):
        if username not in seen:
            seen.append(username)
    return seen


def _active_user_ids(db: Session, user_ids: Iterable[int]) -> List[int]:
    user_ids = list(dict.fromkeys(user_ids))
    if not user_ids:
        return []
    active = {
        row.id
        for row in db.query(User.id).filter(User.id.in_(user_ids), User.is_active == True)
    }
    return [user_id for user_id in user_ids if user_id in active]


def _project_manager_ids(db: Session, project: Project) -> List[int]:
    rows = (
        db.query(ProjectMember.user_id)
        .filter(
            ProjectMember.project_id == project.id,
            ProjectMember.is_active == True,
            ProjectMember.role.in_([role.value for role in MANAGER_ROLES]),
        )
        .order_by(ProjectMember.id)
        .all()
    )
    manager_ids = [row.user_id for row in rows]
    # The creator always acts as a manager
    if project.created_by_user_id not in manager_ids:
        manager_ids.insert(0, project.created_by_user_id)
    return manager_ids


def _mentioned_member_ids(db: Session, project_id: int, text: str) -> List[int]:
    usernames = extract_mentions(text)
    if not usernames:
        return []
    rows = (
        db.query(User.id, User.username)
        .join(ProjectMember, ProjectMember.user_id == User.id)
        .filter(
            ProjectMember.project_id == project_id,
            ProjectMember.is_active == True,
            User.username.in_(usernames),
        )
        .all()
    )
    by_name = {row.username: row.id for row in rows}
    return [by_name[name] for name in usernames if name in by_name]


def _recipients(db: Session, event: NotificationEvent, project: Project, task: Optional[Task]):
    if event.kind in (EventKind.TASK_ASSIGNED, EventKind.MEMBER_ADDED):
        candidates = [event.target_user_id] if event.target_user_id else []
    elif event.kind == EventKind.COMMENT_ADDED:
        candidates = [
            user_id
            for user_id in _mentioned_member_ids(db, project.id, event.comment)
            if user_id != event.actor_id
        ]
    elif event.kind == EventKind.TASK_SUBMITTED_FOR_REVIEW:
        candidates = [
            user_id for user_id in _project_manager_ids(db, project) if user_id != event.actor_id
        ]
    else:
        candidates = [task.assigned_to_user_id] if task and task.assigned_to_user_id else []
    return _active_user_ids(db, candidates)


def _message(event: NotificationEvent, actor: str, project: Project, task: Optional[Task]) -> str:
    title = task.title if task is not None else ""
    templates = {
        EventKind.TASK_ASSIGNED: f'{actor} assigned you the task: "{title}"',
        EventKind.COMMENT_ADDED: f'{actor} mentioned you in a comment on "{title}"',
        EventKind.TASK_SUBMITTED_FOR_REVIEW: f'{actor} submitted a task for review: "{title}"',
        EventKind.TASK_CHANGES_REQUESTED: f'{actor} requested changes on "{title}"',
        EventKind.TASK_APPROVED: f'{actor} approved your task: "{title}"',
        EventKind.MEMBER_ADDED: (
            f'{actor} added you to the project "{project.name}"'
            f" as {event.member_role.value if event.member_role else Role.CONTRIBUTOR.value}"
        ),
    }
    return templates[event.kind][:MAX_MESSAGE_LENGTH]


def record_event(db: Session, event: NotificationEvent) -> List[int]:
    """Write one unread notification per recipient and return their ids.

    The rows are flushed, not committed.
    """
    project = db.query(Project).filter(Project.id == event.project_id).first()
    if project is None:
        return []
    task = None
    if event.task_id is not None:
        task = db.query(Task).filter(Task.id == event.task_id).first()

    recipients = _recipients(db, event, project, task)
    if not recipients:
        return []

    actor = db.query(User).filter(User.id == event.actor_id).first()
    actor_name = actor.username if actor else "Someone"
    message = _message(event, actor_name, project, task)
    now = utcnow()

    notifications = [
        Notification(
            recipient_user_id=user_id,
            triggered_by_user_id=event.actor_id,
            message=message,
            related_task_id=task.id if task is not None else None,
            is_read=False,
            created_at=now,
        )
        for user_id in recipients
    ]
    db.add_all(notifications)
    db.flush()

    logger.info(
        f"Recorded {len(notifications)} notification(s) for {event.kind.value} "
        f"in project {project.id}"
    )
    return [notification.id for notification in notifications]
