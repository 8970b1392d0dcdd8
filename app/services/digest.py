"""Daily digest emails.

One email per (project, active member) per UTC day, listing the member's
notifications about that project's tasks. The scheduler and the on-demand
endpoint both call :func:`run_digest`.
"""

import html
import logging
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from app.core import mailer
from app.core.exceptions import DependencyFailure, NotFound
from app.models.notification import Notification
from app.models.project import Project
from app.models.project_member import ProjectMember
from app.models.task import Task
from app.models.user import User
from app.utils.clock import utc_day_bounds, utcnow

logger = logging.getLogger(__name__)

SendEmail = Callable[[str, str, str], bool]


def compose_digest(project: Project, messages: List[str]) -> str:
    items = "".join(f"<li>{html.escape(message)}</li>" for message in messages)
    return (
        f"<h3>Here's your daily digest for {html.escape(project.name)}:</h3>"
        f"<ol>{items}</ol>"
    )


def _digest_messages(db: Session, project_id: int, user_id: int, day: date) -> List[str]:
    start, end = utc_day_bounds(day)
    rows = (
        db.query(Notification.message)
        .join(Task, Task.id == Notification.related_task_id)
        .filter(
            Notification.recipient_user_id == user_id,
            Task.project_id == project_id,
            Notification.created_at >= start,
            Notification.created_at < end,
        )
        .order_by(Notification.created_at, Notification.id)
        .all()
    )
    return [row.message for row in rows]


def run_digest(
    db: Session,
    day: Optional[date] = None,
    project_id: Optional[int] = None,
    send_email: Optional[SendEmail] = None,
) -> int:
    """Send the digests for ``day`` (today, UTC, by default) and return how many went out."""
    day = day or utcnow().date()
    send_email = send_email or mailer.send_email

    query = db.query(Project).order_by(Project.id)
    if project_id is not None:
        query = query.filter(Project.id == project_id)
    projects = query.all()
    if project_id is not None and not projects:
        raise NotFound("Project not found")

    logger.info(
        f"Starting daily digest for {day.isoformat()}"
        + (f" (project {project_id})" if project_id is not None else " (all projects)")
    )

    sent = 0
    for project in projects:
        members = (
            db.query(User)
            .join(ProjectMember, ProjectMember.user_id == User.id)
            .filter(
                ProjectMember.project_id == project.id,
                ProjectMember.is_active == True,
                User.is_active == True,
            )
            .order_by(ProjectMember.id)
            .all()
        )
        for member in members:
            messages = _digest_messages(db, project.id, member.id, day)
            if not messages:
                continue
            try:
                accepted = send_email(
                    member.email,
                    f"Your Daily Digest for {project.name}",
                    compose_digest(project, messages),
                )
            except DependencyFailure as e:
                logger.warning(
                    f"Digest for {member.email} in project {project.id} not sent: {e.message}"
                )
                continue
            if not accepted:
                logger.warning(
                    f"Digest for {member.email} in project {project.id} was not accepted"
                )
                continue
            sent += 1
            logger.info(f"Sent digest to {member.email} for project {project.name}")

    logger.info(f"Daily digest completed, {sent} email(s) sent")
    return sent
