"""Read-only dashboards: personal, per project, and across the caller's projects."""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.identity import IdentityContext
from app.models.project import Project
from app.models.task import Task
from app.models.user import User
from app.schemas.enums import TaskPriority, TaskStatus
from app.services.project_service import get_project, list_members, list_projects, task_counts
from app.utils.clock import as_utc, utcnow

UPCOMING_WINDOW = timedelta(days=7)
LIST_LIMIT = 10


def _is_open(task: Task) -> bool:
    return task.status != TaskStatus.DONE.value


def _is_overdue(task: Task, now: datetime) -> bool:
    return _is_open(task) and task.due_date is not None and as_utc(task.due_date) < now


def _is_upcoming(task: Task, now: datetime) -> bool:
    if not _is_open(task) or task.due_date is None:
        return False
    return now < as_utc(task.due_date) <= now + UPCOMING_WINDOW


def _count_by_status(tasks: List[Task], task_status: TaskStatus) -> int:
    return sum(1 for task in tasks if task.status == task_status.value)


def _task_item(
    task: Task, project_name: Optional[str] = None, assignee: Optional[User] = None
) -> dict:
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "priority": task.priority,
        "due_date": task.due_date,
        "project_name": project_name,
        "assigned_to": assignee,
    }


def _users_by_id(db: Session, user_ids) -> Dict[int, User]:
    user_ids = {user_id for user_id in user_ids if user_id is not None}
    if not user_ids:
        return {}
    return {user.id: user for user in db.query(User).filter(User.id.in_(user_ids))}


def personal_dashboard(db: Session, identity: IdentityContext) -> dict:
    """Tasks assigned to the caller in projects they are still an active member of."""
    now = utcnow()
    rows = (
        db.query(Task, Project.name)
        .join(Project, Project.id == Task.project_id)
        .filter(
            Task.assigned_to_user_id == identity.user_id,
            Task.project_id.in_([project.id for project, _ in list_projects(db, identity)]),
        )
        .all()
    )
    tasks = [task for task, _ in rows]
    project_names = {task.id: name for task, name in rows}

    def by_due_date(items: List[Task]) -> List[dict]:
        items = sorted(items, key=lambda task: as_utc(task.due_date))[:LIST_LIMIT]
        return [_task_item(task, project_names[task.id]) for task in items]

    upcoming = [task for task in tasks if _is_upcoming(task, now)]
    overdue = [task for task in tasks if _is_overdue(task, now)]
    open_tasks = [task for task in tasks if _is_open(task)]

    return {
        "upcoming_tasks": by_due_date(upcoming),
        "overdue_tasks": by_due_date(overdue),
        "task_statistics": {
            "total_tasks": len(tasks),
            "completed_tasks": _count_by_status(tasks, TaskStatus.DONE),
            "in_review_tasks": _count_by_status(tasks, TaskStatus.IN_REVIEW),
            "in_progress_tasks": _count_by_status(tasks, TaskStatus.IN_PROGRESS),
            "todo_tasks": _count_by_status(tasks, TaskStatus.TODO),
            "overdue_tasks": len(overdue),
            "upcoming_tasks": len(upcoming),
        },
        "priority_distribution": [
            {
                "priority": priority,
                "count": sum(1 for task in open_tasks if task.priority == priority.value),
            }
            for priority in TaskPriority
        ],
    }


def project_dashboard(db: Session, identity: IdentityContext, project_id: int) -> dict:
    project = get_project(db, identity, project_id)
    tasks = db.query(Task).filter(Task.project_id == project.id).all()
    members = list_members(db, project.id)

    completed = _count_by_status(tasks, TaskStatus.DONE)
    progress = round(completed / len(tasks) * 100, 2) if tasks else 0.0

    tasks_by_member = []
    for _, user in members:
        assigned = [task for task in tasks if task.assigned_to_user_id == user.id]
        tasks_by_member.append(
            {
                "user": user,
                "total_tasks": len(assigned),
                "completed_tasks": _count_by_status(assigned, TaskStatus.DONE),
                "in_review_tasks": _count_by_status(assigned, TaskStatus.IN_REVIEW),
                "in_progress_tasks": _count_by_status(assigned, TaskStatus.IN_PROGRESS),
                "todo_tasks": _count_by_status(assigned, TaskStatus.TODO),
            }
        )

    recent = (
        db.query(Task)
        .filter(Task.project_id == project.id)
        .order_by(Task.updated_at.desc(), Task.id.desc())
        .limit(LIST_LIMIT)
        .all()
    )
    assignees = _users_by_id(db, (task.assigned_to_user_id for task in recent))

    return {
        "project_id": project.id,
        "project_name": project.name,
        "total_tasks": len(tasks),
        "completed_tasks": completed,
        "progress_percentage": progress,
        "tasks_by_status": [
            {"status": task_status, "count": _count_by_status(tasks, task_status)}
            for task_status in TaskStatus
        ],
        "tasks_by_member": tasks_by_member,
        "recent_activity": [
            _task_item(task, assignee=assignees.get(task.assigned_to_user_id))
            for task in recent
        ],
    }


def overview_dashboard(db: Session, identity: IdentityContext) -> dict:
    now = utcnow()
    memberships = list_projects(db, identity)

    projects = []
    for project, role in memberships:
        task_count, completed_task_count = task_counts(db, project.id)
        projects.append(
            {
                "id": project.id,
                "name": project.name,
                "description": project.description,
                "start_date": project.start_date,
                "end_date": project.end_date,
                "is_archived": project.is_archived,
                "task_count": task_count,
                "completed_task_count": completed_task_count,
                "user_role": role,
            }
        )

    project_ids = [project.id for project, _ in memberships]
    tasks = db.query(Task).filter(Task.project_id.in_(project_ids)).all() if project_ids else []

    return {
        "projects": projects,
        "overall_statistics": {
            "total_projects": len(memberships),
            "active_projects": sum(1 for project, _ in memberships if not project.is_archived),
            "total_tasks": len(tasks),
            "completed_tasks": _count_by_status(tasks, TaskStatus.DONE),
            "overdue_tasks": sum(1 for task in tasks if _is_overdue(task, now)),
            "tasks_assigned_to_user": sum(
                1 for task in tasks if task.assigned_to_user_id == identity.user_id
            ),
        },
    }
