from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import NotFound
from app.core.identity import IdentityContext
from app.models.notification import Notification
from app.models.task import Task
from app.models.user import User


def list_notifications(
    db: Session,
    identity: IdentityContext,
    limit: int = 20,
    is_read: Optional[bool] = None,
) -> List[dict]:
    query = (
        db.query(Notification, User.username, Task.project_id)
        .join(User, User.id == Notification.triggered_by_user_id)
        .outerjoin(Task, Task.id == Notification.related_task_id)
        .filter(Notification.recipient_user_id == identity.user_id)
    )
    if is_read is not None:
        query = query.filter(Notification.is_read == is_read)

    rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    return [
        {
            "id": notification.id,
            "message": notification.message,
            "is_read": notification.is_read,
            "created_at": notification.created_at,
            "related_task_id": notification.related_task_id,
            "project_id": project_id,
            "triggered_by_username": username,
        }
        for notification, username, project_id in rows
    ]


def _owned(db: Session, identity: IdentityContext, notification_ids: List[int]):
    return db.query(Notification).filter(
        Notification.id.in_(notification_ids),
        Notification.recipient_user_id == identity.user_id,
    )


def _ensure_all_owned(db: Session, identity: IdentityContext, notification_ids: List[int]):
    ids = set(notification_ids)
    if _owned(db, identity, list(ids)).count() != len(ids):
        raise NotFound("One or more notifications were not found")
    return ids


def _commit_all_or_nothing(db: Session, affected: int, ids) -> None:
    # Rows can vanish between the ownership check and the write
    if affected != len(ids):
        db.rollback()
        raise NotFound("One or more notifications were not found")
    db.commit()


def mark_as_read(db: Session, identity: IdentityContext, notification_id: int) -> None:
    bulk_mark_as_read(db, identity, [notification_id])


def mark_all_as_read(db: Session, identity: IdentityContext) -> int:
    affected = (
        db.query(Notification)
        .filter(
            Notification.recipient_user_id == identity.user_id,
            Notification.is_read == False,
        )
        .update({"is_read": True}, synchronize_session=False)
    )
    db.commit()
    return affected


def bulk_mark_as_read(
    db: Session, identity: IdentityContext, notification_ids: List[int]
) -> int:
    """Mark every listed notification read, or none of them."""
    ids = _ensure_all_owned(db, identity, notification_ids)
    affected = _owned(db, identity, list(ids)).update(
        {"is_read": True}, synchronize_session=False
    )
    _commit_all_or_nothing(db, affected, ids)
    return affected


def delete_notification(db: Session, identity: IdentityContext, notification_id: int) -> None:
    bulk_delete(db, identity, [notification_id])


def bulk_delete(db: Session, identity: IdentityContext, notification_ids: List[int]) -> int:
    """Delete every listed notification, or none of them."""
    ids = _ensure_all_owned(db, identity, notification_ids)
    affected = _owned(db, identity, list(ids)).delete(synchronize_session=False)
    _commit_all_or_nothing(db, affected, ids)
    return affected
