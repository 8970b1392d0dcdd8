from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_identity
from app.core.database import get_db
from app.core.identity import IdentityContext
from app.schemas.notification import (
    BulkResultResponse,
    NotificationIdsRequest,
    NotificationResponse,
)
from app.schemas.user import MessageResponse
from app.services import notification_inbox

router = APIRouter()


@router.get("/", response_model=List[NotificationResponse])
def get_notifications(
    limit: int = Query(20, ge=1, le=100),
    is_read: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return notification_inbox.list_notifications(db, identity, limit=limit, is_read=is_read)


@router.put("/read-all", response_model=BulkResultResponse)
def mark_all_as_read(
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return {"affected": notification_inbox.mark_all_as_read(db, identity)}


@router.put("/read", response_model=BulkResultResponse)
def bulk_mark_as_read(
    body: NotificationIdsRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    affected = notification_inbox.bulk_mark_as_read(db, identity, body.notification_ids)
    return {"affected": affected}


@router.put("/{notification_id}/read", response_model=MessageResponse)
def mark_as_read(
    notification_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    notification_inbox.mark_as_read(db, identity, notification_id)
    return {"message": "Notification marked as read"}


@router.post("/delete", response_model=BulkResultResponse)
def bulk_delete(
    body: NotificationIdsRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return {"affected": notification_inbox.bulk_delete(db, identity, body.notification_ids)}


@router.delete("/{notification_id}", response_model=MessageResponse)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    notification_inbox.delete_notification(db, identity, notification_id)
    return {"message": "Notification deleted"}
