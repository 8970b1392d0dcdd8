from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime


class NotificationResponse(BaseModel):
    id: int
    message: str
    is_read: bool
    created_at: datetime
    related_task_id: Optional[int] = None
    project_id: Optional[int] = None
    triggered_by_username: str


class NotificationIdsRequest(BaseModel):
    notification_ids: List[int] = Field(..., min_length=1)


class BulkResultResponse(BaseModel):
    affected: int


class DigestRunResponse(BaseModel):
    date: date
    project_id: Optional[int] = None
    emails_sent: int
