from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from app.schemas.enums import TaskPriority, TaskStatus
from app.schemas.user import UserSummaryResponse


class TaskCreate(BaseModel):
    project_id: int
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=1000)
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assigned_to_user_id: Optional[int] = None
    parent_task_id: Optional[int] = None


class TaskUpdate(BaseModel):
    """Field edits only. Status changes go through the transition endpoint."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=1000)
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assigned_to_user_id: Optional[int] = None


class TaskCommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)


class TaskCommentResponse(BaseModel):
    id: int
    content: str
    created_at: datetime
    user: UserSummaryResponse


class TaskAttachmentResponse(BaseModel):
    id: int
    file_name: str
    content_type: str
    file_size: int
    uploaded_at: datetime
    uploaded_by: UserSummaryResponse


class TaskSummaryResponse(BaseModel):
    id: int
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    project_id: int
    project_name: str = ""
    assigned_to: Optional[UserSummaryResponse] = None
    sub_task_count: int = 0
    completed_sub_task_count: int = 0


class TaskResponse(TaskSummaryResponse):
    created_at: datetime
    updated_at: Optional[datetime] = None
    created_by: UserSummaryResponse
    parent_task_id: Optional[int] = None
    sub_tasks: List[TaskSummaryResponse] = []
    comments: List[TaskCommentResponse] = []
    attachments: List[TaskAttachmentResponse] = []
