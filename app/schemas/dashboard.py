from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from app.schemas.enums import TaskPriority, TaskStatus
from app.schemas.project import ProjectSummaryResponse
from app.schemas.user import UserSummaryResponse


class DashboardTaskResponse(BaseModel):
    id: int
    title: str
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    project_name: Optional[str] = None
    assigned_to: Optional[UserSummaryResponse] = None


class TaskStatistics(BaseModel):
    total_tasks: int
    completed_tasks: int
    in_review_tasks: int
    in_progress_tasks: int
    todo_tasks: int
    overdue_tasks: int
    upcoming_tasks: int


class PriorityCount(BaseModel):
    priority: TaskPriority
    count: int


class StatusCount(BaseModel):
    status: TaskStatus
    count: int


class MemberTaskCount(BaseModel):
    user: UserSummaryResponse
    total_tasks: int
    completed_tasks: int
    in_review_tasks: int
    in_progress_tasks: int
    todo_tasks: int


class PersonalDashboardResponse(BaseModel):
    upcoming_tasks: List[DashboardTaskResponse] = Field(
        ..., description="Open assigned tasks due within 7 days"
    )
    overdue_tasks: List[DashboardTaskResponse]
    task_statistics: TaskStatistics
    priority_distribution: List[PriorityCount] = Field(
        ..., description="Open assigned tasks per priority"
    )


class ProjectDashboardResponse(BaseModel):
    project_id: int
    project_name: str
    total_tasks: int
    completed_tasks: int
    progress_percentage: float
    tasks_by_status: List[StatusCount]
    tasks_by_member: List[MemberTaskCount]
    recent_activity: List[DashboardTaskResponse] = Field(
        ..., description="Last 10 tasks by update time"
    )


class OverallStatistics(BaseModel):
    total_projects: int
    active_projects: int
    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    tasks_assigned_to_user: int


class OverviewDashboardResponse(BaseModel):
    projects: List[ProjectSummaryResponse]
    overall_statistics: OverallStatistics
