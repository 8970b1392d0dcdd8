from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from app.schemas.enums import Role
from app.schemas.user import UserSummaryResponse


class ProjectCreate(BaseModel):
    name: str = Field(..., max_length=100, description="The name of the project")
    description: str = Field("", max_length=500, description="Project description")
    start_date: Optional[datetime] = Field(None, description="Start date (default: now)")
    end_date: Optional[datetime] = Field(None, description="Planned end date")


class ProjectUpdate(BaseModel):
    name: str = Field(..., max_length=100, description="Updated project name")
    description: str = Field("", max_length=500, description="Updated description")
    start_date: Optional[datetime] = Field(None, description="Keeps the current value when empty")
    end_date: Optional[datetime] = Field(None, description="Planned end date")
    is_archived: bool = Field(False, description="Archive flag")


class ProjectMemberResponse(BaseModel):
    id: int = Field(..., description="Membership id")
    user: UserSummaryResponse
    role: Role
    joined_at: datetime
    is_active: bool


class ProjectSummaryResponse(BaseModel):
    id: int
    name: str
    description: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_archived: bool
    task_count: int = 0
    completed_task_count: int = 0
    user_role: Optional[Role] = Field(None, description="Caller's role in the project")


class ProjectDetailResponse(ProjectSummaryResponse):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: UserSummaryResponse
    members: List[ProjectMemberResponse] = []


class AddProjectMemberRequest(BaseModel):
    username: str = Field(..., description="Username of the user to add")
    role: Role = Field(Role.CONTRIBUTOR, description="Contributor or ProjectManager")


class ChangeMemberRoleRequest(BaseModel):
    role: Role = Field(..., description="Contributor or ProjectManager")
