from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional, List
from app.schemas.enums import Role


class UserSummaryResponse(BaseModel):
    id: int
    username: str
    email: EmailStr

    model_config = {"from_attributes": True}


class UserResponse(UserSummaryResponse):
    role: Role
    is_active: bool
    created_at: datetime


class UserProfileResponse(UserResponse):
    project_count: int = Field(..., description="Active project memberships")
    task_count: int = Field(..., description="Assigned tasks that are not done")


class UserSearchResponse(UserSummaryResponse):
    role: Role


class UserDetailResponse(UserResponse):
    project_count: int = Field(..., description="All project memberships")
    created_project_count: int = Field(..., description="Projects created by the user")
    assigned_task_count: int = Field(..., description="Assigned tasks that are not done")


class UpdateUserRoleRequest(BaseModel):
    role: Role = Field(..., description="New global role")


class UpdateUserStatusRequest(BaseModel):
    is_active: bool = Field(..., description="False bans the user, True unbans")


class MessageResponse(BaseModel):
    message: str


class RoleDistribution(BaseModel):
    role: Role
    count: int


class AdminStatisticsResponse(BaseModel):
    total_users: int
    total_projects: int
    total_tasks: int
    active_projects: int
    projects_created_last_month: int
    users_by_role: List[RoleDistribution]
