from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_identity
from app.core.database import get_db
from app.core.identity import IdentityContext
from app.models.project import Project
from app.models.project_member import ProjectMember
from app.models.user import User
from app.schemas.project import (
    AddProjectMemberRequest,
    ChangeMemberRoleRequest,
    ProjectCreate,
    ProjectDetailResponse,
    ProjectMemberResponse,
    ProjectSummaryResponse,
    ProjectUpdate,
)
from app.schemas.user import MessageResponse
from app.services import membership, project_service
from app.services.authorization import get_active_membership

router = APIRouter()


def _summary(db: Session, project: Project, user_role) -> dict:
    task_count, completed_task_count = project_service.task_counts(db, project.id)
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "start_date": project.start_date,
        "end_date": project.end_date,
        "is_archived": project.is_archived,
        "task_count": task_count,
        "completed_task_count": completed_task_count,
        "user_role": user_role,
    }


def _member_response(member: ProjectMember, user: User) -> dict:
    return {
        "id": member.id,
        "user": user,
        "role": member.role,
        "joined_at": member.joined_at,
        "is_active": member.is_active,
    }


def _detail(db: Session, identity: IdentityContext, project: Project) -> dict:
    caller = get_active_membership(db, project.id, identity.user_id)
    creator = db.query(User).filter(User.id == project.created_by_user_id).first()
    return {
        **_summary(db, project, caller.role if caller else None),
        "created_at": project.created_at,
        "updated_at": project.updated_at,
        "created_by": creator,
        "members": [
            _member_response(member, user)
            for member, user in project_service.list_members(db, project.id)
        ],
    }


@router.post("/", response_model=ProjectDetailResponse)
def create_project(
    body: ProjectCreate,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    project = project_service.create_project(db, identity, body)
    return _detail(db, identity, project)


@router.get("/", response_model=List[ProjectSummaryResponse])
def get_projects(
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return [
        _summary(db, project, role)
        for project, role in project_service.list_projects(db, identity)
    ]


@router.get("/{project_id}", response_model=ProjectDetailResponse)
def get_project(
    project_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    project = project_service.get_project(db, identity, project_id)
    return _detail(db, identity, project)


@router.put("/{project_id}", response_model=ProjectDetailResponse)
def update_project(
    project_id: int,
    body: ProjectUpdate,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    project = project_service.update_project(db, identity, project_id, body)
    return _detail(db, identity, project)


@router.delete("/{project_id}", response_model=MessageResponse)
def delete_project(
    project_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    project_service.delete_project(db, identity, project_id)
    return {"message": "Project deleted successfully"}


@router.get("/{project_id}/members", response_model=List[ProjectMemberResponse])
def get_members(
    project_id: int,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    project_service.get_project(db, identity, project_id)
    return [
        _member_response(member, user)
        for member, user in project_service.list_members(db, project_id, include_inactive)
    ]


@router.post("/{project_id}/members", response_model=ProjectMemberResponse)
def add_member(
    project_id: int,
    body: AddProjectMemberRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    member = membership.add_member(db, identity, project_id, body.username, body.role)
    user = db.query(User).filter(User.id == member.user_id).first()
    return _member_response(member, user)


@router.delete("/{project_id}/members/{member_id}", response_model=MessageResponse)
def remove_member(
    project_id: int,
    member_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    membership.remove_member(db, identity, project_id, member_id)
    return {"message": "Member removed successfully"}


@router.put("/{project_id}/members/{member_id}/role", response_model=ProjectMemberResponse)
def change_member_role(
    project_id: int,
    member_id: int,
    body: ChangeMemberRoleRequest,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    member = membership.change_role(db, identity, project_id, member_id, body.role)
    user = db.query(User).filter(User.id == member.user_id).first()
    return _member_response(member, user)
