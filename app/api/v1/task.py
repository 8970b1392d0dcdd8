from io import BytesIO
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.api.v1.auth import get_current_identity
from app.core.database import get_db
from app.core.identity import IdentityContext
from app.models.project import Project
from app.models.task import Task
from app.models.task_attachment import TaskAttachment
from app.models.task_comment import TaskComment
from app.models.user import User
from app.schemas.enums import TaskStatus
from app.schemas.task import (
    TaskAttachmentResponse,
    TaskCommentCreate,
    TaskCommentResponse,
    TaskCreate,
    TaskResponse,
    TaskSummaryResponse,
    TaskUpdate,
)
from app.schemas.user import MessageResponse
from app.services import task_service
from app.services.task_lifecycle import AttachmentUpload, transition_task

router = APIRouter()


def _user(db: Session, user_id: Optional[int]) -> Optional[User]:
    if user_id is None:
        return None
    return db.query(User).filter(User.id == user_id).first()


def _summary(db: Session, task: Task) -> dict:
    project = db.query(Project).filter(Project.id == task.project_id).first()
    sub_task_count = (
        db.query(func.count(Task.id)).filter(Task.parent_task_id == task.id).scalar() or 0
    )
    completed_sub_task_count = (
        db.query(func.count(Task.id))
        .filter(Task.parent_task_id == task.id, Task.status == TaskStatus.DONE.value)
        .scalar()
        or 0
    )
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "due_date": task.due_date,
        "project_id": task.project_id,
        "project_name": project.name if project else "",
        "assigned_to": _user(db, task.assigned_to_user_id),
        "sub_task_count": sub_task_count,
        "completed_sub_task_count": completed_sub_task_count,
    }


def _comment(db: Session, comment: TaskComment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "created_at": comment.created_at,
        "user": _user(db, comment.user_id),
    }


def _attachment(db: Session, attachment: TaskAttachment) -> dict:
    return {
        "id": attachment.id,
        "file_name": attachment.file_name,
        "content_type": attachment.content_type,
        "file_size": attachment.file_size,
        "uploaded_at": attachment.uploaded_at,
        "uploaded_by": _user(db, attachment.uploaded_by_user_id),
    }


def _detail(db: Session, task: Task) -> dict:
    sub_tasks = db.query(Task).filter(Task.parent_task_id == task.id).order_by(Task.id).all()
    attachments = (
        db.query(TaskAttachment)
        .filter(TaskAttachment.task_id == task.id)
        .order_by(TaskAttachment.uploaded_at, TaskAttachment.id)
        .all()
    )
    return {
        **_summary(db, task),
        "created_at": task.created_at,
        "updated_at": task.updated_at,
        "created_by": _user(db, task.created_by_user_id),
        "parent_task_id": task.parent_task_id,
        "sub_tasks": [_summary(db, sub) for sub in sub_tasks],
        "comments": [_comment(db, c) for c in task_service.list_comments(db, task.id)],
        "attachments": [_attachment(db, a) for a in attachments],
    }


@router.post("/", response_model=TaskResponse)
def create_task(
    body: TaskCreate,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    task = task_service.create_task(db, identity, body)
    return _detail(db, task)


@router.get("/", response_model=List[TaskSummaryResponse])
def get_tasks(
    project_id: Optional[int] = Query(None),
    status: Optional[TaskStatus] = Query(None),
    assigned_to_me: bool = Query(False),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    tasks = task_service.list_tasks(db, identity, project_id, status, assigned_to_me)
    return [_summary(db, task) for task in tasks]


@router.get("/my-tasks", response_model=List[TaskSummaryResponse])
def get_my_tasks(
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return [_summary(db, task) for task in task_service.list_my_tasks(db, identity)]


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return _detail(db, task_service.get_task(db, identity, task_id))


@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    body: TaskUpdate,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return _detail(db, task_service.update_task(db, identity, task_id, body))


@router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    task_service.delete_task(db, identity, task_id)
    return {"message": "Task deleted successfully"}


@router.post("/{task_id}/status", response_model=TaskResponse)
async def change_task_status(
    task_id: int,
    status: TaskStatus = Form(...),
    comment: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    """
    Move a task through the workflow. Reviews may carry a comment and a file.
    """
    attachment = None
    if file is not None and file.filename:
        attachment = AttachmentUpload(
            filename=file.filename,
            data=await file.read(),
            content_type=file.content_type or "application/octet-stream",
        )
    task = await run_in_threadpool(
        transition_task,
        db,
        identity,
        task_id,
        status,
        comment=comment or None,
        attachment=attachment,
    )
    return await run_in_threadpool(_detail, db, task)


@router.get("/{task_id}/comments", response_model=List[TaskCommentResponse])
def get_comments(
    task_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    task = task_service.get_task(db, identity, task_id)
    return [_comment(db, c) for c in task_service.list_comments(db, task.id)]


@router.post("/{task_id}/comments", response_model=TaskCommentResponse)
def add_comment(
    task_id: int,
    body: TaskCommentCreate,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    comment = task_service.add_comment(db, identity, task_id, body.content)
    return _comment(db, comment)


@router.get("/{task_id}/attachments", response_model=List[TaskAttachmentResponse])
def get_attachments(
    task_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    return [_attachment(db, a) for a in task_service.list_attachments(db, identity, task_id)]


@router.post("/{task_id}/attachments", response_model=TaskAttachmentResponse)
async def upload_attachment(
    task_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    data = await file.read()
    attachment = await run_in_threadpool(
        task_service.upload_attachment,
        db,
        identity,
        task_id,
        file.filename or "file",
        data,
        file.content_type or "application/octet-stream",
    )
    return await run_in_threadpool(_attachment, db, attachment)


@router.get("/attachments/{attachment_id}/download", response_class=StreamingResponse)
def download_attachment(
    attachment_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    attachment, data = task_service.download_attachment(db, identity, attachment_id)
    return StreamingResponse(
        BytesIO(data),
        media_type=attachment.content_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{attachment.file_name}"'},
    )


@router.delete("/attachments/{attachment_id}", response_model=MessageResponse)
def delete_attachment(
    attachment_id: int,
    db: Session = Depends(get_db),
    identity: IdentityContext = Depends(get_current_identity),
):
    task_service.delete_attachment(db, identity, attachment_id)
    return {"message": "Attachment deleted successfully"}
