import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFound, ValidationViolation
from app.core.identity import IdentityContext
from app.models.project import Project
from app.models.project_member import ProjectMember
from app.models.user import User
from app.schemas.enums import Role
from app.services.authorization import Action, ensure_allowed, load_resource_context
from app.services.notification_dispatcher import EventKind, NotificationEvent, record_event
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


def get_project_or_404(db: Session, project_id: int) -> Project:
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project:
        raise NotFound("Project not found")
    return project


def _get_member_or_404(db: Session, project_id: int, member_id: int) -> ProjectMember:
    member = (
        db.query(ProjectMember)
        .filter(ProjectMember.id == member_id, ProjectMember.project_id == project_id)
        .first()
    )
    if not member:
        raise NotFound("Member not found")
    return member


def _find_membership(db: Session, project_id: int, user_id: int) -> Optional[ProjectMember]:
    """Any membership row for the pair, active or not."""
    return (
        db.query(ProjectMember)
        .filter(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
        .first()
    )


def add_member(
    db: Session,
    identity: IdentityContext,
    project_id: int,
    username: str,
    role: Role = Role.CONTRIBUTOR,
) -> ProjectMember:
    """Add ``username`` to the project, reactivating a previous membership row."""
    project = get_project_or_404(db, project_id)
    target: Optional[User] = db.query(User).filter(User.username == username).first()

    ensure_allowed(
        identity,
        Action.ADD_MEMBER,
        load_resource_context(
            db, identity, project=project, target_user=target, target_member_role=role
        ),
    )

    if target is None:
        raise NotFound("User not found")
    if not target.is_active:
        raise ValidationViolation("User account is inactive", "target_inactive")

    member = _find_membership(db, project.id, target.id)
    if member is not None:
        if member.is_active:
            raise ValidationViolation(
                "User is already a member of this project", "already_member"
            )
        member.is_active = True
        member.role = role.value
        member.joined_at = utcnow()
        logger.info(f"Reactivated membership {member.id} in project {project.id}")
    else:
        member = ProjectMember(
            project_id=project.id,
            user_id=target.id,
            role=role.value,
            is_active=True,
            joined_at=utcnow(),
        )
        db.add(member)

    try:
        db.flush()
    except IntegrityError:
        # A concurrent request inserted the same (project, user) pair first
        db.rollback()
        raise ValidationViolation("User is already a member of this project", "already_member")

    record_event(
        db,
        NotificationEvent(
            kind=EventKind.MEMBER_ADDED,
            actor_id=identity.user_id,
            project_id=project.id,
            target_user_id=target.id,
            member_role=role,
        ),
    )
    db.commit()
    db.refresh(member)
    logger.info(f"User {target.id} added to project {project.id} as {role.value}")
    return member


def remove_member(
    db: Session, identity: IdentityContext, project_id: int, member_id: int
) -> ProjectMember:
    """Deactivate a membership. Tasks, comments and attachments stay attributed."""
    project = get_project_or_404(db, project_id)
    member = _get_member_or_404(db, project.id, member_id)
    target = db.query(User).filter(User.id == member.user_id).first()

    ensure_allowed(
        identity,
        Action.REMOVE_MEMBER,
        load_resource_context(db, identity, project=project, target_user=target),
    )

    if not member.is_active:
        raise ValidationViolation("Member is already inactive", "member_inactive")

    member.is_active = False
    db.commit()
    db.refresh(member)
    logger.info(f"Membership {member.id} deactivated in project {project.id}")
    return member


def change_role(
    db: Session,
    identity: IdentityContext,
    project_id: int,
    member_id: int,
    new_role: Role,
) -> ProjectMember:
    project = get_project_or_404(db, project_id)
    member = _get_member_or_404(db, project.id, member_id)
    target = db.query(User).filter(User.id == member.user_id).first()

    ensure_allowed(
        identity,
        Action.CHANGE_MEMBER_ROLE,
        load_resource_context(
            db, identity, project=project, target_user=target, target_member_role=new_role
        ),
    )

    if not member.is_active:
        raise ValidationViolation("Member is not active", "member_inactive")

    member.role = new_role.value
    db.commit()
    db.refresh(member)
    logger.info(f"Membership {member.id} role changed to {new_role.value}")
    return member
