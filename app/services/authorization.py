"""Authorization engine.

``authorize`` is a pure predicate over an :class:`IdentityContext`, an
:class:`Action` and a :class:`ResourceContext`. The facts it needs (project
creator, the caller's active project role, task creator and assignee,
target user) are loaded beforehand by :func:`load_resource_context`, so the
rules themselves never touch the database.

Resolution order:

1. A banned caller is denied everything.
2. A global Admin is allowed everything, except banning or changing the
   role of themselves or of another Admin.
3. Otherwise the caller's effective project role is resolved. The project
   creator always acts as a project Admin.
4. The per-action rule decides.

Target invariants (no self-targeting, project creator protection, Admins
cannot be members, only Contributor / ProjectManager can be granted) are
checked for every caller, Admins included.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import AccessDenied, NotFound, ValidationViolation
from app.core.identity import IdentityContext
from app.models.project import Project
from app.models.project_member import ProjectMember
from app.models.task import Task
from app.models.user import User
from app.schemas.enums import ASSIGNABLE_MEMBER_ROLES, MANAGER_ROLES, Role

logger = logging.getLogger(__name__)


class Action(str, Enum):
    VIEW_PROJECT = "view_project"
    CREATE_PROJECT = "create_project"
    UPDATE_PROJECT = "update_project"
    DELETE_PROJECT = "delete_project"
    SEARCH_USERS = "search_users"
    ADD_MEMBER = "add_member"
    REMOVE_MEMBER = "remove_member"
    CHANGE_MEMBER_ROLE = "change_member_role"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    ASSIGN_TASK = "assign_task"
    DELETE_TASK = "delete_task"
    TRANSITION_TASK = "transition_task"
    COMMENT_TASK = "comment_task"
    UPLOAD_ATTACHMENT = "upload_attachment"
    DELETE_ATTACHMENT = "delete_attachment"
    MANAGE_USERS = "manage_users"
    BAN_USER = "ban_user"
    CHANGE_GLOBAL_ROLE = "change_global_role"
    RUN_DIGEST = "run_digest"


class Reason(str, Enum):
    ACCOUNT_INACTIVE = "account_inactive"
    NOT_A_MEMBER = "not_a_member"
    INSUFFICIENT_ROLE = "insufficient_role"
    NOT_OWNER = "not_owner"
    NOT_TASK_CREATOR = "not_task_creator"
    ADMIN_ONLY = "admin_only"
    SELF_TARGET = "self_target"
    TARGET_IS_ADMIN = "target_is_admin"
    TARGET_IS_CREATOR = "target_is_creator"
    INVALID_TARGET_ROLE = "invalid_target_role"


# Denials that protect accounts and invariants rather than express missing rights
VALIDATION_REASONS = frozenset(
    {
        Reason.SELF_TARGET,
        Reason.TARGET_IS_ADMIN,
        Reason.TARGET_IS_CREATOR,
        Reason.INVALID_TARGET_ROLE,
    }
)

_MESSAGES = {
    Reason.ACCOUNT_INACTIVE: "Your account is inactive",
    Reason.NOT_A_MEMBER: "You are not a member of this project",
    Reason.INSUFFICIENT_ROLE: "Your role does not allow this action",
    Reason.NOT_OWNER: "Only the project creator can perform this action",
    Reason.NOT_TASK_CREATOR: "Only the task creator or a project admin can perform this action",
    Reason.ADMIN_ONLY: "Only admins can perform this action",
    Reason.SELF_TARGET: "You cannot perform this action on yourself",
    Reason.TARGET_IS_ADMIN: "This action cannot target an admin account",
    Reason.TARGET_IS_CREATOR: "This action cannot target the project creator",
    Reason.INVALID_TARGET_ROLE: "Role must be Contributor or ProjectManager",
}


@dataclass(frozen=True)
class ResourceContext:
    project_id: Optional[int] = None
    project_creator_id: Optional[int] = None
    # Role of the caller's active membership in project_id, if any
    caller_project_role: Optional[Role] = None
    task_creator_id: Optional[int] = None
    task_assignee_id: Optional[int] = None
    attachment_uploader_id: Optional[int] = None
    target_user_id: Optional[int] = None
    target_global_role: Optional[Role] = None
    # Requested membership role for add / change role
    target_member_role: Optional[Role] = None


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[Reason] = None

    @property
    def message(self) -> str:
        return _MESSAGES[self.reason] if self.reason else "Allowed"

    def raise_for_denial(self) -> None:
        if self.allowed:
            return
        if self.reason in VALIDATION_REASONS:
            raise ValidationViolation(self.message, self.reason.value)
        raise AccessDenied(self.message, self.reason.value)


ALLOW = Decision(True)


def _deny(reason: Reason) -> Decision:
    return Decision(False, reason)


def _effective_role(identity: IdentityContext, resource: ResourceContext) -> Optional[Role]:
    if (
        resource.project_creator_id is not None
        and resource.project_creator_id == identity.user_id
    ):
        return Role.ADMIN
    return resource.caller_project_role


def _require_member(role: Optional[Role]) -> Decision:
    return ALLOW if role is not None else _deny(Reason.NOT_A_MEMBER)


def _require_manager(role: Optional[Role]) -> Decision:
    if role is None:
        return _deny(Reason.NOT_A_MEMBER)
    return ALLOW if role in MANAGER_ROLES else _deny(Reason.INSUFFICIENT_ROLE)


def _require_project_admin(role: Optional[Role]) -> Decision:
    if role is None:
        return _deny(Reason.NOT_A_MEMBER)
    return ALLOW if role == Role.ADMIN else _deny(Reason.INSUFFICIENT_ROLE)


def _rule_global_manager(identity, role, resource) -> Decision:
    if identity.global_role in MANAGER_ROLES:
        return ALLOW
    return _deny(Reason.INSUFFICIENT_ROLE)


def _rule_owner(identity, role, resource) -> Decision:
    if resource.project_creator_id == identity.user_id:
        return ALLOW
    return _deny(Reason.NOT_OWNER)


def _rule_update_task(identity, role, resource) -> Decision:
    if role is None:
        return _deny(Reason.NOT_A_MEMBER)
    if role in MANAGER_ROLES or identity.user_id in (
        resource.task_creator_id,
        resource.task_assignee_id,
    ):
        return ALLOW
    return _deny(Reason.INSUFFICIENT_ROLE)


def _rule_delete_task(identity, role, resource) -> Decision:
    if role is None:
        return _deny(Reason.NOT_A_MEMBER)
    if role == Role.ADMIN or resource.task_creator_id == identity.user_id:
        return ALLOW
    return _deny(Reason.NOT_TASK_CREATOR)


def _rule_delete_attachment(identity, role, resource) -> Decision:
    if role is None:
        return _deny(Reason.NOT_A_MEMBER)
    if role == Role.ADMIN or resource.attachment_uploader_id == identity.user_id:
        return ALLOW
    return _deny(Reason.INSUFFICIENT_ROLE)


def _rule_admin_only(identity, role, resource) -> Decision:
    return _deny(Reason.ADMIN_ONLY)


_Rule = Callable[[IdentityContext, Optional[Role], ResourceContext], Decision]

_RULES: Dict[Action, _Rule] = {
    Action.VIEW_PROJECT: lambda i, role, r: _require_member(role),
    Action.CREATE_PROJECT: _rule_global_manager,
    Action.UPDATE_PROJECT: lambda i, role, r: _require_manager(role),
    Action.DELETE_PROJECT: _rule_owner,
    Action.SEARCH_USERS: _rule_global_manager,
    # the creator resolves to a project Admin, so ownership is covered here
    Action.ADD_MEMBER: lambda i, role, r: _require_manager(role),
    Action.REMOVE_MEMBER: lambda i, role, r: _require_project_admin(role),
    Action.CHANGE_MEMBER_ROLE: lambda i, role, r: _require_project_admin(role),
    Action.CREATE_TASK: lambda i, role, r: _require_member(role),
    Action.UPDATE_TASK: _rule_update_task,
    Action.ASSIGN_TASK: lambda i, role, r: _require_manager(role),
    Action.DELETE_TASK: _rule_delete_task,
    # actor class per transition is checked by the task lifecycle
    Action.TRANSITION_TASK: lambda i, role, r: _require_member(role),
    Action.COMMENT_TASK: lambda i, role, r: _require_member(role),
    Action.UPLOAD_ATTACHMENT: lambda i, role, r: _require_member(role),
    Action.DELETE_ATTACHMENT: _rule_delete_attachment,
    Action.MANAGE_USERS: _rule_admin_only,
    Action.BAN_USER: _rule_admin_only,
    Action.CHANGE_GLOBAL_ROLE: _rule_admin_only,
    Action.RUN_DIGEST: _rule_admin_only,
}


def _admin_protections(
    identity: IdentityContext, action: Action, resource: ResourceContext
) -> Optional[Decision]:
    if action not in (Action.BAN_USER, Action.CHANGE_GLOBAL_ROLE):
        return None
    if resource.target_user_id == identity.user_id:
        return _deny(Reason.SELF_TARGET)
    if resource.target_global_role == Role.ADMIN:
        return _deny(Reason.TARGET_IS_ADMIN)
    return None


def _target_invariants(
    identity: IdentityContext, action: Action, resource: ResourceContext
) -> Optional[Decision]:
    if action == Action.ADD_MEMBER:
        if resource.target_global_role == Role.ADMIN:
            return _deny(Reason.TARGET_IS_ADMIN)
        if (
            resource.target_member_role is not None
            and resource.target_member_role not in ASSIGNABLE_MEMBER_ROLES
        ):
            return _deny(Reason.INVALID_TARGET_ROLE)
    elif action in (Action.REMOVE_MEMBER, Action.CHANGE_MEMBER_ROLE):
        if (
            resource.target_user_id is not None
            and resource.target_user_id == resource.project_creator_id
        ):
            return _deny(Reason.TARGET_IS_CREATOR)
        if resource.target_user_id == identity.user_id:
            return _deny(Reason.SELF_TARGET)
        if (
            action == Action.CHANGE_MEMBER_ROLE
            and resource.target_member_role is not None
            and resource.target_member_role not in ASSIGNABLE_MEMBER_ROLES
        ):
            return _deny(Reason.INVALID_TARGET_ROLE)
    return None


def authorize(
    identity: IdentityContext, action: Action, resource: ResourceContext
) -> Decision:
    if not identity.is_active:
        decision = _deny(Reason.ACCOUNT_INACTIVE)
    elif identity.is_admin:
        decision = _admin_protections(identity, action, resource) or ALLOW
    else:
        role = _effective_role(identity, resource)
        decision = _RULES[action](identity, role, resource)

    if decision.allowed:
        decision = _target_invariants(identity, action, resource) or ALLOW

    if not decision.allowed:
        logger.debug(
            "Denied %s for user %s: %s", action.value, identity.user_id, decision.reason.value
        )
    return decision


def ensure_allowed(
    identity: IdentityContext, action: Action, resource: ResourceContext
) -> None:
    authorize(identity, action, resource).raise_for_denial()


def get_active_membership(
    db: Session, project_id: int, user_id: int
) -> Optional[ProjectMember]:
    return (
        db.query(ProjectMember)
        .filter(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
            ProjectMember.is_active == True,
        )
        .first()
    )


def load_resource_context(
    db: Session,
    identity: IdentityContext,
    project: Optional[Project] = None,
    task: Optional[Task] = None,
    target_user: Optional[User] = None,
    target_member_role: Optional[Role] = None,
    attachment_uploader_id: Optional[int] = None,
) -> ResourceContext:
    """Collect the facts ``authorize`` needs from already loaded rows."""
    if task is not None and project is None:
        project = db.query(Project).filter(Project.id == task.project_id).first()
        if project is None:
            raise NotFound("Project not found")

    caller_role = None
    if project is not None:
        membership = get_active_membership(db, project.id, identity.user_id)
        if membership is not None:
            caller_role = Role(membership.role)

    return ResourceContext(
        project_id=project.id if project is not None else None,
        project_creator_id=project.created_by_user_id if project is not None else None,
        caller_project_role=caller_role,
        task_creator_id=task.created_by_user_id if task is not None else None,
        task_assignee_id=task.assigned_to_user_id if task is not None else None,
        attachment_uploader_id=attachment_uploader_id,
        target_user_id=target_user.id if target_user is not None else None,
        target_global_role=Role(target_user.role) if target_user is not None else None,
        target_member_role=target_member_role,
    )
