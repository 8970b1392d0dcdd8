import pytest

from app.core.exceptions import AccessDenied, ValidationViolation
from app.core.identity import IdentityContext
from app.schemas.enums import Role
from app.services.authorization import (
    Action,
    Reason,
    ResourceContext,
    authorize,
    ensure_allowed,
)

CREATOR_ID = 1
CALLER_ID = 2
TARGET_ID = 3


def project_context(caller_role=None, **extra):
    return ResourceContext(
        project_id=10,
        project_creator_id=CREATOR_ID,
        caller_project_role=caller_role,
        **extra,
    )


class TestManageMembersRule:
    """Who may add members to a project"""

    @pytest.mark.parametrize(
        "identity, caller_role, allowed",
        [
            (IdentityContext(CALLER_ID, Role.ADMIN), None, True),
            (IdentityContext(CALLER_ID, Role.CONTRIBUTOR), Role.ADMIN, True),
            (IdentityContext(CALLER_ID, Role.CONTRIBUTOR), Role.PROJECT_MANAGER, True),
            (IdentityContext(CREATOR_ID, Role.PROJECT_MANAGER), None, True),
            (IdentityContext(CALLER_ID, Role.PROJECT_MANAGER), Role.CONTRIBUTOR, False),
            (IdentityContext(CALLER_ID, Role.PROJECT_MANAGER), None, False),
        ],
    )
    def test_add_member_matrix(self, identity, caller_role, allowed):
        """Admin, project manager roles and the creator may manage members"""
        decision = authorize(identity, Action.ADD_MEMBER, project_context(caller_role))
        assert decision.allowed is allowed

    def test_non_member_contributor_cannot_add_member(self):
        """A Contributor outside the project is denied with AccessDenied"""
        carol = IdentityContext(CALLER_ID, Role.CONTRIBUTOR)
        resource = project_context(
            None, target_user_id=TARGET_ID, target_global_role=Role.CONTRIBUTOR
        )

        decision = authorize(carol, Action.ADD_MEMBER, resource)
        assert decision.allowed is False
        assert decision.reason == Reason.NOT_A_MEMBER

        with pytest.raises(AccessDenied) as exc_info:
            ensure_allowed(carol, Action.ADD_MEMBER, resource)
        assert exc_info.value.reason == "not_a_member"

    def test_admin_cannot_be_added_as_member(self):
        """Admin accounts never become project members, not even through an Admin"""
        admin = IdentityContext(CALLER_ID, Role.ADMIN)
        resource = project_context(None, target_user_id=TARGET_ID, target_global_role=Role.ADMIN)

        with pytest.raises(ValidationViolation) as exc_info:
            ensure_allowed(admin, Action.ADD_MEMBER, resource)
        assert exc_info.value.reason == "target_is_admin"

    def test_member_role_must_be_assignable(self):
        """Memberships are only granted as Contributor or ProjectManager"""
        manager = IdentityContext(CALLER_ID, Role.CONTRIBUTOR)
        resource = project_context(
            Role.PROJECT_MANAGER,
            target_user_id=TARGET_ID,
            target_global_role=Role.CONTRIBUTOR,
            target_member_role=Role.ADMIN,
        )

        decision = authorize(manager, Action.ADD_MEMBER, resource)
        assert decision.reason == Reason.INVALID_TARGET_ROLE


class TestCreatorProtection:
    """The project creator's membership cannot be removed or changed"""

    @pytest.mark.parametrize("action", [Action.REMOVE_MEMBER, Action.CHANGE_MEMBER_ROLE])
    def test_global_admin_cannot_touch_creator(self, action):
        """Admin override does not bypass creator protection"""
        admin = IdentityContext(CALLER_ID, Role.ADMIN)
        resource = project_context(
            None,
            target_user_id=CREATOR_ID,
            target_global_role=Role.PROJECT_MANAGER,
            target_member_role=Role.CONTRIBUTOR,
        )

        with pytest.raises(ValidationViolation) as exc_info:
            ensure_allowed(admin, action, resource)
        assert exc_info.value.reason == "target_is_creator"

    def test_project_manager_cannot_remove_members(self):
        """Removal needs the project Admin role"""
        pm = IdentityContext(CALLER_ID, Role.CONTRIBUTOR)
        resource = project_context(Role.PROJECT_MANAGER, target_user_id=TARGET_ID)

        decision = authorize(pm, Action.REMOVE_MEMBER, resource)
        assert decision.reason == Reason.INSUFFICIENT_ROLE

    def test_only_creator_deletes_project(self):
        """Project Admins other than the creator cannot delete the project"""
        project_admin = IdentityContext(CALLER_ID, Role.PROJECT_MANAGER)
        creator = IdentityContext(CREATOR_ID, Role.PROJECT_MANAGER)

        assert authorize(creator, Action.DELETE_PROJECT, project_context(None)).allowed
        decision = authorize(project_admin, Action.DELETE_PROJECT, project_context(Role.ADMIN))
        assert decision.reason == Reason.NOT_OWNER


class TestAccountProtection:
    """Ban and global role change rules"""

    def test_admin_cannot_ban_another_admin(self):
        """Banning another Admin is a validation violation even for an Admin"""
        admin = IdentityContext(CALLER_ID, Role.ADMIN)
        resource = ResourceContext(target_user_id=TARGET_ID, target_global_role=Role.ADMIN)

        decision = authorize(admin, Action.BAN_USER, resource)
        assert decision.reason == Reason.TARGET_IS_ADMIN
        with pytest.raises(ValidationViolation):
            decision.raise_for_denial()

    @pytest.mark.parametrize("action", [Action.BAN_USER, Action.CHANGE_GLOBAL_ROLE])
    def test_admin_cannot_target_self(self, action):
        """Admins cannot ban themselves or change their own role"""
        admin = IdentityContext(CALLER_ID, Role.ADMIN)
        resource = ResourceContext(target_user_id=CALLER_ID, target_global_role=Role.ADMIN)

        assert authorize(admin, action, resource).reason == Reason.SELF_TARGET

    def test_admin_can_ban_contributor(self):
        """Non-admin targets can be banned"""
        admin = IdentityContext(CALLER_ID, Role.ADMIN)
        resource = ResourceContext(target_user_id=TARGET_ID, target_global_role=Role.CONTRIBUTOR)

        assert authorize(admin, Action.BAN_USER, resource).allowed

    def test_non_admin_cannot_ban(self):
        """Banning is reserved for global Admins"""
        pm = IdentityContext(CALLER_ID, Role.PROJECT_MANAGER)
        resource = ResourceContext(target_user_id=TARGET_ID, target_global_role=Role.CONTRIBUTOR)

        with pytest.raises(AccessDenied) as exc_info:
            ensure_allowed(pm, Action.BAN_USER, resource)
        assert exc_info.value.reason == "admin_only"

    def test_banned_caller_is_denied_everything(self):
        """An inactive account is denied even with the Admin role"""
        banned_admin = IdentityContext(CALLER_ID, Role.ADMIN, is_active=False)

        for action in (Action.VIEW_PROJECT, Action.CREATE_PROJECT, Action.RUN_DIGEST):
            decision = authorize(banned_admin, action, project_context(Role.ADMIN))
            assert decision.reason == Reason.ACCOUNT_INACTIVE


class TestTaskRules:
    """Task edit and delete rights"""

    def test_assignee_may_edit_task(self):
        """A Contributor may edit a task assigned to them"""
        bob = IdentityContext(CALLER_ID, Role.CONTRIBUTOR)
        resource = project_context(
            Role.CONTRIBUTOR, task_creator_id=CREATOR_ID, task_assignee_id=CALLER_ID
        )

        assert authorize(bob, Action.UPDATE_TASK, resource).allowed

    def test_other_contributor_may_not_edit_task(self):
        """A Contributor unrelated to the task cannot edit it"""
        dave = IdentityContext(CALLER_ID, Role.CONTRIBUTOR)
        resource = project_context(
            Role.CONTRIBUTOR, task_creator_id=CREATOR_ID, task_assignee_id=TARGET_ID
        )

        assert authorize(dave, Action.UPDATE_TASK, resource).reason == Reason.INSUFFICIENT_ROLE

    def test_contributor_cannot_assign(self):
        """Assigning needs a manager role"""
        bob = IdentityContext(CALLER_ID, Role.CONTRIBUTOR)

        decision = authorize(bob, Action.ASSIGN_TASK, project_context(Role.CONTRIBUTOR))
        assert decision.reason == Reason.INSUFFICIENT_ROLE

    def test_uploader_may_delete_attachment(self):
        """Attachments are deletable by their uploader or a project Admin"""
        bob = IdentityContext(CALLER_ID, Role.CONTRIBUTOR)

        own = project_context(Role.CONTRIBUTOR, attachment_uploader_id=CALLER_ID)
        other = project_context(Role.CONTRIBUTOR, attachment_uploader_id=TARGET_ID)
        assert authorize(bob, Action.DELETE_ATTACHMENT, own).allowed
        assert not authorize(bob, Action.DELETE_ATTACHMENT, other).allowed
