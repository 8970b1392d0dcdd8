from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import NotFound
from app.models.notification import Notification
from app.schemas.enums import Role, TaskPriority
from app.schemas.task import TaskCreate
from app.services import notification_inbox, task_service
from app.services.notification_dispatcher import extract_mentions


@pytest.fixture
def website(create_user, create_project):
    alice = create_user("alice", Role.PROJECT_MANAGER)
    bob = create_user("bob")
    dave = create_user("dave")
    project = create_project(
        alice, "Website", members=[(bob, Role.CONTRIBUTOR), (dave, Role.CONTRIBUTOR)]
    )
    return project, alice, bob, dave


@pytest.fixture
def add_notification(db_session):
    def _add(recipient, actor, message="hello", created_at=None, is_read=False):
        notification = Notification(
            recipient_user_id=recipient.id,
            triggered_by_user_id=actor.id,
            message=message,
            is_read=is_read,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(notification)
        db_session.commit()
        db_session.refresh(notification)
        return notification

    return _add


def inbox(db_session, user):
    return (
        db_session.query(Notification)
        .filter(Notification.recipient_user_id == user.id)
        .order_by(Notification.id)
        .all()
    )


class TestTriggers:
    """Notifications written by task operations"""

    def test_assignment_notifies_assignee(self, db_session, website, identity_for):
        """Creating a task with an assignee notifies that assignee"""
        project, alice, bob, dave = website

        task = task_service.create_task(
            db_session,
            identity_for(alice),
            TaskCreate(
                project_id=project.id,
                title="Landing page",
                priority=TaskPriority.HIGH,
                assigned_to_user_id=bob.id,
            ),
        )

        messages = [n.message for n in inbox(db_session, bob)]
        assert messages == ['alice assigned you the task: "Landing page"']
        assert inbox(db_session, bob)[0].related_task_id == task.id
        assert inbox(db_session, dave) == []

    def test_mentions_notify_members_only(
        self, db_session, website, create_user, create_task, identity_for
    ):
        """Mentioned members are notified once; the author and outsiders are not"""
        project, alice, bob, dave = website
        create_user("eve")
        task = create_task(project, alice, assignee=bob)

        task_service.add_comment(
            db_session,
            identity_for(bob),
            task.id,
            "@dave can you check? @dave @eve @bob",
        )

        assert [n.message for n in inbox(db_session, dave)] == [
            'bob mentioned you in a comment on "Task #1"'
        ]
        assert inbox(db_session, bob) == []
        assert db_session.query(Notification).count() == 1

    def test_banned_user_is_not_notified(
        self, db_session, website, create_task, identity_for
    ):
        """Inactive accounts receive no notifications"""
        project, alice, bob, dave = website
        dave.is_active = False
        db_session.commit()
        task = create_task(project, alice, assignee=bob)

        task_service.add_comment(db_session, identity_for(bob), task.id, "ping @dave")

        assert inbox(db_session, dave) == []

    def test_dotted_username_mention(
        self, db_session, website, create_user, create_project, create_task, identity_for
    ):
        """A mention of bob.smith reaches bob.smith and not bob"""
        _, alice, bob, _ = website
        bob_smith = create_user("bob.smith")
        project = create_project(
            alice, "Docs", members=[(bob, Role.CONTRIBUTOR), (bob_smith, Role.CONTRIBUTOR)]
        )
        task = create_task(project, alice, assignee=bob)

        task_service.add_comment(
            db_session, identity_for(alice), task.id, "ping @bob.smith please"
        )

        assert len(inbox(db_session, bob_smith)) == 1
        assert inbox(db_session, bob) == []

    def test_extract_mentions(self):
        assert extract_mentions("@a hi @b_2, @a") == ["a", "b_2"]
        assert extract_mentions("thanks @bob.smith. cc @jo-ann!") == ["bob.smith", "jo-ann"]
        assert extract_mentions("") == []


class TestInbox:
    """notification_inbox operations"""

    def test_list_newest_first_with_limit(self, db_session, website, add_notification, identity_for):
        """The inbox is ordered newest first and capped"""
        project, alice, bob, dave = website
        base = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
        for i in range(3):
            add_notification(bob, alice, f"n{i}", created_at=base + timedelta(minutes=i))

        rows = notification_inbox.list_notifications(db_session, identity_for(bob), limit=2)

        assert [row["message"] for row in rows] == ["n2", "n1"]
        assert rows[0]["triggered_by_username"] == "alice"

    def test_list_unread_filter(self, db_session, website, add_notification, identity_for):
        project, alice, bob, dave = website
        add_notification(bob, alice, "read", is_read=True)
        add_notification(bob, alice, "unread")

        rows = notification_inbox.list_notifications(db_session, identity_for(bob), is_read=False)

        assert [row["message"] for row in rows] == ["unread"]

    def test_mark_all_as_read(self, db_session, website, add_notification, identity_for):
        """Only the caller's unread notifications are updated"""
        project, alice, bob, dave = website
        add_notification(bob, alice)
        add_notification(bob, alice)
        add_notification(bob, alice, is_read=True)
        others = add_notification(dave, alice)

        assert notification_inbox.mark_all_as_read(db_session, identity_for(bob)) == 2
        db_session.refresh(others)
        assert others.is_read is False

    def test_bulk_mark_as_read_is_all_or_nothing(
        self, db_session, website, add_notification, identity_for
    ):
        """A foreign id in the batch leaves every notification untouched"""
        project, alice, bob, dave = website
        mine = add_notification(bob, alice)
        not_mine = add_notification(dave, alice)

        with pytest.raises(NotFound):
            notification_inbox.bulk_mark_as_read(
                db_session, identity_for(bob), [mine.id, not_mine.id]
            )

        db_session.refresh(mine)
        db_session.refresh(not_mine)
        assert mine.is_read is False
        assert not_mine.is_read is False

    def test_bulk_delete_is_all_or_nothing(
        self, db_session, website, add_notification, identity_for
    ):
        """A missing id in the batch deletes nothing"""
        project, alice, bob, dave = website
        first = add_notification(bob, alice)
        second = add_notification(bob, alice)

        with pytest.raises(NotFound):
            notification_inbox.bulk_delete(db_session, identity_for(bob), [first.id, 9999])
        assert len(inbox(db_session, bob)) == 2

        deleted = notification_inbox.bulk_delete(
            db_session, identity_for(bob), [first.id, second.id, first.id]
        )
        assert deleted == 2
        assert inbox(db_session, bob) == []

    def test_cannot_delete_someone_elses_notification(
        self, db_session, website, add_notification, identity_for
    ):
        project, alice, bob, dave = website
        theirs = add_notification(dave, alice)

        with pytest.raises(NotFound):
            notification_inbox.delete_notification(db_session, identity_for(bob), theirs.id)
        assert len(inbox(db_session, dave)) == 1
