import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DIGEST_ENABLED"] = "false"

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.database import Base, get_db
from app.core.identity import IdentityContext
from app.core.security import create_access_token, get_password_hash
from app.models.project import Project
from app.models.project_member import ProjectMember
from app.models.task import Task
from app.models.user import User
from app.schemas.enums import Role, TaskStatus

# SQLite in-memory database shared by every connection of a test
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PASSWORD = "TestPassword123!"


@pytest.fixture(scope="function")
def db_session():
    """Fresh database and session for each test"""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Test client with the database session override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def create_user(db_session):
    """Factory fixture for users"""
    def _create_user(username, role=Role.CONTRIBUTOR, is_active=True, email=None):
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            passwordhash=get_password_hash(TEST_PASSWORD),
            role=role.value,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
def create_project(db_session):
    """Factory fixture for a project with its creator as project Admin.

    ``members`` is a list of ``(user, Role)`` pairs added as active members.
    """
    def _create_project(creator, name="Website", members=()):
        project = Project(name=name, description="", created_by_user_id=creator.id)
        db_session.add(project)
        db_session.flush()
        db_session.add(
            ProjectMember(project_id=project.id, user_id=creator.id, role=Role.ADMIN.value)
        )
        for user, role in members:
            db_session.add(
                ProjectMember(project_id=project.id, user_id=user.id, role=role.value)
            )
        db_session.commit()
        db_session.refresh(project)
        return project

    return _create_project


@pytest.fixture
def create_task(db_session):
    """Factory fixture for tasks"""
    def _create_task(project, creator, assignee=None, status=TaskStatus.TODO, title="Task #1"):
        task = Task(
            project_id=project.id,
            title=title,
            description="",
            status=status.value,
            created_by_user_id=creator.id,
            assigned_to_user_id=assignee.id if assignee else None,
        )
        db_session.add(task)
        db_session.commit()
        db_session.refresh(task)
        return task

    return _create_task


@pytest.fixture
def member_of(db_session):
    """Look up the membership row of a user in a project"""
    def _member_of(project, user):
        return (
            db_session.query(ProjectMember)
            .filter(ProjectMember.project_id == project.id, ProjectMember.user_id == user.id)
            .first()
        )

    return _member_of


@pytest.fixture
def identity_for():
    """Build the IdentityContext a request by ``user`` would carry"""
    return IdentityContext.from_user


@pytest.fixture
def auth_headers():
    """Bearer header for a user"""
    def _auth_headers(user):
        token = create_access_token(data={"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture
def mock_send_email():
    """Mailer replaced by a mock that accepts every message"""
    with patch("app.core.mailer.send_email") as mock_send:
        mock_send.return_value = True
        yield mock_send


@pytest.fixture
def mock_file_store():
    """File store calls replaced by mocks"""
    with patch("app.core.file_store.upload_file") as mock_upload, patch(
        "app.core.file_store.download_file"
    ) as mock_download, patch("app.core.file_store.delete_file") as mock_delete:
        mock_upload.side_effect = lambda task_id, filename, data, content_type: (
            f"tasks/{task_id}/stored_{filename}"
        )
        mock_download.return_value = b"file-bytes"
        mock_delete.return_value = None
        yield {"upload": mock_upload, "download": mock_download, "delete": mock_delete}
