import pytest
from fastapi import status
from app.models.user import User
from app.schemas.enums import Role


class TestRegisterEndpoint:
    """Test cases for POST /api/v1/auth/register"""

    def test_register_success(self, client, db_session):
        """Registering creates an active Contributor and returns a token"""
        payload = {"username": "bob", "email": "bob@example.com", "password": "Secret123!"}

        response = client.post("/api/v1/auth/register", json=payload)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["username"] == "bob"
        assert data["role"] == Role.CONTRIBUTOR.value
        assert data["token_type"] == "bearer"
        assert data["access_token"]

        db_user = db_session.query(User).filter(User.username == "bob").first()
        assert db_user is not None
        assert db_user.is_active is True
        assert db_user.passwordhash != "Secret123!"

    def test_register_duplicate_username(self, client, create_user):
        """Usernames are unique"""
        create_user("bob")

        response = client.post(
            "/api/v1/auth/register",
            json={"username": "bob", "email": "other@example.com", "password": "Secret123!"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "Username already taken"

    def test_register_duplicate_email(self, client, create_user):
        """Emails are unique"""
        create_user("bob")

        response = client.post(
            "/api/v1/auth/register",
            json={"username": "bobby", "email": "bob@example.com", "password": "Secret123!"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["detail"] == "Email already registered"

    def test_register_invalid_email_format(self, client):
        """Pydantic rejects a malformed email"""
        response = client.post(
            "/api/v1/auth/register",
            json={"username": "bob", "email": "not-an-email", "password": "Secret123!"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_register_missing_required_fields(self, client):
        """Missing password"""
        response = client.post(
            "/api/v1/auth/register", json={"username": "bob", "email": "bob@example.com"}
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.parametrize("username", ["bob smith", "bob.", "@bob", "bob,jr"])
    def test_register_rejects_unmentionable_username(self, client, username):
        """Usernames must be usable as an @mention"""
        response = client.post(
            "/api/v1/auth/register",
            json={"username": username, "email": "bob@example.com", "password": "Secret123!"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_register_dotted_username(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"username": "bob.smith", "email": "bob@example.com", "password": "Secret123!"},
        )

        assert response.status_code == status.HTTP_200_OK
