from fastapi import status


class TestLoginEndpoint:
    """Test cases for POST /api/v1/auth/login endpoint"""

    def test_login_success(self, client, create_user):
        """Test successful login with valid username and password"""
        user = create_user("alice")

        response = client.post(
            "/api/v1/auth/login",
            data={"username": "alice", "password": "TestPassword123!"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["user_id"] == user.id
        assert "access_token" in data
        assert data["token_type"] == "bearer"

    def test_login_invalid_password(self, client, create_user):
        """Test login with incorrect password"""
        create_user("alice")

        response = client.post(
            "/api/v1/auth/login",
            data={"username": "alice", "password": "wrongpassword"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "Incorrect username or password"

    def test_login_nonexistent_user(self, client):
        """Test login with a username that is not registered"""
        response = client.post(
            "/api/v1/auth/login",
            data={"username": "nobody", "password": "123456"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["detail"] == "Incorrect username or password"

    def test_login_banned_user(self, client, create_user):
        """Banned accounts cannot log in"""
        create_user("mallory", is_active=False)

        response = client.post(
            "/api/v1/auth/login",
            data={"username": "mallory", "password": "TestPassword123!"},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_login_missing_fields(self, client):
        """Test login with missing form fields"""
        response = client.post("/api/v1/auth/login", data={"username": "alice"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
