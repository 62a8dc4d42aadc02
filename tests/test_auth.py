import pytest

from clinic.core.security import UserRole
from clinic.models import User

from .conftest import TEST_PASSWORD

# Test data
test_user_data = {
    "name": "Test User",
    "email": "test@example.com",
    "phone": "5550109999",
    "password": "TestPassword123"
}

test_login_data = {
    "email": "test@example.com",
    "password": "TestPassword123"
}


@pytest.fixture
def registered(client, notifier):
    """Register and verify the test patient; returns the verification response."""
    response = client.post("/api/v1/auth/register", json=test_user_data)
    user_id = response.json()["user_id"]
    code = notifier.codes[test_user_data["email"]]
    return client.post("/api/v1/auth/verify-otp", json={"user_id": user_id, "otp": code}).json()


class TestAuthentication:

    def test_register_user(self, client, test_db, notifier):
        """Test user registration."""
        response = client.post("/api/v1/auth/register", json=test_user_data)
        assert response.status_code == 201

        data = response.json()
        assert data["message"] == "OTP sent to email"
        assert data["user_id"]
        assert "password" not in data
        assert test_user_data["email"] in notifier.codes

    def test_verify_otp_activates_account(self, client, test_db, notifier):
        """Test that the emailed code activates the account."""
        user_id = client.post("/api/v1/auth/register", json=test_user_data).json()["user_id"]

        response = client.post(
            "/api/v1/auth/verify-otp",
            json={"user_id": user_id, "otp": notifier.codes[test_user_data["email"]]}
        )
        assert response.status_code == 200

        data = response.json()
        assert "access_token" in data
        assert data["user"]["profile_created"] is True
        assert data["user"]["role"] == "patient"

    def test_verify_otp_wrong_code(self, client, test_db, notifier):
        """Test verification with a wrong code."""
        user_id = client.post("/api/v1/auth/register", json=test_user_data).json()["user_id"]
        code = notifier.codes[test_user_data["email"]]
        wrong = "000000" if code != "000000" else "111111"

        response = client.post("/api/v1/auth/verify-otp", json={"user_id": user_id, "otp": wrong})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid or expired OTP"

    def test_register_duplicate_email(self, client, registered):
        """Test registration with duplicate email."""
        duplicate = dict(test_user_data, phone="5550108888")

        response = client.post("/api/v1/auth/register", json=duplicate)
        assert response.status_code == 409
        assert "already registered" in response.json()["detail"]

    def test_register_archived_email(self, client, test_db, make_user):
        """Test registration against an archived account."""
        archived = make_user("Old Account", UserRole.PATIENT, email=test_user_data["email"], is_deleted=True)

        response = client.post("/api/v1/auth/register", json=test_user_data)
        assert response.status_code == 409

        detail = response.json()["detail"]
        assert detail["code"] == "archived"
        assert detail["user_id"] == archived.id

    def test_register_invalid_password(self, client, test_db):
        """Test registration with invalid password."""
        invalid_data = test_user_data.copy()
        invalid_data["password"] = "weak"

        response = client.post("/api/v1/auth/register", json=invalid_data)
        assert response.status_code == 422

    def test_login_before_verification(self, client, test_db):
        """Test that unverified accounts cannot log in."""
        client.post("/api/v1/auth/register", json=test_user_data)

        response = client.post("/api/v1/auth/login", json=test_login_data)
        assert response.status_code == 401

    def test_login_success(self, client, registered):
        """Test successful login."""
        response = client.post("/api/v1/auth/login", json=test_login_data)
        assert response.status_code == 200

        data = response.json()
        assert "access_token" in data
        assert data["token_type"] == "bearer"
        assert data["user"]["email"] == test_user_data["email"]
        assert data["user"]["display_id"].startswith("TES-")

    def test_login_invalid_credentials(self, client, test_db):
        """Test login with invalid credentials."""
        invalid_login = {
            "email": "nonexistent@example.com",
            "password": "wrongpassword"
        }

        response = client.post("/api/v1/auth/login", json=invalid_login)
        assert response.status_code == 401

    def test_login_wrong_password(self, client, registered):
        """Test login with wrong password."""
        wrong_login = test_login_data.copy()
        wrong_login["password"] = "wrongpassword"

        response = client.post("/api/v1/auth/login", json=wrong_login)
        assert response.status_code == 401

    def test_login_archived_account(self, client, test_db, make_user):
        """Test that archived accounts cannot log in."""
        user = make_user("Gone Patient", UserRole.PATIENT, is_deleted=True)

        response = client.post("/api/v1/auth/login", json={"email": user.email, "password": TEST_PASSWORD})
        assert response.status_code == 401

    def test_get_current_user(self, client, registered):
        """Test getting current user info."""
        headers = {"Authorization": f"Bearer {registered['access_token']}"}

        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 200

        data = response.json()
        assert data["email"] == test_user_data["email"]

    def test_get_current_user_invalid_token(self, client, test_db):
        """Test get current user with invalid token."""
        headers = {"Authorization": "Bearer invalid_token"}

        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 401

    def test_token_of_archived_user_is_rejected(self, client, db, headers_for, patient):
        """Test that archiving an account invalidates its token."""
        headers = headers_for(patient)
        patient.is_deleted = True
        db.commit()

        response = client.get("/api/v1/auth/me", headers=headers)
        assert response.status_code == 401

    def test_change_password(self, client, registered):
        """Test password change."""
        headers = {"Authorization": f"Bearer {registered['access_token']}"}

        password_data = {
            "current_password": "TestPassword123",
            "new_password": "NewPassword123"
        }

        response = client.post(
            "/api/v1/auth/change-password",
            json=password_data,
            headers=headers
        )
        assert response.status_code == 200

        login = client.post("/api/v1/auth/login", json=dict(test_login_data, password="NewPassword123"))
        assert login.status_code == 200

    def test_change_password_wrong_current(self, client, registered):
        """Test password change with wrong current password."""
        headers = {"Authorization": f"Bearer {registered['access_token']}"}

        password_data = {
            "current_password": "WrongPassword",
            "new_password": "NewPassword123"
        }

        response = client.post(
            "/api/v1/auth/change-password",
            json=password_data,
            headers=headers
        )
        assert response.status_code == 400

    def test_forgot_and_reset_password(self, client, notifier, registered):
        """Test the emailed-code password reset."""
        response = client.post("/api/v1/auth/forgot-password", json={"email": test_user_data["email"]})
        assert response.status_code == 200

        response = client.post("/api/v1/auth/reset-password", json={
            "email": test_user_data["email"],
            "otp": notifier.codes[test_user_data["email"]],
            "password": "ResetPassword123"
        })
        assert response.status_code == 200

        login = client.post("/api/v1/auth/login", json=dict(test_login_data, password="ResetPassword123"))
        assert login.status_code == 200

    def test_forgot_password_unknown_email(self, client, test_db):
        """Test reset request for an unknown address."""
        response = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@example.com"})
        assert response.status_code == 404

    def test_failed_login_is_audited(self, client, db, admin, headers_for):
        """Test that failed logins show up in the audit log."""
        client.post("/api/v1/auth/login", json={"email": "intruder@example.com", "password": "guess"})

        response = client.get("/api/v1/admin/logs", headers=headers_for(admin))
        assert response.status_code == 200

        entries = [e for e in response.json() if e["action"] == "Login Failed"]
        assert len(entries) == 1
        assert entries[0]["user_id"] is None
        assert db.query(User).count() == 1
