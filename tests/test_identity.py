"""
Tests for login, token verification, refresh and logout.
"""

from datetime import datetime, timedelta, timezone

import pytest

from taskpulse.auth import JWTHandler, Principal, Session, UserDatabase, UserManager
from taskpulse.errors import Conflict, Unauthorized, ValidationFailed

SECRET = "test-secret-key"


@pytest.fixture
def users(store):
    return UserDatabase(store)


@pytest.fixture
def jwt_handler():
    return JWTHandler(SECRET)


@pytest.fixture
def auth_manager(users, jwt_handler):
    return UserManager(users, jwt_handler)


@pytest.fixture
def alice(users):
    return users.create_user("Alice", "Alice@Example.com", "s3cret", role="manager", team="T1", department="D1")


class TestUserDatabase:
    def test_create_user_hashes_password(self, users, alice):
        assert alice.password_hash != "s3cret"
        assert users.verify_password(alice, "s3cret")
        assert not users.verify_password(alice, "wrong")

    def test_email_is_case_insensitive_and_unique(self, users, alice):
        assert users.get_user_by_email("alice@example.com").user_id == alice.user_id
        with pytest.raises(Conflict):
            users.create_user("Alice Two", "ALICE@example.com", "x")

    def test_unknown_role(self, users):
        with pytest.raises(ValidationFailed):
            users.create_user("Bob", "bob@example.com", "x", role="overlord")

    def test_cleanup_expired_sessions(self, users, alice):
        now = datetime.now(timezone.utc)
        for jti, expires in (("old", now - timedelta(hours=1)), ("live", now + timedelta(hours=1))):
            users.create_session(Session(
                session_id=f"s-{jti}",
                user_id=alice.user_id,
                token_jti=jti,
                created_at=now,
                expires_at=expires,
                last_activity=now,
            ))

        assert users.cleanup_expired_sessions() == 1
        assert users.get_session_by_jti("old") is None
        assert users.get_session_by_jti("live") is not None


class TestLogin:
    """Test the login flow."""

    def test_login_and_authenticate(self, auth_manager, alice):
        access, refresh = auth_manager.login("alice@example.com", "s3cret", "10.0.0.1")

        principal = auth_manager.authenticate(access)
        assert principal == Principal(
            id=alice.user_id,
            role="manager",
            team="T1",
            department="D1",
            email="alice@example.com",
            name="Alice",
        )

    @pytest.mark.parametrize("email,password", [
        ("alice@example.com", "wrong"),
        ("nobody@example.com", "s3cret"),
    ])
    def test_bad_credentials(self, auth_manager, alice, email, password):
        with pytest.raises(Unauthorized) as exc:
            auth_manager.login(email, password)
        assert exc.value.message == "Invalid credentials"

    def test_inactive_user(self, auth_manager, alice, store):
        access, _ = auth_manager.login("alice@example.com", "s3cret")
        store.update_one("users", {"_id": alice.user_id}, {"isActive": False})

        with pytest.raises(Unauthorized):
            auth_manager.login("alice@example.com", "s3cret")
        with pytest.raises(Unauthorized):
            auth_manager.authenticate(access)


class TestAuthenticate:
    """Every bad token fails the same way."""

    def test_missing_token(self, auth_manager):
        with pytest.raises(Unauthorized):
            auth_manager.authenticate(None)

    def test_garbage(self, auth_manager):
        with pytest.raises(Unauthorized) as exc:
            auth_manager.authenticate("not.a.jwt")
        assert exc.value.message == "Invalid or expired token"

    def test_wrong_signature(self, auth_manager, alice):
        forged = JWTHandler("another-secret").create_access_token(alice.user_id, "admin")
        with pytest.raises(Unauthorized):
            auth_manager.authenticate(forged)

    def test_expired(self, auth_manager, alice):
        expired = JWTHandler(SECRET, access_expire_minutes=-5).create_access_token(alice.user_id, "manager")
        with pytest.raises(Unauthorized):
            auth_manager.authenticate(expired)

    def test_token_without_session(self, auth_manager, jwt_handler, alice):
        """A validly signed token that was never issued through login is rejected."""
        token = jwt_handler.create_access_token(alice.user_id, "manager")
        with pytest.raises(Unauthorized):
            auth_manager.authenticate(token)

    def test_refresh_token_is_not_an_access_token(self, auth_manager, alice):
        _, refresh = auth_manager.login("alice@example.com", "s3cret")
        with pytest.raises(Unauthorized):
            auth_manager.authenticate(refresh)


class TestRefreshAndLogout:
    def test_refresh(self, auth_manager, alice):
        access, refresh = auth_manager.login("alice@example.com", "s3cret")

        renewed = auth_manager.refresh_access_token(refresh)
        assert renewed != access
        assert auth_manager.authenticate(renewed).id == alice.user_id

    def test_access_token_cannot_refresh(self, auth_manager, alice):
        access, _ = auth_manager.login("alice@example.com", "s3cret")
        with pytest.raises(Unauthorized):
            auth_manager.refresh_access_token(access)

    def test_logout_revokes(self, auth_manager, alice):
        access, _ = auth_manager.login("alice@example.com", "s3cret")

        assert auth_manager.logout(access) is True
        with pytest.raises(Unauthorized):
            auth_manager.authenticate(access)
        assert auth_manager.logout(access) is False

    def test_logout_garbage(self, auth_manager):
        assert auth_manager.logout("garbage") is False
