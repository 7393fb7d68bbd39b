"""
User authentication manager.

Combines the user database and JWT handling into the identity flow every
other component depends on: login, token verification, refresh and logout.
Callers outside this module only ever see a Principal, never a raw token.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple

from loguru import logger

from ..errors import Unauthorized
from .database import UserDatabase, new_session_id
from .jwt_handler import JWTHandler
from .models import Principal, Session


class UserManager:
    """
    User authentication manager.

    Provides:
    - User login/logout
    - Token generation and verification
    - Resolution of a bearer token to a Principal
    """

    def __init__(self, db: UserDatabase, jwt_handler: JWTHandler):
        """
        Initialize manager.

        Args:
            db: User database
            jwt_handler: Token signer/verifier
        """
        self.db = db
        self.jwt = jwt_handler

    def login(self, email: str, password: str, ip_address: Optional[str] = None) -> Tuple[str, str]:
        """
        Authenticate user and return tokens.

        Args:
            email: Login email
            password: Plain text password
            ip_address: Client address recorded on the session

        Returns:
            (access_token, refresh_token) tuple

        Raises:
            Unauthorized: If the credentials are wrong or the account is inactive
        """
        user = self.db.get_user_by_email(email)
        if not user:
            logger.warning(f"Login failed: user '{email}' not found")
            raise Unauthorized("Invalid credentials")

        if not user.is_active:
            logger.warning(f"Login failed: user '{email}' is inactive")
            raise Unauthorized("Invalid credentials")

        if not self.db.verify_password(user, password):
            logger.warning(f"Login failed: invalid password for '{email}'")
            raise Unauthorized("Invalid credentials")

        access_token = self.jwt.create_access_token(user.user_id, user.role)
        refresh_token = self.jwt.create_refresh_token(user.user_id)
        self._open_session(access_token, ip_address)

        logger.info(f"User logged in: {email}")
        return access_token, refresh_token

    def _open_session(self, access_token: str, ip_address: Optional[str]) -> None:
        payload = self.jwt.verify_token(access_token)
        now = datetime.now(timezone.utc)
        self.db.create_session(Session(
            session_id=new_session_id(),
            user_id=payload.user_id,
            token_jti=payload.jti,
            created_at=now,
            expires_at=payload.exp,
            last_activity=now,
            ip_address=ip_address,
        ))

    def authenticate(self, token: Optional[str]) -> Principal:
        """
        Resolve a bearer token to a Principal.

        Every failure (malformed, expired, revoked, unknown or inactive user)
        raises the same Unauthorized error; the specific cause is only logged.

        Args:
            token: JWT access token

        Returns:
            Principal built from the stored user record

        Raises:
            Unauthorized: If the token cannot be resolved
        """
        if not token:
            raise Unauthorized()

        payload = self.jwt.verify_token(token)
        if not payload:
            raise Unauthorized()

        if not self.db.get_session_by_jti(payload.jti):
            logger.warning(f"Token {payload.jti} has been revoked")
            raise Unauthorized()

        user = self.db.get_user_by_id(payload.user_id)
        if not user or not user.is_active:
            logger.warning(f"Token references missing or inactive user {payload.user_id}")
            raise Unauthorized()

        return Principal.from_user(user)

    def refresh_access_token(self, refresh_token: str) -> str:
        """
        Create new access token from refresh token.

        Args:
            refresh_token: Valid refresh token

        Returns:
            New access token

        Raises:
            Unauthorized: If the refresh token is invalid or the user is gone
        """
        payload = self.jwt.verify_token(refresh_token, expected_type="refresh")
        if not payload:
            raise Unauthorized()

        user = self.db.get_user_by_id(payload.user_id)
        if not user or not user.is_active:
            logger.warning("User not found or inactive")
            raise Unauthorized()

        access_token = self.jwt.create_access_token(user.user_id, user.role)
        self._open_session(access_token, None)

        logger.debug(f"Access token refreshed for user {user.email}")
        return access_token

    def logout(self, token: str) -> bool:
        """
        Logout user by revoking token.

        Returns:
            True if a session was revoked
        """
        jti = self.jwt.extract_jti(token)
        if not jti:
            return False

        return self.db.delete_session(jti)
