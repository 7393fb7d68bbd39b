"""
JWT token generation and validation.

Handles creation and verification of access and refresh tokens.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import jwt
from loguru import logger

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60  # 1 hour
REFRESH_TOKEN_EXPIRE_DAYS = 30  # 30 days


@dataclass
class TokenPayload:
    """
    Decoded JWT payload.

    Attributes:
        user_id: User id
        role: Role at issue time (informational, the stored user is authoritative)
        exp: Expiration timestamp
        iat: Issued at timestamp
        jti: JWT ID for revocation
        token_type: Token type ("access" or "refresh")
    """
    user_id: str
    role: Optional[str]
    exp: datetime
    iat: datetime
    jti: str
    token_type: str


class JWTHandler:
    """
    JWT token handler.

    Creates and validates JWT tokens for authentication.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = ALGORITHM,
        access_expire_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
        refresh_expire_days: int = REFRESH_TOKEN_EXPIRE_DAYS,
    ):
        """
        Initialize handler.

        Args:
            secret_key: Secret key for signing tokens
            algorithm: JWT algorithm (default: HS256)
            access_expire_minutes: Access token lifetime
            refresh_expire_days: Refresh token lifetime
        """
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_expires = timedelta(minutes=access_expire_minutes)
        self.refresh_expires = timedelta(days=refresh_expire_days)

    def _encode(self, user_id: str, token_type: str, lifetime: timedelta, extra: Dict) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "iat": int(now.timestamp()),
            "exp": int((now + lifetime).timestamp()),
            "sub": user_id,
            "jti": secrets.token_urlsafe(16),
            "type": token_type,
            **extra,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def create_access_token(self, user_id: str, role: str) -> str:
        """
        Create JWT access token.

        Args:
            user_id: User id
            role: User role

        Returns:
            JWT token string
        """
        token = self._encode(user_id, "access", self.access_expires, {"role": role})
        logger.debug(f"Access token created for user {user_id}")
        return token

    def create_refresh_token(self, user_id: str) -> str:
        """Create refresh token (long-lived)."""
        return self._encode(user_id, "refresh", self.refresh_expires, {})

    def verify_token(self, token: str, expected_type: str = "access") -> Optional[TokenPayload]:
        """
        Verify and decode JWT token.

        Args:
            token: JWT token string
            expected_type: Required "type" claim

        Returns:
            TokenPayload if valid, None if invalid
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Token has expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            return None

        if payload.get("type") != expected_type:
            logger.warning(f"Token is not an {expected_type} token")
            return None

        return TokenPayload(
            user_id=payload["sub"],
            role=payload.get("role"),
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            jti=payload["jti"],
            token_type=payload["type"],
        )

    def extract_jti(self, token: str) -> Optional[str]:
        """
        Extract the JWT ID from a token whose signature is valid.

        Expired tokens still yield their jti so that logout works after expiry.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Cannot extract jti: {e}")
            return None
        return payload.get("jti")
