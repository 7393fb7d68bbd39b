"""
User and session persistence.

Stores user accounts (bcrypt-hashed passwords) and login sessions in the
document store. Sessions are keyed by the access token's jti so a token can
be revoked by deleting its session.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import bcrypt
from loguru import logger

from ..errors import ValidationFailed
from ..store import DocumentStore
from .models import Session, User
from .permissions import Role

USERS = "users"
SESSIONS = "sessions"


class UserDatabase:
    """
    User database.

    Manages users and sessions on top of the thread-safe DocumentStore.
    """

    def __init__(self, store: DocumentStore):
        """
        Initialize database.

        Args:
            store: Document store holding the users and sessions collections
        """
        self.store = store
        self.store.ensure_unique(USERS, "email")

    # ========================================================================
    # User Operations
    # ========================================================================

    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: str = Role.EMPLOYEE.value,
        team: Optional[str] = None,
        department: Optional[str] = None,
        position: Optional[str] = None,
    ) -> User:
        """
        Create new user with hashed password.

        Args:
            name: Display name
            email: Unique email address
            password: Plain text password (will be hashed)
            role: RBAC role name
            team: Team id (optional)
            department: Department id (optional)
            position: Job title (optional)

        Returns:
            Created User object

        Raises:
            ValidationFailed: If the role is unknown
            Conflict: If the email already exists
        """
        try:
            Role(role)
        except ValueError:
            raise ValidationFailed(f"Unknown role: {role}", field="role")

        password_hash = bcrypt.hashpw(
            password.encode("utf-8"),
            bcrypt.gensalt(),
        ).decode("utf-8")

        doc = self.store.insert(USERS, {
            "name": name,
            "email": email.lower(),
            "passwordHash": password_hash,
            "role": role,
            "team": team,
            "department": department,
            "position": position,
            "isActive": True,
        })

        logger.info(f"User created: {email} ({doc['_id']}) with role: {role}")
        return User.from_document(doc)

    def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Get user by email.

        Returns:
            User object if found, None otherwise
        """
        doc = self.store.find_one(USERS, {"email": email.lower()})
        return User.from_document(doc) if doc else None

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """
        Get user by ID.

        Returns:
            User object if found, None otherwise
        """
        doc = self.store.find_one(USERS, {"_id": user_id})
        return User.from_document(doc) if doc else None

    def verify_password(self, user: User, password: str) -> bool:
        """Verify password against user's hash."""
        if not user.password_hash:
            return False
        return bcrypt.checkpw(
            password.encode("utf-8"),
            user.password_hash.encode("utf-8"),
        )

    # ========================================================================
    # Session Operations
    # ========================================================================

    def create_session(self, session: Session) -> None:
        """Persist a new session."""
        self.store.insert(SESSIONS, {
            "_id": session.session_id,
            "userId": session.user_id,
            "tokenJti": session.token_jti,
            "createdAt": session.created_at.isoformat(),
            "expiresAt": session.expires_at.isoformat(),
            "lastActivity": session.last_activity.isoformat(),
            "ipAddress": session.ip_address,
        })

    def get_session_by_jti(self, token_jti: str) -> Optional[Session]:
        """
        Get session by JWT ID.

        Returns:
            Session object if found, None otherwise
        """
        doc = self.store.find_one(SESSIONS, {"tokenJti": token_jti})
        if not doc:
            return None

        return Session(
            session_id=doc["_id"],
            user_id=doc["userId"],
            token_jti=doc["tokenJti"],
            created_at=datetime.fromisoformat(doc["createdAt"]),
            expires_at=datetime.fromisoformat(doc["expiresAt"]),
            last_activity=datetime.fromisoformat(doc["lastActivity"]),
            ip_address=doc.get("ipAddress"),
        )

    def delete_session(self, token_jti: str) -> bool:
        """
        Delete session (logout).

        Returns:
            True if a session was deleted
        """
        return self.store.delete(SESSIONS, {"tokenJti": token_jti}) > 0

    def cleanup_expired_sessions(self) -> int:
        """
        Remove expired sessions.

        Returns:
            Number of sessions deleted
        """
        now = datetime.now(timezone.utc)
        expired = [
            doc["_id"]
            for doc in self.store.find(SESSIONS)
            if datetime.fromisoformat(doc["expiresAt"]) < now
        ]
        deleted = self.store.delete(SESSIONS, {"_id": {"$in": expired}}) if expired else 0

        if deleted > 0:
            logger.info(f"Cleaned up {deleted} expired sessions")

        return deleted


def new_session_id() -> str:
    return str(uuid.uuid4())
