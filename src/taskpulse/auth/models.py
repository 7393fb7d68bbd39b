"""
Identity data models.

Data classes for stored users, login sessions and the per-request principal.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class User:
    """
    User account.

    Attributes:
        user_id: Unique user identifier
        name: Display name
        email: Unique email address (login name)
        password_hash: Bcrypt hashed password
        role: RBAC role name (admin/employer/manager/team_lead/employee/viewer)
        team: Team id the user belongs to (optional)
        department: Department id (optional)
        position: Job title (optional)
        is_active: Whether account is active
    """
    user_id: str
    name: str
    email: str
    password_hash: str
    role: str
    team: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "User":
        return cls(
            user_id=doc["_id"],
            name=doc.get("name", ""),
            email=doc["email"],
            password_hash=doc.get("passwordHash", ""),
            role=doc.get("role", "employee"),
            team=doc.get("team"),
            department=doc.get("department"),
            position=doc.get("position"),
            is_active=doc.get("isActive", True),
        )


@dataclass
class Session:
    """
    Active login session.

    Attributes:
        session_id: Unique session identifier
        user_id: User who owns this session
        token_jti: JWT ID (jti claim) of the access token
        created_at: Session creation timestamp
        expires_at: Session expiration timestamp
        last_activity: Last activity timestamp
        ip_address: Client IP address (optional)
    """
    session_id: str
    user_id: str
    token_jti: str
    created_at: datetime
    expires_at: datetime
    last_activity: datetime
    ip_address: Optional[str] = None


@dataclass(frozen=True)
class Principal:
    """
    Authenticated identity a request or socket session acts as.

    Built per request from a verified token and the stored user record;
    never persisted.
    """
    id: str
    role: str
    team: Optional[str] = None
    department: Optional[str] = None
    email: str = ""
    name: str = ""

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            id=user.user_id,
            role=user.role,
            team=user.team,
            department=user.department,
            email=user.email,
            name=user.name,
        )
