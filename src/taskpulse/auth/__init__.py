"""
Authentication and authorization for TaskPulse.

Provides JWT-based authentication and the role/relationship access
control evaluator.
"""

from .models import User, Session, Principal
from .database import UserDatabase
from .jwt_handler import JWTHandler, TokenPayload
from .user_manager import UserManager
from .permissions import (
    Action,
    AccessDecision,
    PermissionChecker,
    ResourceFacts,
    ResourceKind,
    Role,
    ROLE_TIERS,
    RULES,
    authorize,
    evaluate,
    role_tier,
)

__all__ = [
    # Identity
    "User",
    "Session",
    "Principal",
    "UserDatabase",
    "JWTHandler",
    "TokenPayload",
    "UserManager",
    # Access control
    "Action",
    "AccessDecision",
    "PermissionChecker",
    "ResourceFacts",
    "ResourceKind",
    "Role",
    "ROLE_TIERS",
    "RULES",
    "authorize",
    "evaluate",
    "role_tier",
]
