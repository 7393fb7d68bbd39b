"""
User profile service.

Users edit their own profile; managers and admins read and edit others.
Role, team, department and active-flag changes are admin-only.
"""

from dataclasses import replace
from typing import Any, Dict, Optional

from loguru import logger

from ..auth import Action, Principal, ResourceFacts, ResourceKind
from ..errors import NotFound, ValidationFailed
from ..realtime.events import EventName
from ..store import utcnow_iso
from .base import LIVE, Document, ResourceService, page_info, paginate, require
from .team import check_role, public_user

USERS = "users"
SESSIONS = "sessions"

# Fields a user may change on their own profile
PROFILE_FIELDS = ("name", "position", "phone", "bio", "avatar", "skills", "timezone")

# Fields that move a user within the organization
PLACEMENT_FIELDS = ("role", "team", "department", "isActive")


class UserService(ResourceService):
    collection = USERS
    kind = ResourceKind.USER
    resource_name = "user"

    def facts(self, doc: Document) -> ResourceFacts:
        return ResourceFacts(
            owner_id=doc.get("_id"),
            team=doc.get("team"),
            department=doc.get("department"),
            target_user_id=doc.get("_id"),
            target_role=doc.get("role"),
        )

    def _clean(self, changes: Dict[str, Any], allowed) -> Document:
        updates = {key: value for key, value in changes.items() if key in allowed}
        if not updates:
            raise ValidationFailed("No updatable fields supplied")
        if "name" in updates:
            updates["name"] = require(updates["name"], "name").strip()
        if "skills" in updates and not isinstance(updates["skills"], list):
            raise ValidationFailed("skills must be a list", field="skills")
        if "role" in updates:
            check_role(updates["role"])
        return updates

    # ========================================================================
    # Own profile
    # ========================================================================

    def get_profile(self, principal: Principal) -> Document:
        user = self.store.get(USERS, principal.id)
        if user.get("isDeleted"):
            raise NotFound(self.resource_name, principal.id)
        return public_user(user)

    def update_profile(self, principal: Principal, changes: Dict[str, Any]) -> Document:
        user = self.load(principal.id)
        self.authorize(principal, Action.UPDATE, user)
        updates = self._clean(changes, PROFILE_FIELDS)

        updated = public_user(self.save(principal.id, updates))
        self.publish([self.user_room(principal.id)], EventName.PROFILE_UPDATED, updated)
        return updated

    # ========================================================================
    # Other users
    # ========================================================================

    def list_users(
        self,
        principal: Principal,
        team: Optional[str] = None,
        department: Optional[str] = None,
        role: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """
        List users the principal may read, sorted by name.

        Below the manager tier that is the principal and their teammates.
        """
        window = paginate(page, limit)
        query: Document = dict(LIVE)
        if team:
            query["team"] = team
        if department:
            query["department"] = department
        if role:
            query["role"] = role

        users = [
            doc for doc in self.store.find(USERS, query, sort=[("name", 1)])
            if self.checker.is_allowed(principal, Action.READ, self.kind, self.facts(doc))
        ]
        if search:
            needle = search.lower()
            users = [
                u for u in users
                if needle in (u.get("name") or "").lower()
                or needle in (u.get("email") or "").lower()
            ]

        start = window["skip"]
        return {
            "users": [public_user(doc) for doc in users[start:start + window["limit"]]],
            **page_info(len(users), page, limit),
        }

    def get_user(self, principal: Principal, user_id: str) -> Document:
        user = self.load(user_id)
        self.authorize(principal, Action.READ, user)
        return public_user(user)

    def update_user(self, principal: Principal, user_id: str, changes: Dict[str, Any]) -> Document:
        """
        Update another user's profile or placement.

        Raises:
            Forbidden: Below the manager tier for someone else's profile,
                below the admin tier for placement fields, or when a user
                would raise their own role to the admin tier
        """
        user = self.load(user_id)
        updates = self._clean(changes, PROFILE_FIELDS + PLACEMENT_FIELDS)

        facts = self.facts(user)
        if "role" in updates:
            facts = replace(facts, target_role=updates["role"])
        self.authorize(principal, Action.UPDATE, facts=facts)
        if any(key in updates for key in PLACEMENT_FIELDS):
            self.authorize(principal, Action.ASSIGN, facts=facts)

        updated = public_user(self.save(user_id, updates))
        logger.info(f"User {user_id} updated by {principal.id}: {sorted(updates)}")

        self.publish([self.user_room(user_id)], EventName.PROFILE_UPDATED, updated)
        if any(key in updates for key in PLACEMENT_FIELDS):
            self.publish(
                [self.team_room(user.get("team")), self.team_room(updated.get("team"))],
                EventName.MEMBER_UPDATED,
                updated,
            )
        return updated

    def delete_user(self, principal: Principal, user_id: str) -> None:
        """
        Deactivate and soft-delete a user, revoking their sessions.

        Raises:
            Forbidden: Below the admin tier, or when deleting oneself
        """
        user = self.load(user_id)
        self.authorize(principal, Action.DELETE, user)

        self.save(user_id, {
            "isActive": False,
            "isDeleted": True,
            "deletedAt": utcnow_iso(),
            "deletedBy": principal.id,
        })
        revoked = self.store.delete(SESSIONS, {"userId": user_id})
        logger.info(f"User {user_id} deleted by {principal.id} ({revoked} session(s) revoked)")
