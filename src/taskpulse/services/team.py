"""
Team membership service.

Membership lives on the user document (``team``/``department``) and is
mirrored in the team's ``members`` list.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from ..auth import Action, Principal, ResourceFacts, ResourceKind, Role
from ..errors import Conflict, NotFound, ValidationFailed
from ..realtime.events import EventName
from .base import Document, ResourceService, require

USERS = "users"
TEAMS = "teams"

# Fields a manager may change on a member
EDITABLE = ("name", "role", "position", "department")

PRIVATE_FIELDS = ("passwordHash",)


def public_user(doc: Document) -> Document:
    """User document without credentials."""
    return {key: value for key, value in doc.items() if key not in PRIVATE_FIELDS}


def check_role(role: str) -> None:
    try:
        Role(role)
    except ValueError:
        raise ValidationFailed(f"Unknown role: {role}", field="role")


class TeamService(ResourceService):
    collection = USERS
    kind = ResourceKind.TEAM_MEMBERSHIP
    resource_name = "team member"

    def facts(self, doc: Document) -> ResourceFacts:
        return ResourceFacts(
            owner_id=doc.get("_id"),
            team=doc.get("team"),
            department=doc.get("department"),
            target_user_id=doc.get("_id"),
            target_role=doc.get("role"),
        )

    def list_members(self, principal: Principal, team_id: str) -> List[Document]:
        self.authorize(principal, Action.READ, facts=ResourceFacts(team=team_id))
        members = self.store.find(USERS, {"team": team_id}, sort=[("name", 1)])
        return [public_user(doc) for doc in members]

    def get_member(self, principal: Principal, user_id: str) -> Document:
        user = self.load(user_id)
        self.authorize(principal, Action.READ, user)
        return public_user(user)

    def add_member(
        self,
        principal: Principal,
        email: str,
        team_id: str,
        department_id: Optional[str] = None,
        role: str = Role.EMPLOYEE.value,
        position: Optional[str] = None,
    ) -> Document:
        """
        Put an existing user without a team into a team.

        Raises:
            NotFound: If no user has this email
            Conflict: If the user already belongs to a team
        """
        require(email, "email")
        require(team_id, "teamId")
        check_role(role)

        user = self.store.find_one(USERS, {"email": email.lower()})
        if user is None:
            raise NotFound("user")

        self.authorize(principal, Action.CREATE, facts=ResourceFacts(
            team=team_id,
            department=department_id,
            target_user_id=user["_id"],
            target_role=role,
        ))

        if user.get("team"):
            raise Conflict("User is already part of a team", {"team": user["team"]})

        updated = self.save(user["_id"], {
            "team": team_id,
            "department": department_id,
            "role": role,
            "position": position,
            "status": "active",
        })
        self.store.update_one(TEAMS, {"_id": team_id}, {"$addToSet": {"members": user["_id"]}})

        logger.info(f"User {user['_id']} added to team {team_id} by {principal.id}")
        self.publish([self.team_room(team_id)], EventName.MEMBER_ADDED, {
            "userId": user["_id"],
            "user": {"name": updated.get("name"), "email": updated.get("email")},
        })
        return public_user(updated)

    def update_member(self, principal: Principal, user_id: str, changes: Dict[str, Any]) -> Document:
        """
        Update a member's profile.

        Publishes ``profile-updated`` to the member and ``member-updated`` to
        their team.
        """
        user = self.load(user_id)
        updates = {key: value for key, value in changes.items() if key in EDITABLE}
        if not updates:
            raise ValidationFailed("No updatable fields supplied")
        if "role" in updates:
            check_role(updates["role"])

        self.authorize(principal, Action.UPDATE, facts=ResourceFacts(
            owner_id=user_id,
            team=user.get("team"),
            department=user.get("department"),
            target_user_id=user_id,
            target_role=updates.get("role"),
        ))

        updated = public_user(self.save(user_id, updates))
        self.publish([self.user_room(user_id)], EventName.PROFILE_UPDATED, updated)
        self.publish([self.team_room(updated.get("team"))], EventName.MEMBER_UPDATED, updated)
        return updated

    def remove_member(self, principal: Principal, user_id: str) -> None:
        """
        Take a member out of their team.

        Publishes ``removed-from-team`` to the member and ``member-removed``
        to the team.
        """
        user = self.load(user_id)
        self.authorize(principal, Action.DELETE, user)

        team_id = user.get("team")
        self.save(user_id, {"team": None, "department": None, "status": "inactive"})
        if team_id:
            self.store.update_one(TEAMS, {"_id": team_id}, {"$pull": {"members": user_id}})

        logger.info(f"User {user_id} removed from team {team_id} by {principal.id}")
        self.publish([self.user_room(user_id)], EventName.REMOVED_FROM_TEAM, {"teamId": team_id})
        self.publish([self.team_room(team_id)], EventName.MEMBER_REMOVED, {
            "userId": user_id,
            "userName": user.get("name"),
        })
