"""
Organization role catalogue.

Custom roles with descriptive permission lists. Built-in (system) roles
are read-only.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from ..auth import Action, Principal, ResourceFacts, ResourceKind
from ..errors import Conflict, ValidationFailed
from .base import LIVE, Document, ResourceService, require

ROLES = "roles"
USERS = "users"

EDITABLE = ("name", "description", "permissions", "level", "department", "team", "isActive")


def _check_permissions(permissions: Any) -> List[Dict[str, Any]]:
    if not isinstance(permissions, list):
        raise ValidationFailed("permissions must be a list", field="permissions")

    checked = []
    for entry in permissions:
        if not isinstance(entry, dict) or not entry.get("resource"):
            raise ValidationFailed("Each permission needs a resource", field="permissions")
        actions = entry.get("actions") or []
        for action in actions:
            try:
                Action(action)
            except ValueError:
                raise ValidationFailed(f"Unknown action: {action}", field="permissions")
        checked.append({"resource": entry["resource"], "actions": list(actions)})
    return checked


class RoleService(ResourceService):
    collection = ROLES
    kind = ResourceKind.ROLE
    resource_name = "role"

    def facts(self, doc: Document) -> ResourceFacts:
        return ResourceFacts(
            owner_id=doc.get("createdBy"),
            team=doc.get("team"),
            department=doc.get("department"),
            is_system=bool(doc.get("isSystem")),
        )

    def _check_name_free(self, name: str, exclude_id: Optional[str] = None) -> None:
        wanted = name.strip().lower()
        for role in self.store.find(ROLES, LIVE):
            if role["_id"] != exclude_id and role.get("name", "").strip().lower() == wanted:
                raise Conflict("Role with this name already exists", {"name": name})

    def list_roles(self, principal: Principal, include_inactive: bool = False) -> List[Document]:
        self.authorize(principal, Action.READ, facts=ResourceFacts())
        query: Document = dict(LIVE)
        if not include_inactive:
            query["isActive"] = True
        return self.store.find(ROLES, query, sort=[("level", -1), ("name", 1)])

    def get_role(self, principal: Principal, role_id: str) -> Document:
        role = self.load(role_id)
        self.authorize(principal, Action.READ, role)
        return role

    def create_role(self, principal: Principal, data: Dict[str, Any]) -> Document:
        self.authorize(principal, Action.CREATE, facts=ResourceFacts())
        name = require(data.get("name"), "name")
        permissions = _check_permissions(data.get("permissions") or [])
        self._check_name_free(name)

        role = self.store.insert(ROLES, {
            "name": name,
            "description": data.get("description", ""),
            "permissions": permissions,
            "department": data.get("department"),
            "team": data.get("team"),
            "level": data.get("level") or 1,
            "isSystem": False,
            "isActive": True,
            "createdBy": principal.id,
            "isDeleted": False,
        })
        logger.info(f"Role '{name}' created by {principal.id}")
        return role

    def update_role(self, principal: Principal, role_id: str, changes: Dict[str, Any]) -> Document:
        """
        Update a custom role.

        Raises:
            Forbidden: For system roles or non-admin principals
            Conflict: If the new name is already taken (case-insensitive)
        """
        role = self.load(role_id)
        self.authorize(principal, Action.UPDATE, role)

        updates = {key: value for key, value in changes.items() if key in EDITABLE}
        if not updates:
            raise ValidationFailed("No updatable fields supplied")
        if "name" in updates:
            require(updates["name"], "name")
            self._check_name_free(updates["name"], exclude_id=role_id)
        if "permissions" in updates:
            updates["permissions"] = _check_permissions(updates["permissions"])

        return self.save(role_id, updates)

    def delete_role(self, principal: Principal, role_id: str) -> None:
        """
        Delete a custom role.

        Raises:
            Conflict: If any user still holds the role
        """
        role = self.load(role_id)
        self.authorize(principal, Action.DELETE, role)

        holders = self.store.count(USERS, {"role": {"$in": [role_id, role.get("name", "").lower()]}})
        if holders:
            raise Conflict("Cannot delete role that is assigned to users", {"users": holders})

        self.soft_delete(role_id, principal)
        logger.info(f"Role {role_id} deleted by {principal.id}")
