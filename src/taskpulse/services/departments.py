"""
Department service.

Departments group teams and users. Members are the users whose
``department`` field names the department.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from ..auth import Action, Principal, ResourceFacts, ResourceKind
from ..errors import Conflict, NotFound, ValidationFailed
from ..realtime.events import EventName
from ..realtime.rooms import RoomKind, room_key
from .base import LIVE, Document, ResourceService, page_info, paginate, require
from .team import public_user

DEPARTMENTS = "departments"
USERS = "users"
TEAMS = "teams"

EDITABLE = ("name", "description", "code", "head", "parentDepartment", "isActive", "settings")

DEFAULT_SETTINGS = {"allowCrossTeamCollaboration": True, "requireApprovalForTasks": False}


def _same(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()


class DepartmentService(ResourceService):
    collection = DEPARTMENTS
    kind = ResourceKind.DEPARTMENT
    resource_name = "department"

    def facts(self, doc: Document) -> ResourceFacts:
        return ResourceFacts(owner_id=doc.get("head"), department=doc.get("_id"))

    @staticmethod
    def department_room(department_id: str) -> str:
        return room_key(RoomKind.DEPARTMENT, department_id)

    def _check_unique(self, name: Optional[str], code: Optional[str], exclude_id: Optional[str] = None) -> None:
        """Names and codes are unique among live departments, ignoring case."""
        for other in self.store.find(DEPARTMENTS, LIVE):
            if other["_id"] == exclude_id:
                continue
            if _same(other.get("name"), name) or _same(other.get("code"), code):
                raise Conflict("Department with this name or code already exists", {"name": name, "code": code})

    def _check_head(self, head: Optional[str]) -> None:
        if head and self.store.find_one(USERS, {"_id": head, **LIVE}) is None:
            raise NotFound("user", head)

    def list_departments(
        self,
        principal: Principal,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Dict[str, Any]:
        """
        List departments the principal may read, sorted by name.

        Below the manager tier that is only the principal's own department.
        """
        window = paginate(page, limit)
        query: Document = dict(LIVE)
        if is_active is not None:
            query["isActive"] = is_active

        departments = [
            doc for doc in self.store.find(DEPARTMENTS, query, sort=[("name", 1)])
            if self.checker.is_allowed(principal, Action.READ, self.kind, self.facts(doc))
        ]
        if search:
            needle = search.lower()
            departments = [
                d for d in departments
                if needle in (d.get("name") or "").lower()
                or needle in (d.get("description") or "").lower()
                or needle in (d.get("code") or "").lower()
            ]

        start = window["skip"]
        return {
            "departments": departments[start:start + window["limit"]],
            **page_info(len(departments), page, limit),
        }

    def get_department(self, principal: Principal, department_id: str) -> Document:
        department = self.load(department_id)
        self.authorize(principal, Action.READ, department)
        return department

    def create_department(self, principal: Principal, data: Dict[str, Any]) -> Document:
        """
        Create a department.

        Raises:
            Forbidden: Below the admin tier
            Conflict: If the name or code is taken (case-insensitive)
            NotFound: If ``head`` names an unknown user
        """
        self.authorize(principal, Action.CREATE, facts=ResourceFacts())
        name = require(data.get("name"), "name").strip()
        code = data.get("code")
        self._check_unique(name, code)
        self._check_head(data.get("head"))

        department = self.store.insert(DEPARTMENTS, {
            "name": name,
            "description": data.get("description", ""),
            "code": code.strip().upper() if code else None,
            "head": data.get("head"),
            "parentDepartment": data.get("parentDepartment"),
            "isActive": True,
            "settings": {**DEFAULT_SETTINGS, **(data.get("settings") or {})},
            "createdBy": principal.id,
            "isDeleted": False,
        })
        logger.info(f"Department '{name}' created by {principal.id}")
        return department

    def update_department(self, principal: Principal, department_id: str, changes: Dict[str, Any]) -> Document:
        department = self.load(department_id)
        self.authorize(principal, Action.UPDATE, department)

        updates = {key: value for key, value in changes.items() if key in EDITABLE}
        if not updates:
            raise ValidationFailed("No updatable fields supplied")
        if "name" in updates:
            updates["name"] = require(updates["name"], "name").strip()
        if updates.get("code"):
            updates["code"] = updates["code"].strip().upper()
        if "name" in updates or "code" in updates:
            self._check_unique(updates.get("name"), updates.get("code"), exclude_id=department_id)
        if "head" in updates:
            self._check_head(updates["head"])
        if updates.get("parentDepartment") == department_id:
            raise ValidationFailed("A department cannot be its own parent", field="parentDepartment")

        updated = self.save(department_id, updates)
        self.publish([self.department_room(department_id)], EventName.DEPARTMENT_UPDATED, updated)
        return updated

    def delete_department(self, principal: Principal, department_id: str) -> None:
        """
        Soft-delete an empty department.

        Raises:
            Conflict: If any user or team still belongs to it
        """
        department = self.load(department_id)
        self.authorize(principal, Action.DELETE, department)

        users = self.store.count(USERS, {"department": department_id, **LIVE})
        teams = self.store.count(TEAMS, {"department": department_id, **LIVE})
        if users or teams:
            raise Conflict(
                "Cannot delete department with existing users or teams",
                {"users": users, "teams": teams},
            )

        self.soft_delete(department_id, principal)
        logger.info(f"Department {department_id} deleted by {principal.id}")
        self.publish(
            [self.department_room(department_id)],
            EventName.DEPARTMENT_DELETED,
            {"departmentId": department_id},
        )

    def list_members(
        self,
        principal: Principal,
        department_id: str,
        role: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Document]:
        """Users in a department, sorted by name, without credentials."""
        department = self.load(department_id)
        self.authorize(principal, Action.READ, department)

        query: Document = {"department": department_id, **LIVE}
        if role:
            query["role"] = role
        members = self.store.find(USERS, query, sort=[("name", 1)])
        if search:
            needle = search.lower()
            members = [
                m for m in members
                if needle in (m.get("name") or "").lower()
                or needle in (m.get("email") or "").lower()
            ]
        return [public_user(doc) for doc in members]
