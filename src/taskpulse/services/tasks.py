"""
Task service.

Tasks are visible to managers, their creator and assignee, their team, and
everyone when public. Every mutation is announced to the assignee's user
room and, when the task has a team, to the team room.
"""

from typing import Any, Dict, Optional

from loguru import logger

from ..auth import Action, Principal, ResourceFacts, ResourceKind, role_tier
from ..auth.permissions import MANAGER_TIER
from ..errors import NotFound, ValidationFailed
from ..realtime.events import EventName
from ..store import utcnow_iso
from ..store.database import new_id
from .base import LIVE, Document, ResourceService, page_info, paginate, require

TASKS = "tasks"
USERS = "users"

STATUSES = ("pending", "assigned", "in_progress", "completed", "overdue", "blocked", "cancelled")
PRIORITIES = ("low", "medium", "high", "urgent")

# Fields a plain update may change
EDITABLE = (
    "title",
    "description",
    "status",
    "priority",
    "deadline",
    "progress",
    "isPublic",
    "team",
    "department",
)

SORTABLE = ("createdAt", "updatedAt", "deadline", "priority", "status", "title", "progress")


def _check_status(status: str) -> None:
    if status not in STATUSES:
        raise ValidationFailed(f"Invalid status: {status}", field="status")


def _check_priority(priority: str) -> None:
    if priority not in PRIORITIES:
        raise ValidationFailed(f"Invalid priority: {priority}", field="priority")


def _check_progress(progress: Any) -> None:
    if not isinstance(progress, (int, float)) or isinstance(progress, bool) or not 0 <= progress <= 100:
        raise ValidationFailed("progress must be between 0 and 100", field="progress")


def _completion_fields(principal: Principal) -> Document:
    return {"completedAt": utcnow_iso(), "completedBy": principal.id, "progress": 100}


class TaskService(ResourceService):
    """Task CRUD, workflow and assignment."""

    collection = TASKS
    kind = ResourceKind.TASK
    resource_name = "task"

    def facts(self, doc: Document) -> ResourceFacts:
        return ResourceFacts(
            owner_id=doc.get("createdBy"),
            assignee_id=doc.get("assignedTo"),
            team=doc.get("team"),
            department=doc.get("department"),
            is_public=bool(doc.get("isPublic")),
        )

    def _load_user(self, user_id: str) -> Document:
        user = self.store.find_one(USERS, {"_id": user_id})
        if user is None:
            raise NotFound("user", user_id)
        return user

    def _comment(self, principal: Principal, text: str, kind: str) -> Document:
        return {
            "_id": new_id(),
            "user": principal.id,
            "text": text,
            "type": kind,
            "createdAt": utcnow_iso(),
        }

    # ========================================================================
    # Queries
    # ========================================================================

    def list_tasks(
        self,
        principal: Principal,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        assigned_to: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        """
        List tasks visible to the principal.

        Below the manager tier only tasks the principal created, is assigned
        to, or that are public are listed.
        """
        window = paginate(page, limit)
        if sort_by not in SORTABLE:
            raise ValidationFailed(f"Cannot sort by {sort_by}", field="sortBy")

        query: Document = dict(LIVE)
        if status:
            query["status"] = status
        if priority:
            query["priority"] = priority
        if assigned_to:
            query["assignedTo"] = assigned_to
        if role_tier(principal.role) < MANAGER_TIER:
            query["$or"] = [
                {"assignedTo": principal.id},
                {"createdBy": principal.id},
                {"isPublic": True},
            ]

        tasks = self.store.find(
            TASKS, query, sort=[(sort_by, -1 if sort_order == "desc" else 1)]
        )
        if search:
            needle = search.lower()
            tasks = [
                t for t in tasks
                if needle in (t.get("title") or "").lower()
                or needle in (t.get("description") or "").lower()
            ]

        total = len(tasks)
        start = window["skip"]
        return {
            "tasks": tasks[start:start + window["limit"]],
            **page_info(total, page, limit),
        }

    def get_task(self, principal: Principal, task_id: str) -> Document:
        task = self.load(task_id)
        self.authorize(principal, Action.READ, task)
        return task

    # ========================================================================
    # Mutations
    # ========================================================================

    def create_task(self, principal: Principal, data: Dict[str, Any]) -> Document:
        """
        Create a task and announce it.

        Publishes ``task-assigned`` to the assignee and ``task-created`` to
        the team.
        """
        self.authorize(principal, Action.CREATE, facts=ResourceFacts(
            team=data.get("team"), department=data.get("department"),
        ))

        title = require(data.get("title"), "title")
        assignee = require(data.get("assignedTo"), "assignedTo")
        priority = data.get("priority") or "medium"
        _check_priority(priority)
        self._load_user(assignee)

        task = self.store.insert(TASKS, {
            "title": title,
            "description": data.get("description", ""),
            "assignedTo": assignee,
            "assignedBy": principal.id,
            "createdBy": principal.id,
            "team": data.get("team"),
            "department": data.get("department"),
            "status": "pending",
            "priority": priority,
            "deadline": data.get("deadline"),
            "progress": 0,
            "isPublic": bool(data.get("isPublic", False)),
            "tags": list(data.get("tags") or []),
            "comments": [],
            "blockers": [],
            "isDeleted": False,
        })

        logger.info(f"Task {task['_id']} created by {principal.id} for {assignee}")
        self.publish([self.user_room(assignee)], EventName.TASK_ASSIGNED, task)
        self.publish([self.team_room(task.get("team"))], EventName.TASK_CREATED, task)
        return task

    def update_task(self, principal: Principal, task_id: str, changes: Dict[str, Any]) -> Document:
        task = self.load(task_id)
        self.authorize(principal, Action.UPDATE, task)

        updates = {key: value for key, value in changes.items() if key in EDITABLE}
        if not updates:
            raise ValidationFailed("No updatable fields supplied")
        if "title" in updates:
            require(updates["title"], "title")
        if "status" in updates:
            _check_status(updates["status"])
        if "priority" in updates:
            _check_priority(updates["priority"])
        if "progress" in updates:
            _check_progress(updates["progress"])
        if updates.get("status") == "completed" and task.get("status") != "completed":
            updates.update(_completion_fields(principal))

        updated = self.save(task_id, {"$set": updates})
        # A team move also notifies the old team room
        self.publish(self.rooms_for(task) + self.rooms_for(updated), EventName.TASK_UPDATED, updated)
        return updated

    def delete_task(self, principal: Principal, task_id: str) -> None:
        task = self.load(task_id)
        self.authorize(principal, Action.DELETE, task)

        self.soft_delete(task_id, principal)
        logger.info(f"Task {task_id} deleted by {principal.id}")
        self.publish(self.rooms_for(task), EventName.TASK_DELETED, {"taskId": task_id})

    def update_status(
        self,
        principal: Principal,
        task_id: str,
        status: str,
        notes: Optional[str] = None,
    ) -> Document:
        """
        Change a task's status, optionally with a note.

        Publishes ``task-status-updated`` and then, when a note was given,
        ``task-note-added``.
        """
        task = self.load(task_id)
        self.authorize(principal, Action.UPDATE, task)
        _check_status(status)

        fields: Document = {"status": status}
        if status == "completed":
            fields.update(_completion_fields(principal))

        changes: Document = {"$set": fields}
        comment = None
        if notes:
            comment = self._comment(
                principal,
                f"Status changed from {task.get('status')} to {status}: {notes}",
                "status_change",
            )
            changes["$push"] = {"comments": comment}

        updated = self.save(task_id, changes)
        rooms = self.rooms_for(updated)
        self.publish(rooms, EventName.TASK_STATUS_UPDATED, {"taskId": task_id, "status": status})
        if comment:
            self.publish(rooms, EventName.TASK_NOTE_ADDED, {"taskId": task_id, "comment": comment})
        return updated

    def update_progress(
        self,
        principal: Principal,
        task_id: str,
        progress: float,
        notes: Optional[str] = None,
    ) -> Document:
        task = self.load(task_id)
        self.authorize(principal, Action.UPDATE, task)
        _check_progress(progress)

        fields: Document = {"progress": progress}
        if notes:
            fields["notes"] = notes

        updated = self.save(task_id, {"$set": fields})
        self.publish(self.rooms_for(updated), EventName.TASK_PROGRESS_UPDATED, updated)
        return updated

    def add_note(self, principal: Principal, task_id: str, text: str, kind: str = "comment") -> Document:
        task = self.load(task_id)
        self.authorize(principal, Action.UPDATE, task)
        require(text, "text")

        comment = self._comment(principal, text, kind)
        updated = self.save(task_id, {"$push": {"comments": comment}})
        self.publish(self.rooms_for(updated), EventName.TASK_NOTE_ADDED, {"taskId": task_id, "comment": comment})
        return updated

    def add_blocker(
        self,
        principal: Principal,
        task_id: str,
        description: str,
        kind: Optional[str] = None,
        estimated_resolution: Optional[str] = None,
    ) -> Document:
        task = self.load(task_id)
        self.authorize(principal, Action.UPDATE, task)
        require(description, "description")

        blocker = {
            "_id": new_id(),
            "description": description,
            "type": kind,
            "estimatedResolution": estimated_resolution,
            "reportedBy": principal.id,
            "reportedAt": utcnow_iso(),
            "status": "active",
            "resolved": False,
        }
        updated = self.save(task_id, {"$push": {"blockers": blocker}})
        self.publish(self.rooms_for(updated), EventName.TASK_BLOCKER_ADDED, {"taskId": task_id, "blocker": blocker})
        return updated

    def resolve_blocker(
        self,
        principal: Principal,
        task_id: str,
        blocker_id: str,
        resolved: bool = True,
    ) -> Document:
        task = self.load(task_id)
        self.authorize(principal, Action.UPDATE, task)

        blockers = [dict(b) for b in task.get("blockers", [])]
        for blocker in blockers:
            if blocker.get("_id") == blocker_id:
                break
        else:
            raise NotFound("blocker", blocker_id)

        blocker["resolved"] = resolved
        blocker["status"] = "resolved" if resolved else "active"
        blocker["resolvedAt"] = utcnow_iso() if resolved else None
        blocker["resolvedBy"] = principal.id if resolved else None

        updated = self.save(task_id, {"$set": {"blockers": blockers}})
        self.publish(self.rooms_for(updated), EventName.TASK_BLOCKER_UPDATED, updated)
        return updated

    # ========================================================================
    # Assignment
    # ========================================================================

    def _assignment_facts(self, task: Document, user: Document) -> ResourceFacts:
        base = self.facts(task)
        return ResourceFacts(
            owner_id=base.owner_id,
            assignee_id=base.assignee_id,
            team=base.team,
            department=base.department,
            is_public=base.is_public,
            target_user_id=user["_id"],
            target_team=user.get("team"),
        )

    def assign_task(
        self,
        principal: Principal,
        task_id: str,
        user_id: str,
        priority: Optional[str] = None,
        deadline: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Document:
        """
        Assign a task to a user.

        Managers may only assign to members of their own team.
        """
        task = self.load(task_id)
        user = self._load_user(user_id)
        self.authorize(principal, Action.ASSIGN, facts=self._assignment_facts(task, user))

        fields: Document = {"assignedTo": user_id, "assignedBy": principal.id, "status": "assigned"}
        if priority:
            _check_priority(priority)
            fields["priority"] = priority
        if deadline:
            fields["deadline"] = deadline

        changes: Document = {"$set": fields}
        if notes:
            changes["$push"] = {"comments": self._comment(principal, f"Task reassigned: {notes}", "assignment")}

        updated = self.save(task_id, changes)
        logger.info(f"Task {task_id} assigned to {user_id} by {principal.id}")
        self.publish(self.rooms_for(updated), EventName.TASK_ASSIGNED, updated)
        return updated

    def reassign_task(
        self,
        principal: Principal,
        task_id: str,
        new_user_id: str,
        reason: Optional[str] = None,
    ) -> Document:
        """
        Move a task to another user.

        Publishes ``task-removed`` to the previous assignee, ``task-assigned``
        to the new one and ``task-reassigned`` to the team.
        """
        task = self.load(task_id)
        user = self._load_user(new_user_id)
        self.authorize(principal, Action.ASSIGN, facts=self._assignment_facts(task, user))

        previous = task.get("assignedTo")
        changes: Document = {
            "$set": {"assignedTo": new_user_id, "assignedBy": principal.id, "status": "assigned"},
        }
        if reason:
            changes["$push"] = {"comments": self._comment(principal, f"Task reassigned: {reason}", "reassignment")}

        updated = self.save(task_id, changes)
        logger.info(f"Task {task_id} reassigned from {previous} to {new_user_id}")
        self.publish([self.user_room(previous)], EventName.TASK_REMOVED, {"taskId": task_id})
        self.publish([self.user_room(new_user_id)], EventName.TASK_ASSIGNED, updated)
        self.publish([self.team_room(updated.get("team"))], EventName.TASK_REASSIGNED, updated)
        return updated

    def approve_task(self, principal: Principal, task_id: str) -> Document:
        task = self.load(task_id)
        self.authorize(principal, Action.APPROVE, task)
        if task.get("status") != "completed":
            raise ValidationFailed("Only completed tasks can be approved", field="status")

        updated = self.save(task_id, {"$set": {"approvedBy": principal.id, "approvedAt": utcnow_iso()}})
        self.publish(self.rooms_for(updated), EventName.TASK_UPDATED, updated)
        return updated
