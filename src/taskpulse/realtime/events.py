"""
Domain events broadcast to rooms.

Event names are part of the client contract and must not change.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..store import utcnow_iso


class EventName(str, Enum):
    # Tasks
    TASK_ASSIGNED = "task-assigned"
    TASK_CREATED = "task-created"
    TASK_UPDATED = "task-updated"
    TASK_DELETED = "task-deleted"
    TASK_STATUS_UPDATED = "task-status-updated"
    TASK_PROGRESS_UPDATED = "task-progress-updated"
    TASK_BLOCKER_ADDED = "task-blocker-added"
    TASK_BLOCKER_UPDATED = "task-blocker-updated"
    TASK_NOTE_ADDED = "task-note-added"
    TASK_REMOVED = "task-removed"
    TASK_REASSIGNED = "task-reassigned"

    # Chat
    NEW_MESSAGE = "new-message"
    MESSAGE_UPDATED = "message-updated"
    MESSAGE_DELETED = "message-deleted"
    MESSAGE_REACTION = "message-reaction"

    # Notifications
    NEW_NOTIFICATION = "new-notification"
    NOTIFICATION_READ = "notification-read"
    NOTIFICATION_DELETED = "notification-deleted"
    NOTIFICATIONS_BULK_READ = "notifications-bulk-read"

    # Team
    MEMBER_ADDED = "member-added"
    MEMBER_UPDATED = "member-updated"
    MEMBER_REMOVED = "member-removed"
    PROFILE_UPDATED = "profile-updated"
    REMOVED_FROM_TEAM = "removed-from-team"

    # Departments
    DEPARTMENT_UPDATED = "department-updated"
    DEPARTMENT_DELETED = "department-deleted"

    # KPIs and files
    KPI_UPDATED = "kpi-updated"
    FILE_SHARED = "file-shared"
    FILE_DELETED = "file-deleted"

    # Analytics
    REPORT_GENERATED = "report-generated"
    PRODUCTIVITY_UPDATED = "productivity-updated"
    EFFICIENCY_UPDATED = "efficiency-updated"
    QUALITY_UPDATED = "quality-updated"


@dataclass(frozen=True)
class Event:
    """
    A named payload published into one room.

    Attributes:
        name: Event name as seen by clients
        room: Room key the event was published to
        payload: JSON-serializable document
        timestamp: ISO-8601 publish time
    """
    name: str
    room: str
    payload: Any
    timestamp: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict:
        return {
            "type": "event",
            "event": self.name,
            "room": self.room,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }
