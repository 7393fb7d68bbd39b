"""
Notification service.

Notifications are private to their recipient. Lookups are always scoped to
the calling principal, so another user's notification is reported as not
found rather than forbidden.
"""

from typing import Any, Dict, List, Optional

from ..auth import Action, Principal, ResourceFacts, ResourceKind
from ..errors import ValidationFailed
from ..realtime.events import EventName
from ..realtime.rooms import RoomKind, room_key
from ..store import utcnow_iso
from .base import LIVE, Document, ResourceService, require

NOTIFICATIONS = "notifications"

TYPES = ("task", "message", "reminder", "achievement", "system", "team", "kpi")
PRIORITIES = ("low", "medium", "high", "urgent")


def notifications_room(user_id: str) -> str:
    return room_key(RoomKind.NOTIFICATIONS, user_id)


class NotificationService(ResourceService):
    collection = NOTIFICATIONS
    kind = ResourceKind.NOTIFICATION
    resource_name = "notification"

    def facts(self, doc: Document) -> ResourceFacts:
        return ResourceFacts(owner_id=doc.get("user"))

    def list_notifications(self, principal: Principal, unread_only: bool = False) -> List[Document]:
        query: Document = {"user": principal.id, **LIVE}
        if unread_only:
            query["read"] = False
        return self.store.find(NOTIFICATIONS, query, sort=[("createdAt", -1)])

    def unread_count(self, principal: Principal) -> int:
        return self.store.count(NOTIFICATIONS, {"user": principal.id, "read": False, **LIVE})

    def create_notification(
        self,
        principal: Principal,
        user_id: str,
        kind: str,
        title: str,
        message: str,
        priority: str = "medium",
        related_entity: Optional[Dict[str, Any]] = None,
    ) -> Document:
        """
        Create a notification for a user and push it to their notifications room.

        Managers may notify anyone; other principals only themselves.
        """
        self.authorize(principal, Action.CREATE, facts=ResourceFacts(owner_id=user_id))
        require(title, "title")
        require(message, "message")
        if kind not in TYPES:
            raise ValidationFailed(f"Invalid notification type: {kind}", field="type")
        if priority not in PRIORITIES:
            raise ValidationFailed(f"Invalid priority: {priority}", field="priority")

        notification = self.store.insert(NOTIFICATIONS, {
            "user": user_id,
            "type": kind,
            "title": title,
            "message": message,
            "priority": priority,
            "read": False,
            "readAt": None,
            "relatedEntity": related_entity,
            "isDeleted": False,
        })
        self.publish([notifications_room(user_id)], EventName.NEW_NOTIFICATION, notification)
        return notification

    def mark_read(self, principal: Principal, notification_id: str) -> Document:
        notification = self.load(notification_id, {"user": principal.id})
        self.authorize(principal, Action.UPDATE, notification)

        updated = self.save(notification_id, {"read": True, "readAt": utcnow_iso()})
        self.publish(
            [notifications_room(principal.id)],
            EventName.NOTIFICATION_READ,
            {"notificationId": notification_id},
        )
        return updated

    def mark_all_read(self, principal: Principal) -> int:
        """Mark every unread notification of the principal as read; returns the count."""
        count = self.store.update_many(
            NOTIFICATIONS,
            {"user": principal.id, "read": False, **LIVE},
            {"read": True, "readAt": utcnow_iso()},
        )
        self.publish(
            [notifications_room(principal.id)],
            EventName.NOTIFICATIONS_BULK_READ,
            {"count": count},
        )
        return count

    def delete_notification(self, principal: Principal, notification_id: str) -> None:
        notification = self.load(notification_id, {"user": principal.id})
        self.authorize(principal, Action.DELETE, notification)

        self.soft_delete(notification_id, principal)
        self.publish(
            [notifications_room(principal.id)],
            EventName.NOTIFICATION_DELETED,
            {"notificationId": notification_id},
        )
