"""
Chat service: conversations and their messages.

Only participants can see a conversation or its messages. All message
events go to the conversation's room.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from ..auth import Action, Principal, ResourceFacts, ResourceKind
from ..errors import Forbidden, NotFound, ValidationFailed
from ..realtime.events import EventName
from ..realtime.rooms import RoomKind, room_key
from ..store import utcnow_iso
from .base import LIVE, Document, ResourceService, page_info, paginate, require

CONVERSATIONS = "conversations"
MESSAGES = "messages"

CONVERSATION_TYPES = ("direct", "group", "team", "project")
MESSAGE_TYPES = ("text", "file", "image", "system")

DEFAULT_SETTINGS = {
    "allowReactions": True,
    "allowEditing": True,
    "allowDeletion": True,
}


def conversation_room(conversation_id: str) -> str:
    return room_key(RoomKind.CONVERSATION, conversation_id)


class ChatService(ResourceService):
    collection = CONVERSATIONS
    kind = ResourceKind.CONVERSATION
    resource_name = "conversation"

    def facts(self, doc: Document) -> ResourceFacts:
        return ResourceFacts(
            owner_id=doc.get("createdBy"),
            team=doc.get("team"),
            participants=frozenset(doc.get("participants", [])),
            admins=frozenset(doc.get("admins", [])),
        )

    def _message_facts(self, message: Document, conversation: Document) -> ResourceFacts:
        return ResourceFacts(
            owner_id=message.get("sender"),
            team=conversation.get("team"),
            participants=frozenset(conversation.get("participants", [])),
            admins=frozenset(conversation.get("admins", [])),
        )

    def _authorize_message(self, principal: Principal, action: Action, facts: ResourceFacts) -> None:
        self.checker.authorize(principal, action, ResourceKind.MESSAGE, facts)

    def _load_conversation(self, conversation_id: str) -> Document:
        return self.load(conversation_id, {"isActive": True})

    def _load_message(self, message_id: str) -> Document:
        message = self.store.find_one(MESSAGES, {"_id": message_id, **LIVE})
        if message is None:
            raise NotFound("message", message_id)
        return message

    def _require_setting(self, principal: Principal, conversation: Document, setting: str, action: Action) -> None:
        settings = {**DEFAULT_SETTINGS, **(conversation.get("settings") or {})}
        if not settings[setting]:
            raise Forbidden(
                user_id=principal.id,
                action=action.value,
                resource=ResourceKind.MESSAGE.value,
                reason=f"{setting}_disabled",
            )

    # ========================================================================
    # Conversations
    # ========================================================================

    def facts_for_conversation(self, conversation_id: str) -> ResourceFacts:
        """
        Facts of a live conversation, for room join checks.

        Raises:
            NotFound: If the conversation does not exist or is inactive
        """
        return self.facts(self._load_conversation(conversation_id))

    def create_conversation(
        self,
        principal: Principal,
        kind: str,
        participants: List[str],
        name: Optional[str] = None,
        team: Optional[str] = None,
        settings: Optional[Dict[str, bool]] = None,
    ) -> Document:
        self.authorize(principal, Action.CREATE, facts=ResourceFacts(owner_id=principal.id, team=team))
        if kind not in CONVERSATION_TYPES:
            raise ValidationFailed(f"Invalid conversation type: {kind}", field="type")
        if not participants:
            raise ValidationFailed("Type and participants are required", field="participants")

        members = list(dict.fromkeys(participants))
        if principal.id not in members:
            members.append(principal.id)

        conversation = self.store.insert(CONVERSATIONS, {
            "name": name or f"{kind.capitalize()} Chat",
            "type": kind,
            "participants": members,
            "admins": [principal.id],
            "createdBy": principal.id,
            "team": team,
            "isActive": True,
            "settings": {**DEFAULT_SETTINGS, **(settings or {})},
            "lastMessage": None,
            "lastActivity": utcnow_iso(),
        })
        logger.info(f"Conversation {conversation['_id']} created by {principal.id}")
        return conversation

    def list_conversations(self, principal: Principal) -> List[Document]:
        return self.store.find(
            CONVERSATIONS,
            {"participants": principal.id, "isActive": True, **LIVE},
            sort=[("lastActivity", -1)],
        )

    def get_conversation(self, principal: Principal, conversation_id: str) -> Document:
        conversation = self._load_conversation(conversation_id)
        self.authorize(principal, Action.READ, conversation)
        return conversation

    def delete_conversation(self, principal: Principal, conversation_id: str) -> None:
        """Deactivate a conversation. Only its admins or creator may do so."""
        conversation = self._load_conversation(conversation_id)
        self.authorize(principal, Action.DELETE, conversation)
        self.save(conversation_id, {"isActive": False})

    # ========================================================================
    # Messages
    # ========================================================================

    def list_messages(
        self,
        principal: Principal,
        conversation_id: str,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        """Page through a conversation's messages, newest page first, oldest first within a page."""
        conversation = self._load_conversation(conversation_id)
        self._authorize_message(principal, Action.READ, self.facts(conversation))

        window = paginate(page, limit)
        query = {"conversation": conversation_id, **LIVE}
        messages = self.store.find(MESSAGES, query, sort=[("createdAt", -1)], **window)
        total = self.store.count(MESSAGES, query)

        return {
            "messages": list(reversed(messages)),
            "pagination": page_info(total, page, limit),
        }

    def send_message(
        self,
        principal: Principal,
        conversation_id: str,
        content: str,
        kind: str = "text",
        reply_to: Optional[str] = None,
    ) -> Document:
        conversation = self._load_conversation(conversation_id)
        self._authorize_message(principal, Action.CREATE, self.facts(conversation))
        require(content, "content")
        if kind not in MESSAGE_TYPES:
            raise ValidationFailed(f"Invalid message type: {kind}", field="type")

        message = self.store.insert(MESSAGES, {
            "conversation": conversation_id,
            "sender": principal.id,
            "content": content,
            "type": kind,
            "replyTo": reply_to,
            "reactions": [],
            "isEdited": False,
            "isDeleted": False,
        })
        self.save(conversation_id, {"lastMessage": message["_id"], "lastActivity": message["createdAt"]})

        self.publish([conversation_room(conversation_id)], EventName.NEW_MESSAGE, message)
        return message

    def update_message(self, principal: Principal, message_id: str, content: str) -> Document:
        message = self._load_message(message_id)
        conversation = self._load_conversation(message["conversation"])
        self._authorize_message(principal, Action.UPDATE, self._message_facts(message, conversation))
        self._require_setting(principal, conversation, "allowEditing", Action.UPDATE)
        require(content, "content")

        updated = self.store.update_one(
            MESSAGES,
            {"_id": message_id, **LIVE},
            {"content": content, "isEdited": True, "editedAt": utcnow_iso()},
        )
        if updated is None:
            raise NotFound("message", message_id)

        self.publish([conversation_room(conversation["_id"])], EventName.MESSAGE_UPDATED, {
            "messageId": message_id,
            "content": updated["content"],
            "editedAt": updated["editedAt"],
            "isEdited": True,
        })
        return updated

    def delete_message(self, principal: Principal, message_id: str) -> None:
        """Soft-delete a message. Its sender or a conversation admin may do so."""
        message = self._load_message(message_id)
        conversation = self._load_conversation(message["conversation"])
        self._authorize_message(principal, Action.DELETE, self._message_facts(message, conversation))
        self._require_setting(principal, conversation, "allowDeletion", Action.DELETE)

        updated = self.store.update_one(
            MESSAGES,
            {"_id": message_id, **LIVE},
            {"isDeleted": True, "deletedAt": utcnow_iso(), "deletedBy": principal.id},
        )
        if updated is None:
            raise NotFound("message", message_id)

        self.publish(
            [conversation_room(conversation["_id"])],
            EventName.MESSAGE_DELETED,
            {"messageId": message_id},
        )

    def react(self, principal: Principal, message_id: str, emoji: str) -> List[Dict[str, Any]]:
        """Set the principal's reaction on a message, replacing any previous one."""
        message = self._load_message(message_id)
        conversation = self._load_conversation(message["conversation"])
        self._authorize_message(principal, Action.READ, self._message_facts(message, conversation))
        self._require_setting(principal, conversation, "allowReactions", Action.UPDATE)
        require(emoji, "emoji")

        reactions = [r for r in message.get("reactions", []) if r.get("user") != principal.id]
        reactions.append({"user": principal.id, "emoji": emoji, "createdAt": utcnow_iso()})

        updated = self.store.update_one(MESSAGES, {"_id": message_id, **LIVE}, {"reactions": reactions})
        if updated is None:
            raise NotFound("message", message_id)

        self.publish([conversation_room(conversation["_id"])], EventName.MESSAGE_REACTION, {
            "messageId": message_id,
            "reactions": updated["reactions"],
        })
        return updated["reactions"]
