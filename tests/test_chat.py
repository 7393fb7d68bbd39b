"""
Tests for conversations and messages.
"""

import pytest

from taskpulse.auth import Principal
from taskpulse.errors import Forbidden, NotFound, ValidationFailed
from taskpulse.services import ChatService


@pytest.fixture
def chat(people, dispatcher):
    return ChatService(people, dispatcher)


@pytest.fixture
def conversation(chat, manager, dispatcher):
    return chat.create_conversation(manager, "group", ["U2", "U4"], name="Release")


class TestConversations:
    def test_creator_is_participant_and_admin(self, conversation):
        assert conversation["participants"] == ["U2", "U4", "M1"]
        assert conversation["admins"] == ["M1"]
        assert conversation["settings"] == {"allowReactions": True, "allowEditing": True, "allowDeletion": True}

    def test_invalid_type(self, chat, manager):
        with pytest.raises(ValidationFailed):
            chat.create_conversation(manager, "broadcast", ["U2"])

    def test_only_participants_can_read(self, chat, conversation, employee, outsider):
        assert chat.get_conversation(employee, conversation["_id"])["name"] == "Release"
        with pytest.raises(Forbidden):
            chat.get_conversation(outsider, conversation["_id"])

    def test_list(self, chat, conversation, employee, outsider):
        assert [c["_id"] for c in chat.list_conversations(employee)] == [conversation["_id"]]
        assert chat.list_conversations(outsider) == []

    def test_delete_deactivates(self, chat, conversation, manager, employee):
        with pytest.raises(Forbidden):
            chat.delete_conversation(employee, conversation["_id"])

        chat.delete_conversation(manager, conversation["_id"])
        with pytest.raises(NotFound):
            chat.facts_for_conversation(conversation["_id"])
        assert chat.list_conversations(employee) == []


class TestMessages:
    def test_send_publishes_to_conversation_room(self, chat, conversation, employee, dispatcher, store):
        message = chat.send_message(employee, conversation["_id"], "Build is green")

        room = f"conversation:{conversation['_id']}"
        assert dispatcher.events == [(room, "new-message", message)]
        assert store.get("conversations", conversation["_id"])["lastMessage"] == message["_id"]

    def test_non_participant_cannot_send(self, chat, conversation, outsider, dispatcher, store):
        with pytest.raises(Forbidden):
            chat.send_message(outsider, conversation["_id"], "Hi all")
        assert dispatcher.events == []
        assert store.count("messages") == 0

    def test_edit_own_message_only(self, chat, conversation, employee, manager, dispatcher):
        message = chat.send_message(employee, conversation["_id"], "Bulid is green")
        dispatcher.events.clear()

        with pytest.raises(Forbidden):
            chat.update_message(manager, message["_id"], "Fixed your typo")

        updated = chat.update_message(employee, message["_id"], "Build is green")
        assert updated["isEdited"] is True
        assert dispatcher.names() == ["message-updated"]
        assert dispatcher.events[0][2]["content"] == "Build is green"

    def test_editing_disabled(self, chat, manager, employee):
        locked = chat.create_conversation(manager, "team", ["U2"], team="T1", settings={"allowEditing": False})
        message = chat.send_message(employee, locked["_id"], "Final answer")

        with pytest.raises(Forbidden) as exc:
            chat.update_message(employee, message["_id"], "Changed my mind")
        assert exc.value.reason == "allowEditing_disabled"

    def test_admin_may_delete_any_message(self, chat, conversation, employee, manager, dispatcher):
        message = chat.send_message(employee, conversation["_id"], "Oops, secret")
        dispatcher.events.clear()

        chat.delete_message(manager, message["_id"])

        assert dispatcher.names() == ["message-deleted"]
        assert chat.list_messages(employee, conversation["_id"])["messages"] == []
        with pytest.raises(NotFound):
            chat.delete_message(manager, message["_id"])

    def test_participant_cannot_delete_others_message(self, chat, conversation, employee, people):
        message = chat.send_message(employee, conversation["_id"], "Mine")
        with pytest.raises(Forbidden):
            chat.delete_message(Principal(id="U4", role="employee", team="T1"), message["_id"])

    def test_reaction_replaces_previous(self, chat, conversation, employee, dispatcher):
        message = chat.send_message(employee, conversation["_id"], "Ship it?")
        chat.react(employee, message["_id"], "👍")
        reactions = chat.react(employee, message["_id"], "🚀")

        assert [(r["user"], r["emoji"]) for r in reactions] == [("U2", "🚀")]
        assert dispatcher.names()[-1] == "message-reaction"

    def test_list_messages_paginates(self, chat, conversation, employee, outsider):
        for i in range(3):
            chat.send_message(employee, conversation["_id"], f"message {i}")

        page = chat.list_messages(employee, conversation["_id"], page=1, limit=2)
        assert len(page["messages"]) == 2
        assert page["pagination"]["total"] == 3
        assert page["pagination"]["hasNext"] is True

        with pytest.raises(Forbidden):
            chat.list_messages(outsider, conversation["_id"])
