"""
Tests for file metadata and sharing.
"""

import pytest

from taskpulse.errors import Forbidden, NotFound, ValidationFailed
from taskpulse.services import FileService
from taskpulse.services.files import MAX_FILE_SIZE


@pytest.fixture
def files(people, dispatcher):
    return FileService(people, dispatcher)


@pytest.fixture
def upload(files, employee):
    return files.register_file(employee, {
        "filename": "a1b2.pdf",
        "originalName": "requirements.pdf",
        "url": "/uploads/a1b2.pdf",
        "mimeType": "application/pdf",
        "fileSize": 2048,
        "team": "T1",
    })


class TestRegister:
    """Test file metadata registration."""

    def test_register(self, upload):
        assert upload["uploadedBy"] == "U2"
        assert upload["sharedWith"] == []

    def test_too_large(self, files, employee):
        with pytest.raises(ValidationFailed):
            files.register_file(employee, {"filename": "big.iso", "url": "/u/big.iso", "fileSize": MAX_FILE_SIZE + 1})


class TestAccess:
    """Test read access, sharing and deletion."""

    def test_private_until_shared(self, files, upload, employee, outsider, dispatcher):
        with pytest.raises(Forbidden):
            files.get_file(outsider, upload["_id"])
        assert files.list_files(outsider) == []

        files.share_file(employee, upload["_id"], "U3")

        assert files.get_file(outsider, upload["_id"])["_id"] == upload["_id"]
        assert [f["_id"] for f in files.list_files(outsider)] == [upload["_id"]]
        assert dispatcher.events[-1][:2] == ("user:U3", "file-shared")

    def test_reshare_replaces_permission(self, files, upload, employee):
        """Sharing again with the same user keeps one entry."""
        files.share_file(employee, upload["_id"], "U3", "view")
        doc = files.share_file(employee, upload["_id"], "U3", "edit")
        assert [(s["user"], s["permission"]) for s in doc["sharedWith"]] == [("U3", "edit")]

    def test_share_checks(self, files, upload, employee, outsider):
        with pytest.raises(Forbidden):
            files.share_file(outsider, upload["_id"], "U3")
        with pytest.raises(NotFound):
            files.share_file(employee, upload["_id"], "ghost")
        with pytest.raises(ValidationFailed):
            files.share_file(employee, upload["_id"], "U3", "own")

    def test_delete(self, files, upload, employee, outsider, manager, dispatcher):
        with pytest.raises(Forbidden):
            files.delete_file(outsider, upload["_id"])

        dispatcher.events.clear()
        files.delete_file(employee, upload["_id"])

        assert dispatcher.routed() == [("user:U2", "file-deleted"), ("team:T1", "file-deleted")]
        with pytest.raises(NotFound):
            files.get_file(manager, upload["_id"])
