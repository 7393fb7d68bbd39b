"""
File metadata service.

Tracks uploaded files (the bytes themselves live elsewhere) and who they
are shared with.
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from ..auth import Action, Principal, ResourceFacts, ResourceKind
from ..errors import NotFound, ValidationFailed
from ..realtime.events import EventName
from ..store import utcnow_iso
from .base import LIVE, Document, ResourceService, require

FILES = "files"
USERS = "users"

SHARE_PERMISSIONS = ("view", "edit", "admin")
MAX_FILE_SIZE = 10 * 1024 * 1024


class FileService(ResourceService):
    collection = FILES
    kind = ResourceKind.FILE
    resource_name = "file"

    def facts(self, doc: Document) -> ResourceFacts:
        return ResourceFacts(
            owner_id=doc.get("uploadedBy"),
            team=doc.get("team"),
            department=doc.get("department"),
            is_public=bool(doc.get("isPublic")),
            shared_with=frozenset(share["user"] for share in doc.get("sharedWith", [])),
        )

    def register_file(self, principal: Principal, data: Dict[str, Any]) -> Document:
        """Record metadata for an uploaded file owned by the principal."""
        self.authorize(principal, Action.CREATE, facts=ResourceFacts(owner_id=principal.id))

        filename = require(data.get("filename"), "filename")
        url = require(data.get("url"), "url")
        size = data.get("fileSize", 0)
        if not isinstance(size, int) or size < 0 or size > MAX_FILE_SIZE:
            raise ValidationFailed(f"fileSize must be between 0 and {MAX_FILE_SIZE}", field="fileSize")

        doc = self.store.insert(FILES, {
            "filename": filename,
            "originalName": data.get("originalName") or filename,
            "url": url,
            "mimeType": data.get("mimeType", "application/octet-stream"),
            "fileSize": size,
            "uploadedBy": principal.id,
            "task": data.get("task"),
            "team": data.get("team"),
            "department": data.get("department"),
            "conversation": data.get("conversation"),
            "isPublic": bool(data.get("isPublic", False)),
            "sharedWith": [],
            "isDeleted": False,
        })
        logger.info(f"File {doc['_id']} registered by {principal.id}")
        return doc

    def get_file(self, principal: Principal, file_id: str) -> Document:
        doc = self.load(file_id)
        self.authorize(principal, Action.READ, doc)
        return doc

    def list_files(
        self,
        principal: Principal,
        task: Optional[str] = None,
        team: Optional[str] = None,
        conversation: Optional[str] = None,
    ) -> List[Document]:
        """List live files the principal may read, newest first."""
        query: Document = dict(LIVE)
        if task:
            query["task"] = task
        if team:
            query["team"] = team
        if conversation:
            query["conversation"] = conversation

        files = self.store.find(FILES, query, sort=[("createdAt", -1)])
        return [
            doc for doc in files
            if self.checker.is_allowed(principal, Action.READ, self.kind, self.facts(doc))
        ]

    def share_file(
        self,
        principal: Principal,
        file_id: str,
        user_id: str,
        permission: str = "view",
    ) -> Document:
        """Share a file with a user, replacing any earlier share for them."""
        doc = self.load(file_id)
        self.authorize(principal, Action.UPDATE, doc)
        if permission not in SHARE_PERMISSIONS:
            raise ValidationFailed(f"Invalid permission: {permission}", field="permission")
        if self.store.find_one(USERS, {"_id": user_id}) is None:
            raise NotFound("user", user_id)

        shares = [share for share in doc.get("sharedWith", []) if share.get("user") != user_id]
        shares.append({"user": user_id, "permission": permission, "sharedAt": utcnow_iso()})

        updated = self.save(file_id, {"sharedWith": shares})
        self.publish([self.user_room(user_id)], EventName.FILE_SHARED, {
            "fileId": file_id,
            "filename": updated.get("originalName"),
            "sharedBy": principal.id,
            "permission": permission,
        })
        return updated

    def delete_file(self, principal: Principal, file_id: str) -> None:
        doc = self.load(file_id)
        self.authorize(principal, Action.DELETE, doc)

        self.soft_delete(file_id, principal)
        logger.info(f"File {file_id} deleted by {principal.id}")
        self.publish(
            [self.user_room(doc.get("uploadedBy")), self.team_room(doc.get("team"))],
            EventName.FILE_DELETED,
            {"fileId": file_id},
        )
