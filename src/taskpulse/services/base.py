"""
Shared plumbing for resource services.

Every mutating operation follows the same steps:

    1. load the target document (NotFound if absent or soft-deleted)
    2. authorize the principal against facts taken from that document
    3. write the change to the store
    4. publish one event per affected room

Store errors raised in step 3 propagate unchanged, so nothing is published
for a failed write.
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol

from ..auth import Action, PermissionChecker, Principal, ResourceFacts, ResourceKind
from ..errors import NotFound, ValidationFailed
from ..realtime.rooms import RoomKind, room_key
from ..store import DocumentStore, utcnow_iso

Document = Dict[str, Any]

LIVE = {"isDeleted": {"$ne": True}}


class Publisher(Protocol):
    def publish(self, room: str, name: Any, payload: Any) -> None:
        ...

    def publish_many(self, rooms: Iterable[str], name: Any, payload: Any) -> None:
        ...


class ResourceService:
    """
    Base class for services over one document collection.

    Subclasses set ``collection``, ``kind`` and ``resource_name`` and
    implement ``facts``.
    """

    collection: str = ""
    kind: ResourceKind
    resource_name: str = "resource"

    def __init__(
        self,
        store: DocumentStore,
        dispatcher: Publisher,
        checker: Optional[PermissionChecker] = None,
    ):
        """
        Initialize service.

        Args:
            store: Document store
            dispatcher: Event publisher (an EventDispatcher in production)
            checker: Permission checker (defaults to the standard rule table)
        """
        self.store = store
        self.dispatcher = dispatcher
        self.checker = checker or PermissionChecker()

    # ========================================================================
    # Steps
    # ========================================================================

    def load(self, doc_id: str, query: Optional[Document] = None) -> Document:
        """
        Load a live document by id.

        Args:
            doc_id: Document id
            query: Extra filter the document must also match

        Raises:
            NotFound: If the document is absent, soft-deleted or filtered out
        """
        doc = self.store.find_one(self.collection, {"_id": doc_id, **LIVE, **(query or {})})
        if doc is None:
            raise NotFound(self.resource_name, doc_id)
        return doc

    def facts(self, doc: Document) -> ResourceFacts:
        raise NotImplementedError

    def authorize(
        self,
        principal: Principal,
        action: Action,
        doc: Optional[Document] = None,
        facts: Optional[ResourceFacts] = None,
    ) -> None:
        """Authorize against explicit facts, or facts derived from ``doc``."""
        if facts is None and doc is not None:
            facts = self.facts(doc)
        self.checker.authorize(principal, action, self.kind, facts)

    def save(self, doc_id: str, changes: Document) -> Document:
        """
        Apply an update to a live document.

        Raises:
            NotFound: If the document disappeared since it was loaded
        """
        updated = self.store.update_one(self.collection, {"_id": doc_id, **LIVE}, changes)
        if updated is None:
            raise NotFound(self.resource_name, doc_id)
        return updated

    def soft_delete(self, doc_id: str, principal: Principal) -> Document:
        return self.save(doc_id, {
            "isDeleted": True,
            "deletedAt": utcnow_iso(),
            "deletedBy": principal.id,
        })

    def publish(self, rooms: Iterable[Optional[str]], name: Any, payload: Any) -> None:
        """Publish once into each distinct room, in order. Missing rooms are skipped."""
        self.dispatcher.publish_many([room for room in rooms if room], name, payload)

    # ========================================================================
    # Room derivation
    # ========================================================================

    @staticmethod
    def user_room(user_id: Optional[str]) -> Optional[str]:
        return room_key(RoomKind.USER, user_id) if user_id else None

    @staticmethod
    def team_room(team_id: Optional[str]) -> Optional[str]:
        return room_key(RoomKind.TEAM, team_id) if team_id else None

    def rooms_for(self, doc: Document) -> List[Optional[str]]:
        """Assignee room, then team room when the document has a team."""
        return [self.user_room(doc.get("assignedTo")), self.team_room(doc.get("team"))]


def require(value: Any, field: str) -> Any:
    """Raise ValidationFailed if a required field is missing or blank."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationFailed(f"{field} is required", field=field)
    return value


def paginate(page: int, limit: int) -> Dict[str, int]:
    """Convert 1-based page/limit to store skip/limit."""
    if page < 1:
        raise ValidationFailed("page must be at least 1", field="page")
    if limit < 1 or limit > 100:
        raise ValidationFailed("limit must be between 1 and 100", field="limit")
    return {"skip": (page - 1) * limit, "limit": limit}


def page_info(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = (total + limit - 1) // limit
    return {
        "total": total,
        "currentPage": page,
        "totalPages": total_pages,
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }
