"""
SQLite-backed document store.

Thread-safe store of JSON documents addressed by (collection, filter).
Filters and updates follow a small subset of the MongoDB query language,
which is what the resource services were written against:

    filters:  {"field": value}, {"a.b": value}, {"field": {"$in": [...]}},
              {"field": {"$ne": v}}, {"field": {"$exists": bool}},
              {"$or": [filter, ...]}; a scalar matches a list field that
              contains it.
    updates:  plain {"field": value} (same as $set), $set, $unset, $push,
              $addToSet, $pull, $inc.

All operations are protected by a threading.RLock; every call opens its own
connection so reads always reflect prior committed writes.
"""

import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from loguru import logger

from ..errors import Conflict, Internal, NotFound

Document = Dict[str, Any]
Filter = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]

_MISSING = object()


def utcnow_iso() -> str:
    """Current UTC time as an ISO-8601 string (the stored timestamp format)."""
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


class DocumentStore:
    """
    Thread-safe document store.

    Each document is one row of the ``documents`` table holding the JSON body.
    Documents get an ``_id`` on insert (unless one is supplied) and
    ``createdAt``/``updatedAt`` timestamps maintained by the store.
    """

    def __init__(self, db_path: Path):
        """
        Initialize store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._unique: Dict[str, Set[str]] = {}
        self._init_db()

    def _init_db(self):
        """Create tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, self._connection("init") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    body TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, doc_id)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)"
            )

        logger.info(f"Document store initialized: {self.db_path}")

    @contextmanager
    def _connection(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success and map sqlite errors."""
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            logger.error(f"Store connection failed during {operation}: {e}")
            raise Internal(operation, e) from e

        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            logger.warning(f"Integrity error during {operation}: {e}")
            raise Conflict("Document already exists", {"operation": operation}) from e
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Store error during {operation}: {e}")
            raise Internal(operation, e) from e
        finally:
            conn.close()

    def ensure_unique(self, collection: str, field: str) -> None:
        """Declare that no two live documents of a collection share a field value."""
        with self._lock:
            self._unique.setdefault(collection, set()).add(field)

    # ========================================================================
    # Reads
    # ========================================================================

    def _load(self, conn: sqlite3.Connection, collection: str, query: Optional[Filter]) -> List[Document]:
        doc_id = query.get("_id") if query else None
        if isinstance(doc_id, str):
            rows = conn.execute(
                "SELECT body FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT body FROM documents WHERE collection = ? ORDER BY created_at, rowid",
                (collection,),
            ).fetchall()

        docs = [json.loads(row[0]) for row in rows]
        if not query:
            return docs
        return [doc for doc in docs if matches(doc, query)]

    def find(
        self,
        collection: str,
        query: Optional[Filter] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """
        Find documents matching a filter.

        Args:
            collection: Collection name
            query: Filter document (None matches everything)
            sort: Sequence of (field, direction) pairs; direction -1 is descending
            skip: Number of matches to skip
            limit: Maximum number of documents returned

        Returns:
            List of matching documents
        """
        with self._lock, self._connection(f"find {collection}") as conn:
            docs = self._load(conn, collection, query)

        for field, direction in reversed(list(sort or [])):
            docs.sort(key=lambda d: _sort_key(resolve(d, field)), reverse=direction < 0)

        if skip:
            docs = docs[skip:]
        if limit is not None:
            docs = docs[:limit]
        return docs

    def find_one(self, collection: str, query: Filter) -> Optional[Document]:
        """Return the first matching document, or None."""
        docs = self.find(collection, query, limit=1)
        return docs[0] if docs else None

    def get(self, collection: str, doc_id: str) -> Document:
        """
        Get a document by id.

        Raises:
            NotFound: If no document has this id
        """
        doc = self.find_one(collection, {"_id": doc_id})
        if doc is None:
            raise NotFound(collection.rstrip("s"), doc_id)
        return doc

    def count(self, collection: str, query: Optional[Filter] = None) -> int:
        return len(self.find(collection, query))

    # ========================================================================
    # Writes
    # ========================================================================

    def insert(self, collection: str, document: Document) -> Document:
        """
        Insert a document.

        Args:
            collection: Collection name
            document: Document body; ``_id`` is generated when absent

        Returns:
            The stored document including ``_id`` and timestamps

        Raises:
            Conflict: If the id or a unique field collides
        """
        now = utcnow_iso()
        doc = dict(document)
        doc.setdefault("_id", new_id())
        doc.setdefault("createdAt", now)
        doc["updatedAt"] = now

        with self._lock, self._connection(f"insert {collection}") as conn:
            self._check_unique(conn, collection, doc)
            conn.execute(
                """
                INSERT INTO documents (collection, doc_id, body, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (collection, doc["_id"], json.dumps(doc), doc["createdAt"], now),
            )

        logger.debug(f"Inserted {collection}/{doc['_id']}")
        return doc

    def update_one(self, collection: str, query: Filter, changes: Dict[str, Any]) -> Optional[Document]:
        """
        Apply an update to the first matching document.

        Returns:
            The updated document, or None if nothing matched
        """
        with self._lock, self._connection(f"update {collection}") as conn:
            docs = self._load(conn, collection, query)
            if not docs:
                return None
            updated = self._write_update(conn, collection, docs[0], changes)

        return updated

    def update_many(self, collection: str, query: Filter, changes: Dict[str, Any]) -> int:
        """Apply an update to every matching document; returns the count."""
        with self._lock, self._connection(f"update {collection}") as conn:
            docs = self._load(conn, collection, query)
            for doc in docs:
                self._write_update(conn, collection, doc, changes)

        return len(docs)

    def delete(self, collection: str, query: Filter) -> int:
        """Physically remove matching documents; returns the count."""
        with self._lock, self._connection(f"delete {collection}") as conn:
            docs = self._load(conn, collection, query)
            conn.executemany(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                [(collection, doc["_id"]) for doc in docs],
            )

        if docs:
            logger.debug(f"Deleted {len(docs)} document(s) from {collection}")
        return len(docs)

    def _write_update(
        self,
        conn: sqlite3.Connection,
        collection: str,
        doc: Document,
        changes: Dict[str, Any],
    ) -> Document:
        apply_update(doc, changes)
        doc["updatedAt"] = utcnow_iso()
        self._check_unique(conn, collection, doc)
        conn.execute(
            "UPDATE documents SET body = ?, updated_at = ? WHERE collection = ? AND doc_id = ?",
            (json.dumps(doc), doc["updatedAt"], collection, doc["_id"]),
        )
        return doc

    def _check_unique(self, conn: sqlite3.Connection, collection: str, doc: Document) -> None:
        fields = self._unique.get(collection)
        if not fields:
            return

        for field in fields:
            value = resolve(doc, field)
            if value is _MISSING or value is None:
                continue
            for other in self._load(conn, collection, {field: value}):
                if other["_id"] != doc["_id"]:
                    raise Conflict(
                        f"A {collection.rstrip('s')} with this {field} already exists",
                        {"field": field},
                    )


# ============================================================================
# Query language
# ============================================================================

def resolve(doc: Any, path: str) -> Any:
    """Resolve a dotted path inside a document; returns _MISSING if absent."""
    current = doc
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _is_operator_dict(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and all(k.startswith("$") for k in value)


def matches(doc: Document, query: Filter) -> bool:
    """Return True if a document satisfies a filter."""
    for key, expected in query.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in expected):
                return False
            continue

        value = resolve(doc, key)
        if _is_operator_dict(expected):
            for op, arg in expected.items():
                if not _apply_operator(value, op, arg):
                    return False
        elif not _equals(value, expected):
            return False

    return True


def _apply_operator(value: Any, op: str, arg: Any) -> bool:
    if op == "$in":
        return any(_equals(value, candidate) for candidate in arg)
    if op == "$nin":
        return not any(_equals(value, candidate) for candidate in arg)
    if op == "$ne":
        return not _equals(value, arg)
    if op == "$exists":
        return (value is not _MISSING and value is not None) == bool(arg)
    raise ValueError(f"Unsupported filter operator: {op}")


def _sort_key(value: Any) -> Tuple[int, Any]:
    if value is _MISSING or value is None:
        return (0, "")
    return (1, value)


def _parent(doc: Document, path: str) -> Tuple[Dict[str, Any], str]:
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    return current, parts[-1]


def apply_update(doc: Document, changes: Dict[str, Any]) -> None:
    """Apply an update document in place."""
    if not any(key.startswith("$") for key in changes):
        changes = {"$set": changes}

    for op, fields in changes.items():
        for path, arg in fields.items():
            parent, key = _parent(doc, path)
            if op == "$set":
                parent[key] = arg
            elif op == "$unset":
                parent.pop(key, None)
            elif op == "$push":
                parent.setdefault(key, []).append(arg)
            elif op == "$addToSet":
                items = parent.setdefault(key, [])
                if arg not in items:
                    items.append(arg)
            elif op == "$pull":
                parent[key] = [item for item in parent.get(key, []) if not _pull_matches(item, arg)]
            elif op == "$inc":
                parent[key] = parent.get(key, 0) + arg
            else:
                raise ValueError(f"Unsupported update operator: {op}")


def _pull_matches(item: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and isinstance(item, dict):
        return matches(item, condition)
    return item == condition
