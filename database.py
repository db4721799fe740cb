"""
Database access for the Pin Pack marketplace.

MongoDB collections stand in for relational tables. Each row gets a string
UUID ``id`` on insert; Mongo's own ``_id`` never leaves this module. The
``Store`` wrapper exposes only single-row or single-batch operations scoped
to explicit identities, and turns every driver error into ``StoreError``.
"""

import uuid
from threading import Lock
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pymongo import MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import get_settings

PACKS = "pin_packs"
PINS = "pins"
PACK_PINS = "pin_pack_pins"
ORDERS = "orders"
ORDER_ITEMS = "order_items"
DOWNLOAD_EVENTS = "download_events"


class StoreError(Exception):
    """A store operation failed. The message is safe to show to callers."""

    def __init__(self, message: str, operation: Optional[str] = None, table: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.table = table


def _strip_internal(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    return {k: v for k, v in doc.items() if k != "_id"}


def _driver_message(exc: PyMongoError) -> str:
    # Driver messages can embed the host list; keep only the first line.
    text = str(exc).splitlines()[0] if str(exc) else exc.__class__.__name__
    return text[:300]


class Store:
    """Row-level operations against named collections."""

    supports_atomic_increment = True

    def __init__(self, database: Optional[Database], atomic_increment: bool = True):
        self._db = database
        self.supports_atomic_increment = atomic_increment

    @property
    def configured(self) -> bool:
        return self._db is not None

    def _collection(self, table: str):
        if self._db is None:
            raise StoreError("Database is not configured", operation="connect", table=table)
        return self._db[table]

    def _call(self, operation: str, table: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except PyMongoError as exc:
            raise StoreError(_driver_message(exc), operation=operation, table=table) from exc

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Insert a batch of rows and return them, in order, with their new ids."""
        if not rows:
            return []
        docs = []
        for row in rows:
            doc = dict(row)
            doc.setdefault("id", str(uuid.uuid4()))
            docs.append(doc)
        # insert_many mutates docs in place to add _id
        self._call("insert", table, self._collection(table).insert_many, docs, ordered=True)
        return [_strip_internal(d) for d in docs]

    def insert_one(self, table: str, row: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        created = self.insert(table, [row])
        return created[0] if created else None

    def update(self, table: str, match: Mapping[str, Any], values: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Update the single row matching ``match``; return it, or None if nothing matched."""
        doc = self._call(
            "update",
            table,
            self._collection(table).find_one_and_update,
            dict(match),
            {"$set": dict(values)},
            return_document=ReturnDocument.AFTER,
        )
        return _strip_internal(doc)

    def select(
        self,
        table: str,
        eq: Optional[Mapping[str, Any]] = None,
        in_: Optional[Mapping[str, Iterable[Any]]] = None,
        or_: Optional[Sequence[Mapping[str, Any]]] = None,
        fields: Optional[Sequence[str]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        """Rows matching all ``eq`` pairs, each ``in_`` list, and any one ``or_`` clause."""
        query: Dict[str, Any] = dict(eq or {})
        for field, values in (in_ or {}).items():
            query[field] = {"$in": list(values)}
        if or_:
            query["$or"] = [dict(clause) for clause in or_]
        projection = None
        if fields:
            projection = {f: 1 for f in fields}
            projection["_id"] = 0
        cursor = self._call("select", table, self._collection(table).find, query, projection, limit=limit)
        return self._call("select", table, lambda: [_strip_internal(d) for d in cursor])

    def select_one(self, table: str, eq: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        doc = self._call("select", table, self._collection(table).find_one, dict(eq))
        return _strip_internal(doc)

    def delete(self, table: str, eq: Mapping[str, Any]) -> int:
        result = self._call("delete", table, self._collection(table).delete_many, dict(eq))
        return result.deleted_count

    def increment(self, table: str, row_id: str, field: str, amount: int = 1) -> Optional[Dict[str, Any]]:
        """Atomically add ``amount`` to ``field`` of one row; None if the row is missing."""
        doc = self._call(
            "increment",
            table,
            self._collection(table).find_one_and_update,
            {"id": row_id},
            {"$inc": {field: amount}},
            return_document=ReturnDocument.AFTER,
        )
        return _strip_internal(doc)

    def ping(self) -> List[str]:
        """Round-trip to the server; returns collection names."""
        if self._db is None:
            raise StoreError("Database is not configured", operation="ping")
        self._call("ping", "admin", self._db.command, "ping")
        return self._call("ping", "admin", self._db.list_collection_names)


_client: Optional[MongoClient] = None
db: Optional[Database] = None
_connect_lock = Lock()


def connect() -> Optional[Database]:
    """Open the client lazily from settings. Returns None when not configured."""
    global _client, db
    with _connect_lock:
        if db is not None:
            return db
        settings = get_settings().db
        if not settings.url or not settings.name:
            return None
        _client = MongoClient(settings.url, serverSelectionTimeoutMS=settings.timeout_ms)
        db = _client[settings.name]
        return db


def get_store() -> Store:
    """FastAPI dependency. An unconfigured store fails on first use, not here,
    so request validation still answers 400."""
    return Store(connect(), atomic_increment=get_settings().fulfillment.atomic_increment)
