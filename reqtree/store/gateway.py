"""Document store gateway: collections of JSON documents over SQLite.

No tree semantics live here. The gateway offers id lookup, equality
queries, ordered queries, atomic write batches, and change subscriptions.
Collection names are plain strings; nested collections use a path such as
``requirements/<id>/comments``.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from reqtree.db.connection import Database
from reqtree.errors import NotFoundError
from reqtree.utils.json import dump_document, parse_document

logger = logging.getLogger(__name__)

OnChange = Callable[[list[dict[str, Any]]], Awaitable[None] | None]
Unsubscribe = Callable[[], None]


class _ServerTimestamp:
    """Placeholder resolved to the commit time when a batch commits."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class ArrayAppend:
    """Field transform: append values to the stored array at commit time.

    Resolved inside the batch transaction against the current stored value,
    so concurrent appends to the same array are never lost.
    """

    def __init__(self, *values: Any) -> None:
        for value in values:
            _check_field_value(value, in_array=True)
        self.values = list(values)

    def __repr__(self) -> str:
        return f"ArrayAppend({self.values!r})"


def _check_field_value(value: Any, *, in_array: bool = False) -> None:
    """Reject sentinels in places the store cannot resolve them."""
    if value is SERVER_TIMESTAMP:
        if in_array:
            raise ValueError("SERVER_TIMESTAMP cannot be used inside an array")
        return
    if isinstance(value, ArrayAppend):
        raise ValueError("ArrayAppend is only valid as a top-level field value")
    if isinstance(value, dict):
        for item in value.values():
            _check_field_value(item, in_array=in_array)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _check_field_value(item, in_array=True)


def _check_fields(data: dict[str, Any]) -> None:
    for value in data.values():
        if isinstance(value, ArrayAppend):
            continue
        _check_field_value(value)


def _resolve(value: Any, now: datetime, existing: Any = None) -> Any:
    if value is SERVER_TIMESTAMP:
        return now
    if isinstance(value, ArrayAppend):
        base = list(existing) if isinstance(existing, list) else []
        return base + value.values
    if isinstance(value, dict):
        return {k: _resolve(v, now) for k, v in value.items()}
    return value


@dataclass
class _WriteOp:
    kind: str  # "set" | "update" | "delete"
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)


class WriteBatch:
    """Collects set/update/delete operations and commits them atomically."""

    def __init__(self, store: "DocumentStore") -> None:
        self._store = store
        self._ops: list[_WriteOp] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._ops)

    def set(
        self, collection: str, data: dict[str, Any], doc_id: str | None = None,
    ) -> str:
        """Create or overwrite a document. Returns its id (generated if absent)."""
        doc_id = doc_id or data.get("id") or self._store.new_id()
        _check_fields(data)
        self._ops.append(_WriteOp("set", collection, doc_id, {**data, "id": doc_id}))
        return doc_id

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge top-level fields into an existing document.

        The whole batch fails with NotFoundError if the document is missing.
        """
        _check_fields(fields)
        self._ops.append(_WriteOp("update", collection, doc_id, dict(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        self._ops.append(_WriteOp("delete", collection, doc_id))

    async def commit(self) -> None:
        """Apply every operation in one transaction, then notify subscribers."""
        if self._committed:
            raise RuntimeError("WriteBatch already committed")
        self._committed = True
        if not self._ops:
            return

        now = datetime.now(UTC)
        touched: set[str] = set()
        async with self._store.db.transaction() as conn:
            for op in self._ops:
                if op.kind == "set":
                    data = {k: _resolve(v, now) for k, v in op.data.items()}
                    await conn.execute(
                        """
                        INSERT INTO documents (collection, doc_id, data)
                        VALUES (?, ?, ?)
                        ON CONFLICT(collection, doc_id) DO UPDATE SET data = excluded.data
                        """,
                        (op.collection, op.doc_id, dump_document(data)),
                    )
                elif op.kind == "update":
                    cursor = await conn.execute(
                        "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                        (op.collection, op.doc_id),
                    )
                    row = await cursor.fetchone()
                    if row is None:
                        raise NotFoundError("Document", f"{op.collection}/{op.doc_id}")
                    current = parse_document(row["data"])
                    for name, value in op.data.items():
                        current[name] = _resolve(value, now, current.get(name))
                    await conn.execute(
                        "UPDATE documents SET data = ? WHERE collection = ? AND doc_id = ?",
                        (dump_document(current), op.collection, op.doc_id),
                    )
                else:
                    await conn.execute(
                        "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                        (op.collection, op.doc_id),
                    )
                touched.add(op.collection)

        await self._store._notify(touched)


@dataclass(eq=False)
class _Subscription:
    collection: str
    on_change: OnChange
    filters: dict[str, Any]
    order_field: str | None
    active: bool = True
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class DocumentStore:
    """Gateway over the documents table."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self._subscriptions: list[_Subscription] = []

    @staticmethod
    def new_id() -> str:
        return str(uuid4())

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def get_by_id(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Read one document. Returns None if not found."""
        row = await self.db.fetchone(
            "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        )
        if row is None:
            return None
        return parse_document(row["data"])

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        order_field: str | None = None,
    ) -> list[dict[str, Any]]:
        """Equality query over top-level fields. None matches null or missing.

        Results are ordered by order_field when given, then by insertion.
        """
        clauses = ["collection = ?"]
        params: list[Any] = [collection]
        for name, value in (filters or {}).items():
            clauses.append("json_extract(data, ?) IS ?")
            params.extend([f"$.{name}", value])

        order_by = "seq"
        if order_field is not None:
            order_by = "json_extract(data, ?), seq"
            params.append(f"$.{order_field}")

        rows = await self.db.fetchall(
            f"SELECT data FROM documents WHERE {' AND '.join(clauses)} ORDER BY {order_by}",
            tuple(params),
        )
        return [parse_document(row["data"]) for row in rows]

    async def query_by_field(
        self, collection: str, field_name: str, value: Any, **equal: Any,
    ) -> list[dict[str, Any]]:
        return await self.query(collection, {field_name: value, **equal})

    async def query_array_contains(
        self, collection: str, field_name: str, value: Any,
    ) -> list[dict[str, Any]]:
        """Documents whose array field contains value."""
        rows = await self.db.fetchall(
            """
            SELECT data FROM documents
            WHERE collection = ?
              AND EXISTS (SELECT 1 FROM json_each(data, ?) WHERE json_each.value = ?)
            ORDER BY seq
            """,
            (collection, f"$.{field_name}", value),
        )
        return [parse_document(row["data"]) for row in rows]

    async def query_ordered_by_field(
        self,
        collection: str,
        filter_field: str,
        filter_value: Any,
        order_field: str,
    ) -> list[dict[str, Any]]:
        return await self.query(collection, {filter_field: filter_value}, order_field)

    async def subscribe(
        self,
        collection: str,
        on_change: OnChange,
        *,
        filters: dict[str, Any] | None = None,
        order_field: str | None = None,
    ) -> Unsubscribe:
        """Deliver the current result set now and after every committed change.

        Returns a callable that cancels the subscription. After it is called
        no further snapshot is delivered, including one whose query is
        already running.
        """
        sub = _Subscription(collection, on_change, dict(filters or {}), order_field)
        self._subscriptions.append(sub)

        def unsubscribe() -> None:
            sub.active = False
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        await self._deliver(sub)
        return unsubscribe

    async def _notify(self, collections: set[str]) -> None:
        for sub in list(self._subscriptions):
            if sub.collection in collections:
                await self._deliver(sub)

    async def _deliver(self, sub: _Subscription) -> None:
        # The lock covers only the snapshot query. The callback runs outside
        # it, so a subscriber may write to the collection it watches.
        async with sub.lock:
            if not sub.active:
                return
            try:
                docs = await self.query(sub.collection, sub.filters, sub.order_field)
            except Exception:
                logger.exception("Snapshot query failed for %s", sub.collection)
                return
        if not sub.active:
            return
        try:
            result = sub.on_change(docs)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Subscriber callback failed for %s", sub.collection)
