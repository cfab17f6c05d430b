import copy
import logging
import operator
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

from sqlalchemy import cast, select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatline.core.change_feed import ChangeEvent, ChangeFeed, change_feed
from chatline.core.database import AsyncSessionLocal
from chatline.models.document import Document
from chatline.utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Increment:
    """Field transform adding ``amount`` to the stored number (missing counts as 0)"""
    amount: int = 1


def get_field(data: Dict[str, Any], path: str) -> Any:
    """Read a dotted field path, ``None`` when any segment is missing"""
    value: Any = data
    for key in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def apply_field_updates(data: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``data`` with dotted field paths overwritten"""
    result = copy.deepcopy(data)
    for path, value in fields.items():
        keys = path.split(".")
        target = result
        for key in keys[:-1]:
            child = target.get(key)
            if not isinstance(child, dict):
                child = {}
                target[key] = child
            target = child
        leaf = keys[-1]
        if isinstance(value, Increment):
            current = target.get(leaf)
            if isinstance(current, bool) or not isinstance(current, (int, float)):
                current = 0
            target[leaf] = current + value.amount
        else:
            target[leaf] = copy.deepcopy(value)
    return result


def _array_contains(value: Any, item: Any) -> bool:
    return isinstance(value, list) and item in value


def _compare(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(value: Any, expected: Any) -> bool:
        if value is None:
            return False
        try:
            return compare(value, expected)
        except TypeError:
            return False
    return check


FILTER_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "in": lambda value, expected: value in expected,
    "array-contains": _array_contains,
    "<": _compare(operator.lt),
    "<=": _compare(operator.le),
    ">": _compare(operator.gt),
    ">=": _compare(operator.ge),
}


class Query:
    """Filtered, ordered and limited read over one collection"""

    def __init__(self, store: "DocumentStore", collection: str):
        self.store = store
        self.collection = collection
        self.filters: List[Tuple[str, str, Any]] = []
        self.ordering: List[Tuple[str, bool]] = []
        self.max_results: Optional[int] = None

    def _copy(self) -> "Query":
        query = Query(self.store, self.collection)
        query.filters = list(self.filters)
        query.ordering = list(self.ordering)
        query.max_results = self.max_results
        return query

    def where(self, field: str, op: str, value: Any) -> "Query":
        if op not in FILTER_OPERATORS:
            raise ValidationError(f"Unsupported filter operator: {op}")
        query = self._copy()
        query.filters.append((field, op, value))
        return query

    def order_by(self, field: str, descending: bool = False) -> "Query":
        query = self._copy()
        query.ordering.append((field, descending))
        return query

    def limit(self, count: int) -> "Query":
        query = self._copy()
        query.max_results = count
        return query

    def matches(self, data: Dict[str, Any]) -> bool:
        return all(
            FILTER_OPERATORS[op](get_field(data, field), value)
            for field, op, value in self.filters
        )

    def statement(self, dialect: str = ""):
        """SELECT of the candidate documents.

        Top-level string equality is pushed down everywhere, ``array-contains``
        only on PostgreSQL (JSONB containment). Other filters, ordering and
        limit run in Python over the candidates, so an unfiltered listing
        reads the whole collection.
        """
        stmt = select(Document.data).where(Document.collection == self.collection)
        for field, op, value in self.filters:
            if "." in field or not isinstance(value, str):
                continue
            if op == "==":
                stmt = stmt.where(Document.data[field].as_string() == value)
            elif op == "array-contains" and dialect == "postgresql":
                stmt = stmt.where(cast(Document.data[field], JSONB).contains([value]))
        return stmt

    async def get(self) -> List[Dict[str, Any]]:
        async with self.store.session_factory() as session:
            stmt = self.statement(session.bind.dialect.name)
            result = await session.execute(stmt)
            rows = [row for row in result.scalars().all() if self.matches(row)]

        # Documents missing an ordering field are left out
        for field, descending in reversed(self.ordering):
            rows = [row for row in rows if get_field(row, field) is not None]
            rows.sort(key=lambda row: get_field(row, field), reverse=descending)

        if self.max_results is not None:
            rows = rows[:self.max_results]
        return rows


class WriteBatch:
    """Set/update/delete operations committed together in one transaction"""

    def __init__(self, store: "DocumentStore"):
        self.store = store
        self.operations: List[Tuple[str, str, str, Any]] = []

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self.operations.append(("set", collection, doc_id, data))
        return self

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> "WriteBatch":
        self.operations.append(("update", collection, doc_id, fields))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self.operations.append(("delete", collection, doc_id, None))
        return self

    def __len__(self) -> int:
        return len(self.operations)

    async def commit(self) -> None:
        if self.operations:
            await self.store.commit(self.operations)
            self.operations = []


class DocumentStore:
    """Collections of JSON documents keyed by id on top of SQLAlchemy"""

    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal, feed: Optional[ChangeFeed] = None):
        self.session_factory = session_factory
        self.feed = feed or change_feed

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        async with self.session_factory() as session:
            stmt = select(Document.data).where(
                Document.collection == collection,
                Document.id == doc_id
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def exists(self, collection: str, doc_id: str) -> bool:
        return await self.get(collection, doc_id) is not None

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or fully replace a document"""
        await self.commit([("set", collection, doc_id, data)])

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Overwrite named (dotted) fields of an existing document"""
        await self.commit([("update", collection, doc_id, fields)])

    async def delete(self, collection: str, doc_id: str) -> bool:
        deleted = await self.commit([("delete", collection, doc_id, None)])
        return bool(deleted)

    def query(self, collection: str) -> Query:
        return Query(self, collection)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def _load_for_update(self, session: AsyncSession, collection: str, doc_id: str) -> Optional[Document]:
        stmt = select(Document).where(
            Document.collection == collection,
            Document.id == doc_id
        ).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def commit(self, operations: Iterable[Tuple[str, str, str, Any]]) -> int:
        """Apply write operations atomically and publish them once committed.

        Returns the number of documents removed by delete operations.
        """
        events: List[ChangeEvent] = []
        deleted = 0
        async with self.session_factory() as session:
            async with session.begin():
                for kind, collection, doc_id, payload in operations:
                    doc = await self._load_for_update(session, collection, doc_id)
                    if kind == "set":
                        data = copy.deepcopy(payload)
                        if doc is None:
                            session.add(Document(collection=collection, id=doc_id, data=data))
                        else:
                            doc.data = data
                    elif kind == "update":
                        if doc is None:
                            raise NotFoundError(f"Document {collection}/{doc_id} not found")
                        doc.data = apply_field_updates(doc.data or {}, payload)
                    elif kind == "delete":
                        if doc is None:
                            continue
                        await session.delete(doc)
                        deleted += 1
                    else:
                        raise ValidationError(f"Unknown write operation: {kind}")
                    # Make the pending change visible to later operations of the same transaction
                    await session.flush()
                    events.append(ChangeEvent(collection, doc_id))

        self.feed.publish(events)
        return deleted

    async def watch(
        self,
        loader: Callable[[], Awaitable[T]],
        collections: Iterable[str]
    ) -> AsyncIterator[T]:
        """Yield ``loader()`` now and again whenever its result changes.

        Every yielded value is a full replacement snapshot.
        """
        subscription = self.feed.subscribe(collections)
        try:
            current = await loader()
            yield current
            async for _event in subscription:
                subscription.drain()
                snapshot = await loader()
                if snapshot != current:
                    current = snapshot
                    yield snapshot
        finally:
            subscription.close()


# Global document store instance
document_store = DocumentStore(AsyncSessionLocal, change_feed)


async def get_store() -> DocumentStore:
    """Dependency to get the document store"""
    return document_store
