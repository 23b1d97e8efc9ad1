import abc
import copy
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from app.core.errors import NotFound

logger = logging.getLogger(__name__)


class ArrayUnion:
    """Field-update sentinel: append each value that is not already present."""

    def __init__(self, *values: Any):
        self.values = list(values)

    def apply(self, current: Optional[list]) -> list:
        result = list(current or [])
        for value in self.values:
            if value not in result:
                result.append(value)
        return result


class ArrayRemove:
    """Field-update sentinel: drop every occurrence of each value."""

    def __init__(self, *values: Any):
        self.values = list(values)

    def apply(self, current: Optional[list]) -> list:
        return [item for item in (current or []) if item not in self.values]


def resolve_fields(existing: Optional[dict], fields: dict) -> dict:
    """Turn array sentinels into concrete lists against the existing document."""
    existing = existing or {}
    resolved = {}
    for key, value in fields.items():
        if isinstance(value, (ArrayUnion, ArrayRemove)):
            resolved[key] = value.apply(existing.get(key))
        else:
            resolved[key] = value
    return resolved


def subcollection(collection: str, doc_id: str, name: str) -> str:
    return f"{collection}/{doc_id}/{name}"


@dataclass(frozen=True)
class Query:
    collection: str
    array_contains: Optional[Tuple[str, Any]] = None
    order_by: Optional[str] = None
    descending: bool = False

    def matches(self, document: dict) -> bool:
        if self.array_contains is None:
            return True
        field, value = self.array_contains
        return value in (document.get(field) or [])


class Subscription:
    """
    A live, full-refresh view over a query.

    Use it as an async context manager and iterate it: every item is the
    complete current result set. The first snapshot arrives immediately, later
    ones after each change (bursts of changes collapse into one snapshot).
    Leaving the ``async with`` block always unsubscribes.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Any]],
        on_open: Optional[Callable[["Subscription"], Awaitable[None]]] = None,
        on_close: Optional[Callable[["Subscription"], Awaitable[None]]] = None,
    ):
        self._fetch = fetch
        self._on_open = on_open
        self._on_close = on_close
        self._changed = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._open = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._open and not self._closed

    def notify(self):
        if self._loop is None or self._closed:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._changed.set()
        else:
            self._loop.call_soon_threadsafe(self._changed.set)

    async def __aenter__(self) -> "Subscription":
        if self._closed:
            raise RuntimeError("Subscription already closed; call listen() again.")
        self._loop = asyncio.get_running_loop()
        self._changed.set()
        if self._on_open is not None:
            await self._on_open(self)
        self._open = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._closed:
            return
        self._closed = True
        self._changed.set()
        if self._open and self._on_close is not None:
            await self._on_close(self)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._open:
            raise RuntimeError("Subscription must be entered with 'async with'.")
        if self._closed:
            raise StopAsyncIteration

        await self._changed.wait()
        if self._closed:
            raise StopAsyncIteration

        self._changed.clear()
        return await self._fetch()


class DocumentStore(abc.ABC):
    """
    Contract of the remote document database.

    Documents are plain dicts keyed by collection path and id. Returned
    documents always carry their ``id``. Nested collections are addressed as
    ``"parent/{id}/child"``.
    """

    @abc.abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    @abc.abstractmethod
    async def set_document(
        self, collection: str, doc_id: str, fields: dict, merge: bool = False
    ) -> None:
        ...

    @abc.abstractmethod
    async def update_document(self, collection: str, doc_id: str, fields: dict) -> None:
        """Partial update. Raises NotFound when the document is absent."""

    @abc.abstractmethod
    async def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""

    @abc.abstractmethod
    async def query(self, query: Query) -> List[dict]:
        ...

    @abc.abstractmethod
    async def _watch(self, query: Query, subscription: Subscription) -> None:
        ...

    @abc.abstractmethod
    async def _unwatch(self, query: Query, subscription: Subscription) -> None:
        ...

    async def query_array_contains(self, collection: str, field: str, value: Any) -> List[dict]:
        return await self.query(Query(collection, array_contains=(field, value)))

    def listen(self, query: Query, transform: Optional[Callable[[List[dict]], Any]] = None) -> Subscription:
        async def fetch():
            documents = await self.query(query)
            return transform(documents) if transform is not None else documents

        async def on_open(subscription):
            await self._watch(query, subscription)

        async def on_close(subscription):
            await self._unwatch(query, subscription)

        return Subscription(fetch, on_open=on_open, on_close=on_close)


def _sort_key(field: str):
    def key(document: dict):
        value = document.get(field)
        # None sorts first
        return (value is not None, value)

    return key


class InMemoryDocumentStore(DocumentStore):
    """Process-local store with the same semantics as the hosted one."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, dict]] = defaultdict(dict)
        self._watchers: Dict[str, List[Subscription]] = defaultdict(list)

    async def get_document(self, collection, doc_id):
        document = self._collections[collection].get(doc_id)
        if document is None:
            return None
        return copy.deepcopy(document)

    async def set_document(self, collection, doc_id, fields, merge=False):
        existing = self._collections[collection].get(doc_id)
        resolved = resolve_fields(existing, fields)

        if merge and existing is not None:
            document = {**existing, **resolved}
        else:
            document = resolved

        document["id"] = doc_id
        self._collections[collection][doc_id] = copy.deepcopy(document)
        self._changed(collection)

    async def update_document(self, collection, doc_id, fields):
        existing = self._collections[collection].get(doc_id)
        if existing is None:
            raise NotFound(collection, doc_id)

        existing.update(copy.deepcopy(resolve_fields(existing, fields)))
        self._changed(collection)

    async def delete_document(self, collection, doc_id):
        if self._collections[collection].pop(doc_id, None) is not None:
            self._changed(collection)

    async def query(self, query):
        documents = [
            copy.deepcopy(document)
            for document in self._collections[query.collection].values()
            if query.matches(document)
        ]
        if query.order_by:
            documents.sort(key=_sort_key(query.order_by), reverse=query.descending)
        return documents

    async def _watch(self, query, subscription):
        self._watchers[query.collection].append(subscription)

    async def _unwatch(self, query, subscription):
        watchers = self._watchers.get(query.collection, [])
        if subscription in watchers:
            watchers.remove(subscription)

    def watcher_count(self, collection: str) -> int:
        return len(self._watchers.get(collection, []))

    def _changed(self, collection: str):
        for subscription in list(self._watchers.get(collection, [])):
            subscription.notify()
