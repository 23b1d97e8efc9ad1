import uuid
import logging
from typing import Dict, Optional, Tuple

from supabase import AsyncClient

from app.core.errors import NotFound, StoreUnavailable, WriteFailure
from app.core.store import DocumentStore, Query, Subscription, resolve_fields

logger = logging.getLogger(__name__)


def split_path(collection: str) -> Tuple[str, Optional[str]]:
    """
    Map a collection path to (table, parent id).

    ``"sessions"`` -> ("sessions", None)
    ``"conversations/abc/messages"`` -> ("messages", "abc")
    """
    parts = collection.split("/")
    if len(parts) == 1:
        return parts[0], None
    if len(parts) == 3:
        return parts[2], parts[1]
    raise ValueError(f"Unsupported collection path: {collection}")


class SupabaseDocumentStore(DocumentStore):
    """
    Document store backed by Supabase tables.

    One table per collection, nested collections are tables with a
    ``parent_id`` column. Array sentinels are applied read-modify-write, so two
    writers racing on the same array can lose an update.
    """

    def __init__(self, client: AsyncClient):
        self.client = client
        self._channels: Dict[int, object] = {}

    def _table(self, collection: str):
        table, parent_id = split_path(collection)
        return self.client.table(table), parent_id

    @staticmethod
    def _clean(row: dict) -> dict:
        row = dict(row)
        row.pop("parent_id", None)
        return row

    async def get_document(self, collection, doc_id):
        table, parent_id = self._table(collection)
        try:
            request = table.select("*").eq("id", doc_id)
            if parent_id is not None:
                request = request.eq("parent_id", parent_id)
            response = await request.limit(1).execute()
        except Exception as e:
            logger.error(f"store_read_failed collection={collection} id={doc_id} error={e}")
            raise StoreUnavailable() from e

        if not response.data:
            return None
        return self._clean(response.data[0])

    async def set_document(self, collection, doc_id, fields, merge=False):
        existing = await self.get_document(collection, doc_id) if merge else None
        table, parent_id = self._table(collection)

        row = {**resolve_fields(existing, fields), "id": doc_id}
        if parent_id is not None:
            row["parent_id"] = parent_id

        try:
            # Columns missing from the row keep their current value on conflict.
            await table.upsert(row, on_conflict="id").execute()
        except Exception as e:
            logger.error(f"store_write_failed collection={collection} id={doc_id} error={e}")
            raise WriteFailure() from e

    async def update_document(self, collection, doc_id, fields):
        existing = await self.get_document(collection, doc_id)
        if existing is None:
            raise NotFound(collection, doc_id)

        table, parent_id = self._table(collection)
        try:
            request = table.update(resolve_fields(existing, fields)).eq("id", doc_id)
            if parent_id is not None:
                request = request.eq("parent_id", parent_id)
            await request.execute()
        except Exception as e:
            logger.error(f"store_write_failed collection={collection} id={doc_id} error={e}")
            raise WriteFailure() from e

    async def delete_document(self, collection, doc_id):
        table, parent_id = self._table(collection)
        try:
            request = table.delete().eq("id", doc_id)
            if parent_id is not None:
                request = request.eq("parent_id", parent_id)
            await request.execute()
        except Exception as e:
            logger.error(f"store_delete_failed collection={collection} id={doc_id} error={e}")
            raise WriteFailure() from e

    async def query(self, query):
        table, parent_id = self._table(query.collection)
        try:
            request = table.select("*")
            if parent_id is not None:
                request = request.eq("parent_id", parent_id)
            if query.array_contains is not None:
                field, value = query.array_contains
                request = request.contains(field, [value])
            if query.order_by:
                request = request.order(query.order_by, desc=query.descending)
            response = await request.execute()
        except Exception as e:
            logger.error(f"store_query_failed collection={query.collection} error={e}")
            raise StoreUnavailable() from e

        return [self._clean(row) for row in response.data or []]

    async def _watch(self, query: Query, subscription: Subscription):
        table, parent_id = split_path(query.collection)

        def on_change(payload):
            subscription.notify()

        channel = self.client.channel(f"watch-{table}-{uuid.uuid4()}")
        channel.on_postgres_changes(
            "*",
            schema="public",
            table=table,
            filter=f"parent_id=eq.{parent_id}" if parent_id else None,
            callback=on_change,
        )
        await channel.subscribe()
        self._channels[id(subscription)] = channel
        logger.info(f"realtime_subscribed table={table} parent_id={parent_id}")

    async def _unwatch(self, query: Query, subscription: Subscription):
        channel = self._channels.pop(id(subscription), None)
        if channel is not None:
            await self.client.remove_channel(channel)
            logger.info(f"realtime_unsubscribed collection={query.collection}")
