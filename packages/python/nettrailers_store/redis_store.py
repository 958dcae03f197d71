from __future__ import annotations

import copy
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError, WatchError

from nettrailers_core.config import (
    MAX_TRANSACTION_ATTEMPTS,
    MAX_WRITE_BATCH,
    REDIS_NAMESPACE,
)
from nettrailers_core.errors import Conflict, NotFound, StoreUnavailable
from nettrailers_logging.logger import DebugLogger

from .base import (
    DocumentRef,
    Filter,
    JsonDoc,
    Snapshot,
    T,
    TransactionFn,
    apply_query,
    check_batch_size,
    merge_docs,
)

log = logging.getLogger(__name__)


class _RedisTransaction:
    def __init__(self, store: "RedisDocumentStore", pipe: Pipeline):
        self._store = store
        self._pipe = pipe
        self.reads: dict[str, JsonDoc | None] = {}
        self.writes: list[tuple[DocumentRef, JsonDoc | None, bool]] = []

    async def watch_and_read(self, ref: DocumentRef) -> JsonDoc | None:
        key = self._store._doc_key(ref)
        if key not in self.reads:
            await self._pipe.watch(key)
            raw = await self._pipe.get(key)
            self.reads[key] = self._store._decode(raw)
        return self.reads[key]

    async def get(self, ref: DocumentRef) -> JsonDoc | None:
        data = await self.watch_and_read(ref)
        return copy.deepcopy(data) if data is not None else None

    def set(self, ref: DocumentRef, data: JsonDoc, *, merge: bool = False) -> None:
        self.writes.append((ref, copy.deepcopy(data), merge))

    def delete(self, ref: DocumentRef) -> None:
        self.writes.append((ref, None, False))


class RedisDocumentStore:
    """
    Redis-backed document store.
    Doc key:   {namespace}doc:{collection}/{id}  -> JSON string
    Index key: {namespace}idx:{collection}       -> SET of doc ids

    IMPORTANT: client must be created with decode_responses=True.
    Queries load the collection and filter/sort in Python, which is fine for
    per-user collections bounded by the interaction cap.
    """

    def __init__(
        self,
        *,
        client: Redis,
        namespace: str = REDIS_NAMESPACE,
        debug: DebugLogger | None = None,
    ) -> None:
        self._r = client
        self._ns = namespace
        self._debug = debug or DebugLogger()

    # ----- keys / codec -----

    def _doc_key(self, ref: DocumentRef) -> str:
        return f"{self._ns}doc:{ref.path}"

    def _index_key(self, collection: str) -> str:
        return f"{self._ns}idx:{collection}"

    @staticmethod
    def _encode(data: JsonDoc) -> str:
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"))

    @staticmethod
    def _decode(raw: str | bytes | None) -> JsonDoc | None:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    @asynccontextmanager
    async def _guard(self, op: str) -> AsyncIterator[None]:
        try:
            yield
        except (RedisError, OSError) as e:
            log.warning("redis %s failed: %r", op, e)
            raise StoreUnavailable(f"redis {op} failed") from e

    def _queue_write(
        self, pipe: Pipeline, ref: DocumentRef, data: JsonDoc | None
    ) -> None:
        if data is None:
            pipe.delete(self._doc_key(ref))
            pipe.srem(self._index_key(ref.collection), ref.id)
        else:
            pipe.set(self._doc_key(ref), self._encode(data))
            pipe.sadd(self._index_key(ref.collection), ref.id)

    # ----- DocumentStore -----

    async def get(self, ref: DocumentRef) -> JsonDoc | None:
        async with self._guard("get"):
            return self._decode(await self._r.get(self._doc_key(ref)))

    async def set(self, ref: DocumentRef, data: JsonDoc, *, merge: bool = False) -> None:
        if merge:
            async def _merge(tx) -> None:
                tx.set(ref, data, merge=True)

            await self.run_transaction(_merge)
            return
        async with self._guard("set"):
            async with self._r.pipeline(transaction=True) as pipe:
                self._queue_write(pipe, ref, data)
                await pipe.execute()
        self._debug.store("set %s", ref.path)

    async def update(self, ref: DocumentRef, data: JsonDoc) -> None:
        async def _update(tx) -> None:
            if await tx.get(ref) is None:
                raise NotFound(f"document not found: {ref.path}")
            tx.set(ref, data, merge=True)

        await self.run_transaction(_update)

    async def delete(self, ref: DocumentRef) -> None:
        async with self._guard("delete"):
            async with self._r.pipeline(transaction=True) as pipe:
                self._queue_write(pipe, ref, None)
                await pipe.execute()

    async def set_many(self, items: Sequence[tuple[DocumentRef, JsonDoc]]) -> None:
        check_batch_size(len(items))
        if not items:
            return
        async with self._guard("set_many"):
            async with self._r.pipeline(transaction=True) as pipe:
                for ref, data in items:
                    self._queue_write(pipe, ref, data)
                await pipe.execute()
        self._debug.store("batch set %d docs", len(items))

    async def delete_many(self, refs: Sequence[DocumentRef]) -> int:
        check_batch_size(len(refs))
        if not refs:
            return 0
        async with self._guard("delete_many"):
            async with self._r.pipeline(transaction=True) as pipe:
                for ref in refs:
                    self._queue_write(pipe, ref, None)
                results = await pipe.execute()
        # results alternate DEL, SREM per ref
        deleted = sum(int(r) for r in results[0::2])
        self._debug.store("batch delete %d docs", deleted)
        return deleted

    async def query(
        self,
        collection: str,
        *,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Snapshot]:
        snapshots: list[Snapshot] = []
        async with self._guard("query"):
            ids = sorted(
                i.decode("utf-8") if isinstance(i, bytes) else i
                for i in await self._r.smembers(self._index_key(collection))
            )
            orphans: list[str] = []
            for start in range(0, len(ids), MAX_WRITE_BATCH):
                chunk = ids[start : start + MAX_WRITE_BATCH]
                refs = [DocumentRef(collection, doc_id) for doc_id in chunk]
                raws = await self._r.mget([self._doc_key(r) for r in refs])
                for ref, raw in zip(refs, raws):
                    data = self._decode(raw)
                    if data is None:
                        orphans.append(ref.id)
                        continue
                    snapshots.append(Snapshot(ref, data))
            if orphans:
                await self._r.srem(self._index_key(collection), *orphans)
        return apply_query(
            snapshots,
            filters=filters,
            order_by=order_by,
            descending=descending,
            limit=limit,
        )

    async def run_transaction(
        self, fn: TransactionFn[T], *, max_attempts: int = MAX_TRANSACTION_ATTEMPTS
    ) -> T:
        async with self._guard("transaction"):
            for attempt in range(1, max_attempts + 1):
                async with self._r.pipeline(transaction=True) as pipe:
                    tx = _RedisTransaction(self, pipe)
                    try:
                        result = await fn(tx)
                        if not tx.writes:
                            return result
                        # merges need the current body under WATCH as well
                        for ref, _, merge in tx.writes:
                            if merge:
                                await tx.watch_and_read(ref)
                        state = {k: copy.deepcopy(v) for k, v in tx.reads.items()}
                        pipe.multi()
                        for ref, data, merge in tx.writes:
                            key = self._doc_key(ref)
                            if data is not None and merge:
                                data = merge_docs(state.get(key), data)
                            state[key] = data
                            self._queue_write(pipe, ref, data)
                        await pipe.execute()
                        return result
                    except WatchError:
                        self._debug.store("transaction conflict (attempt %d)", attempt)
                        continue
        raise Conflict("transaction aborted after repeated contention")

    async def aclose(self) -> None:
        try:
            await self._r.aclose()
        except (RedisError, OSError):
            pass
