from __future__ import annotations

import copy
from typing import Sequence

from nettrailers_core.config import MAX_TRANSACTION_ATTEMPTS
from nettrailers_core.errors import Conflict, NotFound
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


class _MemoryTransaction:
    def __init__(self, store: "MemoryDocumentStore"):
        self._store = store
        self.read_versions: dict[str, int] = {}
        self.writes: list[tuple[DocumentRef, JsonDoc | None, bool]] = []

    async def get(self, ref: DocumentRef) -> JsonDoc | None:
        self.read_versions.setdefault(ref.path, self._store._versions.get(ref.path, 0))
        return self._store._read(ref)

    def set(self, ref: DocumentRef, data: JsonDoc, *, merge: bool = False) -> None:
        self.writes.append((ref, copy.deepcopy(data), merge))

    def delete(self, ref: DocumentRef) -> None:
        self.writes.append((ref, None, False))


class MemoryDocumentStore:
    """
    In-process document store. Used for local runs and tests.

    Every committed write stamps the document path with a fresh sequence
    number (deletes included). Transactions record the numbers they read and
    the commit is rejected when any of them moved, which mirrors the
    WATCH/EXEC behaviour of the Redis backend.
    """

    def __init__(self, *, debug: DebugLogger | None = None):
        self._collections: dict[str, dict[str, JsonDoc]] = {}
        self._versions: dict[str, int] = {}
        self._seq = 0
        self._debug = debug or DebugLogger()

    # ---------- internals (no awaits, so each call is atomic on the loop) ----------
    def _read(self, ref: DocumentRef) -> JsonDoc | None:
        data = self._collections.get(ref.collection, {}).get(ref.id)
        return copy.deepcopy(data) if data is not None else None

    def _write(self, ref: DocumentRef, data: JsonDoc | None, merge: bool) -> None:
        col = self._collections.setdefault(ref.collection, {})
        if data is None:
            col.pop(ref.id, None)
        elif merge:
            col[ref.id] = merge_docs(col.get(ref.id), copy.deepcopy(data))
        else:
            col[ref.id] = copy.deepcopy(data)
        self._seq += 1
        self._versions[ref.path] = self._seq

    # ---------- DocumentStore ----------
    async def get(self, ref: DocumentRef) -> JsonDoc | None:
        return self._read(ref)

    async def set(self, ref: DocumentRef, data: JsonDoc, *, merge: bool = False) -> None:
        self._write(ref, data, merge)
        self._debug.store("set %s merge=%s", ref.path, merge)

    async def update(self, ref: DocumentRef, data: JsonDoc) -> None:
        if self._read(ref) is None:
            raise NotFound(f"document not found: {ref.path}")
        self._write(ref, data, True)

    async def delete(self, ref: DocumentRef) -> None:
        self._write(ref, None, False)

    async def set_many(self, items: Sequence[tuple[DocumentRef, JsonDoc]]) -> None:
        check_batch_size(len(items))
        for ref, data in items:
            self._write(ref, data, False)
        self._debug.store("batch set %d docs", len(items))

    async def delete_many(self, refs: Sequence[DocumentRef]) -> int:
        check_batch_size(len(refs))
        deleted = 0
        for ref in refs:
            if self._read(ref) is not None:
                deleted += 1
            self._write(ref, None, False)
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
        col = self._collections.get(collection, {})
        snapshots = [
            Snapshot(DocumentRef(collection, doc_id), copy.deepcopy(data))
            for doc_id, data in col.items()
        ]
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
        for attempt in range(1, max_attempts + 1):
            tx = _MemoryTransaction(self)
            result = await fn(tx)
            moved = [
                path
                for path, version in tx.read_versions.items()
                if self._versions.get(path, 0) != version
            ]
            if moved:
                self._debug.store("transaction conflict on %s (attempt %d)", moved[0], attempt)
                continue
            for ref, data, merge in tx.writes:
                self._write(ref, data, merge)
            return result
        raise Conflict("transaction aborted after repeated contention")

    async def aclose(self) -> None:
        return None
