from __future__ import annotations

from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Iterable,
    Literal,
    Protocol,
    Sequence,
    TypeVar,
)

from nettrailers_core.config import MAX_WRITE_BATCH
from nettrailers_core.errors import RuleViolation

JsonDoc = dict[str, Any]
T = TypeVar("T")

FilterOp = Literal["==", "!=", "<", "<=", ">", ">=", "in", "array_contains"]


@dataclass(frozen=True)
class DocumentRef:
    """Address of a single document: `collection` is a slash path, e.g. users/u1/interactions."""

    collection: str
    id: str

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"


@dataclass(frozen=True)
class Filter:
    field: str
    op: FilterOp
    value: Any


@dataclass
class Snapshot:
    ref: DocumentRef
    data: JsonDoc

    @property
    def id(self) -> str:
        return self.ref.id


class Transaction(Protocol):
    """Reads are tracked; writes are buffered until commit."""

    async def get(self, ref: DocumentRef) -> JsonDoc | None: ...

    def set(self, ref: DocumentRef, data: JsonDoc, *, merge: bool = False) -> None: ...

    def delete(self, ref: DocumentRef) -> None: ...


TransactionFn = Callable[[Transaction], Awaitable[T]]


class DocumentStore(Protocol):
    async def get(self, ref: DocumentRef) -> JsonDoc | None: ...

    async def set(self, ref: DocumentRef, data: JsonDoc, *, merge: bool = False) -> None: ...

    async def update(self, ref: DocumentRef, data: JsonDoc) -> None: ...

    async def delete(self, ref: DocumentRef) -> None: ...

    async def set_many(self, items: Sequence[tuple[DocumentRef, JsonDoc]]) -> None: ...

    async def delete_many(self, refs: Sequence[DocumentRef]) -> int: ...

    async def query(
        self,
        collection: str,
        *,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Snapshot]: ...

    async def run_transaction(
        self, fn: TransactionFn[T], *, max_attempts: int = ...
    ) -> T: ...

    async def aclose(self) -> None: ...


# ---------- Shared helpers (both backends filter/sort in Python) ----------


def check_batch_size(n: int) -> None:
    if n > MAX_WRITE_BATCH:
        raise RuleViolation(f"Batch size {n} exceeds maximum {MAX_WRITE_BATCH}")


def merge_docs(current: JsonDoc | None, patch: JsonDoc) -> JsonDoc:
    out = dict(current or {})
    out.update(patch)
    return out


def _matches(doc: JsonDoc, f: Filter) -> bool:
    if f.field not in doc:
        return False
    v = doc[f.field]
    try:
        if f.op == "==":
            return v == f.value
        if f.op == "!=":
            return v != f.value
        if f.op == "<":
            return v < f.value
        if f.op == "<=":
            return v <= f.value
        if f.op == ">":
            return v > f.value
        if f.op == ">=":
            return v >= f.value
        if f.op == "in":
            return v in f.value
        if f.op == "array_contains":
            return isinstance(v, list) and f.value in v
    except TypeError:
        # mismatched types never match (same as a typed index)
        return False
    raise ValueError(f"Unsupported filter op: {f.op}")


def apply_query(
    snapshots: Iterable[Snapshot],
    *,
    filters: Sequence[Filter] = (),
    order_by: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> list[Snapshot]:
    rows = [s for s in snapshots if all(_matches(s.data, f) for f in filters)]
    # id first for determinism, then the requested field (sort is stable)
    rows.sort(key=lambda s: s.id)
    if order_by is not None:
        rows = [s for s in rows if order_by in s.data]
        rows.sort(key=lambda s: s.data[order_by], reverse=descending)
    if limit is not None:
        rows = rows[: max(0, int(limit))]
    return rows
