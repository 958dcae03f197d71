import pytest

from nettrailers_core.errors import Conflict, NotFound, RuleViolation
from nettrailers_store.base import DocumentRef, Filter
from nettrailers_store.memory_store import MemoryDocumentStore

COL = "users/u1/interactions"


def _ref(doc_id: str) -> DocumentRef:
    return DocumentRef(COL, doc_id)


@pytest.fixture()
def mem():
    return MemoryDocumentStore()


@pytest.mark.asyncio
async def test_set_get_returns_copies(mem):
    data = {"a": 1, "tags": [1]}
    await mem.set(_ref("x"), data)
    data["tags"].append(2)

    got = await mem.get(_ref("x"))
    assert got == {"a": 1, "tags": [1]}
    got["a"] = 99
    assert (await mem.get(_ref("x")))["a"] == 1


@pytest.mark.asyncio
async def test_merge_and_update(mem):
    await mem.set(_ref("x"), {"a": 1, "b": 2})
    await mem.set(_ref("x"), {"b": 3}, merge=True)
    assert await mem.get(_ref("x")) == {"a": 1, "b": 3}

    await mem.update(_ref("x"), {"c": 4})
    assert await mem.get(_ref("x")) == {"a": 1, "b": 3, "c": 4}

    with pytest.raises(NotFound):
        await mem.update(_ref("missing"), {"c": 4})


@pytest.mark.asyncio
async def test_batch_cap(mem):
    with pytest.raises(RuleViolation):
        await mem.set_many([(_ref(str(i)), {}) for i in range(501)])
    assert await mem.query(COL) == []

    with pytest.raises(RuleViolation):
        await mem.delete_many([_ref(str(i)) for i in range(501)])


@pytest.mark.asyncio
async def test_delete_many_counts_existing_only(mem):
    await mem.set_many([(_ref("a"), {}), (_ref("b"), {})])
    assert await mem.delete_many([_ref("a"), _ref("b"), _ref("zzz")]) == 2
    assert await mem.query(COL) == []


@pytest.mark.asyncio
async def test_query_filters_order_and_limit(mem):
    await mem.set_many(
        [
            (_ref("a"), {"ts": 3, "type": "like", "genres": [28]}),
            (_ref("b"), {"ts": 1, "type": "like", "genres": [12]}),
            (_ref("c"), {"ts": 2, "type": "search", "genres": [28, 12]}),
            (_ref("d"), {"type": "like"}),
        ]
    )

    rows = await mem.query(COL, order_by="ts", descending=True)
    assert [r.id for r in rows] == ["a", "c", "b"]

    rows = await mem.query(COL, filters=[Filter("type", "==", "like")], order_by="ts")
    assert [r.id for r in rows] == ["b", "a"]

    rows = await mem.query(COL, filters=[Filter("genres", "array_contains", 12)])
    assert [r.id for r in rows] == ["b", "c"]

    rows = await mem.query(COL, filters=[Filter("ts", "in", [1, 3])], limit=1, order_by="ts")
    assert [r.id for r in rows] == ["b"]

    rows = await mem.query(COL, filters=[Filter("ts", "<", 3), Filter("ts", ">=", 2)])
    assert [r.id for r in rows] == ["c"]


@pytest.mark.asyncio
async def test_transaction_commits_buffered_writes(mem):
    await mem.set(_ref("x"), {"n": 1})

    async def _bump(tx):
        doc = await tx.get(_ref("x"))
        tx.set(_ref("x"), {"n": doc["n"] + 1}, merge=True)
        tx.delete(_ref("y"))
        return doc["n"]

    assert await mem.run_transaction(_bump) == 1
    assert await mem.get(_ref("x")) == {"n": 2}


@pytest.mark.asyncio
async def test_transaction_retries_on_concurrent_write(mem):
    await mem.set(_ref("x"), {"n": 1})
    attempts = []

    async def _bump(tx):
        doc = await tx.get(_ref("x"))
        attempts.append(doc["n"])
        if len(attempts) == 1:
            # another writer lands between our read and our commit
            await mem.set(_ref("x"), {"n": 10})
        tx.set(_ref("x"), {"n": doc["n"] + 1})

    await mem.run_transaction(_bump)
    assert attempts == [1, 10]
    assert await mem.get(_ref("x")) == {"n": 11}


@pytest.mark.asyncio
async def test_delete_counts_as_a_change(mem):
    await mem.set(_ref("x"), {"n": 1})
    attempts = 0

    async def _read_then_lose_doc(tx):
        nonlocal attempts
        attempts += 1
        doc = await tx.get(_ref("x"))
        if attempts == 1:
            await mem.delete(_ref("x"))
        return doc

    assert await mem.run_transaction(_read_then_lose_doc) is None
    assert attempts == 2


@pytest.mark.asyncio
async def test_transaction_gives_up_after_max_attempts(mem):
    await mem.set(_ref("x"), {"n": 0})
    attempts = 0

    async def _always_contended(tx):
        nonlocal attempts
        attempts += 1
        await tx.get(_ref("x"))
        await mem.set(_ref("x"), {"n": attempts})
        tx.set(_ref("x"), {"n": -1})

    with pytest.raises(Conflict):
        await mem.run_transaction(_always_contended)
    assert attempts == 5
    assert (await mem.get(_ref("x")))["n"] == 5
