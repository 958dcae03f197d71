import pytest

from conftest import make_event
from nettrailers_core.errors import RuleViolation
from nettrailers_interactions.config import TrackingConfig
from nettrailers_interactions.interactions_service import InteractionsService

USER = "u1"


async def _log_at(service, clock, content_id, **offset):
    start = clock.now
    clock.advance(**{k: -v for k, v in offset.items()})
    rec = await service.log_interaction(USER, make_event(content_id=content_id))
    clock.now = start
    return rec


@pytest.mark.asyncio
async def test_cutoff_is_strict(service, clock):
    await _log_at(service, clock, 1, days=100)
    await _log_at(service, clock, 2, days=90)  # exactly on the cutoff
    await _log_at(service, clock, 3, days=1)

    assert await service.cleanup_old_interactions(USER) == 1
    remaining = await service.get_recent_interactions(USER)
    assert sorted(r.content_id for r in remaining) == [2, 3]


@pytest.mark.asyncio
async def test_retention_override(service, clock):
    await _log_at(service, clock, 1, days=10)
    await _log_at(service, clock, 2, hours=1)

    assert await service.cleanup_old_interactions(USER, retention_days=7) == 1
    assert [r.content_id for r in await service.get_recent_interactions(USER)] == [2]


@pytest.mark.asyncio
async def test_deletes_in_batches(repo, clock):
    service = InteractionsService(
        repo, config=TrackingConfig(delete_batch_size=2), clock=clock
    )
    for cid in range(1, 6):
        await _log_at(service, clock, cid, days=200)
    await _log_at(service, clock, 99, days=1)

    assert await service.cleanup_old_interactions(USER) == 5
    assert [r.content_id for r in await service.get_recent_interactions(USER)] == [99]


@pytest.mark.asyncio
async def test_nothing_to_delete(service):
    await service.log_interaction(USER, make_event())
    assert await service.cleanup_old_interactions(USER) == 0
    assert await service.cleanup_old_interactions("nobody") == 0


@pytest.mark.asyncio
async def test_store_failure_reports_zero(service, store, clock):
    await _log_at(service, clock, 1, days=100)

    async def _boom(*args, **kwargs):
        raise RuntimeError("query failed")

    store.query = _boom
    assert await service.cleanup_old_interactions(USER) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("days", [0, -1, float("nan")])
async def test_non_positive_override_is_rejected(service, store, clock, days):
    await _log_at(service, clock, 1, days=1)
    writes_before = store.writes

    with pytest.raises(RuleViolation):
        await service.cleanup_old_interactions(USER, retention_days=days)
    assert store.writes == writes_before
    assert len(await service.get_recent_interactions(USER)) == 1
