from __future__ import annotations

import asyncio

import pytest

from pricing_pdf_web.domain.models import Run, RunStatus
from pricing_pdf_web.repositories.run_repository import InMemoryRunStore


def _make_run(run_id: str = "run-1") -> Run:
    return Run(
        id=run_id,
        user_id="tester",
        domains=["a.test", "b.test"],
        input_count=2,
        invalid_tokens=[],
        time_zone="UTC",
        created_at="2026-01-01T00:00:00.000+00:00",
    )


def test_new_run_starts_queued_with_zero_progress():
    run = _make_run()
    assert run.status == RunStatus.QUEUED
    assert not run.status.is_terminal
    assert run.progress.to_dict() == {"processed": 0, "total": 2, "current_domain": None}
    assert run.download_ready is False


def test_add_and_get():
    store = InMemoryRunStore()
    run = _make_run()
    store.add(run)

    assert store.get("run-1") is run
    assert "run-1" in store
    assert len(store) == 1
    assert store.get("other") is None


def test_add_duplicate_raises():
    store = InMemoryRunStore()
    store.add(_make_run())
    with pytest.raises(ValueError):
        store.add(_make_run())


def test_evict_drops_run_and_bytes():
    store = InMemoryRunStore()
    run = _make_run()
    run.pdf_bytes = b"%PDF"
    store.add(run)

    store.evict("run-1")
    store.evict("run-1")   # second call is a no-op

    assert store.get("run-1") is None
    assert run.pdf_bytes is None


def test_scheduled_eviction_fires_after_ttl():
    store = InMemoryRunStore(ttl_seconds=0.01)

    async def scenario():
        store.add(_make_run())
        store.schedule_eviction("run-1")
        assert "run-1" in store
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert "run-1" not in store


def test_close_cancels_pending_evictions():
    store = InMemoryRunStore(ttl_seconds=0.01)

    async def scenario():
        store.add(_make_run())
        store.schedule_eviction("run-1")
        store.close()
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert "run-1" in store
