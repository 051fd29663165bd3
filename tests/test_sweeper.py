import asyncio

import pytest

from otm import metrics
from otm.models import Base
from otm.sweeper import run_sweeper, sweep_once


def test_sweep_once_purges_and_counts(store, clock):
    metrics.reset_metrics()
    store.create("a")
    store.create("b")
    clock.advance(hours=25)
    keep = store.create("c")

    assert asyncio.run(sweep_once(store)) == 2
    assert store.exists(keep)
    assert "messages_purged_total 2" in metrics.render_metrics()


def test_run_sweeper_loops_until_cancelled(store, clock):
    store.create("a")
    clock.advance(hours=25)

    async def scenario():
        task = asyncio.create_task(run_sweeper(store, 0.01))
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert store.purge_expired() == 0


def test_run_sweeper_survives_storage_errors(store, caplog):
    Base.metadata.drop_all(bind=store.engine)

    async def scenario():
        task = asyncio.create_task(run_sweeper(store, 0.01))
        await asyncio.sleep(0.1)
        assert not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    with caplog.at_level("ERROR", logger="otm"):
        asyncio.run(scenario())
    assert "expiry sweep failed" in caplog.text


def test_run_sweeper_survives_unexpected_errors(store, monkeypatch, caplog):
    calls = []

    def broken_purge(now=None):
        calls.append(now)
        raise RuntimeError("boom")

    monkeypatch.setattr(store, "purge_expired", broken_purge)

    async def scenario():
        task = asyncio.create_task(run_sweeper(store, 0.01))
        await asyncio.sleep(0.1)
        assert not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    with caplog.at_level("ERROR", logger="otm"):
        asyncio.run(scenario())
    assert len(calls) >= 2
    assert "expiry sweep failed" in caplog.text
