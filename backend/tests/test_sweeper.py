"""
Unit Tests for ExpirySweeper
"""
import asyncio
from datetime import timedelta

import pytest

from sharebox.errors import ExpiredError
from sharebox.services.blob_store import DeleteOutcome


class TestRunOnce:
    """Test a single sweep"""

    async def test_reclaims_only_expired(self, lifecycle, sweeper, repository, blob_store, make_source, clock):
        short = await lifecycle.create("short", 10, [make_source("a.pdf"), make_source("b.png")])
        long = await lifecycle.create("long", 120, [make_source("c.pdf")])
        clock.advance(minutes=11)

        result = await sweeper.run_once()

        assert result.expired == 1
        assert result.reclaimed == 1
        assert result.failed == 0
        assert await repository.find_by_public_id(short.public_id) is None
        kept = await repository.find_by_public_id(long.public_id)
        assert kept is not None
        assert len(kept.files) == 1
        assert list(blob_store.objects) == [(kept.files[0].content_category, kept.files[0].storage_key)]

    async def test_nothing_expired(self, lifecycle, sweeper, repository, blob_store, make_source):
        await lifecycle.create("x", 10, [make_source("a.pdf")])

        result = await sweeper.run_once()

        assert result.expired == 0
        assert blob_store.deletes == []
        assert await repository.count() == 1

    async def test_one_failure_does_not_abort_sweep(self, lifecycle, sweeper, repository, make_source, clock, monkeypatch):
        first = await lifecycle.create("first", 5, [make_source("a.pdf")])
        second = await lifecycle.create("second", 6, [make_source("b.pdf")])
        clock.advance(minutes=10)

        real_reclaim = lifecycle.reclaim

        async def flaky_reclaim(container):
            if container.public_id == first.public_id:
                raise RuntimeError("boom")
            return await real_reclaim(container)

        monkeypatch.setattr(lifecycle, "reclaim", flaky_reclaim)

        result = await sweeper.run_once()

        assert result.expired == 2
        assert result.failed == 1
        assert result.reclaimed == 1
        assert await repository.find_by_public_id(first.public_id) is not None
        assert await repository.find_by_public_id(second.public_id) is None

    async def test_counts_leaked_blobs(self, lifecycle, sweeper, blob_store, make_source, clock):
        container = await lifecycle.create("x", 5, [make_source("a.pdf")])
        blob_store.fail_deletes.add(container.files[0].storage_key)
        clock.advance(minutes=6)

        result = await sweeper.run_once()

        assert result.reclaimed == 1
        assert result.leaked_blobs == 1

    async def test_concurrent_sweeps_are_safe(self, lifecycle, sweeper, repository, make_source, clock):
        for i in range(3):
            await lifecycle.create(f"c{i}", 5, [make_source(f"{i}.pdf")])
        clock.advance(minutes=6)

        results = await asyncio.gather(sweeper.run_once(), sweeper.run_once())

        assert all(r.failed == 0 for r in results)
        assert await repository.count() == 0


class TestEndToEnd:
    """Create, resolve, expire, sweep"""

    async def test_report_scenario(self, lifecycle, retrieval, sweeper, repository, blob_store, make_source, clock):
        container = await lifecycle.create("Report", 60, [make_source("report.pdf", 1024)])
        assert container.expires_at - container.created_at == timedelta(minutes=60)

        view = await retrieval.resolve(container.public_id)
        assert view.files[0].download_name == "report-03-14-2026.pdf"

        clock.advance(minutes=61)
        with pytest.raises(ExpiredError):
            await retrieval.resolve(container.public_id)

        await sweeper.run_once()

        key = container.files[0].storage_key
        assert blob_store.deletes == [(key, "raw", DeleteOutcome.DELETED)]
        assert await repository.find_by_public_id(container.public_id) is None


class TestLoop:
    """Test the background task"""

    async def test_start_and_stop(self, lifecycle, sweeper, repository, make_source, clock):
        await lifecycle.create("x", 1, [make_source("a.pdf")])
        clock.advance(minutes=2)

        sweeper.start()
        for _ in range(100):
            if await repository.count() == 0:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert await repository.count() == 0

    async def test_loop_survives_failing_sweep(self, sweeper, monkeypatch):
        calls = 0

        async def failing_run_once():
            nonlocal calls
            calls += 1
            raise RuntimeError("database down")

        monkeypatch.setattr(sweeper, "run_once", failing_run_once)

        sweeper.start()
        for _ in range(100):
            if calls >= 2:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert calls >= 2
