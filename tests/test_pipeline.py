"""Tests for the page-by-page pipeline driver."""

import json

import pytest

from product_ingest.db.maintenance import MaintenanceService
from product_ingest.db.upsert import BulkUpsertEngine
from product_ingest.errors import FatalPipelineError, FetchError
from product_ingest.ingest.base import BaseSource, CatalogPage, Pagination
from product_ingest.search.importer import IndexImportEngine
from product_ingest.worker.checkpoint import Checkpoint, CheckpointStore
from product_ingest.worker.debug_report import DebugReportWriter
from product_ingest.worker.pipeline import PipelineDriver, PipelineOptions, PipelineState


def _records(page, count=2):
    return [{"id": page * 100 + i, "title": f"Item {page}-{i}", "stock": 1} for i in range(count)]


class FakeSource(BaseSource):
    """
    Serves pages from a dict; an Exception value makes that page fail.

    Pages not in the dict come back empty.
    """

    def __init__(self, pages, page_count=100):
        self.pages = pages
        self.page_count = page_count
        self.calls = []

    async def fetch(self, page):
        self.calls.append(page)
        value = self.pages.get(page, [])
        if isinstance(value, Exception):
            raise value
        return CatalogPage(
            page=page,
            records=value,
            pagination=Pagination(page_count=self.page_count, total_items=None),
        )


class FakeIndexClient:
    def __init__(self, healthy=True):
        self.healthy = healthy
        self.imported = []
        self.collection_ensured = False

    async def health(self):
        return self.healthy

    async def ensure_collection(self):
        self.collection_ensured = True
        return {"name": "products"}

    async def import_documents(self, documents, action="upsert"):
        self.imported.extend(documents)
        return [{"success": True} for _ in documents]


def _driver(source, options, **kwargs):
    kwargs.setdefault("page_pause", 0)
    kwargs.setdefault("error_pause", 0)
    kwargs.setdefault("max_consecutive_errors", 5)
    return PipelineDriver(source, options, **kwargs)


class TestPageLoop:
    @pytest.mark.asyncio
    async def test_empty_first_page(self):
        source = FakeSource({1: []})
        driver = _driver(source, PipelineOptions(max_pages=0, write_database=False))

        stats = await driver.run()

        assert source.calls == [1]
        assert all(value == 0 for value in stats.counters().values())
        assert driver.state == PipelineState.DONE

    @pytest.mark.asyncio
    async def test_error_streak_aborts_run(self):
        source = FakeSource({p: FetchError(page=p, attempts=3) for p in range(1, 20)})
        driver = _driver(source, PipelineOptions(max_pages=0, write_database=False))

        with pytest.raises(FatalPipelineError):
            await driver.run()

        assert source.calls == [1, 2, 3, 4, 5, 6]
        assert driver.stats.pages_failed == 6
        assert driver.state == PipelineState.FATAL

    @pytest.mark.asyncio
    async def test_success_resets_error_streak(self):
        pages = {p: FetchError(page=p, attempts=3) for p in range(1, 6)}
        pages[6] = _records(6)
        pages.update({p: FetchError(page=p, attempts=3) for p in range(7, 12)})
        source = FakeSource(pages)
        driver = _driver(source, PipelineOptions(max_pages=0, write_database=False))

        stats = await driver.run()

        assert source.calls == list(range(1, 13))
        assert stats.pages_failed == 10
        assert stats.pages_processed == 1
        assert stats.processed == 2

    @pytest.mark.asyncio
    async def test_page_cap(self):
        source = FakeSource({p: _records(p) for p in range(1, 10)})
        driver = _driver(source, PipelineOptions(max_pages=3, start_page=2, write_database=False))

        stats = await driver.run()

        assert source.calls == [2, 3, 4]
        assert stats.pages_processed == 3
        assert stats.fetched == 6

    @pytest.mark.asyncio
    async def test_single_page(self):
        source = FakeSource({p: _records(p) for p in range(1, 10)})
        driver = _driver(source, PipelineOptions(single_page=7, write_database=False))

        await driver.run()

        assert source.calls == [7]

    @pytest.mark.asyncio
    async def test_stops_at_last_catalog_page(self):
        source = FakeSource({p: _records(p) for p in range(1, 10)}, page_count=2)
        driver = _driver(source, PipelineOptions(max_pages=0, write_database=False))

        await driver.run()

        assert source.calls == [1, 2]

    @pytest.mark.asyncio
    async def test_transform_errors_are_counted_per_record(self):
        source = FakeSource({1: [{"id": 1, "title": "ok"}, {"title": "no id"}, "garbage"]}, page_count=1)
        driver = _driver(source, PipelineOptions(write_database=False, write_index=True, dry_run=True))

        stats = await driver.run()

        assert stats.fetched == 3
        assert stats.processed == 1
        assert stats.transform_errors == 2


class TestDatabaseWrites:
    @pytest.mark.asyncio
    async def test_writes_pages_to_database(self, store, db_reader, shoe_record):
        source = FakeSource({1: [shoe_record], 2: _records(2, count=3)}, page_count=2)
        driver = _driver(
            source,
            PipelineOptions(max_pages=0),
            upsert_engine=BulkUpsertEngine(store, chunk_size=2, chunk_pause=0),
            maintenance=MaintenanceService(store),
        )

        stats = await driver.run()

        assert stats.inserted == 4
        assert stats.updated == 0
        assert stats.db_errors == 0
        assert set(await db_reader.products()) == {42, 200, 201, 202}
        assert driver.initial_db_stats["products"]["total_products"] == 0
        assert driver.final_db_stats["products"]["total_products"] == 4

    @pytest.mark.asyncio
    async def test_second_run_updates(self, store, shoe_record):
        options = PipelineOptions(max_pages=1)
        engine = BulkUpsertEngine(store, chunk_pause=0)

        await _driver(FakeSource({1: [shoe_record]}), options, upsert_engine=engine).run()
        stats = await _driver(FakeSource({1: [shoe_record]}), options, upsert_engine=engine).run()

        assert stats.inserted == 0
        assert stats.updated == 1

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, store, db_reader, shoe_record, tmp_path):
        checkpoints = CheckpointStore(tmp_path / "checkpoint.json")
        driver = _driver(
            FakeSource({1: [shoe_record]}, page_count=1),
            PipelineOptions(max_pages=0, dry_run=True, cleanup_old=True),
            upsert_engine=BulkUpsertEngine(store, chunk_pause=0),
            maintenance=MaintenanceService(store),
            checkpoint_store=checkpoints,
        )

        stats = await driver.run()

        assert stats.processed == 1
        assert stats.inserted == 0
        assert await db_reader.products() == {}
        assert driver.maintenance_results == {}
        assert checkpoints.load() is None

    @pytest.mark.asyncio
    async def test_maintenance_runs_after_pages(self, store):
        driver = _driver(
            FakeSource({1: []}),
            PipelineOptions(cleanup_old=True),
            upsert_engine=BulkUpsertEngine(store, chunk_pause=0),
            maintenance=MaintenanceService(store),
        )

        await driver.run()

        assert driver.maintenance_results["cleanup_old"]["deleted"] == 0

    @pytest.mark.asyncio
    async def test_stats_only(self, store):
        source = FakeSource({1: _records(1)})
        driver = _driver(
            source,
            PipelineOptions(stats_only=True),
            maintenance=MaintenanceService(store),
        )

        await driver.run()

        assert source.calls == []
        assert driver.initial_db_stats["products"]["total_products"] == 0
        assert driver.state == PipelineState.DONE


class TestIndexWrites:
    @pytest.mark.asyncio
    async def test_documents_are_indexed(self, shoe_record):
        client = FakeIndexClient()
        driver = _driver(
            FakeSource({1: [shoe_record], 2: _records(2)}, page_count=2),
            PipelineOptions(max_pages=0, write_database=False, write_index=True),
            importer=IndexImportEngine(client, batch_size=10, batch_pause=0),
            index_client=client,
        )

        stats = await driver.run()

        assert client.collection_ensured
        assert stats.indexed == 3
        assert stats.index_failed == 0
        assert stats.batches == 2
        assert [doc["objectID"] for doc in client.imported] == ["X42", "200", "201"]

    @pytest.mark.asyncio
    async def test_unhealthy_index_is_fatal(self):
        client = FakeIndexClient(healthy=False)
        source = FakeSource({1: _records(1)})
        driver = _driver(
            source,
            PipelineOptions(write_database=False, write_index=True),
            importer=IndexImportEngine(client, batch_pause=0),
            index_client=client,
        )

        with pytest.raises(FatalPipelineError):
            await driver.run()

        assert source.calls == []
        assert driver.state == PipelineState.FATAL


class TestCheckpoints:
    @pytest.mark.asyncio
    async def test_resume_from_checkpoint(self, tmp_path):
        checkpoints = CheckpointStore(tmp_path / "checkpoint.json")
        checkpoints.save(Checkpoint(last_successful_page=3, stats={"fetched": 10, "processed": 9}))
        source = FakeSource({p: _records(p) for p in range(1, 10)})
        driver = _driver(
            source,
            PipelineOptions(max_pages=1, resume=True, write_database=False),
            checkpoint_store=checkpoints,
        )

        stats = await driver.run()

        assert source.calls == [4]
        assert stats.fetched == 12
        assert stats.processed == 11
        saved = checkpoints.load()
        assert saved.last_successful_page == 4
        assert saved.stats["fetched"] == 12

    @pytest.mark.asyncio
    async def test_checkpoint_saved_on_fatal(self, tmp_path):
        checkpoints = CheckpointStore(tmp_path / "checkpoint.json")
        pages = {1: _records(1)}
        pages.update({p: FetchError(page=p, attempts=3) for p in range(2, 20)})
        driver = _driver(
            FakeSource(pages),
            PipelineOptions(max_pages=0, write_database=False),
            checkpoint_store=checkpoints,
        )

        with pytest.raises(FatalPipelineError):
            await driver.run()

        assert checkpoints.load().last_successful_page == 1


@pytest.mark.asyncio
async def test_debug_report_files(tmp_path, shoe_record):
    report = DebugReportWriter(base_path=str(tmp_path))
    client = FakeIndexClient()
    driver = _driver(
        FakeSource({1: [shoe_record]}, page_count=1),
        PipelineOptions(write_database=False, write_index=True, debug=True),
        importer=IndexImportEngine(client, batch_pause=0),
        index_client=client,
        debug_report=report,
    )

    await driver.run()

    assert report.log_path.exists()
    error_report = json.loads(report.error_report_path.read_text(encoding="utf-8"))
    assert error_report["summary"]["indexed"] == 1
    assert error_report["errorAnalysis"] == {}
    samples = json.loads(report.samples_path.read_text(encoding="utf-8"))
    assert samples[0]["productId"] == 42
