"""Page-by-page ingest driver: fetch, normalize/project, write, maintain."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from product_ingest import metrics
from product_ingest.config import settings
from product_ingest.db.maintenance import MaintenanceService
from product_ingest.db.upsert import BulkUpsertEngine
from product_ingest.errors import FatalPipelineError, TransformError
from product_ingest.ingest.base import BaseSource, CatalogPage
from product_ingest.normalize.processor import NormalizedProduct, RecordNormalizer
from product_ingest.search.client import SearchIndexClient
from product_ingest.search.importer import IndexImportEngine
from product_ingest.search.projector import DocumentProjector
from product_ingest.worker.checkpoint import Checkpoint, CheckpointStore
from product_ingest.worker.debug_report import DebugReportWriter

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Driver states."""

    IDLE = "idle"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    WRITING = "writing"
    MAINTENANCE = "maintenance"
    DONE = "done"
    FATAL = "fatal"


@dataclass
class PipelineOptions:
    """Operator options for one run."""

    max_pages: int = 1  # 0 means until the catalog is exhausted
    start_page: int = 1
    single_page: Optional[int] = None
    update_facets: bool = False
    cleanup_old: bool = False
    optimize_tables: bool = False
    stats_only: bool = False
    dry_run: bool = False
    write_database: bool = True
    write_index: bool = False
    resume: bool = False
    debug: bool = False

    def __post_init__(self):
        if self.single_page:
            self.start_page = self.single_page
            self.max_pages = 1
        self.start_page = max(1, self.start_page)
        self.max_pages = max(0, self.max_pages)

    @property
    def writes_enabled(self) -> bool:
        return not self.dry_run

    @property
    def maintenance_requested(self) -> bool:
        return self.cleanup_old or self.update_facets or self.optimize_tables


@dataclass
class PipelineStats:
    pages_processed: int = 0
    pages_failed: int = 0
    fetched: int = 0
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    db_errors: int = 0
    indexed: int = 0
    index_failed: int = 0
    transform_errors: int = 0
    batches: int = 0
    last_successful_page: Optional[int] = None
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    @property
    def duration(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    @property
    def products_per_second(self) -> float:
        duration = self.duration
        return round(self.processed / duration, 2) if duration > 0 else 0.0

    def counters(self) -> dict[str, int]:
        return {
            "pages_processed": self.pages_processed,
            "pages_failed": self.pages_failed,
            "fetched": self.fetched,
            "processed": self.processed,
            "inserted": self.inserted,
            "updated": self.updated,
            "db_errors": self.db_errors,
            "indexed": self.indexed,
            "index_failed": self.index_failed,
            "transform_errors": self.transform_errors,
            "batches": self.batches,
        }

    def summary(self) -> dict[str, Any]:
        return {
            **self.counters(),
            "last_successful_page": self.last_successful_page,
            "duration_seconds": round(self.duration, 2),
            "products_per_second": self.products_per_second,
        }

    def restore(self, counters: dict[str, Any]):
        """Continue counting from a checkpoint's totals."""
        for name in self.counters():
            value = counters.get(name)
            if isinstance(value, int):
                setattr(self, name, value)


class PipelineDriver:
    """
    Drive the ingest loop over catalog pages.

    Pages are processed strictly in ascending order. A failed page bumps the
    consecutive error streak; once the streak goes above the limit the run
    stops as fatal. An empty page, the last page of the catalog or the page
    cap ends the run normally.
    """

    def __init__(
        self,
        source: BaseSource,
        options: Optional[PipelineOptions] = None,
        upsert_engine: Optional[BulkUpsertEngine] = None,
        importer: Optional[IndexImportEngine] = None,
        index_client: Optional[SearchIndexClient] = None,
        maintenance: Optional[MaintenanceService] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        debug_report: Optional[DebugReportWriter] = None,
        normalizer: Optional[RecordNormalizer] = None,
        projector: Optional[DocumentProjector] = None,
        page_pause: Optional[float] = None,
        error_pause: Optional[float] = None,
        max_consecutive_errors: Optional[int] = None,
        checkpoint_interval: Optional[int] = None,
    ):
        self.source = source
        self.options = options or PipelineOptions()
        self.upsert_engine = upsert_engine
        self.importer = importer
        self.index_client = index_client
        self.maintenance = maintenance
        self.checkpoint_store = checkpoint_store
        self.debug_report = debug_report
        self.normalizer = normalizer or RecordNormalizer()
        self.projector = projector or DocumentProjector()

        self.page_pause = settings.page_pause_seconds if page_pause is None else page_pause
        self.error_pause = settings.error_pause_seconds if error_pause is None else error_pause
        self.max_consecutive_errors = (
            settings.max_consecutive_errors if max_consecutive_errors is None else max_consecutive_errors
        )
        self.checkpoint_interval = checkpoint_interval or settings.checkpoint_interval

        self.state = PipelineState.IDLE
        self.current_page = self.options.start_page
        self.error_streak = 0
        self.stats = PipelineStats()
        self.initial_db_stats: Optional[dict[str, Any]] = None
        self.final_db_stats: Optional[dict[str, Any]] = None
        self.maintenance_results: dict[str, Any] = {}

    # -- state -------------------------------------------------------------

    def _transition(self, state: PipelineState):
        if state != self.state:
            logger.debug(f"Pipeline {self.state.value} -> {state.value} (page {self.current_page})")
            self.state = state

    @property
    def _normalize_enabled(self) -> bool:
        return self.options.write_database

    @property
    def _project_enabled(self) -> bool:
        return self.options.write_index

    @property
    def last_page(self) -> Optional[int]:
        if self.options.max_pages <= 0:
            return None
        return self.options.start_page + self.options.max_pages - 1

    # -- run ---------------------------------------------------------------

    async def run(self) -> PipelineStats:
        """
        Execute the run.

        Returns:
            Aggregate stats

        Raises:
            FatalPipelineError: On error streak abort or failed index bootstrap
        """
        if self.debug_report and self.options.debug:
            self.debug_report.start()

        try:
            if self.options.stats_only:
                self.initial_db_stats = await self._database_stats()
                self._transition(PipelineState.DONE)
                return self.stats

            if self.options.write_database:
                self.initial_db_stats = await self._database_stats()

            self._apply_checkpoint()

            if self.options.write_index and self.options.writes_enabled:
                await self._bootstrap_index()

            if self.options.dry_run:
                logger.info("Dry run: records are fetched and transformed but nothing is written")

            await self._page_loop()
            await self._run_maintenance()

            if self.options.write_database:
                self.final_db_stats = await self._database_stats()

            self._transition(PipelineState.DONE)
            return self.stats
        except FatalPipelineError:
            self._transition(PipelineState.FATAL)
            raise
        finally:
            self.stats.end_time = time.time()
            if not self.options.stats_only:
                self._save_checkpoint()
                self._log_summary()
            self._write_debug_report()

    async def _page_loop(self):
        while True:
            if self.last_page is not None and self.current_page > self.last_page:
                logger.info(f"Page limit reached ({self.options.max_pages} pages)")
                break

            page_started = time.time()
            self._transition(PipelineState.FETCHING)
            try:
                page = await self.source.fetch(self.current_page)
            except Exception as e:
                await self._page_failed(e)
                continue

            if page.is_empty:
                logger.info(f"Page {self.current_page} is empty, no more products to process")
                break

            try:
                await self._process_page(page)
            except FatalPipelineError:
                raise
            except Exception as e:
                logger.exception(f"Unexpected error processing page {self.current_page}: {e}")
                await self._page_failed(e)
                continue

            self.error_streak = 0
            self.stats.pages_processed += 1
            self.stats.last_successful_page = self.current_page
            metrics.record_page(success=True, duration=time.time() - page_started)

            if self.stats.pages_processed % self.checkpoint_interval == 0:
                self._save_checkpoint()

            pagination = page.pagination
            if pagination is None or pagination.page_count is None or self.current_page >= pagination.page_count:
                logger.info(f"Last catalog page reached ({self.current_page})")
                break

            if self.page_pause:
                await asyncio.sleep(self.page_pause)
            self.current_page += 1

    async def _page_failed(self, error: Exception):
        self.error_streak += 1
        self.stats.pages_failed += 1
        metrics.record_page(success=False)
        logger.error(f"Error on page {self.current_page} (streak {self.error_streak}): {error}")

        if self.error_streak > self.max_consecutive_errors:
            logger.critical("Too many consecutive errors, aborting")
            raise FatalPipelineError(
                f"Too many consecutive errors ({self.error_streak}) at page {self.current_page}"
            ) from error

        if self.error_pause:
            await asyncio.sleep(self.error_pause)
        self.current_page += 1

    async def _process_page(self, page: CatalogPage):
        logger.info(f"Page {page.page}: {len(page.records)} products fetched")
        self.stats.fetched += len(page.records)

        self._transition(PipelineState.NORMALIZING)
        products, documents, failures = self._transform(page.records)
        self.stats.processed += len(page.records) - failures

        if self.options.dry_run:
            logger.info(
                f"[dry run] Page {page.page}: would write {len(products)} rows "
                f"and index {len(documents)} documents"
            )
            return

        self._transition(PipelineState.WRITING)
        if self.options.write_database and products:
            await self._write_database(page.page, products)
        if self.options.write_index and documents:
            await self._write_index(page.page, documents)

    def _transform(self, records: list) -> tuple[list[NormalizedProduct], list[dict], int]:
        """Normalize and/or project every record; a failing record is left out."""
        products: list[NormalizedProduct] = []
        documents: list[dict] = []
        failures = 0

        for raw in records:
            failed = False
            if self._normalize_enabled:
                try:
                    products.append(self.normalizer.normalize(raw))
                except TransformError as e:
                    failed = True
                    self._record_transform_error(e)
            if self._project_enabled:
                try:
                    document = self.projector.project(raw)
                except TransformError as e:
                    failed = True
                    self._record_transform_error(e)
                else:
                    documents.append(document)
                    if self.debug_report:
                        self.debug_report.add_sample(document["product_id"], document["title"], document)
            if failed:
                failures += 1

        self.stats.transform_errors += failures
        return products, documents, failures

    def _record_transform_error(self, error: TransformError):
        logger.warning(str(error))
        if self.debug_report:
            self.debug_report.add_errors([
                {"product_id": error.record_id, "stage": "transform", "error_message": str(error)}
            ])

    async def _write_database(self, page_number: int, products: list[NormalizedProduct]):
        result = await self.upsert_engine.bulk_upsert(products)
        self.stats.inserted += result.inserted
        self.stats.updated += result.updated
        self.stats.db_errors += result.errors
        logger.info(
            f"Page {page_number}: {result.inserted} inserted, {result.updated} updated, "
            f"{result.errors} errors"
        )

    async def _write_index(self, page_number: int, documents: list[dict]):
        batches_before = self.importer.batches
        result = await self.importer.import_all(documents)
        self.stats.indexed += result.indexed
        self.stats.index_failed += result.failed
        self.stats.batches += self.importer.batches - batches_before
        if self.debug_report and result.errors:
            self.debug_report.add_errors([e.to_dict() for e in result.errors])
        logger.info(f"Page {page_number}: {result.indexed} indexed, {result.failed} failed")

    # -- collaborators -------------------------------------------------------

    async def _bootstrap_index(self):
        if self.index_client is None:
            return
        if not await self.index_client.health():
            raise FatalPipelineError("Search index is not available")
        try:
            await self.index_client.ensure_collection()
        except Exception as e:
            raise FatalPipelineError(f"Could not prepare search collection: {e}") from e

    async def _database_stats(self) -> Optional[dict[str, Any]]:
        if self.maintenance is None:
            return None
        try:
            stats = await self.maintenance.get_database_stats()
        except Exception as e:
            logger.error(f"Error getting database stats: {e}")
            return None
        products = stats["products"]
        logger.info(
            f"Database: {products['total_products']} products "
            f"({products['active_products']} active), "
            f"{stats['images']['total_images']} images, "
            f"{stats['attributes']['total_attributes']} attributes, "
            f"{stats['facets']['total_facets']} facets"
        )
        return stats

    async def _run_maintenance(self):
        if not self.options.maintenance_requested or self.maintenance is None:
            return
        if self.options.dry_run:
            logger.info("[dry run] Skipping maintenance")
            return
        self._transition(PipelineState.MAINTENANCE)
        self.maintenance_results = await self.maintenance.run(
            cleanup_old=self.options.cleanup_old,
            update_facets=self.options.update_facets,
            optimize_tables=self.options.optimize_tables,
        )

    def _apply_checkpoint(self):
        if not (self.options.resume and self.checkpoint_store):
            return
        checkpoint = self.checkpoint_store.load()
        if checkpoint is None:
            return
        self.current_page = checkpoint.next_page
        self.options.start_page = checkpoint.next_page
        self.stats.restore(checkpoint.stats)
        self.stats.last_successful_page = checkpoint.last_successful_page

    def _save_checkpoint(self):
        if self.checkpoint_store is None or self.stats.last_successful_page is None:
            return
        if self.options.dry_run:
            return
        self.checkpoint_store.save(
            Checkpoint(last_successful_page=self.stats.last_successful_page, stats=self.stats.counters())
        )

    def _log_summary(self):
        s = self.stats
        logger.info(
            f"Run finished ({self.state.value}) in {s.duration:.2f}s: "
            f"{s.pages_processed} pages, {s.processed} processed, "
            f"{s.inserted} inserted, {s.updated} updated, {s.db_errors} db errors, "
            f"{s.indexed} indexed, {s.index_failed} index failures, "
            f"{s.transform_errors} transform errors, {s.products_per_second} products/s"
        )

    def _write_debug_report(self):
        if not (self.debug_report and self.options.debug):
            return
        try:
            error_analysis = self.importer.error_analysis.to_dict() if self.importer else {}
            self.debug_report.write(self.stats.summary(), error_analysis)
        except OSError as e:
            logger.error(f"Error writing debug report: {e}")
        finally:
            self.debug_report.stop()
