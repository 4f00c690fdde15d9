"""Command line entrypoint for the product ingest pipeline.

Usage::

    python -m product_ingest.main --pages 10 --batch-size 50
    python -m product_ingest.main --stats-only
    python -m product_ingest.main --index --no-db --single-page 3 --debug
"""

import argparse
import asyncio
import logging
import sys
from contextlib import AsyncExitStack
from typing import Optional

from product_ingest.config import settings
from product_ingest.db.maintenance import MaintenanceService
from product_ingest.db.session import create_engine, verify_connection
from product_ingest.db.store import ProductStore
from product_ingest.db.upsert import BulkUpsertEngine
from product_ingest.errors import FatalPipelineError
from product_ingest.ingest.source_client import CatalogSourceClient
from product_ingest.logging_config import setup_logging
from product_ingest.search.client import SearchIndexClient
from product_ingest.search.importer import IndexImportEngine
from product_ingest.worker.checkpoint import CheckpointStore
from product_ingest.worker.debug_report import DebugReportWriter
from product_ingest.worker.pipeline import PipelineDriver, PipelineOptions

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="product-ingest",
        description="Index catalog products into the relational store and the search index",
    )
    parser.add_argument("-p", "--pages", type=int, default=1,
                        help="Maximum number of pages to process, 0 for all (default: 1)")
    parser.add_argument("-s", "--start-page", type=int, default=1,
                        help="First page to fetch (default: 1)")
    parser.add_argument("--single-page", type=int, default=None,
                        help="Process only this page")
    parser.add_argument("-b", "--batch-size", type=int, default=settings.db_chunk_size,
                        help=f"Products per database transaction (default: {settings.db_chunk_size})")
    parser.add_argument("--api-page-size", type=int, default=settings.api_page_size,
                        help=f"Products per API page (default: {settings.api_page_size})")
    parser.add_argument("--index-batch-size", type=int, default=settings.index_batch_size,
                        help=f"Documents per index import (default: {settings.index_batch_size})")
    parser.add_argument("--update-facets", action="store_true",
                        help="Refresh pre-computed facets after indexing")
    parser.add_argument("--cleanup-old", action="store_true",
                        help=f"Delete inactive products older than {settings.cleanup_days_old} days")
    parser.add_argument("--optimize-tables", action="store_true",
                        help="Optimize product tables after indexing")
    parser.add_argument("--stats-only", action="store_true",
                        help="Only show database statistics")
    parser.add_argument("--dry-run", action="store_true",
                        help="Fetch and transform without writing anything")
    parser.add_argument("--index", action="store_true",
                        help="Also import documents into the search index")
    parser.add_argument("--no-db", action="store_true",
                        help="Do not write to the relational store")
    parser.add_argument("--resume", action="store_true",
                        help="Resume after the last checkpointed page")
    parser.add_argument("--debug", action="store_true",
                        help="Write debug log, error report and document samples under logs/")
    return parser


def options_from_args(args: argparse.Namespace) -> PipelineOptions:
    return PipelineOptions(
        max_pages=args.pages,
        start_page=args.start_page,
        single_page=args.single_page,
        update_facets=args.update_facets,
        cleanup_old=args.cleanup_old,
        optimize_tables=args.optimize_tables,
        stats_only=args.stats_only,
        dry_run=args.dry_run,
        write_database=not args.no_db,
        write_index=args.index,
        resume=args.resume,
        debug=args.debug or settings.debug_reports,
    )


async def run(args: argparse.Namespace) -> int:
    """Wire the collaborators for one run and execute it."""
    options = options_from_args(args)
    logger.info(f"Starting product ingest: {options}")

    needs_database = options.write_database or options.stats_only or options.maintenance_requested

    async with AsyncExitStack() as stack:
        source = CatalogSourceClient(page_size=args.api_page_size)
        stack.push_async_callback(source.close)

        store = maintenance = upsert_engine = None
        if needs_database:
            engine = create_engine()
            stack.push_async_callback(engine.dispose)
            await verify_connection(engine)
            store = await stack.enter_async_context(ProductStore.connect(engine))
            maintenance = MaintenanceService(store)
            upsert_engine = BulkUpsertEngine(store, chunk_size=args.batch_size)

        index_client = importer = None
        if options.write_index:
            index_client = SearchIndexClient()
            stack.push_async_callback(index_client.close)
            importer = IndexImportEngine(index_client, batch_size=args.index_batch_size)

        driver = PipelineDriver(
            source,
            options,
            upsert_engine=upsert_engine,
            importer=importer,
            index_client=index_client,
            maintenance=maintenance,
            checkpoint_store=CheckpointStore(settings.checkpoint_path),
            debug_report=DebugReportWriter() if options.debug else None,
        )
        await driver.run()

    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        return asyncio.run(run(args))
    except FatalPipelineError as e:
        logger.critical(f"Fatal error: {e}")
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_FATAL
    except Exception as e:
        logger.exception(f"Unrecoverable error: {e}")
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
