"""Prometheus metrics for the product ingest pipeline."""

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("product_ingest", "Product ingest pipeline info")
app_info.info({"version": "0.1.0", "name": "product-ingest"})

# Fetch metrics
pages_total = Counter(
    "ingest_pages_total",
    "Catalog pages processed by the driver",
    ["status"],
)

fetch_attempts_total = Counter(
    "ingest_fetch_attempts_total",
    "HTTP attempts against the catalog API",
    ["status"],
)

page_duration_seconds = Histogram(
    "ingest_page_duration_seconds",
    "Time spent processing one catalog page",
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

# Relational store metrics
products_written_total = Counter(
    "ingest_products_written_total",
    "Products written to the relational store",
    ["result"],
)

chunks_total = Counter(
    "ingest_chunks_total",
    "Upsert chunks by outcome",
    ["status"],
)

# Search index metrics
documents_indexed_total = Counter(
    "ingest_documents_indexed_total",
    "Documents submitted to the search index",
    ["status"],
)

# Maintenance metrics
maintenance_runs_total = Counter(
    "ingest_maintenance_runs_total",
    "Maintenance sub-operations by outcome",
    ["operation", "status"],
)


def record_fetch_attempt(success: bool):
    """Record one HTTP attempt against the catalog API."""
    fetch_attempts_total.labels(status="success" if success else "error").inc()


def record_page(success: bool, duration: float | None = None):
    """Record a processed (or failed) page."""
    pages_total.labels(status="success" if success else "error").inc()
    if duration is not None:
        page_duration_seconds.observe(duration)


def record_chunk(committed: bool, inserted: int, updated: int, errors: int):
    """Record the outcome of one upsert chunk."""
    chunks_total.labels(status="committed" if committed else "rolled_back").inc()
    if inserted:
        products_written_total.labels(result="inserted").inc(inserted)
    if updated:
        products_written_total.labels(result="updated").inc(updated)
    if errors:
        products_written_total.labels(result="error").inc(errors)


def record_index_batch(indexed: int, failed: int):
    """Record the outcome of one index import batch."""
    if indexed:
        documents_indexed_total.labels(status="indexed").inc(indexed)
    if failed:
        documents_indexed_total.labels(status="failed").inc(failed)


def record_maintenance(operation: str, success: bool):
    """Record a maintenance sub-operation."""
    status = "success" if success else "error"
    maintenance_runs_total.labels(operation=operation, status=status).inc()
