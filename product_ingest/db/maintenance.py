"""Maintenance operations on the product store: cleanup, facets, optimize, stats."""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import and_, case, delete, distinct, func, select

from product_ingest import metrics
from product_ingest.config import settings
from product_ingest.db.models import (
    OPTIMIZABLE_TABLES,
    FacetCount,
    Product,
    ProductAttribute,
    ProductImage,
    ProductVariation,
)
from product_ingest.db.store import ProductStore

logger = logging.getLogger(__name__)

FACETS_PROCEDURE = "CALL UpdateAllFacets()"


def _now_iso() -> str:
    return datetime.utcnow().isoformat()


class MaintenanceService:
    """Housekeeping tasks run before or after an ingest pass."""

    def __init__(self, store: ProductStore):
        self.store = store

    async def cleanup_old_products(self, days_old: Optional[int] = None) -> dict[str, Any]:
        """
        Delete inactive products not updated in ``days_old`` days.

        Children of the swept products are deleted explicitly as well, so the
        result is the same whether or not the store enforces foreign keys.
        """
        days_old = settings.cleanup_days_old if days_old is None else days_old
        cutoff = datetime.utcnow() - timedelta(days=days_old)
        logger.info(f"Cleaning up inactive products older than {days_old} days")

        stale = and_(Product.status == 0, Product.updated_at < cutoff)

        await self.store.begin()
        try:
            result = await self.store.execute(select(Product.id).where(stale))
            ids = [row[0] for row in result]
            if ids:
                for model in (ProductImage, ProductAttribute, ProductVariation):
                    await self.store.execute(delete(model).where(model.product_id.in_(ids)))
                await self.store.execute(delete(Product).where(Product.id.in_(ids)))
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise

        logger.info(f"{len(ids)} old products deleted")
        return {"deleted": len(ids), "days_old": days_old, "timestamp": _now_iso()}

    async def update_facets(self) -> dict[str, Any]:
        """Re-materialize ``facet_counts`` through the stored aggregator."""
        start = time.time()
        logger.info("Updating pre-computed facets")
        await self.store.autocommit_unprepared(FACETS_PROCEDURE)
        duration = time.time() - start
        logger.info(f"Facets updated in {duration:.2f}s")
        return {"success": True, "duration": duration, "timestamp": _now_iso()}

    async def optimize_tables(self) -> dict[str, Any]:
        """Run ``OPTIMIZE TABLE`` on every product table; one failure does not stop the rest."""
        results = []
        for table in OPTIMIZABLE_TABLES:
            start = time.time()
            try:
                await self.store.autocommit_unprepared(f"OPTIMIZE TABLE {table}")
            except Exception as e:
                logger.error(f"Error optimizing table {table}: {e}")
                results.append({"table": table, "success": False, "error": str(e)})
                continue
            duration = time.time() - start
            logger.info(f"Table {table} optimized in {duration:.2f}s")
            results.append({"table": table, "success": True, "duration": duration})

        if not any(r["success"] for r in results):
            raise RuntimeError("No table could be optimized")
        return {"results": results, "timestamp": _now_iso()}

    async def get_database_stats(self) -> dict[str, Any]:
        """Row counts and aggregates over the product tables."""
        await self.store.begin()
        try:
            products = (await self.store.execute(
                select(
                    func.count().label("total_products"),
                    func.count(case((and_(Product.status == 1, Product.visible == 1), 1))).label("active_products"),
                    func.count(distinct(Product.brand)).label("unique_brands"),
                    func.count(distinct(Product.store_id)).label("unique_stores"),
                    func.count(distinct(Product.category_id)).label("unique_categories"),
                    func.avg(Product.sales_price).label("avg_price"),
                    func.sum(Product.stock).label("total_stock"),
                ).select_from(Product)
            )).mappings().one()

            images = await self._count(ProductImage)
            variations = await self._count(ProductVariation)
            attributes = await self._count(ProductAttribute)

            facets = (await self.store.execute(
                select(
                    func.count().label("total_facets"),
                    func.max(FacetCount.last_updated).label("last_facet_update"),
                ).select_from(FacetCount)
            )).mappings().one()
        finally:
            await self.store.rollback()

        avg_price = products["avg_price"]
        return {
            "products": {
                **dict(products),
                "avg_price": float(avg_price) if avg_price is not None else None,
                "total_stock": int(products["total_stock"] or 0),
            },
            "images": {"total_images": images},
            "variations": {"total_variations": variations},
            "attributes": {"total_attributes": attributes},
            "facets": dict(facets),
            "timestamp": _now_iso(),
        }

    async def _count(self, model) -> int:
        result = await self.store.execute(select(func.count()).select_from(model))
        return result.scalar_one()

    async def run(
        self,
        cleanup_old: bool = False,
        update_facets: bool = False,
        optimize_tables: bool = False,
        days_old: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Run the requested sub-operations in order: cleanup, facets, optimize.

        Each one is independent; a failure is logged and recorded in the
        result without preventing the others.
        """
        operations = []
        if cleanup_old:
            operations.append(("cleanup_old", lambda: self.cleanup_old_products(days_old)))
        if update_facets:
            operations.append(("update_facets", self.update_facets))
        if optimize_tables:
            operations.append(("optimize_tables", self.optimize_tables))

        results: dict[str, Any] = {}
        for name, operation in operations:
            try:
                results[name] = await operation()
                metrics.record_maintenance(name, success=True)
            except Exception as e:
                logger.error(f"Maintenance operation {name} failed: {e}")
                results[name] = {"success": False, "error": str(e)}
                metrics.record_maintenance(name, success=False)
        return results
