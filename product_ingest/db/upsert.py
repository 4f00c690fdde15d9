"""Chunked existence-check-then-write upsert of normalized products."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import DBAPIError

from product_ingest import metrics
from product_ingest.config import settings
from product_ingest.db.models import Product, ProductAttribute, ProductImage
from product_ingest.db.store import ProductStore
from product_ingest.errors import ChunkWriteError
from product_ingest.normalize.processor import NormalizedProduct

logger = logging.getLogger(__name__)

# MySQL lock wait timeout, deadlock, server gone away, lost connection.
# After any of these the server has already discarded the open transaction.
TRANSACTION_ABORT_CODES = (1205, 1213, 2006, 2013)


def _error_code(orig: BaseException) -> Optional[int]:
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    text = str(orig)
    for code in TRANSACTION_ABORT_CODES:
        if text.startswith(f"({code})"):
            return code
    return None


def aborts_transaction(error: BaseException) -> bool:
    """
    True when ``error`` (or one it was raised while handling) means the
    surrounding transaction is gone, so only a chunk rollback is meaningful.
    """
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, DBAPIError):
            if current.connection_invalidated:
                return True
            if _error_code(current.orig) in TRANSACTION_ABORT_CODES:
                return True
        current = current.__cause__ or current.__context__
    return False


@dataclass
class UpsertResult:
    inserted: int = 0
    updated: int = 0
    errors: int = 0

    def merge(self, other: "UpsertResult"):
        self.inserted += other.inserted
        self.updated += other.updated
        self.errors += other.errors

    def to_dict(self) -> dict[str, int]:
        return {"inserted": self.inserted, "updated": self.updated, "errors": self.errors}


def chunked(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class BulkUpsertEngine:
    """
    Write normalized products in fixed-size chunks, one transaction each.

    Within a chunk every product is looked up and then updated or inserted
    inside its own savepoint, so one failing product is counted and skipped
    while its peers still commit. A failure at the chunk's transaction
    boundary rolls the whole chunk back and counts every product in it as
    an error; so does a deadlock, lock wait timeout or lost connection hit
    while writing any single product.
    """

    def __init__(
        self,
        store: ProductStore,
        chunk_size: Optional[int] = None,
        chunk_pause: Optional[float] = None,
    ):
        self.store = store
        self.chunk_size = max(1, chunk_size or settings.db_chunk_size)
        self.chunk_pause = settings.chunk_pause_seconds if chunk_pause is None else chunk_pause

    async def bulk_upsert(self, products: list[NormalizedProduct]) -> UpsertResult:
        """
        Upsert ``products`` in input order.

        Returns:
            UpsertResult with inserted / updated / error counts
        """
        total = UpsertResult()
        chunks = chunked(products, self.chunk_size)

        for index, chunk in enumerate(chunks):
            if index and self.chunk_pause:
                await asyncio.sleep(self.chunk_pause)
            try:
                result = await self._write_chunk(chunk)
            except ChunkWriteError as e:
                logger.error(str(e))
                result = UpsertResult(errors=len(chunk))
                metrics.record_chunk(committed=False, inserted=0, updated=0, errors=len(chunk))
            else:
                metrics.record_chunk(
                    committed=True,
                    inserted=result.inserted,
                    updated=result.updated,
                    errors=result.errors,
                )
            total.merge(result)

        logger.info(
            f"Bulk upsert: {total.inserted} inserted, {total.updated} updated, "
            f"{total.errors} errors across {len(chunks)} chunks"
        )
        return total

    async def _write_chunk(self, chunk: list[NormalizedProduct]) -> UpsertResult:
        result = UpsertResult()
        try:
            await self.store.begin()

            for product in chunk:
                try:
                    async with self.store.savepoint():
                        was_update = await self.upsert_product(product)
                except Exception as e:
                    if aborts_transaction(e):
                        raise
                    result.errors += 1
                    logger.warning(f"Error processing product {product.id}: {e}")
                    continue

                if was_update:
                    result.updated += 1
                else:
                    result.inserted += 1

            await self.store.commit()
        except Exception as e:
            try:
                await self.store.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback failed: {rollback_error}")
            raise ChunkWriteError(len(chunk), e) from e

        return result

    async def upsert_product(self, product: NormalizedProduct) -> bool:
        """
        Write one product and rewrite its children.

        Returns:
            True when an existing row was updated, False when inserted
        """
        row = product.to_row()
        existing = await self.store.execute(select(Product.id).where(Product.id == product.id))
        exists = existing.first() is not None

        if exists:
            values = {k: v for k, v in row.items() if k != "id"}
            await self.store.execute(
                update(Product)
                .where(Product.id == product.id)
                .values(**values, updated_at=func.now())
            )
        else:
            await self.store.execute(insert(Product).values(**row))

        await self.rewrite_children(product)
        return exists

    async def rewrite_children(self, product: NormalizedProduct):
        """Replace image and attribute rows of ``product``."""
        for model in (ProductImage, ProductAttribute):
            try:
                async with self.store.savepoint():
                    await self.store.execute(delete(model).where(model.product_id == product.id))
            except Exception as e:
                if aborts_transaction(e):
                    raise
                logger.debug(f"Could not clear {model.__tablename__} for product {product.id}: {e}")

        for image in product.images:
            await self._insert_child(
                product.id,
                insert(ProductImage).values(
                    product_id=product.id,
                    image_url=image.image_url,
                    thumbnail_url=image.thumbnail_url,
                    image_order=image.image_order,
                ),
            )

        for attribute in product.attributes:
            await self._insert_child(
                product.id,
                insert(ProductAttribute).values(
                    product_id=product.id,
                    attribute_name=attribute.attribute_name,
                    attribute_value=attribute.attribute_value,
                ),
            )

    async def _insert_child(self, product_id: int, statement):
        try:
            async with self.store.savepoint():
                await self.store.execute(statement)
        except Exception as e:
            if aborts_transaction(e):
                raise
            logger.warning(f"Skipping child row for product {product_id}: {e}")
