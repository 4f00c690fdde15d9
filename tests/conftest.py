"""Shared fixtures: a real SQLite store and sample catalog records."""

import copy

import pytest
from sqlalchemy import select

from product_ingest.db.models import Base, Product, ProductAttribute, ProductImage
from product_ingest.db.session import create_engine
from product_ingest.db.store import ProductStore

SHOE_RECORD = {
    "id": 42,
    "external_id": "X42",
    "title": "Shoe",
    "is_active": True,
    "stock": 3,
    "pricing": {"list_price": 100, "sales_price": 80, "percentage_discount": 20},
    "rating": {"average_score": 4},
    "features": {"super_express": True},
    "shipping": {"is_free": True},
    "pictures": [
        {"source": "a.jpg", "thumbnail": "at.jpg"},
        {"source": "b.jpg"},
    ],
    "attributes": [{"name": "Color", "value": "Red"}],
    "volumetries": [{"height": 10, "weight": 2}],
    "categories": [[
        {"name": "A", "level": 2},
        {"name": "B", "level": 1},
        {"name": "C", "level": 0},
    ]],
}


@pytest.fixture
def shoe_record():
    """Fresh copy of the single-product sample record."""
    return copy.deepcopy(SHOE_RECORD)


@pytest.fixture
async def db_engine(tmp_path):
    """SQLite database with the product schema."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'products.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
async def store(db_engine):
    async with ProductStore.connect(db_engine) as product_store:
        yield product_store


class DatabaseReader:
    """Read back what the pipeline wrote, through a separate connection."""

    def __init__(self, engine):
        self.engine = engine

    async def products(self) -> dict[int, dict]:
        async with self.engine.connect() as conn:
            rows = (await conn.execute(select(Product))).mappings().all()
        return {row["id"]: dict(row) for row in rows}

    async def images(self, product_id: int) -> set[tuple]:
        async with self.engine.connect() as conn:
            result = await conn.execute(
                select(
                    ProductImage.product_id,
                    ProductImage.image_url,
                    ProductImage.thumbnail_url,
                    ProductImage.image_order,
                ).where(ProductImage.product_id == product_id)
            )
            return {tuple(row) for row in result}

    async def attributes(self, product_id: int) -> set[tuple]:
        async with self.engine.connect() as conn:
            result = await conn.execute(
                select(ProductAttribute.attribute_name, ProductAttribute.attribute_value)
                .where(ProductAttribute.product_id == product_id)
            )
            return {tuple(row) for row in result}


@pytest.fixture
def db_reader(db_engine):
    return DatabaseReader(db_engine)
