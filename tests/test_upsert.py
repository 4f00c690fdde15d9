"""Tests for chunked product upserts against a real SQLite database."""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.sql.dml import Insert

from product_ingest.db.store import ProductStore
from product_ingest.db.upsert import BulkUpsertEngine, UpsertResult, aborts_transaction, chunked
from product_ingest.normalize.processor import AttributeRow, ImageRow, NormalizedProduct, RecordNormalizer

TIMESTAMPS = ("created_at", "updated_at")


def _without_timestamps(row):
    return {k: v for k, v in row.items() if k not in TIMESTAMPS}


@pytest.fixture
def normalizer():
    return RecordNormalizer()


@pytest.fixture
def engine(store):
    return BulkUpsertEngine(store, chunk_size=50, chunk_pause=0)


class FailingCommitStore(ProductStore):
    """Store whose commit always fails, as on a lost connection."""

    async def commit(self):
        raise OperationalError("COMMIT", {}, Exception("server has gone away"))


class DeadlockStore(ProductStore):
    """Store that loses the transaction on the Nth product insert."""

    fail_on_insert = 2
    error = OperationalError(
        "INSERT INTO products", {}, Exception("(1213) Deadlock found when trying to get lock")
    )

    def __init__(self, connection):
        super().__init__(connection)
        self.product_inserts = 0

    async def execute(self, statement, params=None):
        if isinstance(statement, Insert) and statement.table.name == "products":
            self.product_inserts += 1
            if self.product_inserts == self.fail_on_insert:
                raise self.error
        return await super().execute(statement, params)


class LockWaitStore(DeadlockStore):
    error = OperationalError(
        "INSERT INTO products", {}, Exception(1205, "Lock wait timeout exceeded; try restarting transaction")
    )


def test_transaction_abort_detection():
    deadlock = OperationalError("INSERT", {}, Exception(1213, "Deadlock found"))
    lost = OperationalError("INSERT", {}, Exception("(2013) Lost connection to MySQL server"))
    duplicate = IntegrityError("INSERT", {}, Exception(1062, "Duplicate entry"))

    assert aborts_transaction(deadlock)
    assert aborts_transaction(lost)
    assert not aborts_transaction(duplicate)
    assert not aborts_transaction(ValueError("bad value"))

    try:
        try:
            raise deadlock
        except OperationalError:
            raise OperationalError("ROLLBACK TO SAVEPOINT", {}, Exception(1305, "SAVEPOINT does not exist"))
    except OperationalError as follow_up:
        assert aborts_transaction(follow_up)


def test_chunked():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []


class TestBulkUpsert:
    @pytest.mark.asyncio
    async def test_insert_single_product(self, engine, normalizer, shoe_record, db_reader):
        result = await engine.bulk_upsert([normalizer.normalize(shoe_record)])

        assert result == UpsertResult(inserted=1, updated=0, errors=0)

        row = (await db_reader.products())[42]
        assert row["name"] == "Shoe"
        assert row["sales_price"] == 80
        assert row["list_price"] == 100
        assert row["stock"] == 3
        assert row["status"] == 1
        assert row["super_express"] == 1
        assert row["relevance_score"] == 78.3
        assert row["category_lvl2"] == "a > b > c"
        assert row["main_image"] == "a.jpg"

        assert await db_reader.images(42) == {(42, "b.jpg", "b.jpg", 2)}
        assert await db_reader.attributes(42) == {("Color", "Red"), ("height", "10"), ("weight", "2")}

    @pytest.mark.asyncio
    async def test_update_existing_product(self, engine, normalizer, shoe_record, db_reader):
        await engine.bulk_upsert([normalizer.normalize(shoe_record)])

        shoe_record["stock"] = 0
        shoe_record["is_active"] = False
        result = await engine.bulk_upsert([normalizer.normalize(shoe_record)])

        assert result == UpsertResult(inserted=0, updated=1, errors=0)
        products = await db_reader.products()
        assert len(products) == 1
        assert products[42]["status"] == 0
        assert products[42]["stock"] == 0
        assert products[42]["relevance_score"] == 73.0

    @pytest.mark.asyncio
    async def test_repeated_upsert_is_idempotent(self, engine, normalizer, shoe_record, db_reader):
        product = normalizer.normalize(shoe_record)

        first = await engine.bulk_upsert([product])
        before = await db_reader.products()
        second = await engine.bulk_upsert([product])
        after = await db_reader.products()

        assert first.inserted == 1
        assert second.updated == 1
        assert _without_timestamps(before[42]) == _without_timestamps(after[42])
        assert await db_reader.images(42) == {(42, "b.jpg", "b.jpg", 2)}

    @pytest.mark.asyncio
    async def test_children_are_rewritten(self, engine, normalizer, shoe_record, db_reader):
        await engine.bulk_upsert([normalizer.normalize(shoe_record)])

        shoe_record["pictures"] = [
            {"source": "main.jpg"},
            {"source": "c.jpg", "thumbnail": "ct.jpg"},
            {"source": "d.jpg"},
        ]
        shoe_record["attributes"] = [{"name": "Size", "value": "9"}]
        shoe_record["volumetries"] = []
        await engine.bulk_upsert([normalizer.normalize(shoe_record)])

        assert await db_reader.images(42) == {
            (42, "c.jpg", "ct.jpg", 2),
            (42, "d.jpg", "d.jpg", 3),
        }
        assert await db_reader.attributes(42) == {("Size", "9")}

    @pytest.mark.asyncio
    async def test_bad_product_fails_alone(self, engine, normalizer, db_reader):
        good = [normalizer.normalize({"id": i, "title": f"Item {i}"}) for i in (1, 2, 3)]
        bad = NormalizedProduct(id=99, name=None)

        result = await engine.bulk_upsert([good[0], bad, good[1], good[2]])

        assert result == UpsertResult(inserted=3, updated=0, errors=1)
        assert set(await db_reader.products()) == {1, 2, 3}

    @pytest.mark.asyncio
    async def test_duplicate_attribute_is_skipped(self, engine, db_reader):
        product = NormalizedProduct(
            id=5,
            name="Lamp",
            attributes=[
                AttributeRow(attribute_name="Color", attribute_value="Red"),
                AttributeRow(attribute_name="Color", attribute_value="Blue"),
            ],
            images=[ImageRow(image_url="x.jpg", thumbnail_url="x.jpg", image_order=2)],
        )

        result = await engine.bulk_upsert([product])

        assert result.inserted == 1
        assert result.errors == 0
        assert await db_reader.attributes(5) == {("Color", "Red")}
        assert await db_reader.images(5) == {(5, "x.jpg", "x.jpg", 2)}

    @pytest.mark.asyncio
    async def test_products_span_multiple_chunks(self, store, normalizer, db_reader):
        engine = BulkUpsertEngine(store, chunk_size=2, chunk_pause=0)
        products = [normalizer.normalize({"id": i, "title": f"Item {i}"}) for i in range(1, 6)]

        result = await engine.bulk_upsert(products)

        assert result.inserted == 5
        assert set(await db_reader.products()) == {1, 2, 3, 4, 5}

    @pytest.mark.asyncio
    async def test_failed_commit_rolls_back_chunk(self, db_engine, normalizer, db_reader):
        products = [normalizer.normalize({"id": i, "title": f"Item {i}"}) for i in (1, 2, 3)]

        async with FailingCommitStore.connect(db_engine) as failing_store:
            engine = BulkUpsertEngine(failing_store, chunk_size=50, chunk_pause=0)
            result = await engine.bulk_upsert(products)
            assert not failing_store.in_transaction

        assert result == UpsertResult(inserted=0, updated=0, errors=3)
        assert await db_reader.products() == {}

    @pytest.mark.asyncio
    async def test_empty_input(self, engine):
        assert await engine.bulk_upsert([]) == UpsertResult()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("store_class", [DeadlockStore, LockWaitStore])
    async def test_lost_transaction_rolls_back_chunk(self, db_engine, normalizer, db_reader, store_class):
        products = [normalizer.normalize({"id": i, "title": f"Item {i}"}) for i in (1, 2, 3)]

        async with store_class.connect(db_engine) as failing_store:
            engine = BulkUpsertEngine(failing_store, chunk_size=50, chunk_pause=0)
            result = await engine.bulk_upsert(products)
            assert not failing_store.in_transaction

        assert result == UpsertResult(inserted=0, updated=0, errors=3)
        assert await db_reader.products() == {}

    @pytest.mark.asyncio
    async def test_lost_transaction_only_affects_its_chunk(self, db_engine, normalizer, db_reader):
        products = [normalizer.normalize({"id": i, "title": f"Item {i}"}) for i in (1, 2, 3, 4)]

        async with DeadlockStore.connect(db_engine) as failing_store:
            # second insert falls in the first chunk of two
            engine = BulkUpsertEngine(failing_store, chunk_size=2, chunk_pause=0)
            result = await engine.bulk_upsert(products)

        assert result == UpsertResult(inserted=2, updated=0, errors=2)
        assert set(await db_reader.products()) == {3, 4}
