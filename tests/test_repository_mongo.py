from __future__ import annotations

import os
import unittest
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from mini_odm import (
    AsyncMongoDatabase,
    AsyncRepository,
    MongoConfig,
    MongoDatabase,
    Query,
    Repository,
    Sort,
)
from mini_odm.ports.document.mongo import AsyncMongoCollection, MongoCollection

MONGO_URI = os.getenv("MINI_ODM_MONGO_URI")


@dataclass
class Product:
    __collection__ = "products"

    id: Optional[str] = field(default=None, metadata={"id": True})
    sku: str = field(default="", metadata={"unique": True})
    price: Decimal = Decimal("0")
    tags: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None


class MongoCollectionAdapterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.raw = MagicMock()
        self.collection = MongoCollection(self.raw)

    def test_insert_one_returns_inserted_id(self) -> None:
        oid = ObjectId()
        self.raw.insert_one.return_value.inserted_id = oid

        self.assertEqual(self.collection.insert_one({"a": 1}), oid)
        self.raw.insert_one.assert_called_once_with({"a": 1})

    def test_insert_many_is_ordered(self) -> None:
        self.collection.insert_many([{"a": 1}, {"a": 2}])
        self.raw.insert_many.assert_called_once_with([{"a": 1}, {"a": 2}], ordered=True)

    def test_find_passes_only_requested_cursor_options(self) -> None:
        self.raw.find.return_value = iter([{"_id": 1}])

        self.assertEqual(self.collection.find({"a": 1}), [{"_id": 1}])
        self.raw.find.assert_called_with({"a": 1})

        self.raw.find.return_value = iter([])
        self.collection.find({}, sort=[("a", -1)], skip=20, limit=10)
        self.raw.find.assert_called_with({}, sort=[("a", -1)], skip=20, limit=10)

    def test_update_many_wraps_values_in_set(self) -> None:
        self.raw.update_many.return_value.modified_count = 3

        self.assertEqual(self.collection.update_many({"a": 1}, {"b": 2}), 3)
        self.raw.update_many.assert_called_once_with({"a": 1}, {"$set": {"b": 2}})

    def test_counts_and_deletes(self) -> None:
        self.raw.count_documents.return_value = 4
        self.raw.delete_one.return_value.deleted_count = 1
        self.raw.delete_many.return_value.deleted_count = 2

        self.assertEqual(self.collection.count({}), 4)
        self.assertEqual(self.collection.delete_one({"_id": 1}), 1)
        self.assertEqual(self.collection.delete_many({}), 2)

    def test_replace_and_create_index(self) -> None:
        self.raw.create_index.return_value = "sku_1"

        self.collection.replace_one({"_id": 1}, {"a": 1}, upsert=True)
        name = self.collection.create_index([("sku", 1)], unique=True, name="sku_1")

        self.raw.replace_one.assert_called_once_with({"_id": 1}, {"a": 1}, upsert=True)
        self.raw.create_index.assert_called_once_with(
            [("sku", 1)], unique=True, sparse=False, name="sku_1"
        )
        self.assertEqual(name, "sku_1")


class AsyncMongoCollectionAdapterTests(unittest.IsolatedAsyncioTestCase):
    async def test_results_are_awaited(self) -> None:
        raw = MagicMock()
        raw.insert_one = AsyncMock(return_value=MagicMock(inserted_id="x"))
        raw.update_many = AsyncMock(return_value=MagicMock(modified_count=2))
        raw.count_documents = AsyncMock(return_value=5)
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=[{"_id": "x"}])
        raw.find.return_value = cursor
        collection = AsyncMongoCollection(raw)

        self.assertEqual(await collection.insert_one({"a": 1}), "x")
        self.assertEqual(await collection.update_many({}, {"a": 2}), 2)
        self.assertEqual(await collection.count({}), 5)
        self.assertEqual(await collection.find({}, limit=1), [{"_id": "x"}])
        raw.update_many.assert_awaited_once_with({}, {"$set": {"a": 2}})
        raw.find.assert_called_once_with({}, limit=1)


class MongoDatabaseAdapterTests(unittest.TestCase):
    def test_shared_client_is_not_closed(self) -> None:
        client = MagicMock()
        db = MongoDatabase(MongoConfig(database_name="shop"), client=client)

        collection = db.get_collection("products")
        db.close()

        client.__getitem__.assert_called_once_with("shop")
        self.assertIsInstance(collection, MongoCollection)
        client.close.assert_not_called()


@unittest.skipUnless(MONGO_URI, "MINI_ODM_MONGO_URI is not set")
class MongoRepositoryIntegrationTests(unittest.TestCase):
    def setUp(self) -> None:
        config = MongoConfig(
            connection_string=MONGO_URI or "",
            database_name="mini_odm_test",
            server_selection_timeout_ms=2000,
        )
        self.db = MongoDatabase(config)
        self.db.database.drop_collection("products")
        self.repo = Repository(self.db, Product)

    def tearDown(self) -> None:
        self.db.database.drop_collection("products")
        self.db.close()

    def test_crud_round_trip(self) -> None:
        created = datetime(2024, 5, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)
        saved = self.repo.save(
            Product(sku="A-1", price=Decimal("9.99"), tags=["x"], created_at=created)
        )

        found = self.repo.find_by_id(saved.id)

        self.assertEqual(found, saved)
        self.repo.save(Product(id=saved.id, sku="A-1", price=Decimal("5.00")))
        self.assertEqual(self.repo.count(), 1)
        self.assertEqual(self.repo.find_by_id(saved.id).price, Decimal("5.00"))
        self.assertTrue(self.repo.delete_by_id(saved.id))
        self.assertFalse(self.repo.delete_by_id(saved.id))

    def test_save_all_pagination_and_update(self) -> None:
        self.repo.save_all([Product(sku=f"S-{i:02d}", tags=["bulk"]) for i in range(25)])

        page = self.repo.find_with_pagination(Query.where("tags", "bulk"), Sort.by("sku"), 2, 10)

        self.assertEqual(page.total_pages, 3)
        self.assertEqual([item.sku for item in page.content], [f"S-{i}" for i in range(20, 25)])
        self.assertEqual(self.repo.update(Query().gte("sku", "S-20"), {"tags": []}), 5)

    def test_unique_index_is_enforced(self) -> None:
        self.assertEqual(self.repo.ensure_indexes(), ["sku_1"])
        self.repo.save(Product(sku="dup"))
        with self.assertRaises(DuplicateKeyError):
            self.repo.save(Product(sku="dup"))


@unittest.skipUnless(MONGO_URI, "MINI_ODM_MONGO_URI is not set")
class AsyncMongoRepositoryIntegrationTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        config = MongoConfig(
            connection_string=MONGO_URI or "",
            database_name="mini_odm_test",
            server_selection_timeout_ms=2000,
        )
        self.db = AsyncMongoDatabase(config)
        await self.db.database.drop_collection("products")
        self.repo = AsyncRepository(self.db, Product)

    async def asyncTearDown(self) -> None:
        await self.db.database.drop_collection("products")
        await self.db.close()

    async def test_async_round_trip(self) -> None:
        saved = await self.repo.save(Product(sku="B-1", tags=["a", "b"]))

        self.assertEqual(await self.repo.find_by_id(saved.id), saved)
        self.assertEqual(await self.repo.count(Query.where("tags", "a")), 1)


if __name__ == "__main__":
    unittest.main()
