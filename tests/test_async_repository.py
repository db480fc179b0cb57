from __future__ import annotations

import unittest
from dataclasses import dataclass, field
from typing import Any, Optional

from pymongo.errors import DuplicateKeyError

from mini_odm import AsyncRepository, InMemoryDatabase, Query, Sort
from mini_odm.ports.document.in_memory import InMemoryCollection


@dataclass
class Note:
    id: Optional[str] = field(default=None, metadata={"id": True})
    title: str = ""
    priority: int = 0
    labels: list[str] = field(default_factory=list)


class _AsyncCollection:
    """Wrap an in-memory collection so every port call returns a coroutine."""

    def __init__(self, inner: InMemoryCollection) -> None:
        self._inner = inner
        self.calls: list[str] = []

    def __getattr__(self, name: str) -> Any:
        method = getattr(self._inner, name)

        async def call(*args: Any, **kwargs: Any) -> Any:
            self.calls.append(name)
            return method(*args, **kwargs)

        return call


class _AsyncDatabase:
    def __init__(self) -> None:
        self.inner = InMemoryDatabase()
        self.collections: dict[str, _AsyncCollection] = {}
        self.closed = False

    def get_collection(self, name: str) -> _AsyncCollection:
        if name not in self.collections:
            self.collections[name] = _AsyncCollection(self.inner.get_collection(name))
        return self.collections[name]

    async def close(self) -> None:
        self.closed = True


class AsyncRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = _AsyncDatabase()
        self.repo = AsyncRepository(self.db, Note)

    async def test_insert_then_find_by_identity(self) -> None:
        saved = await self.repo.save(Note(title="john", priority=30, labels=["a", "b"]))

        self.assertIsNotNone(saved.id)
        self.assertEqual(
            await self.repo.find_by_id(saved.id),
            Note(id=saved.id, title="john", priority=30, labels=["a", "b"]),
        )
        self.assertIn("insert_one", self.db.collections["note"].calls)

    async def test_save_with_identity_upserts(self) -> None:
        await self.repo.save(Note(id="n-1", title="first"))
        await self.repo.save(Note(id="n-1", title="second"))

        self.assertEqual(await self.repo.count(), 1)
        found = await self.repo.find_by_id("n-1")
        self.assertEqual(found.title, "second")

    async def test_save_all_and_query(self) -> None:
        saved = await self.repo.save_all(
            [Note(title=f"n{i}", priority=i % 3) for i in range(6)]
        )

        self.assertEqual(len(saved), 6)
        self.assertTrue(all(item.id for item in saved))

        high = await self.repo.find(Query().gte("priority", 2), Sort.by("title"))
        self.assertEqual([item.title for item in high], ["n2", "n5"])
        first = await self.repo.find_one(Query.where(title="n0"))
        self.assertEqual(first.priority, 0)
        self.assertEqual(len(await self.repo.find_all()), 6)

    async def test_pagination(self) -> None:
        await self.repo.save_all([Note(title=f"n{i:02d}", priority=i) for i in range(25)])

        page = await self.repo.find_with_pagination(sort=Sort.by("priority"), page=2, size=10)

        self.assertEqual(page.total_pages, 3)
        self.assertEqual([item.priority for item in page.content], list(range(20, 25)))
        self.assertFalse(page.has_next)
        with self.assertRaises(ValueError):
            await self.repo.find_with_pagination(size=0)

    async def test_update_and_delete(self) -> None:
        saved = await self.repo.save(Note(title="a", priority=1))
        await self.repo.save(Note(title="b", priority=1))

        self.assertEqual(await self.repo.update(Query.where("priority", 1), {"priority": 2}), 2)
        self.assertTrue(await self.repo.exists_by_id(saved.id))
        self.assertTrue(await self.repo.delete(saved))
        self.assertFalse(await self.repo.delete_by_id(saved.id))
        self.assertEqual(await self.repo.delete_where(Query.where("title", "b")), 1)
        self.assertEqual(await self.repo.delete_all(), 0)

    async def test_sync_ports_are_accepted(self) -> None:
        repo = AsyncRepository(InMemoryDatabase(), Note)

        saved = await repo.save(Note(title="sync"))

        self.assertEqual((await repo.find_by_id(saved.id)).title, "sync")
        self.assertEqual(await repo.count(), 1)

    async def test_store_errors_propagate(self) -> None:
        await self.repo.save(Note(id="dup"))
        with self.assertRaises(DuplicateKeyError):
            await self.repo.save_all([Note(id="dup")])


if __name__ == "__main__":
    unittest.main()
