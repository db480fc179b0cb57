"""MongoDB adapters implementing the document database ports over pymongo."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from pymongo import AsyncMongoClient, MongoClient

from ...core.types import Document, Documents, MaybeDocument, SortKeys
from .config import MongoConfig

logger = logging.getLogger(__name__)


def _find_kwargs(
    sort: Optional[SortKeys], skip: int, limit: int
) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    if sort:
        kwargs["sort"] = list(sort)
    if skip:
        kwargs["skip"] = skip
    if limit:
        kwargs["limit"] = limit
    return kwargs


def _index_kwargs(unique: bool, sparse: bool, name: Optional[str]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"unique": unique, "sparse": sparse}
    if name:
        kwargs["name"] = name
    return kwargs


class MongoCollection:
    """`CollectionPort` over a `pymongo.collection.Collection`."""

    def __init__(self, collection: Any) -> None:
        self.raw = collection

    def insert_one(self, document: Mapping[str, Any]) -> Any:
        return self.raw.insert_one(dict(document)).inserted_id

    def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> None:
        self.raw.insert_many([dict(document) for document in documents], ordered=True)

    def replace_one(
        self,
        filter: Mapping[str, Any],
        document: Mapping[str, Any],
        *,
        upsert: bool = False,
    ) -> None:
        self.raw.replace_one(dict(filter), dict(document), upsert=upsert)

    def find(
        self,
        filter: Mapping[str, Any],
        *,
        sort: Optional[SortKeys] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> Documents:
        return list(self.raw.find(dict(filter), **_find_kwargs(sort, skip, limit)))

    def find_one(self, filter: Mapping[str, Any]) -> MaybeDocument:
        return self.raw.find_one(dict(filter))

    def count(self, filter: Mapping[str, Any]) -> int:
        return self.raw.count_documents(dict(filter))

    def delete_one(self, filter: Mapping[str, Any]) -> int:
        return self.raw.delete_one(dict(filter)).deleted_count

    def delete_many(self, filter: Mapping[str, Any]) -> int:
        return self.raw.delete_many(dict(filter)).deleted_count

    def update_many(self, filter: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        return self.raw.update_many(dict(filter), {"$set": dict(values)}).modified_count

    def create_index(
        self,
        keys: Sequence[tuple[str, int]],
        *,
        unique: bool = False,
        sparse: bool = False,
        name: Optional[str] = None,
    ) -> str:
        return self.raw.create_index(list(keys), **_index_kwargs(unique, sparse, name))


class MongoDatabase:
    """`DatabasePort` over `pymongo.MongoClient`.

    Pass `client` to share an existing client; it is then left open on
    `close()`.
    """

    def __init__(
        self,
        config: Optional[MongoConfig] = None,
        *,
        client: Optional[MongoClient[Document]] = None,
    ) -> None:
        self.config = config or MongoConfig()
        self._owns_client = client is None
        self.client = client or MongoClient(**self.config.client_kwargs())
        self.database = self.client[self.config.database_name]
        logger.info(
            "Opened MongoDB database %r (owns client: %s)",
            self.config.database_name,
            self._owns_client,
        )

    def get_collection(self, name: str) -> MongoCollection:
        return MongoCollection(self.database[name])

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
        logger.info("Closed MongoDB database %r", self.config.database_name)


class AsyncMongoCollection:
    """`AsyncCollectionPort` over a `pymongo.asynchronous` collection."""

    def __init__(self, collection: Any) -> None:
        self.raw = collection

    async def insert_one(self, document: Mapping[str, Any]) -> Any:
        result = await self.raw.insert_one(dict(document))
        return result.inserted_id

    async def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> None:
        await self.raw.insert_many(
            [dict(document) for document in documents], ordered=True
        )

    async def replace_one(
        self,
        filter: Mapping[str, Any],
        document: Mapping[str, Any],
        *,
        upsert: bool = False,
    ) -> None:
        await self.raw.replace_one(dict(filter), dict(document), upsert=upsert)

    async def find(
        self,
        filter: Mapping[str, Any],
        *,
        sort: Optional[SortKeys] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> Documents:
        cursor = self.raw.find(dict(filter), **_find_kwargs(sort, skip, limit))
        return await cursor.to_list(None)

    async def find_one(self, filter: Mapping[str, Any]) -> MaybeDocument:
        return await self.raw.find_one(dict(filter))

    async def count(self, filter: Mapping[str, Any]) -> int:
        return await self.raw.count_documents(dict(filter))

    async def delete_one(self, filter: Mapping[str, Any]) -> int:
        result = await self.raw.delete_one(dict(filter))
        return result.deleted_count

    async def delete_many(self, filter: Mapping[str, Any]) -> int:
        result = await self.raw.delete_many(dict(filter))
        return result.deleted_count

    async def update_many(
        self, filter: Mapping[str, Any], values: Mapping[str, Any]
    ) -> int:
        result = await self.raw.update_many(dict(filter), {"$set": dict(values)})
        return result.modified_count

    async def create_index(
        self,
        keys: Sequence[tuple[str, int]],
        *,
        unique: bool = False,
        sparse: bool = False,
        name: Optional[str] = None,
    ) -> str:
        return await self.raw.create_index(
            list(keys), **_index_kwargs(unique, sparse, name)
        )


class AsyncMongoDatabase:
    """`AsyncDatabasePort` over `pymongo.AsyncMongoClient`."""

    def __init__(
        self,
        config: Optional[MongoConfig] = None,
        *,
        client: Optional[AsyncMongoClient[Document]] = None,
    ) -> None:
        self.config = config or MongoConfig()
        self._owns_client = client is None
        self.client = client or AsyncMongoClient(**self.config.client_kwargs())
        self.database = self.client[self.config.database_name]
        logger.info(
            "Opened async MongoDB database %r (owns client: %s)",
            self.config.database_name,
            self._owns_client,
        )

    def get_collection(self, name: str) -> AsyncMongoCollection:
        return AsyncMongoCollection(self.database[name])

    async def close(self) -> None:
        if self._owns_client:
            await self.client.close()
        logger.info("Closed async MongoDB database %r", self.config.database_name)
