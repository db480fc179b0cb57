"""Core port contracts used by adapters and repositories."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence

from .types import Document, Documents, MaybeDocument, SortKeys


class CollectionPort(Protocol):
    """Document collection behavior required by `Repository`.

    Every call is one round trip; filters and sort keys are passed through
    exactly as the repository received them.
    """

    def insert_one(self, document: Mapping[str, Any]) -> Any: ...

    def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> None: ...

    def replace_one(
        self,
        filter: Mapping[str, Any],
        document: Mapping[str, Any],
        *,
        upsert: bool = False,
    ) -> None: ...

    def find(
        self,
        filter: Mapping[str, Any],
        *,
        sort: Optional[SortKeys] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> Documents: ...

    def find_one(self, filter: Mapping[str, Any]) -> MaybeDocument: ...

    def count(self, filter: Mapping[str, Any]) -> int: ...

    def delete_one(self, filter: Mapping[str, Any]) -> int: ...

    def delete_many(self, filter: Mapping[str, Any]) -> int: ...

    def update_many(self, filter: Mapping[str, Any], values: Mapping[str, Any]) -> int: ...

    def create_index(
        self,
        keys: Sequence[tuple[str, int]],
        *,
        unique: bool = False,
        sparse: bool = False,
        name: Optional[str] = None,
    ) -> str: ...


class AsyncCollectionPort(Protocol):
    """Async document collection behavior required by `AsyncRepository`."""

    async def insert_one(self, document: Mapping[str, Any]) -> Any: ...

    async def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> None: ...

    async def replace_one(
        self,
        filter: Mapping[str, Any],
        document: Mapping[str, Any],
        *,
        upsert: bool = False,
    ) -> None: ...

    async def find(
        self,
        filter: Mapping[str, Any],
        *,
        sort: Optional[SortKeys] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> Documents: ...

    async def find_one(self, filter: Mapping[str, Any]) -> Optional[Document]: ...

    async def count(self, filter: Mapping[str, Any]) -> int: ...

    async def delete_one(self, filter: Mapping[str, Any]) -> int: ...

    async def delete_many(self, filter: Mapping[str, Any]) -> int: ...

    async def update_many(
        self, filter: Mapping[str, Any], values: Mapping[str, Any]
    ) -> int: ...

    async def create_index(
        self,
        keys: Sequence[tuple[str, int]],
        *,
        unique: bool = False,
        sparse: bool = False,
        name: Optional[str] = None,
    ) -> str: ...


class DatabasePort(Protocol):
    """Database adapter that hands out collections by name."""

    def get_collection(self, name: str) -> CollectionPort: ...

    def close(self) -> None: ...


class AsyncDatabasePort(Protocol):
    """Async database adapter that hands out collections by name."""

    def get_collection(self, name: str) -> AsyncCollectionPort | CollectionPort: ...

    def close(self) -> Any: ...
