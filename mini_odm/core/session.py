"""Explicit repository contexts bound to one database adapter."""

from __future__ import annotations

import logging
from typing import Any, Dict, Type, TypeVar

from ._async_utils import resolve
from .contracts import AsyncDatabasePort, DatabasePort
from .models import DataclassModel, require_dataclass_model
from .repositories.repository import Repository
from .repositories.repository_async import AsyncRepository

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DataclassModel)


class DocumentContext:
    """Hand out one cached `Repository` per model for a sync database.

    Contexts are plain objects; create as many as needed, one per database
    adapter. Closing the context closes the adapter.
    """

    def __init__(self, db: DatabasePort):
        self.db = db
        self._repositories: Dict[type, Repository[Any]] = {}
        self._closed = False

    def repo(self, model: Type[T]) -> Repository[T]:
        """Return the repository for `model`, creating it on first use."""

        self._require_open()
        repository = self._repositories.get(model)
        if repository is None:
            require_dataclass_model(model)
            repository = Repository(self.db, model)
            self._repositories[model] = repository
            logger.debug("Created repository for %s", model.__name__)
        return repository

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._repositories.clear()
        self.db.close()

    def __enter__(self) -> DocumentContext:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> None:
        if self._closed:
            raise RuntimeError("context is closed")


class AsyncDocumentContext:
    """Async counterpart of `DocumentContext`."""

    def __init__(self, db: AsyncDatabasePort):
        self.db = db
        self._repositories: Dict[type, AsyncRepository[Any]] = {}
        self._closed = False

    def repo(self, model: Type[T]) -> AsyncRepository[T]:
        if self._closed:
            raise RuntimeError("context is closed")
        repository = self._repositories.get(model)
        if repository is None:
            require_dataclass_model(model)
            repository = AsyncRepository(self.db, model)
            self._repositories[model] = repository
            logger.debug("Created async repository for %s", model.__name__)
        return repository

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Close the adapter; awaits `db.close()` when it is a coroutine."""

        if self._closed:
            return
        self._closed = True
        self._repositories.clear()
        await resolve(self.db.close())

    async def __aenter__(self) -> AsyncDocumentContext:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
