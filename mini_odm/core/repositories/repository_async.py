"""Async repository for dataclass-based document models."""

from __future__ import annotations

import logging
from typing import Any, Generic, List, Mapping, Optional, Sequence, Type, TypeVar

from .._async_utils import resolve
from ..contracts import AsyncCollectionPort, AsyncDatabasePort, CollectionPort
from ..mapper import deserialize, identity_of, serialize, with_identity
from ..metadata import describe
from ..models import ID_KEY, DataclassModel, require_dataclass_model
from ..pagination import Page, validate_page_request
from ..schema_indexes import default_index_name
from ..types import FilterInput, SortInput
from ._shared import id_filter, prepare_batch, set_values, to_filter, to_sort

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DataclassModel)


class AsyncRepository(Generic[T]):
    """Async CRUD and pagination repository.

    Accepts sync or async collection ports; awaitable port results are
    awaited, plain results are used as-is.
    """

    def __init__(self, db: AsyncDatabasePort, model: Type[T]):
        """Create repository for a model type.

        Args:
            db: Database adapter implementing `AsyncDatabasePort` or `DatabasePort`.
            model: Dataclass model type.

        Raises:
            ConfigurationError: If the model cannot be mapped.
        """

        require_dataclass_model(model)
        self.db = db
        self.model = model
        self.meta = describe(model)
        self.collection: AsyncCollectionPort | CollectionPort = db.get_collection(
            self.meta.collection
        )

    async def save(self, obj: T) -> T:
        """Upsert by identity, or insert and return a copy with the new identity.

        Missing identities are generated client-side before the insert. The
        input object is never modified; callers must use the returned record
        as the authoritative identity holder.
        """

        self._require_instance(obj)
        if self.meta.id_field is not None and identity_of(obj) is not None:
            document = serialize(obj)
            await resolve(
                self.collection.replace_one(
                    {ID_KEY: document[ID_KEY]},
                    document,
                    upsert=True,
                )
            )
            logger.debug("Upserted %s %r", self.meta.collection, document[ID_KEY])
            return obj

        (document,), _ = prepare_batch(self.meta, [obj])
        new_id = await resolve(self.collection.insert_one(document))
        logger.debug("Inserted %s %r", self.meta.collection, new_id)
        if self.meta.id_field is None or new_id is None:
            return obj
        return with_identity(obj, new_id)

    async def save_all(self, objects: Sequence[T]) -> list[T]:
        """Insert many records in one round trip.

        Missing identities are generated before the bulk call and bound back
        by position, so the result order matches `objects`.
        """

        if not objects:
            return []

        documents, generated = prepare_batch(self.meta, objects)
        await resolve(self.collection.insert_many(documents))
        logger.debug("Inserted %d %s documents", len(documents), self.meta.collection)
        return [
            with_identity(obj, document[ID_KEY]) if assigned is not None else obj
            for obj, document, assigned in zip(objects, documents, generated)
        ]

    async def find_by_id(self, id_value: Any) -> Optional[T]:
        """Fetch one record by identity, or `None` when absent."""

        document = await resolve(
            self.collection.find_one(id_filter(self.meta, id_value))
        )
        return deserialize(self.model, document) if document is not None else None

    async def find_all(self) -> List[T]:
        """Fetch every record of the collection."""

        return await self.find(None)

    async def find(self, query: FilterInput = None, sort: SortInput = None) -> List[T]:
        """Fetch records matching a `Query`, a filter mapping, or everything."""

        documents = await resolve(
            self.collection.find(to_filter(query), sort=to_sort(sort))
        )
        return [deserialize(self.model, document) for document in documents]

    async def find_one(self, query: FilterInput = None) -> Optional[T]:
        """Fetch the first matching record, or `None`."""

        document = await resolve(self.collection.find_one(to_filter(query)))
        return deserialize(self.model, document) if document is not None else None

    async def count(self, query: FilterInput = None) -> int:
        """Count documents matching optional conditions."""

        return await resolve(self.collection.count(to_filter(query)))

    async def exists_by_id(self, id_value: Any) -> bool:
        return await resolve(self.collection.count(id_filter(self.meta, id_value))) > 0

    async def delete_by_id(self, id_value: Any) -> bool:
        """Delete one document by identity; `False` when nothing matched."""

        deleted = await resolve(self.collection.delete_one(id_filter(self.meta, id_value)))
        return deleted > 0

    async def delete(self, obj: T) -> bool:
        """Delete a record by its identity; `False` when it carries none."""

        self._require_instance(obj)
        id_value = identity_of(obj)
        if id_value is None:
            return False
        return await self.delete_by_id(id_value)

    async def delete_where(self, query: FilterInput) -> int:
        """Delete every matching document and return the deleted count."""

        return await resolve(self.collection.delete_many(to_filter(query)))

    async def delete_all(self) -> int:
        return await resolve(self.collection.delete_many({}))

    async def update(self, query: FilterInput, values: Mapping[str, Any]) -> int:
        """Set `values` on every matching document; returns modified count."""

        return await resolve(
            self.collection.update_many(to_filter(query), set_values(values))
        )

    async def find_with_pagination(
        self,
        query: FilterInput = None,
        sort: SortInput = None,
        page: int = 0,
        size: int = 20,
    ) -> Page[T]:
        """Return one page of matching records plus totals.

        Raises:
            ValueError: If `size <= 0` or `page < 0`.
        """

        validate_page_request(page, size)
        filter_document = to_filter(query)
        total = await resolve(self.collection.count(filter_document))
        documents = await resolve(
            self.collection.find(
                filter_document,
                sort=to_sort(sort),
                skip=page * size,
                limit=size,
            )
        )
        return Page.build(
            [deserialize(self.model, document) for document in documents],
            total_elements=total,
            page=page,
            size=size,
        )

    async def ensure_indexes(self) -> list[str]:
        """Create every index declared on the model; returns index names."""

        names = []
        for spec in self.meta.index_specs:
            name = await resolve(
                self.collection.create_index(
                    spec.keys,
                    unique=spec.unique,
                    sparse=spec.sparse,
                    name=spec.name or default_index_name(spec.keys),
                )
            )
            names.append(name)
        return names

    def _require_instance(self, obj: Any) -> None:
        if not isinstance(obj, self.model):
            raise TypeError(
                f"Object type {type(obj).__name__} does not match model "
                f"{self.model.__name__}."
            )
