"""Input normalization shared by the sync and async repositories."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from ..codecs import encode_identity, encode_value, new_identity
from ..mapper import identity_of, serialize
from ..metadata import SchemaDescriptor
from ..models import ID_KEY, DataclassModel
from ..types import Document, FilterInput, SortInput, SortKeys


def to_filter(query: FilterInput) -> Document:
    """Return the filter document for a `Query`, a mapping, or `None`."""

    if query is None:
        return {}
    to_document = getattr(query, "to_document", None)
    if callable(to_document):
        return to_document()
    if isinstance(query, Mapping):
        return dict(query)
    raise TypeError(
        f"Query must be a Query, a mapping, or None, got {type(query).__name__}."
    )


def to_sort(sort: SortInput) -> SortKeys | None:
    """Return `(key, direction)` pairs for a `Sort`, a mapping, or pairs."""

    if sort is None:
        return None
    to_document = getattr(sort, "to_document", None)
    if callable(to_document):
        sort = to_document()
    if isinstance(sort, Mapping):
        keys = list(sort.items())
    elif isinstance(sort, Sequence) and not isinstance(sort, (str, bytes)):
        keys = [tuple(item) for item in sort]
    else:
        raise TypeError(
            f"Sort must be a Sort, a mapping, or (key, direction) pairs, "
            f"got {type(sort).__name__}."
        )
    return [(key, direction) for key, direction in keys] or None


def id_filter(descriptor: SchemaDescriptor[Any], id_value: Any) -> Document:
    annotation = descriptor.id_field.annotation if descriptor.id_field else Any
    return {ID_KEY: encode_identity(id_value, annotation)}


def set_values(values: Mapping[str, Any]) -> Document:
    """Encode a partial update document; keys are passed through as given."""

    if not values:
        raise ValueError("update values must not be empty.")
    return {
        key: encode_value(item, field_name=key, record_encoder=serialize)
        for key, item in values.items()
    }


def prepare_batch(
    descriptor: SchemaDescriptor[Any],
    objects: Sequence[DataclassModel],
) -> tuple[list[Document], list[Any]]:
    """Serialize a batch and generate missing identities client-side.

    Returns the documents and, per position, the generated identity (or
    `None` when the record already carried one). Every document is built
    before any I/O so a mapping failure aborts the whole batch.
    """

    id_field = descriptor.id_field
    documents: list[Document] = []
    generated: list[Any] = []
    for obj in objects:
        if not isinstance(obj, descriptor.model):
            raise TypeError(
                f"All objects must be {descriptor.model.__name__} instances, "
                f"got {type(obj).__name__}."
            )
        document = serialize(obj)
        assigned = None
        if id_field is not None and identity_of(obj) is None:
            assigned = new_identity(id_field.annotation)
            document = {ID_KEY: encode_identity(assigned, id_field.annotation), **document}
        documents.append(document)
        generated.append(assigned)
    return documents, generated

