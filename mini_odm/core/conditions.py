"""Query and sort builders producing ready-to-send filter documents."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

from .codecs import encode_identity, encode_value
from .mapper import serialize
from .models import ID_KEY
from .types import Document


def _encode(field: str, value: Any) -> Any:
    if field == ID_KEY:
        return encode_identity(value)
    return encode_value(value, field_name=field, record_encoder=serialize)


@dataclass(frozen=True)
class Query:
    """Immutable predicate builder; every method returns a new query.

    Values are encoded with the value codec (enums by name, datetimes as UTC
    instants, UUIDs as strings) so they compare equal to stored values.
    """

    conditions: tuple[Document, ...] = ()

    @classmethod
    def empty(cls) -> Query:
        return cls()

    @classmethod
    def where(cls, field: str | None = None, value: Any = None, **equals: Any) -> Query:
        """Build an equality query: `Query.where("name", "a")` or `Query.where(name="a")`."""

        query = cls()
        if field is not None:
            query = query.eq(field, value)
        for key, item in equals.items():
            query = query.eq(key, item)
        return query

    @classmethod
    def range(cls, field: str, minimum: Any, maximum: Any) -> Query:
        """Inclusive numeric range."""

        return cls().gte(field, minimum).lte(field, maximum)

    @classmethod
    def date_range(cls, field: str, start: datetime, end: datetime) -> Query:
        """Half-open `[start, end)` timestamp range."""

        return cls().gte(field, start).lt(field, end)

    @classmethod
    def matches(cls, field: str, pattern: str, *, case_insensitive: bool = False) -> Query:
        return cls().regex(field, pattern, "i" if case_insensitive else "")

    @classmethod
    def contains_all(cls, field: str, values: Sequence[Any]) -> Query:
        return cls().all(field, values)

    @classmethod
    def array_size(cls, field: str, size: int) -> Query:
        return cls().size(field, size)

    def eq(self, field: str, value: Any) -> Query:
        return self._with({field: _encode(field, value)})

    def ne(self, field: str, value: Any) -> Query:
        return self._op(field, "$ne", _encode(field, value))

    def gt(self, field: str, value: Any) -> Query:
        return self._op(field, "$gt", _encode(field, value))

    def gte(self, field: str, value: Any) -> Query:
        return self._op(field, "$gte", _encode(field, value))

    def lt(self, field: str, value: Any) -> Query:
        return self._op(field, "$lt", _encode(field, value))

    def lte(self, field: str, value: Any) -> Query:
        return self._op(field, "$lte", _encode(field, value))

    def in_(self, field: str, values: Sequence[Any]) -> Query:
        return self._op(field, "$in", [_encode(field, item) for item in values])

    def nin(self, field: str, values: Sequence[Any]) -> Query:
        return self._op(field, "$nin", [_encode(field, item) for item in values])

    def exists(self, field: str, exists: bool = True) -> Query:
        return self._op(field, "$exists", exists)

    def regex(self, field: str, pattern: str, options: str = "") -> Query:
        fragment: Document = {"$regex": pattern}
        if options:
            fragment["$options"] = options
        return self._with({field: fragment})

    def size(self, field: str, size: int) -> Query:
        return self._op(field, "$size", size)

    def all(self, field: str, values: Sequence[Any]) -> Query:
        return self._op(field, "$all", [_encode(field, item) for item in values])

    def elem_match(self, field: str, query: Query | Mapping[str, Any]) -> Query:
        return self._op(field, "$elemMatch", _as_document(query))

    def and_(self, *queries: Query) -> Query:
        """Combine this query and `queries` under one `$and`."""

        return _combined("$and", self, queries)

    def or_(self, *queries: Query) -> Query:
        """Combine this query and `queries` under one `$or`."""

        return _combined("$or", self, queries)

    def not_(self) -> Query:
        """Negate the whole query."""

        return Query(({"$nor": [self.to_document()]},))

    def to_document(self) -> Document:
        """Merge accumulated fragments; repeated keys fall back to `$and`."""

        if not self.conditions:
            return {}
        if len(self.conditions) == 1:
            return dict(self.conditions[0])

        merged: Document = {}
        for condition in self.conditions:
            if any(key in merged for key in condition):
                return {"$and": [dict(item) for item in self.conditions]}
            merged.update(condition)
        return merged

    def copy(self) -> Query:
        return Query(self.conditions)

    def _op(self, field: str, operator: str, value: Any) -> Query:
        return self._with({field: {operator: value}})

    def _with(self, condition: Document) -> Query:
        return Query(self.conditions + (condition,))


@dataclass(frozen=True)
class Sort:
    """Immutable sort specification builder."""

    keys: tuple[tuple[str, int], ...] = ()

    @classmethod
    def empty(cls) -> Sort:
        return cls()

    @classmethod
    def by(cls, field: str, *, desc: bool = False) -> Sort:
        return cls().desc(field) if desc else cls().asc(field)

    def asc(self, field: str) -> Sort:
        return self._with(field, 1)

    def desc(self, field: str) -> Sort:
        return self._with(field, -1)

    def natural(self) -> Sort:
        return self._with("$natural", 1)

    def to_document(self) -> dict[str, int]:
        return dict(self.keys)

    def copy(self) -> Sort:
        return Sort(self.keys)

    def _with(self, field: str, direction: int) -> Sort:
        if any(key == field for key, _ in self.keys):
            return Sort(tuple((key, direction if key == field else old) for key, old in self.keys))
        return Sort(self.keys + ((field, direction),))


def _as_document(query: Query | Mapping[str, Any]) -> Document:
    if isinstance(query, Query):
        return query.to_document()
    return dict(query)


def _combined(operator: str, first: Query, rest: Sequence[Query]) -> Query:
    items = [query.to_document() for query in (first, *rest)]
    items = [item for item in items if item]
    if not items:
        return Query()
    # A single operand needs no logical wrapper.
    if len(items) == 1:
        return Query((items[0],))
    return Query(({operator: items},))
