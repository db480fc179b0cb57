"""In-memory document store adapter for testing and local development.

Implements the `DatabasePort`/`CollectionPort` contracts with the subset of
MongoDB query semantics the `Query` builder produces. Documents are deep
copied on the way in and out, so callers never share state with the store.
"""

from __future__ import annotations

import copy
import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence

from bson import ObjectId
from bson.decimal128 import Decimal128
from pymongo.errors import DuplicateKeyError, OperationFailure, WriteError

from ...core.models import ID_KEY
from ...core.schema_indexes import default_index_name
from ...core.types import Document, Documents, MaybeDocument, SortKeys

_ID_INDEX = "_id_"
_MISSING = object()

_LOGICAL_OPERATORS = {"$and", "$or", "$nor"}
_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}


@dataclass
class _IndexState:
    keys: tuple[tuple[str, int], ...]
    unique: bool = False
    sparse: bool = False


class InMemoryCollection:
    """One named collection held in process memory."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._documents: list[Document] = []
        self._indexes: dict[str, _IndexState] = {}
        self._lock = threading.RLock()

    def insert_one(self, document: Mapping[str, Any]) -> Any:
        with self._lock:
            stored = self._prepare_insert(document)
            self._check_unique(stored)
            self._documents.append(stored)
            return stored[ID_KEY]

    def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> None:
        """Insert in order; documents before a failing one stay inserted."""

        with self._lock:
            for document in documents:
                stored = self._prepare_insert(document)
                self._check_unique(stored)
                self._documents.append(stored)

    def replace_one(
        self,
        filter: Mapping[str, Any],
        document: Mapping[str, Any],
        *,
        upsert: bool = False,
    ) -> None:
        with self._lock:
            position = self._first_position(filter)
            if position is None:
                if not upsert:
                    return
                stored = copy.deepcopy(dict(document))
                if stored.get(ID_KEY) is None:
                    stored.pop(ID_KEY, None)
                    stored = {ID_KEY: _upsert_identity(filter), **stored}
                self._check_unique(stored)
                self._documents.append(stored)
                return

            current = self._documents[position]
            stored = copy.deepcopy(dict(document))
            if ID_KEY in stored and not _values_equal(stored[ID_KEY], current[ID_KEY]):
                raise WriteError(
                    "After applying the update, the (immutable) field '_id' was "
                    "found to have been altered",
                    code=66,
                )
            stored.pop(ID_KEY, None)
            stored = {ID_KEY: current[ID_KEY], **stored}
            self._check_unique(stored, skip=position)
            self._documents[position] = stored

    def find(
        self,
        filter: Mapping[str, Any],
        *,
        sort: Optional[SortKeys] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> Documents:
        with self._lock:
            matched = [doc for doc in self._documents if matches(doc, filter)]
            matched = _sorted(matched, sort)
            if skip:
                matched = matched[skip:]
            if limit:
                matched = matched[:limit]
            return [copy.deepcopy(doc) for doc in matched]

    def find_one(self, filter: Mapping[str, Any]) -> MaybeDocument:
        with self._lock:
            position = self._first_position(filter)
            if position is None:
                return None
            return copy.deepcopy(self._documents[position])

    def count(self, filter: Mapping[str, Any]) -> int:
        with self._lock:
            return sum(1 for doc in self._documents if matches(doc, filter))

    def delete_one(self, filter: Mapping[str, Any]) -> int:
        with self._lock:
            position = self._first_position(filter)
            if position is None:
                return 0
            del self._documents[position]
            return 1

    def delete_many(self, filter: Mapping[str, Any]) -> int:
        with self._lock:
            kept = [doc for doc in self._documents if not matches(doc, filter)]
            deleted = len(self._documents) - len(kept)
            self._documents = kept
            return deleted

    def update_many(self, filter: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        """Apply `$set` semantics with dotted keys; returns the modified count."""

        if any(key == ID_KEY or key.startswith(ID_KEY + ".") for key in values):
            raise WriteError(
                "Performing an update on the path '_id' would modify the "
                "immutable field '_id'",
                code=66,
            )
        with self._lock:
            modified = 0
            for position, current in enumerate(self._documents):
                if not matches(current, filter):
                    continue
                updated = copy.deepcopy(current)
                for key, value in values.items():
                    _set_path(updated, key, copy.deepcopy(value))
                if updated == current:
                    continue
                self._check_unique(updated, skip=position)
                self._documents[position] = updated
                modified += 1
            return modified

    def create_index(
        self,
        keys: Sequence[tuple[str, int]],
        *,
        unique: bool = False,
        sparse: bool = False,
        name: Optional[str] = None,
    ) -> str:
        index = _IndexState(
            keys=tuple((key, int(direction)) for key, direction in keys),
            unique=unique,
            sparse=sparse,
        )
        index_name = name or default_index_name(index.keys)
        with self._lock:
            existing = self._indexes.get(index_name)
            if existing is not None:
                if existing != index:
                    raise OperationFailure(
                        f"Index with name: {index_name} already exists with "
                        "different options",
                        code=85,
                    )
                return index_name
            if unique:
                seen: set[Any] = set()
                for doc in self._documents:
                    entry = _index_entry(doc, index)
                    if entry is None:
                        continue
                    if entry in seen:
                        raise _duplicate(self.name, index_name, entry)
                    seen.add(entry)
            self._indexes[index_name] = index
            return index_name

    def index_information(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            info: dict[str, dict[str, Any]] = {_ID_INDEX: {"key": [(ID_KEY, 1)]}}
            for index_name, index in self._indexes.items():
                entry: dict[str, Any] = {"key": list(index.keys)}
                if index.unique:
                    entry["unique"] = True
                if index.sparse:
                    entry["sparse"] = True
                info[index_name] = entry
            return info

    def drop(self) -> None:
        with self._lock:
            self._documents = []
            self._indexes = {}

    def _prepare_insert(self, document: Mapping[str, Any]) -> Document:
        stored = copy.deepcopy(dict(document))
        if stored.get(ID_KEY) is None:
            stored.pop(ID_KEY, None)
            stored = {ID_KEY: ObjectId(), **stored}
        return stored

    def _first_position(self, filter: Mapping[str, Any]) -> Optional[int]:
        for position, doc in enumerate(self._documents):
            if matches(doc, filter):
                return position
        return None

    def _check_unique(self, candidate: Document, *, skip: Optional[int] = None) -> None:
        candidate_id = _freeze(candidate[ID_KEY])
        entries = {
            index_name: _index_entry(candidate, index)
            for index_name, index in self._indexes.items()
            if index.unique
        }
        for position, doc in enumerate(self._documents):
            if position == skip:
                continue
            if _freeze(doc[ID_KEY]) == candidate_id:
                raise _duplicate(self.name, _ID_INDEX, candidate_id)
            for index_name, entry in entries.items():
                if entry is not None and _index_entry(doc, self._indexes[index_name]) == entry:
                    raise _duplicate(self.name, index_name, entry)


class InMemoryDatabase:
    """Collection registry; collections are created on first access."""

    def __init__(self, name: str = "mini_odm") -> None:
        self.name = name
        self._collections: dict[str, InMemoryCollection] = {}
        self._lock = threading.Lock()
        self._closed = False

    def get_collection(self, name: str) -> InMemoryCollection:
        with self._lock:
            if self._closed:
                raise RuntimeError("database is closed")
            collection = self._collections.get(name)
            if collection is None:
                collection = InMemoryCollection(name)
                self._collections[name] = collection
            return collection

    def list_collection_names(self) -> list[str]:
        with self._lock:
            return list(self._collections)

    def drop_collection(self, name: str) -> None:
        with self._lock:
            self._collections.pop(name, None)

    def close(self) -> None:
        with self._lock:
            self._closed = True


def matches(document: Mapping[str, Any], filter: Optional[Mapping[str, Any]]) -> bool:
    """Return whether a stored document satisfies a filter document.

    Raises:
        ValueError: For operators outside the supported subset.
    """

    if not filter:
        return True
    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(document, item) for item in condition):
                return False
        elif key == "$or":
            if not any(matches(document, item) for item in condition):
                return False
        elif key == "$nor":
            if any(matches(document, item) for item in condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported top-level query operator: {key}")
        elif not _match_condition(_candidates(document, key.split(".")), condition):
            return False
    return True


def _match_condition(candidates: list[Any], condition: Any) -> bool:
    if _is_operator_document(condition):
        return _match_operators(candidates, condition)
    if isinstance(condition, re.Pattern):
        return any(_regex_search(condition, value) for value in _expand(candidates))
    return _match_eq(candidates, condition)


def _match_operators(candidates: list[Any], operators: Mapping[str, Any]) -> bool:
    for operator, operand in operators.items():
        if operator == "$options":
            if "$regex" not in operators:
                raise ValueError("$options requires $regex")
            continue
        check = _OPERATORS.get(operator)
        if check is None:
            raise ValueError(f"Unsupported query operator: {operator}")
        if operator == "$regex":
            operand = _compile_regex(operand, operators.get("$options", ""))
        if not check(candidates, operand):
            return False
    return True


def _match_eq(candidates: list[Any], operand: Any) -> bool:
    if not candidates:
        return operand is None
    if any(_values_equal(value, operand) for value in candidates):
        return True
    return any(_values_equal(value, operand) for value in _expand(candidates))


def _match_in(candidates: list[Any], operand: Sequence[Any]) -> bool:
    for wanted in operand:
        if isinstance(wanted, re.Pattern):
            if any(_regex_search(wanted, value) for value in _expand(candidates)):
                return True
        elif _match_eq(candidates, wanted):
            return True
    return False


def _match_exists(candidates: list[Any], operand: Any) -> bool:
    return bool(candidates) == bool(operand)


def _match_regex(candidates: list[Any], pattern: re.Pattern[str]) -> bool:
    return any(_regex_search(pattern, value) for value in _expand(candidates))


def _match_size(candidates: list[Any], operand: Any) -> bool:
    return any(isinstance(value, list) and len(value) == operand for value in candidates)


def _match_all(candidates: list[Any], operand: Sequence[Any]) -> bool:
    if not operand:
        return False
    for value in candidates:
        items = value if isinstance(value, list) else [value]
        if all(any(_values_equal(item, wanted) for item in items) for wanted in operand):
            return True
    return False


def _match_elem_match(candidates: list[Any], operand: Mapping[str, Any]) -> bool:
    element_operators = _is_operator_document(operand) and not (
        set(operand) & _LOGICAL_OPERATORS
    )
    for value in candidates:
        if not isinstance(value, list):
            continue
        for element in value:
            if element_operators:
                if _match_operators([element], operand):
                    return True
            elif isinstance(element, Mapping) and matches(element, operand):
                return True
    return False


def _match_not(candidates: list[Any], operand: Any) -> bool:
    if isinstance(operand, re.Pattern):
        return not _match_regex(candidates, operand)
    if not _is_operator_document(operand):
        raise ValueError("$not needs an operator document or a regex")
    return not _match_operators(candidates, operand)


def _comparison(test: Callable[[int], bool]) -> Callable[[list[Any], Any], bool]:
    def check(candidates: list[Any], operand: Any) -> bool:
        for value in _expand(candidates):
            order = _compare(value, operand)
            if order is not None and test(order):
                return True
        return False

    return check


_OPERATORS: dict[str, Callable[[list[Any], Any], bool]] = {
    "$eq": _match_eq,
    "$ne": lambda candidates, operand: not _match_eq(candidates, operand),
    "$gt": _comparison(lambda order: order > 0),
    "$gte": _comparison(lambda order: order >= 0),
    "$lt": _comparison(lambda order: order < 0),
    "$lte": _comparison(lambda order: order <= 0),
    "$in": _match_in,
    "$nin": lambda candidates, operand: not _match_in(candidates, operand),
    "$exists": _match_exists,
    "$regex": _match_regex,
    "$size": _match_size,
    "$all": _match_all,
    "$elemMatch": _match_elem_match,
    "$not": _match_not,
}


def _candidates(value: Any, parts: list[str]) -> list[Any]:
    """Resolve a dotted path, fanning out through arrays of sub-documents."""

    if not parts:
        return [value]
    head, rest = parts[0], parts[1:]
    if isinstance(value, Mapping):
        if head not in value:
            return []
        return _candidates(value[head], rest)
    if isinstance(value, list):
        if head.isdigit():
            index = int(head)
            return _candidates(value[index], rest) if index < len(value) else []
        found: list[Any] = []
        for item in value:
            if isinstance(item, Mapping):
                found.extend(_candidates(item, parts))
        return found
    return []


def _expand(candidates: list[Any]) -> list[Any]:
    expanded: list[Any] = []
    for value in candidates:
        expanded.append(value)
        if isinstance(value, list):
            expanded.extend(value)
    return expanded


def _is_operator_document(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and bool(value)
        and all(isinstance(key, str) and key.startswith("$") for key in value)
    )


def _compile_regex(pattern: Any, options: str) -> re.Pattern[str]:
    if isinstance(pattern, re.Pattern):
        return pattern
    flags = 0
    for option in options or "":
        flag = _REGEX_FLAGS.get(option)
        if flag is None:
            raise ValueError(f"Unsupported regex option: {option!r}")
        flags |= flag
    return re.compile(pattern, flags)


def _regex_search(pattern: re.Pattern[str], value: Any) -> bool:
    return isinstance(value, str) and pattern.search(value) is not None


def _set_path(document: Document, path: str, value: Any) -> None:
    parts = path.split(".")
    target: Any = document
    for part in parts[:-1]:
        if isinstance(target, list) and part.isdigit():
            target = target[int(part)]
            continue
        child = target.get(part)
        if not isinstance(child, (dict, list)):
            child = {}
            target[part] = child
        target = child
    last = parts[-1]
    if isinstance(target, list) and last.isdigit():
        target[int(last)] = value
    else:
        target[last] = value


def _upsert_identity(filter: Mapping[str, Any]) -> Any:
    value = filter.get(ID_KEY, _MISSING)
    if value is _MISSING or value is None or _is_operator_document(value):
        return ObjectId()
    return copy.deepcopy(value)


# BSON comparison order of the value types this store handles.
def _type_rank(value: Any) -> int:
    if value is None or value is _MISSING:
        return 1
    if isinstance(value, bool):
        return 8
    if isinstance(value, (int, float, Decimal, Decimal128)):
        return 2
    if isinstance(value, str):
        return 3
    if isinstance(value, Mapping):
        return 4
    if isinstance(value, list):
        return 5
    if isinstance(value, (bytes, bytearray)):
        return 6
    if isinstance(value, ObjectId):
        return 7
    if isinstance(value, datetime):
        return 9
    return 10


def _normalize(value: Any) -> Any:
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return value


def _values_equal(left: Any, right: Any) -> bool:
    if _type_rank(left) != _type_rank(right):
        return False
    return _normalize(left) == _normalize(right)


def _compare(left: Any, right: Any) -> Optional[int]:
    """Three-way compare two values of the same type bracket, else `None`."""

    if _type_rank(left) != _type_rank(right) or left is None or right is None:
        return None
    try:
        a, b = _sort_key(left), _sort_key(right)
        return (a > b) - (a < b)
    except TypeError:
        return None


def _sort_key(value: Any) -> tuple[int, Any]:
    rank = _type_rank(value)
    if rank == 1:
        return (rank, 0)
    if rank == 4:
        return (rank, tuple((key, _sort_key(item)) for key, item in value.items()))
    if rank == 5:
        return (rank, tuple(_sort_key(item) for item in value))
    if rank == 7:
        return (rank, value.binary)
    if rank == 9:
        return (rank, value if value.tzinfo else value.replace(tzinfo=timezone.utc))
    if rank == 10:
        return (rank, repr(value))
    return (rank, _normalize(value))


def _sorted(documents: list[Document], sort: Optional[SortKeys]) -> list[Document]:
    if not sort:
        return documents
    ordered = list(documents)
    for key, direction in reversed(list(sort)):
        if key == "$natural":
            if direction < 0:
                ordered.reverse()
            continue
        ordered.sort(
            key=lambda doc: _sort_key(_first(_candidates(doc, key.split(".")))),
            reverse=direction < 0,
        )
    return ordered


def _first(values: list[Any]) -> Any:
    return values[0] if values else None


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return tuple((key, _freeze(item)) for key, item in value.items())
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return _normalize(value)


def _index_entry(document: Mapping[str, Any], index: _IndexState) -> Any:
    values = [_candidates(document, key.split(".")) for key, _ in index.keys]
    if index.sparse and not any(values):
        return None
    return tuple(_freeze(_first(found)) for found in values)


def _duplicate(collection: str, index_name: str, entry: Any) -> DuplicateKeyError:
    return DuplicateKeyError(
        f"E11000 duplicate key error collection: {collection} "
        f"index: {index_name} dup key: {entry!r}",
        code=11000,
    )
