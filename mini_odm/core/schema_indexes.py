"""Index declarations collected from model metadata."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Callable, Type

from .errors import ConfigurationError
from .models import DataclassModel, model_fields

ASCENDING = 1
DESCENDING = -1


@dataclass(frozen=True)
class IndexSpec:
    """Represents one (possibly compound) index definition.

    `keys` holds `(field, direction)` pairs. Field names are model field
    names or document keys; the descriptor translates them to document keys.
    """

    keys: tuple[tuple[str, int], ...]
    unique: bool = False
    sparse: bool = False
    name: str | None = None


IndexInput = str | Sequence[str] | Mapping[str, Any] | IndexSpec


def collect_index_specs(
    cls: Type[DataclassModel],
    key_for: Callable[[str], str],
) -> tuple[IndexSpec, ...]:
    """Collect index specs from field metadata and model `__indexes__`.

    Args:
        cls: Dataclass model type.
        key_for: Maps a field name (or document key) to its document key and
            raises `ConfigurationError` for unknown names.
    """

    specs: list[IndexSpec] = []

    for field in model_fields(cls):
        has_index = bool(field.metadata.get("index"))
        unique = bool(field.metadata.get("unique"))
        if not has_index and not unique:
            continue
        specs.append(
            IndexSpec(
                keys=((key_for(field.name), ASCENDING),),
                unique=unique,
                sparse=bool(field.metadata.get("sparse")),
                name=field.metadata.get("index_name"),
            )
        )

    raw_indexes = getattr(cls, "__indexes__", ())
    for raw in raw_indexes:
        spec = parse_index_input(raw)
        specs.append(
            IndexSpec(
                keys=tuple((key_for(key), direction) for key, direction in spec.keys),
                unique=spec.unique,
                sparse=spec.sparse,
                name=spec.name,
            )
        )

    return tuple(dedupe_index_specs(specs))


def parse_index_input(raw: IndexInput) -> IndexSpec:
    if isinstance(raw, IndexSpec):
        if not raw.keys:
            raise ConfigurationError("IndexSpec.keys must not be empty.")
        return raw

    if isinstance(raw, str):
        return IndexSpec(keys=parse_index_definition(raw))

    if isinstance(raw, Mapping):
        keys_raw = raw.get("keys", raw.get("fields"))
        return IndexSpec(
            keys=normalize_keys(keys_raw),
            unique=bool(raw.get("unique", False)),
            sparse=bool(raw.get("sparse", False)),
            name=raw.get("name"),
        )

    if isinstance(raw, Sequence):
        return IndexSpec(keys=normalize_keys(raw))

    raise ConfigurationError(f"Unsupported index definition type: {type(raw)}")


def parse_index_definition(definition: str) -> tuple[tuple[str, int], ...]:
    """Parse `"name:1, age:-1"` style definitions; bare names are ascending."""

    keys: list[tuple[str, int]] = []
    for part in definition.split(","):
        part = part.strip()
        if not part:
            continue
        name, _, raw_direction = part.partition(":")
        name = name.strip()
        if not name:
            raise ConfigurationError(f"Invalid index definition {definition!r}.")
        keys.append((name, _parse_direction(raw_direction.strip() or ASCENDING)))
    if not keys:
        raise ConfigurationError("Index definition must not be empty.")
    return tuple(keys)


def normalize_keys(raw: Any) -> tuple[tuple[str, int], ...]:
    if isinstance(raw, str):
        return parse_index_definition(raw)

    if isinstance(raw, Mapping):
        items = list(raw.items())
    elif isinstance(raw, Sequence):
        items = []
        for item in raw:
            if isinstance(item, str):
                items.append((item, ASCENDING))
            elif isinstance(item, Sequence) and len(item) == 2:
                items.append((item[0], item[1]))
            else:
                raise ConfigurationError(f"Invalid index key entry: {item!r}")
    else:
        raise ConfigurationError("Index keys must be a string, mapping, or sequence.")

    if not items:
        raise ConfigurationError("Index keys must not be empty.")
    keys = []
    for name, direction in items:
        if not isinstance(name, str) or not name:
            raise ConfigurationError("All index key names must be non-empty strings.")
        keys.append((name, _parse_direction(direction)))
    return tuple(keys)


def dedupe_index_specs(specs: Sequence[IndexSpec]) -> list[IndexSpec]:
    deduped: list[IndexSpec] = []
    seen: set[IndexSpec] = set()

    for spec in specs:
        if spec in seen:
            continue
        seen.add(spec)
        deduped.append(spec)

    return deduped


def default_index_name(keys: Sequence[tuple[str, int]]) -> str:
    """Build the MongoDB-style default name, e.g. `name_1_age_-1`."""

    return "_".join(f"{key}_{direction}" for key, direction in keys)


def _parse_direction(raw: Any) -> int:
    if isinstance(raw, str):
        try:
            raw = int(raw)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid index direction {raw!r}.") from exc
    if raw not in (ASCENDING, DESCENDING):
        raise ConfigurationError(f"Index direction must be 1 or -1, got {raw!r}.")
    return int(raw)
