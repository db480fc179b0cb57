"""Model utilities for dataclass validation and field role lookup."""

from __future__ import annotations

from dataclasses import Field, fields, is_dataclass
from enum import Enum
from typing import Any, ClassVar, List, Optional, Protocol, Type

from .errors import ConfigurationError

ID_KEY = "_id"


class DataclassModel(Protocol):
    """Protocol for supported dataclass model types."""

    __dataclass_fields__: ClassVar[dict[str, Any]]


class FieldRole(str, Enum):
    """How a model field is laid out in its document."""

    IDENTITY = "identity"
    EMBEDDED = "embedded"
    REFERENCE = "reference"
    PLAIN = "plain"


def require_dataclass_model(cls: Type[Any]) -> None:
    """Validate that a class is a dataclass model."""

    if not isinstance(cls, type) or not is_dataclass(cls):
        name = getattr(cls, "__name__", repr(cls))
        raise ConfigurationError(
            f"{name} must be a dataclass to be mapped to documents."
        )


def is_model_instance(value: Any) -> bool:
    """Return whether a value is an instance of a dataclass model."""

    return is_dataclass(value) and not isinstance(value, type)


def collection_name(model_or_cls: Any) -> str:
    """Resolve collection name from model class or instance.

    Uses `__collection__` override when present, otherwise lowercased class name.
    """

    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    name = getattr(cls, "__collection__", None)
    return name if isinstance(name, str) and name else cls.__name__.lower()


def model_fields(cls: Type[DataclassModel]) -> List[Field[Any]]:
    """Return dataclass fields for a model type."""

    require_dataclass_model(cls)
    return list(fields(cls))


def id_fields(cls: Type[DataclassModel]) -> List[Field[Any]]:
    """Return fields tagged with `metadata={'id': True}`."""

    return [f for f in model_fields(cls) if f.metadata.get("id")]


def field_role(field: Field[Any]) -> FieldRole:
    """Resolve the role of one field; identity wins over embedded over reference."""

    if field.metadata.get("id"):
        return FieldRole.IDENTITY
    if field.metadata.get("embedded"):
        return FieldRole.EMBEDDED
    if field.metadata.get("reference") is not None:
        return FieldRole.REFERENCE
    return FieldRole.PLAIN


def field_key_override(field: Field[Any]) -> Optional[str]:
    """Return the `metadata={'name': ...}` document key override, if any."""

    name = field.metadata.get("name")
    if name is None:
        return None
    if not isinstance(name, str) or not name:
        raise ConfigurationError(
            f"Field {field.name!r} metadata 'name' must be a non-empty string."
        )
    return name
