"""Value codec helpers for document serialization/deserialization.

Leaf values are converted between model field types and the document value
model (str, bool, int, float, UTC datetime, ObjectId, Decimal128, list,
sub-document). Nested dataclass records are delegated to the document mapper
through the `record_encoder`/`record_decoder` callbacks.
"""

from __future__ import annotations

import collections.abc
import types
from collections.abc import Mapping
from dataclasses import is_dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Optional, Union, get_args, get_origin
from uuid import UUID, uuid4

from bson import ObjectId
from bson.decimal128 import Decimal128

from .errors import ConfigurationError, MappingError
from .models import is_model_instance

RecordEncoder = Callable[[Any], Any]
RecordDecoder = Callable[[type, Mapping[str, Any]], Any]

EMPTY_OBJECT_ID = ObjectId(b"\x00" * 12)

_TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n", "off"})

_SEQUENCE_ORIGINS = {
    list: list,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Collection: list,
    collections.abc.Iterable: list,
    collections.abc.Set: set,
    collections.abc.MutableSet: set,
}
_MAPPING_ORIGINS = {dict, collections.abc.Mapping, collections.abc.MutableMapping}
_UNION_ORIGINS = {Union, types.UnionType}


def encode_value(
    value: Any,
    annotation: Any = Any,
    *,
    field_name: str = "<value>",
    record_encoder: RecordEncoder | None = None,
) -> Any:
    """Encode one model value into its document representation."""

    if value is None:
        return None

    base = unwrap_optional(annotation)
    container = _container_kind(base)
    if container is not None:
        kind, origin, item_types = container
        if kind == "sequence" and _is_collection(value):
            return [
                encode_value(
                    item,
                    item_types[0],
                    field_name=field_name,
                    record_encoder=record_encoder,
                )
                for item in value
            ]
        if kind == "mapping" and isinstance(value, Mapping):
            return {
                _encode_key(key, field_name=field_name): encode_value(
                    item,
                    item_types[1],
                    field_name=field_name,
                    record_encoder=record_encoder,
                )
                for key, item in value.items()
            }

    if base is ObjectId and isinstance(value, str):
        return _decode_object_id(value, field_name=field_name)
    if _is_enum_type(base) and not isinstance(value, Enum):
        return _encode_enum(value, enum_type=base, field_name=field_name)
    if base is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)

    return _encode_runtime(value, field_name=field_name, record_encoder=record_encoder)


def decode_value(
    raw: Any,
    annotation: Any = Any,
    *,
    field_name: str = "<value>",
    record_decoder: RecordDecoder | None = None,
) -> Any:
    """Decode one document value into the declared model type.

    Raises:
        MappingError: If a non-null value cannot be converted.
    """

    if raw is None:
        return None

    base = unwrap_optional(annotation)
    container = _container_kind(base)
    if container is not None:
        kind, origin, item_types = container
        if kind == "sequence":
            if not _is_collection(raw):
                raise MappingError(
                    f"Field {field_name!r} expects an array, got {type(raw).__name__}."
                )
            items = [
                decode_value(
                    item,
                    item_types[0],
                    field_name=field_name,
                    record_decoder=record_decoder,
                )
                for item in raw
            ]
            return _SEQUENCE_ORIGINS[origin](items)

        if not isinstance(raw, Mapping):
            raise MappingError(
                f"Field {field_name!r} expects a sub-document, got {type(raw).__name__}."
            )
        key_type, value_type = item_types
        return {
            _decode_key(key, key_type, field_name=field_name): decode_value(
                item,
                value_type,
                field_name=field_name,
                record_decoder=record_decoder,
            )
            for key, item in raw.items()
        }

    if base in (Any, object) or not isinstance(base, type):
        return plain_value(raw)

    if is_dataclass(base):
        if not isinstance(raw, Mapping):
            raise MappingError(
                f"Field {field_name!r} expects a {base.__name__} sub-document, "
                f"got {type(raw).__name__}."
            )
        if record_decoder is None:
            raise MappingError(f"Field {field_name!r} has no record decoder.")
        return record_decoder(base, raw)

    if issubclass(base, Enum):
        return _decode_enum(raw, enum_type=base, field_name=field_name)
    decoder = _SCALAR_DECODERS.get(base)
    if decoder is not None:
        return decoder(raw, field_name=field_name)
    if isinstance(raw, base):
        return raw
    return plain_value(raw)


def encode_identity(value: Any, annotation: Any = Any) -> Any:
    """Encode an identity value for the `_id` key.

    Valid 24-character hex strings become ObjectId unless the field declares
    a non-string identity type.
    """

    if is_empty_identity(value):
        return None
    base = unwrap_optional(annotation)
    if isinstance(value, str) and base in (str, ObjectId, Any, object):
        return ObjectId(value) if ObjectId.is_valid(value) else value
    return encode_value(value, base, field_name="_id")


def decode_identity(raw: Any, annotation: Any = Any, *, field_name: str = "_id") -> Any:
    """Decode a stored `_id` value into the identity field type.

    Raises:
        MappingError: If the stored value shape is incompatible with the type.
    """

    if raw is None:
        return None
    if isinstance(raw, (Mapping, list, tuple)):
        raise MappingError(
            f"Identity field {field_name!r} cannot be decoded from "
            f"{type(raw).__name__}."
        )

    base = unwrap_optional(annotation)
    if base in (Any, object):
        return raw
    if base is str:
        return str(raw)
    if base is int:
        if isinstance(raw, int) and not isinstance(raw, bool):
            return raw
        raise MappingError(
            f"Identity field {field_name!r} declared as int but stored as "
            f"{type(raw).__name__}."
        )
    return decode_value(raw, base, field_name=field_name)


def is_empty_identity(value: Any) -> bool:
    """Return whether a value means "no identity assigned yet"."""

    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    return isinstance(value, ObjectId) and value == EMPTY_OBJECT_ID


def new_identity(annotation: Any = Any) -> Any:
    """Generate a client-side identity value for the declared identity type."""

    base = unwrap_optional(annotation)
    if base in (ObjectId, Any, object):
        return ObjectId()
    if base is str:
        return str(ObjectId())
    if base is UUID:
        return uuid4()
    raise ConfigurationError(
        f"Cannot generate identity values of type {getattr(base, '__name__', base)!r}; "
        "assign identities explicitly."
    )


def zero_value(annotation: Any) -> Any:
    """Return the zero value used when a required field is absent."""

    if is_optional(annotation):
        return None
    base = unwrap_optional(annotation)
    container = _container_kind(base)
    if container is not None:
        kind, origin, _ = container
        if kind == "mapping":
            return {}
        return _SEQUENCE_ORIGINS[origin]()
    return _ZERO_VALUES.get(base)


def is_optional(annotation: Any) -> bool:
    if get_origin(annotation) not in _UNION_ORIGINS:
        return False
    return type(None) in get_args(annotation)


def unwrap_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation

    if origin not in _UNION_ORIGINS:
        return annotation

    all_args = get_args(annotation)
    args = [arg for arg in all_args if arg is not type(None)]
    if len(args) == 1 and len(all_args) == 2:
        return args[0]
    return annotation


def plain_value(raw: Any) -> Any:
    """Copy sub-documents and arrays into plain `dict`/`list` values."""

    if isinstance(raw, Mapping):
        return {key: plain_value(item) for key, item in raw.items()}
    if isinstance(raw, list):
        return [plain_value(item) for item in raw]
    return raw


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to an aware UTC instant with millisecond precision."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def _encode_runtime(
    value: Any,
    *,
    field_name: str,
    record_encoder: RecordEncoder | None,
) -> Any:
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, (str, bool, int, float, bytes, ObjectId, Decimal128)):
        return value
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, UUID):
        return str(value)
    if is_model_instance(value):
        if record_encoder is None:
            raise MappingError(f"Field {field_name!r} has no record encoder.")
        return record_encoder(value)
    if isinstance(value, Mapping):
        return {
            _encode_key(key, field_name=field_name): _encode_runtime(
                item, field_name=field_name, record_encoder=record_encoder
            )
            if item is not None
            else None
            for key, item in value.items()
        }
    if _is_collection(value):
        return [
            _encode_runtime(item, field_name=field_name, record_encoder=record_encoder)
            if item is not None
            else None
            for item in value
        ]
    return value


def _encode_key(key: Any, *, field_name: str) -> str:
    if isinstance(key, str):
        return key
    encoded = _encode_runtime(key, field_name=field_name, record_encoder=None)
    return str(encoded)


def _decode_key(key: str, key_type: Any, *, field_name: str) -> Any:
    if key_type in (str, Any, object):
        return key
    return decode_value(key, key_type, field_name=field_name)


def _encode_enum(value: Any, *, enum_type: type[Enum], field_name: str) -> str:
    if isinstance(value, str) and value in enum_type.__members__:
        return value
    try:
        return enum_type(value).name
    except ValueError as exc:
        raise MappingError(
            f"Invalid enum value {value!r} for field {field_name!r}."
        ) from exc


def _decode_enum(raw: Any, *, enum_type: type[Enum], field_name: str) -> Enum:
    if isinstance(raw, enum_type):
        return raw
    if isinstance(raw, str):
        member = enum_type.__members__.get(raw)
        if member is not None:
            return member
    raise MappingError(
        f"Cannot deserialize value {raw!r} to enum {enum_type.__name__} "
        f"for field {field_name!r}."
    )


def _decode_str(raw: Any, *, field_name: str) -> str:
    return raw if isinstance(raw, str) else str(raw)


def _decode_bool(raw: Any, *, field_name: str) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw != 0
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise MappingError(f"Cannot deserialize {raw!r} to bool for field {field_name!r}.")


def _decode_int(raw: Any, *, field_name: str) -> int:
    try:
        if isinstance(raw, Decimal128):
            return int(raw.to_decimal())
        if isinstance(raw, (int, float, Decimal)):
            return int(raw)
        if isinstance(raw, str):
            return int(raw.strip())
    except (ValueError, OverflowError, InvalidOperation) as exc:
        raise MappingError(
            f"Cannot deserialize {raw!r} to int for field {field_name!r}."
        ) from exc
    raise MappingError(f"Cannot deserialize {raw!r} to int for field {field_name!r}.")


def _decode_float(raw: Any, *, field_name: str) -> float:
    try:
        if isinstance(raw, Decimal128):
            return float(raw.to_decimal())
        if isinstance(raw, (int, float, Decimal)):
            return float(raw)
        if isinstance(raw, str):
            return float(raw.strip())
    except ValueError as exc:
        raise MappingError(
            f"Cannot deserialize {raw!r} to float for field {field_name!r}."
        ) from exc
    raise MappingError(f"Cannot deserialize {raw!r} to float for field {field_name!r}.")


def _decode_decimal(raw: Any, *, field_name: str) -> Decimal:
    if isinstance(raw, Decimal128):
        return raw.to_decimal()
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, (int, float, str)) and not isinstance(raw, bool):
        try:
            return Decimal(str(raw).strip())
        except InvalidOperation as exc:
            raise MappingError(
                f"Cannot deserialize {raw!r} to Decimal for field {field_name!r}."
            ) from exc
    raise MappingError(f"Cannot deserialize {raw!r} to Decimal for field {field_name!r}.")


def _decode_datetime(raw: Any, *, field_name: str) -> datetime:
    if isinstance(raw, datetime):
        return to_utc(raw)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day, tzinfo=timezone.utc)
    if isinstance(raw, str):
        text = raw.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return to_utc(datetime.fromisoformat(text))
        except ValueError as exc:
            raise MappingError(
                f"Cannot parse timestamp {raw!r} for field {field_name!r}."
            ) from exc
    raise MappingError(
        f"Cannot deserialize {type(raw).__name__} to datetime for field {field_name!r}."
    )


def _decode_date(raw: Any, *, field_name: str) -> date:
    if isinstance(raw, datetime):
        return to_utc(raw).date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        try:
            return date.fromisoformat(raw.strip())
        except ValueError:
            return _decode_datetime(raw, field_name=field_name).date()
    raise MappingError(
        f"Cannot deserialize {type(raw).__name__} to date for field {field_name!r}."
    )


def _decode_object_id(raw: Any, *, field_name: str) -> ObjectId:
    if isinstance(raw, ObjectId):
        return raw
    if isinstance(raw, str) and ObjectId.is_valid(raw):
        return ObjectId(raw)
    raise MappingError(f"Cannot deserialize {raw!r} to ObjectId for field {field_name!r}.")


def _decode_uuid(raw: Any, *, field_name: str) -> UUID:
    if isinstance(raw, UUID):
        return raw
    try:
        if isinstance(raw, (bytes, bytearray)) and len(raw) == 16:
            return UUID(bytes=bytes(raw))
        if isinstance(raw, str):
            return UUID(raw)
    except ValueError as exc:
        raise MappingError(
            f"Cannot deserialize {raw!r} to UUID for field {field_name!r}."
        ) from exc
    raise MappingError(f"Cannot deserialize {raw!r} to UUID for field {field_name!r}.")


def _decode_bytes(raw: Any, *, field_name: str) -> bytes:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw)
    raise MappingError(f"Cannot deserialize {raw!r} to bytes for field {field_name!r}.")


_SCALAR_DECODERS: dict[type, Callable[..., Any]] = {
    str: _decode_str,
    bool: _decode_bool,
    int: _decode_int,
    float: _decode_float,
    Decimal: _decode_decimal,
    datetime: _decode_datetime,
    date: _decode_date,
    ObjectId: _decode_object_id,
    UUID: _decode_uuid,
    bytes: _decode_bytes,
}

_ZERO_VALUES: dict[Any, Any] = {
    str: "",
    bool: False,
    int: 0,
    float: 0.0,
    Decimal: Decimal(0),
    bytes: b"",
}


def _container_kind(base: Any) -> Optional[tuple[str, Any, tuple[Any, Any]]]:
    origin = get_origin(base)
    if origin is None and base in _SEQUENCE_ORIGINS:
        return "sequence", base, (Any, Any)
    if origin is None and base in _MAPPING_ORIGINS:
        return "mapping", dict, (Any, Any)
    if origin in _SEQUENCE_ORIGINS:
        args = get_args(base)
        item_type: Any = Any
        if origin is tuple:
            if len(args) == 2 and args[1] is Ellipsis:
                item_type = args[0]
        elif args:
            item_type = args[0]
        return "sequence", origin, (item_type, Any)
    if origin in _MAPPING_ORIGINS:
        args = get_args(base)
        key_type, value_type = args if len(args) == 2 else (Any, Any)
        return "mapping", dict, (key_type, value_type)
    return None


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _is_enum_type(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, Enum)
