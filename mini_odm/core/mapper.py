"""Document mapper: dataclass records to documents and back."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any, Type, TypeVar

from .codecs import (
    decode_identity,
    decode_value,
    encode_identity,
    encode_value,
    is_empty_identity,
    plain_value,
    unwrap_optional,
    zero_value,
)
from .errors import ConfigurationError, MappingError
from .metadata import FieldDescriptor, describe
from .models import DataclassModel, FieldRole, is_model_instance
from .types import Document

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DataclassModel)


def serialize(obj: DataclassModel) -> Document:
    """Serialize one record into a document, in field declaration order.

    Absent identities stay absent so callers can tell inserts from upserts;
    fields whose encoded value is `None` are omitted.
    """

    if not is_model_instance(obj):
        raise MappingError(f"Cannot serialize {type(obj).__name__}: not a dataclass record.")

    descriptor = describe(type(obj))
    document: Document = {}
    for item in descriptor.fields:
        value = getattr(obj, item.name)
        if item.role is FieldRole.IDENTITY:
            encoded = encode_identity(value, item.annotation)
        elif item.role is FieldRole.EMBEDDED:
            encoded = _serialize_embedded(value, item)
        elif item.role is FieldRole.REFERENCE:
            encoded = _serialize_reference(value, item)
        else:
            encoded = encode_value(
                value,
                item.annotation,
                field_name=item.name,
                record_encoder=serialize,
            )
        if encoded is not None:
            document[item.key] = encoded
    return document


def deserialize(model: Type[T], document: Mapping[str, Any]) -> T:
    """Build a record of `model` from a document.

    Absent or null values fall back to the field default, or to the declared
    type's zero value when the field has no default.

    Raises:
        MappingError: If a value cannot be decoded or the constructor rejects
            the assembled arguments.
    """

    descriptor = describe(model)
    if not isinstance(document, Mapping):
        raise MappingError(
            f"Cannot deserialize {type(document).__name__} into {model.__name__}."
        )

    params: dict[str, Any] = {}
    for item in descriptor.fields:
        if not item.init:
            continue
        raw = document.get(item.key)
        if raw is None:
            if not item.has_default:
                params[item.name] = None if item.optional else zero_value(item.annotation)
            continue
        try:
            params[item.name] = _deserialize_field(raw, item)
        except MappingError as exc:
            raise MappingError(f"{model.__name__}.{item.name}: {exc}") from exc

    try:
        return model(**params)
    except (TypeError, ValueError) as exc:
        raise MappingError(
            f"Cannot construct {model.__name__} from document: {exc}"
        ) from exc


def identity_of(obj: DataclassModel) -> Any:
    """Return the identity value of a record, or `None` when it has none."""

    id_field = describe(type(obj)).id_field
    if id_field is None:
        return None
    value = getattr(obj, id_field.name)
    return None if is_empty_identity(value) else value


def with_identity(obj: T, raw_identity: Any) -> T:
    """Return a copy of `obj` with the stored identity bound; `obj` is untouched."""

    id_field = describe(type(obj)).id_field
    if id_field is None:
        raise ConfigurationError(f"{type(obj).__name__} has no identity field.")
    value = decode_identity(raw_identity, id_field.annotation, field_name=id_field.name)
    return replace(obj, **{id_field.name: value})


def _serialize_embedded(value: Any, item: FieldDescriptor) -> Any:
    if value is None:
        return None
    if is_model_instance(value):
        return serialize(value)
    if isinstance(value, Mapping):
        return {
            str(key): _serialize_embedded(entry, item) for key, entry in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [
            encoded
            for encoded in (_serialize_embedded(entry, item) for entry in value)
            if encoded is not None
        ]
    return encode_value(value, item.annotation, field_name=item.name)


def _serialize_reference(value: Any, item: FieldDescriptor) -> Any:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set, frozenset)):
        return [
            encoded
            for encoded in (_serialize_reference(entry, item) for entry in value)
            if encoded is not None
        ]
    if is_model_instance(value):
        referenced = identity_of(value)
        if referenced is not None:
            return encode_identity(referenced, _identity_annotation(type(value)))
        logger.debug(
            "Reference field %r holds a %s without identity; embedding the full document.",
            item.name,
            type(value).__name__,
        )
        return serialize(value)
    return encode_identity(value, _identity_annotation(item.target))


def _deserialize_field(raw: Any, item: FieldDescriptor) -> Any:
    if item.role is FieldRole.IDENTITY:
        return decode_identity(raw, item.annotation, field_name=item.name)
    if item.role is FieldRole.EMBEDDED:
        return _deserialize_embedded(raw, item.annotation, item)
    if item.role is FieldRole.REFERENCE:
        return _deserialize_reference(raw, item)
    return decode_value(
        raw,
        item.annotation,
        field_name=item.name,
        record_decoder=deserialize,
    )


def _deserialize_embedded(raw: Any, annotation: Any, item: FieldDescriptor) -> Any:
    record_type = _record_type(annotation)
    if isinstance(raw, Mapping) and record_type is not None:
        return deserialize(record_type, raw)
    if isinstance(raw, list):
        element_type = _record_type(_element_annotation(annotation))
        if element_type is not None:
            return _rebuild(
                annotation,
                [
                    deserialize(element_type, entry)
                    if isinstance(entry, Mapping)
                    else plain_value(entry)
                    for entry in raw
                    if entry is not None
                ],
            )
    if isinstance(raw, Mapping):
        value_type = _record_type(_mapping_value_annotation(annotation))
        if value_type is not None:
            return {
                key: deserialize(value_type, entry) if isinstance(entry, Mapping) else entry
                for key, entry in raw.items()
            }
    return decode_value(
        raw,
        annotation,
        field_name=item.name,
        record_decoder=deserialize,
    )


def _deserialize_reference(raw: Any, item: FieldDescriptor) -> Any:
    target = item.target
    if isinstance(raw, Mapping):
        return deserialize(target, raw)
    if isinstance(raw, list):
        return _rebuild(
            item.annotation,
            [
                deserialize(target, entry) if isinstance(entry, Mapping) else entry
                for entry in raw
                if entry is not None
            ],
        )
    return raw


def _identity_annotation(model: Any) -> Any:
    if model is None:
        return Any
    id_field = describe(model).id_field
    return id_field.annotation if id_field is not None else Any


def _record_type(annotation: Any) -> type | None:
    base = unwrap_optional(annotation)
    if isinstance(base, type) and hasattr(base, "__dataclass_fields__"):
        return base
    return None


def _element_annotation(annotation: Any) -> Any:
    args = getattr(unwrap_optional(annotation), "__args__", ())
    return args[0] if args else Any


def _mapping_value_annotation(annotation: Any) -> Any:
    args = getattr(unwrap_optional(annotation), "__args__", ())
    return args[1] if len(args) == 2 else Any


def _rebuild(annotation: Any, items: list[Any]) -> Any:
    origin = getattr(unwrap_optional(annotation), "__origin__", None)
    if origin in (tuple, set, frozenset):
        return origin(items)
    return items
