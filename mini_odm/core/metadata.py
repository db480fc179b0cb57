"""Schema descriptors: per-model document layout derived from dataclass fields."""

from __future__ import annotations

import logging
from dataclasses import MISSING, Field, dataclass
from functools import lru_cache
from typing import Any, Dict, Generic, Optional, Type, TypeVar, get_type_hints

from .codecs import is_optional, unwrap_optional
from .errors import ConfigurationError
from .models import (
    ID_KEY,
    DataclassModel,
    FieldRole,
    collection_name,
    field_key_override,
    field_role,
    id_fields,
    model_fields,
    require_dataclass_model,
)
from .schema_indexes import IndexSpec, collect_index_specs

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DataclassModel)


@dataclass(frozen=True)
class FieldDescriptor:
    """Resolved layout of one model field."""

    name: str
    key: str
    annotation: Any
    role: FieldRole
    target: Optional[type] = None
    optional: bool = False
    has_default: bool = False
    init: bool = True


@dataclass(frozen=True)
class SchemaDescriptor(Generic[T]):
    """Normalized model description used by the mapper and repositories."""

    model: Type[T]
    collection: str
    fields: tuple[FieldDescriptor, ...]
    id_field: Optional[FieldDescriptor]
    index_specs: tuple[IndexSpec, ...] = ()

    @property
    def by_key(self) -> Dict[str, FieldDescriptor]:
        return {item.key: item for item in self.fields}

    def key_for(self, name: str) -> str:
        """Translate a field name (or document key) to its document key."""

        for item in self.fields:
            if item.name == name or item.key == name:
                return item.key
        raise ConfigurationError(
            f"{self.model.__name__} has no field or document key {name!r}."
        )


@lru_cache(maxsize=None)
def describe(model: Type[T]) -> SchemaDescriptor[T]:
    """Build the schema descriptor for a dataclass model.

    The result is cached per type; derivation is pure, so concurrent first
    use at worst derives the same descriptor twice.

    Raises:
        ConfigurationError: If the model cannot be mapped (not a dataclass,
            more than one identity field, unresolvable annotations, duplicate
            document keys, invalid reference targets or index declarations).
    """

    require_dataclass_model(model)

    identities = id_fields(model)
    if len(identities) > 1:
        names = ", ".join(field.name for field in identities)
        raise ConfigurationError(
            f"{model.__name__} declares more than one identity field: {names}."
        )

    hints = _model_type_hints(model)
    descriptors = tuple(
        _describe_field(model, field, hints.get(field.name, Any))
        for field in model_fields(model)
    )
    _validate_keys(model, descriptors)

    id_field = next(
        (item for item in descriptors if item.role is FieldRole.IDENTITY), None
    )
    if id_field is not None and not id_field.init:
        raise ConfigurationError(
            f"{model.__name__}.{id_field.name} is an identity field and must be "
            "accepted by the constructor (init=True)."
        )

    partial = SchemaDescriptor(
        model=model,
        collection=collection_name(model),
        fields=descriptors,
        id_field=id_field,
    )
    descriptor = SchemaDescriptor(
        model=model,
        collection=partial.collection,
        fields=descriptors,
        id_field=id_field,
        index_specs=collect_index_specs(model, partial.key_for),
    )
    logger.debug(
        "Derived schema for %s: collection=%r keys=%s",
        model.__name__,
        descriptor.collection,
        [item.key for item in descriptors],
    )
    return descriptor


def _describe_field(model: type, field: Field[Any], annotation: Any) -> FieldDescriptor:
    role = field_role(field)
    override = field_key_override(field)
    target: Optional[type] = None

    if role is FieldRole.IDENTITY:
        key = ID_KEY
    else:
        key = override or field.name

    if role is FieldRole.REFERENCE:
        target = field.metadata["reference"]
        if not isinstance(target, type):
            raise ConfigurationError(
                f"{model.__name__}.{field.name} reference target must be a "
                f"dataclass model type, got {target!r}."
            )
        require_dataclass_model(target)

    has_default = field.default is not MISSING or field.default_factory is not MISSING
    return FieldDescriptor(
        name=field.name,
        key=key,
        annotation=unwrap_optional(annotation),
        role=role,
        target=target,
        optional=is_optional(annotation),
        has_default=has_default,
        init=field.init,
    )


def _validate_keys(model: type, descriptors: tuple[FieldDescriptor, ...]) -> None:
    seen: dict[str, str] = {}
    for item in descriptors:
        if item.role is not FieldRole.IDENTITY and item.key == ID_KEY:
            raise ConfigurationError(
                f"{model.__name__}.{item.name} maps to reserved key {ID_KEY!r}; "
                "use metadata={'id': True} instead."
            )
        previous = seen.get(item.key)
        if previous is not None:
            raise ConfigurationError(
                f"{model.__name__} fields {previous!r} and {item.name!r} both map "
                f"to document key {item.key!r}."
            )
        seen[item.key] = item.name


def _model_type_hints(model: type) -> dict[str, Any]:
    try:
        return dict(get_type_hints(model))
    except Exception as exc:
        raise ConfigurationError(
            f"Cannot resolve type annotations of {model.__name__}: {exc}"
        ) from exc
