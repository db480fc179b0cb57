"""Public core API for document mapping, querying, and repository operations."""

from .codecs import decode_value, encode_value, zero_value
from .conditions import Query, Sort
from .errors import ConfigurationError, MappingError, MiniOdmError
from .mapper import deserialize, serialize
from .metadata import FieldDescriptor, SchemaDescriptor, describe
from .models import ID_KEY, DataclassModel, FieldRole, collection_name, model_fields
from .pagination import Page
from .repositories.repository import Repository
from .repositories.repository_async import AsyncRepository
from .schema_indexes import IndexSpec
from .session import AsyncDocumentContext, DocumentContext

__all__ = [
    "ID_KEY",
    "DataclassModel",
    "FieldRole",
    "FieldDescriptor",
    "SchemaDescriptor",
    "IndexSpec",
    "Query",
    "Sort",
    "Page",
    "Repository",
    "AsyncRepository",
    "DocumentContext",
    "AsyncDocumentContext",
    "MiniOdmError",
    "ConfigurationError",
    "MappingError",
    "collection_name",
    "decode_value",
    "describe",
    "deserialize",
    "encode_value",
    "model_fields",
    "serialize",
    "zero_value",
]
