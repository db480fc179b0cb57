"""Public port exports for concrete adapter implementations."""

from .document import (
    AsyncMongoCollection,
    AsyncMongoDatabase,
    InMemoryCollection,
    InMemoryDatabase,
    MongoCollection,
    MongoConfig,
    MongoDatabase,
)

__all__ = [
    "MongoConfig",
    "InMemoryDatabase",
    "InMemoryCollection",
    "MongoDatabase",
    "MongoCollection",
    "AsyncMongoDatabase",
    "AsyncMongoCollection",
]
