"""Document store adapters."""

from .config import MongoConfig
from .in_memory import InMemoryCollection, InMemoryDatabase
from .mongo import AsyncMongoCollection, AsyncMongoDatabase, MongoCollection, MongoDatabase

__all__ = [
    "MongoConfig",
    "InMemoryDatabase",
    "InMemoryCollection",
    "MongoDatabase",
    "MongoCollection",
    "AsyncMongoDatabase",
    "AsyncMongoCollection",
]
