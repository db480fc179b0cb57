"""Repository implementations for dataclass document models."""

from .repository import Repository
from .repository_async import AsyncRepository

__all__ = ["Repository", "AsyncRepository"]
