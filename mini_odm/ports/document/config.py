"""Connection settings for the MongoDB adapters."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MongoConfig:
    """Immutable MongoDB client settings.

    Timeouts are in milliseconds; `socket_timeout_ms=0` means no socket
    timeout.
    """

    connection_string: str = "mongodb://localhost:27017"
    database_name: str = "mini_odm"
    max_pool_size: int = 100
    min_pool_size: int = 0
    connect_timeout_ms: int = 10000
    socket_timeout_ms: int = 0
    server_selection_timeout_ms: int = 30000
    retry_writes: bool = True
    retry_reads: bool = True

    def __post_init__(self) -> None:
        if not self.connection_string:
            raise ValueError("connection_string must not be empty")
        if not self.database_name:
            raise ValueError("database_name must not be empty")
        if self.max_pool_size <= 0:
            raise ValueError("max_pool_size must be > 0")
        if self.min_pool_size < 0 or self.min_pool_size > self.max_pool_size:
            raise ValueError("min_pool_size must be between 0 and max_pool_size")

    @classmethod
    def local(cls, database_name: str = "mini_odm") -> MongoConfig:
        return cls(database_name=database_name)

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> MongoConfig:
        """Read settings from `MONGODB_*` variables, keeping defaults for the rest.

        Integer variables that do not parse fall back to their defaults.
        """

        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            connection_string=env.get("MONGODB_URI") or defaults.connection_string,
            database_name=env.get("MONGODB_DATABASE") or defaults.database_name,
            max_pool_size=_env_int(env, "MONGODB_MAX_POOL_SIZE", defaults.max_pool_size),
            min_pool_size=_env_int(env, "MONGODB_MIN_POOL_SIZE", defaults.min_pool_size),
            connect_timeout_ms=_env_int(
                env, "MONGODB_CONNECT_TIMEOUT", defaults.connect_timeout_ms
            ),
            socket_timeout_ms=_env_int(
                env, "MONGODB_SOCKET_TIMEOUT", defaults.socket_timeout_ms
            ),
        )

    def client_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for `pymongo.MongoClient`/`AsyncMongoClient`."""

        return {
            "host": self.connection_string,
            "maxPoolSize": self.max_pool_size,
            "minPoolSize": self.min_pool_size,
            "connectTimeoutMS": self.connect_timeout_ms,
            "socketTimeoutMS": self.socket_timeout_ms or None,
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "retryWrites": self.retry_writes,
            "retryReads": self.retry_reads,
            "tz_aware": True,
        }


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer, using %d", name, raw, default)
        return default
