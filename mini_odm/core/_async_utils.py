"""Helpers that let async repositories drive sync or async collection ports."""

from __future__ import annotations

import inspect
from typing import Any


async def resolve(result: Any) -> Any:
    """Return a port call result, awaiting it first when the port is async."""

    if inspect.isawaitable(result):
        result = await result
    return result
