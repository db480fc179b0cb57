"""Shared core type aliases used across contracts, mapper, and ports."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

Document = Dict[str, Any]
DocumentMapping = Mapping[str, Any]
Documents = List[Document]
MaybeDocument = Optional[Document]

SortKeys = List[Tuple[str, int]]
SortInput = Union[Mapping[str, int], Sequence[Tuple[str, int]], Any, None]
FilterInput = Union[Mapping[str, Any], Any, None]
