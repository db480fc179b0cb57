"""Exception types raised by schema derivation and document mapping."""

from __future__ import annotations


class MiniOdmError(Exception):
    """Base class for mapping-layer failures."""


class ConfigurationError(MiniOdmError, TypeError):
    """Raised when a model type cannot be described or reconstructed.

    Detected once per type at descriptor derivation (duplicate identity
    fields, non-dataclass models, unresolvable annotations, ...).
    """


class MappingError(MiniOdmError, ValueError):
    """Raised when one stored value cannot be converted to its declared type."""
