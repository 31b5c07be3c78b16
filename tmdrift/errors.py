"""Error types raised by the drift engine.

Only ``InputValidationError`` and ``UnsupportedFieldError`` are meant to reach
the caller. The others are raised at item level and caught by the processor
that owns the item, which logs the cause and skips it.
"""

from __future__ import annotations


class DriftError(Exception):
    """Base class for all tmdrift errors."""


class InputValidationError(DriftError, ValueError):
    """A required input is missing, empty, or points at nothing."""


class EntityReadError(DriftError):
    """A YAML entity document exists but cannot be read or parsed."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read entity at {path}: {reason}")


class MappingFilenameError(DriftError, ValueError):
    """A mapping filename does not encode the ids its family requires."""


class IndexLookupError(DriftError, KeyError):
    """The index has no entry for the requested UUID or integer id."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "index lookup failed"


class LibraryPartitionError(DriftError):
    """A library would appear in more than one of added, deleted and modified."""


class UnsupportedFieldError(DriftError, KeyError):
    """An allow-list names a field the entity kind does not expose."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unsupported field"
