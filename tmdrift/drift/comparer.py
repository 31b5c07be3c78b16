"""Field-level comparison of two versions of one entity."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from tmdrift.errors import UnsupportedFieldError
from tmdrift.models.drift import FieldChange
from tmdrift.models.entities import FIELD_ACCESSORS


def compare_fields(old, new, field_names: Iterable[str]) -> list[FieldChange]:
    """Compare the allow-listed fields of ``old`` and ``new``.

    Strings are compared after stripping surrounding whitespace; everything
    else by equality. Fields come back in allow-list order.

    Raises:
        UnsupportedFieldError: If a field is not in the kind's accessor table.
        TypeError: If ``old`` and ``new`` are different entity kinds.
    """
    if type(old) is not type(new):
        raise TypeError(
            f"Cannot compare {type(old).__name__} with {type(new).__name__}"
        )
    accessors = FIELD_ACCESSORS.get(type(old))
    if accessors is None:
        raise UnsupportedFieldError(f"No field accessors for {type(old).__name__}")

    changes = []
    for name in field_names:
        getter = accessors.get(name)
        if getter is None:
            raise UnsupportedFieldError(f"'{name}' cannot be compared on {type(old).__name__}")
        old_value = getter(old)
        new_value = getter(new)
        if not values_equal(old_value, new_value):
            changes.append(FieldChange(name, stringify(old_value), stringify(new_value)))
    return changes


def values_equal(old: Any, new: Any) -> bool:
    if isinstance(old, str) and isinstance(new, str):
        return old.strip() == new.strip()
    # A missing string field and an empty one are the same thing on disk
    if old is None and isinstance(new, str) or new is None and isinstance(old, str):
        return (old or "").strip() == (new or "").strip()
    return old == new


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(stringify(v) for v in value)
    return str(value)
