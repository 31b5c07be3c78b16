"""Library change summary — one row per library touched by a drift."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from tmdrift.models.drift import Drift, FieldChange


class ChangeOperation(Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass
class LibraryChangeSummary:
    """Version and release-note view of one library's drift."""

    library_guid: UUID
    name: str
    operation: ChangeOperation
    old_version: str = ""
    new_version: str = ""
    release_notes: str = ""


def summarize_library_changes(drift: Drift) -> list[LibraryChangeSummary]:
    """Flatten a drift into added, removed and modified library rows."""
    rows = []

    for added in drift.added_libraries:
        library = added.library
        rows.append(
            LibraryChangeSummary(
                library_guid=library.guid,
                name=library.name,
                operation=ChangeOperation.ADDED,
                new_version=library.version,
                release_notes=library.release_notes,
            )
        )

    for deleted in drift.deleted_libraries:
        library = deleted.library
        rows.append(
            LibraryChangeSummary(
                library_guid=library.guid,
                name=library.name,
                operation=ChangeOperation.REMOVED,
                old_version=library.version,
                release_notes=library.release_notes,
            )
        )

    for modified in drift.modified_libraries:
        library = modified.library
        current_version = library.version if library else ""
        current_notes = library.release_notes if library else ""
        old_version = _old_value(modified.library_changes, "version")
        rows.append(
            LibraryChangeSummary(
                library_guid=modified.library_guid,
                name=modified.name,
                operation=ChangeOperation.MODIFIED,
                old_version=old_version if old_version is not None else current_version,
                new_version=_new_value(modified.library_changes, "version") or current_version,
                release_notes=(
                    _new_value(modified.library_changes, "release_notes") or current_notes
                ),
            )
        )

    return rows


def _old_value(changes: list[FieldChange], name: str) -> str | None:
    for change in changes:
        if change.field == name:
            return change.old_value.strip()
    return None


def _new_value(changes: list[FieldChange], name: str) -> str | None:
    for change in changes:
        if change.field == name:
            return change.new_value.strip() or None
    return None
