"""DriftBuilder — the single owner of a drift aggregate while it is built.

A builder is created per computation and handed to each processor in turn.
It keeps the library partition (a library UUID is added, deleted or
modified, never two of these) and key uniqueness inside each diff.
"""

from __future__ import annotations

import logging
from uuid import UUID

from tmdrift.errors import LibraryPartitionError
from tmdrift.models.drift import (
    AddedLibrary,
    DeletedLibrary,
    Drift,
    EntityDiff,
    GlobalDrift,
    LibraryDrift,
    record_key,
)
from tmdrift.models.entities import Library

logger = logging.getLogger(__name__)


class DriftBuilder:
    """Accumulates drift records and hands out library buckets."""

    def __init__(self):
        self._added: dict[UUID, AddedLibrary] = {}
        self._deleted: dict[UUID, DeletedLibrary] = {}
        self._modified: dict[UUID, LibraryDrift] = {}
        self._global = GlobalDrift()
        self._built = False

    # ── Library buckets ──────────────────────────────────────────────

    def add_library(self, library: Library) -> AddedLibrary:
        """Record a library that only the target has (idempotent)."""
        self._check_free(library.guid, allowed=self._added, role="added")
        if library.guid not in self._added:
            self._added[library.guid] = AddedLibrary(library=library)
        return self._added[library.guid]

    def delete_library(self, library: Library) -> DeletedLibrary:
        """Record a library that only the baseline has (idempotent)."""
        self._check_free(library.guid, allowed=self._deleted, role="deleted")
        if library.guid not in self._deleted:
            self._deleted[library.guid] = DeletedLibrary(library=library)
        return self._deleted[library.guid]

    def get_or_create_modified_library(self, library_guid: UUID, name: str = "") -> LibraryDrift:
        """Return the modified-library bucket for ``library_guid``, creating it once.

        Raises:
            LibraryPartitionError: If the library is already added or deleted.
        """
        self._check_free(library_guid, allowed=self._modified, role="modified")
        bucket = self._modified.get(library_guid)
        if bucket is None:
            bucket = LibraryDrift(library_guid=library_guid, name=name)
            self._modified[library_guid] = bucket
            logger.debug("Created modified-library bucket for %s", library_guid)
        elif name and not bucket.name:
            bucket.name = name
        return bucket

    def added_library(self, library_guid: UUID) -> AddedLibrary | None:
        return self._added.get(library_guid)

    def deleted_library(self, library_guid: UUID) -> DeletedLibrary | None:
        return self._deleted.get(library_guid)

    def modified_library(self, library_guid: UUID) -> LibraryDrift | None:
        return self._modified.get(library_guid)

    @property
    def added_libraries(self) -> list[AddedLibrary]:
        return list(self._added.values())

    @property
    def deleted_libraries(self) -> list[DeletedLibrary]:
        return list(self._deleted.values())

    @property
    def modified_libraries(self) -> list[LibraryDrift]:
        return list(self._modified.values())

    @property
    def global_drift(self) -> GlobalDrift:
        return self._global

    def _check_free(self, library_guid: UUID, allowed: dict, role: str) -> None:
        for other_role, bucket in (
            ("added", self._added), ("deleted", self._deleted), ("modified", self._modified),
        ):
            if bucket is not allowed and library_guid in bucket:
                raise LibraryPartitionError(
                    f"Library {library_guid} is already {other_role}; cannot mark it {role}"
                )

    # ── Records ──────────────────────────────────────────────────────

    @staticmethod
    def append_record(diff: EntityDiff, bucket: str, record) -> bool:
        """Append ``record`` to ``diff.<bucket>`` unless its key is already in the diff."""
        if not diff.add(bucket, record):
            logger.warning(
                "Entity %s already has a drift record; not adding it to %s",
                record_key(record), bucket,
            )
            return False
        return True

    @staticmethod
    def append_to_library(
        library: AddedLibrary | DeletedLibrary, attribute: str, record
    ) -> bool:
        """Append to an added/deleted library's ``attribute`` list unless the key is present."""
        if not library.add(attribute, record):
            logger.warning(
                "Entity %s is already recorded under library %s",
                record_key(record), library.library_guid,
            )
            return False
        return True

    def build(self) -> Drift:
        """Return the finished aggregate. A builder builds once."""
        if self._built:
            raise RuntimeError("DriftBuilder.build() called twice")
        self._built = True
        modified = [lib for lib in self._modified.values() if not lib.is_empty]
        return Drift(
            added_libraries=list(self._added.values()),
            deleted_libraries=list(self._deleted.values()),
            modified_libraries=modified,
            global_drift=self._global,
        )
