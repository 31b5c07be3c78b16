"""Library-scoped diff: compare only the folders a set of libraries owns.

For each requested library the whole library folder is compared, plus the
shared ``global`` folder. Mapping folders are flat and shared by every
library, so they are compared file by file, restricted to the ids the
libraries own: component-owned families by component id, threat-owned
families by threat id.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from uuid import UUID

from tmdrift.diff.models import (
    COMPONENT_MAPPING_TYPES,
    GLOBAL_FOLDER,
    MAPPINGS_FOLDER,
    THREAT_MAPPING_TYPES,
    FolderDiffReport,
)
from tmdrift.diff.snapshot import validate_repository_path
from tmdrift.diff.tree_differ import GitFolderDiff
from tmdrift.errors import InputValidationError
from tmdrift.index.service import IndexLibraryMetadata, IndexService, LibraryMetadataSource

logger = logging.getLogger(__name__)


@dataclass
class LibraryScope:
    """Folders and owned ids resolved for a batch of libraries."""

    library_guids: list[UUID]
    folders: list[str] = field(default_factory=list)
    component_ids: set[int] = field(default_factory=set)
    threat_ids: set[int] = field(default_factory=set)
    security_requirement_ids: set[int] = field(default_factory=set)
    folder_keys: dict[UUID, str] = field(default_factory=dict)


class LibraryScopedDiff:
    """Drives the tree differ over the folders of a batch of libraries."""

    def __init__(
        self,
        index: IndexService,
        metadata: LibraryMetadataSource | None = None,
        max_workers: int | None = None,
    ):
        self.index = index
        self.metadata = metadata or IndexLibraryMetadata(index)
        self.max_workers = max_workers

    async def resolve_scope(self, library_guids: Iterable[UUID]) -> LibraryScope:
        """Resolve folder keys and owned ids for ``library_guids``."""
        scope = LibraryScope(library_guids=list(dict.fromkeys(library_guids)))
        scope.folders.append(GLOBAL_FOLDER)

        for library_guid in scope.library_guids:
            key = await self.metadata.folder_key_of(library_guid)
            scope.folder_keys[library_guid] = key
            if key not in scope.folders:
                scope.folders.append(key)
            scope.component_ids |= await self.index.owned_component_ids(library_guid)
            scope.threat_ids |= await self.index.owned_threat_ids(library_guid)
            scope.security_requirement_ids |= (
                await self.index.owned_security_requirement_ids(library_guid)
            )

        logger.info(
            "Library scope: %d folders, %d components, %d threats, %d security requirements",
            len(scope.folders), len(scope.component_ids),
            len(scope.threat_ids), len(scope.security_requirement_ids),
        )
        return scope

    async def compare_libraries(
        self,
        baseline_root: str | Path,
        target_root: str | Path,
        library_guids: Iterable[UUID],
        include_uncommitted: bool = True,
    ) -> FolderDiffReport:
        """Compare the given libraries' folders and mapping files.

        Args:
            baseline_root: Golden repository root.
            target_root: Client repository root.
            library_guids: Libraries to compare.
            include_uncommitted: Read working trees instead of HEAD commits.

        Raises:
            InputValidationError: If a root is missing or no library is given.
        """
        baseline_path = validate_repository_path(baseline_root, "Baseline")
        target_path = validate_repository_path(target_root, "Target")
        library_guids = list(library_guids or [])
        if not library_guids:
            raise InputValidationError("At least one library UUID is required")

        scope = await self.resolve_scope(library_guids)
        differ = GitFolderDiff(include_uncommitted=include_uncommitted)

        units = [partial(differ.compare_folders, baseline_path, target_path, [folder])
                 for folder in scope.folders]
        units += self._mapping_units(differ, baseline_path, target_path, scope)

        reports = await self._run_units(units)
        combined = FolderDiffReport.merge_all(baseline_path, target_path, reports)
        logger.info(
            "Library diff: %d added, %d deleted, %d modified paths",
            len(combined.added), len(combined.deleted), len(combined.modified),
        )
        return combined

    def _mapping_units(self, differ, baseline_path, target_path, scope: LibraryScope) -> list:
        units = []
        families = (
            (COMPONENT_MAPPING_TYPES, scope.component_ids, "component"),
            (THREAT_MAPPING_TYPES, scope.threat_ids, "threat"),
        )
        for mapping_types, owned_ids, owner in families:
            if not owned_ids:
                logger.info("No %s ids in scope; skipping %s mapping folders", owner, owner)
                continue
            prefixes = {str(i) for i in owned_ids}
            for mapping_type in mapping_types:
                folder = f"{MAPPINGS_FOLDER}/{mapping_type.value}"
                units.append(
                    partial(differ.compare_by_prefix, baseline_path, target_path, folder, prefixes)
                )
        return units

    async def _run_units(self, units: list) -> list[FolderDiffReport]:
        workers = self.max_workers or os.cpu_count() or 1
        workers = max(1, min(workers, len(units)))
        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tmdrift-diff") as pool:
            futures = [loop.run_in_executor(pool, unit) for unit in units]
            return list(await asyncio.gather(*futures))
