"""Drift service — end-to-end drift computation.

    library diff (parallel tree compares)
      → entity path context
        → library processor → entity processors → global processors
          → mapping reconciler
            → Drift

The aggregate is assembled in a builder local to one ``compute`` call and
returned only once every stage has finished. Cancelling the task discards it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from uuid import UUID

from tmdrift.config import DriftOptions
from tmdrift.diff.library_scope import LibraryScopedDiff
from tmdrift.diff.models import DomainEntityType, FolderDiffReport
from tmdrift.diff.path_context import EntityPathContext
from tmdrift.drift.aggregate import DriftBuilder
from tmdrift.drift.mappings import MappingReconciler
from tmdrift.drift.processors import (
    GLOBAL_KINDS,
    LIBRARY_ENTITY_KINDS,
    process_entities,
    process_global,
    process_libraries,
)
from tmdrift.errors import EntityReadError, IndexLookupError, InputValidationError
from tmdrift.index.service import IndexLibraryMetadata, IndexService, LibraryMetadataSource
from tmdrift.models.drift import Drift
from tmdrift.models.entities import Library
from tmdrift.readers.yaml_reader import EntityReader, default_readers

logger = logging.getLogger(__name__)


class DriftService:
    """Computes the drift between a golden baseline and a client target."""

    def __init__(
        self,
        index: IndexService,
        readers: dict[type, EntityReader] | None = None,
        options: DriftOptions | None = None,
        metadata: LibraryMetadataSource | None = None,
        max_workers: int | None = None,
    ):
        self.index = index
        self.readers = readers or default_readers()
        self.options = options or DriftOptions()
        self.metadata = metadata or IndexLibraryMetadata(index)
        self.max_workers = max_workers

    async def compute(
        self,
        baseline_root: str | Path,
        target_root: str | Path,
        library_guids: Iterable[UUID],
        include_uncommitted: bool = True,
    ) -> Drift:
        """Diff the given libraries of two repositories and reconcile the result.

        Raises:
            InputValidationError: For missing roots or an empty library list.
        """
        library_guids = list(library_guids or [])
        if not library_guids:
            raise InputValidationError("At least one library UUID is required")

        differ = LibraryScopedDiff(self.index, self.metadata, self.max_workers)
        report = await differ.compare_libraries(
            baseline_root, target_root, library_guids, include_uncommitted
        )
        return await self.compute_from_report(report, library_guids)

    async def compute_from_report(
        self, report: FolderDiffReport, library_guids: Iterable[UUID]
    ) -> Drift:
        """Reconcile an existing folder diff into a drift aggregate."""
        library_guids = list(library_guids or [])
        if not library_guids:
            raise InputValidationError("At least one library UUID is required")

        context = EntityPathContext(report)
        builder = DriftBuilder()

        await process_libraries(
            context.changes_for(DomainEntityType.LIBRARY),
            self.readers[Library],
            self.options.fields_for(Library),
            builder,
        )
        for kind in LIBRARY_ENTITY_KINDS:
            await process_entities(
                kind,
                context.changes_for(kind.entity_type),
                self.readers[kind.entity_cls],
                self.options.fields_for(kind.entity_cls),
                builder,
            )
        for kind in GLOBAL_KINDS:
            await process_global(
                kind,
                context.changes_for(kind.entity_type),
                self.readers[kind.entity_cls],
                self.options.fields_for(kind.entity_cls),
                builder,
            )

        await MappingReconciler(self.index, library_guids, builder).reconcile(context)
        await self._attach_library_documents(builder, context.target_root)

        drift = builder.build()
        logger.info(
            "Drift: %d added, %d deleted, %d modified libraries",
            len(drift.added_libraries), len(drift.deleted_libraries),
            len(drift.modified_libraries),
        )
        return drift

    async def _attach_library_documents(self, builder: DriftBuilder, target_root: Path) -> None:
        """Attach the library document to buckets created for entity changes only."""
        reader = self.readers[Library]
        for bucket in builder.modified_libraries:
            if bucket.library is not None:
                continue
            try:
                key = await self.metadata.folder_key_of(bucket.library_guid)
                library = await reader.read_one(target_root / key / f"{key}.yaml")
            except (IndexLookupError, EntityReadError) as e:
                logger.debug("No library document for %s: %s", bucket.library_guid, e)
                continue
            if library is not None:
                bucket.name = library.name
                bucket.library = library
