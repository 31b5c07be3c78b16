"""Entity path context: typed change sets from a combined folder diff."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from tmdrift.diff.models import (
    ChangeSet,
    DomainEntityType,
    FolderDiffReport,
    ModifiedFile,
    RepositoryPathInfo,
)
from tmdrift.diff.path_classifier import classify_path

logger = logging.getLogger(__name__)


@dataclass
class _RelativeChanges:
    # Insertion-ordered path sets
    added: dict[str, None] = field(default_factory=dict)
    deleted: dict[str, None] = field(default_factory=dict)
    modified: dict[str, None] = field(default_factory=dict)


class EntityPathContext:
    """Classifies every path of a report once and answers per-type queries.

    Added documents resolve against the target root (where they newly exist),
    deleted documents against the baseline root (where they last existed).
    """

    def __init__(
        self,
        report: FolderDiffReport,
        classifier: Callable[[str], RepositoryPathInfo] = classify_path,
    ):
        self.baseline_root = Path(report.baseline_root)
        self.target_root = Path(report.target_root)
        self._classifier = classifier
        self._changes: dict[tuple[str | None, DomainEntityType], _RelativeChanges] = (
            defaultdict(_RelativeChanges)
        )

        kind_changed = {change.path for change in report.kind_changes}
        for path in sorted(kind_changed):
            logger.warning(
                "%s is a file on one side and a folder on the other; "
                "not treated as a modified document", path,
            )

        self._record(report.added, "added")
        self._record(report.deleted, "deleted")
        self._record(
            [p for p in report.modified if p not in kind_changed], "modified"
        )

    def _record(self, paths: list[str], bucket: str) -> None:
        for path in paths:
            info = self._classifier(path)
            if not info.is_known:
                logger.debug("Ignoring unclassified path %s", path)
                continue
            target = getattr(self._changes[(info.library_key, info.entity_type)], bucket)
            target.setdefault(path)

    # ── Queries ──────────────────────────────────────────────────────

    def changes_for(self, entity_type: DomainEntityType) -> ChangeSet:
        """Change set for one entity type, across all libraries."""
        return self._change_set(
            relative for (_, kind), relative in self._changes.items() if kind == entity_type
        )

    def changes_for_library(
        self, library_key: str | None, entity_type: DomainEntityType
    ) -> ChangeSet:
        """Change set for one entity type inside one library folder."""
        relative = self._changes.get((library_key, entity_type))
        return self._change_set([relative] if relative is not None else [])

    def libraries_for(self, entity_type: DomainEntityType) -> list[str]:
        """Library keys that have changes of ``entity_type``."""
        return [
            key for (key, kind) in self._changes
            if kind == entity_type and key is not None
        ]

    @property
    def entity_types(self) -> set[DomainEntityType]:
        return {kind for (_, kind) in self._changes}

    def _change_set(self, groups: Iterable[_RelativeChanges]) -> ChangeSet:
        added: dict[Path, None] = {}
        deleted: dict[Path, None] = {}
        modified: dict[ModifiedFile, None] = {}
        for relative in groups:
            for path in relative.added:
                added.setdefault(self.target_root / path)
            for path in relative.deleted:
                deleted.setdefault(self.baseline_root / path)
            for path in relative.modified:
                modified.setdefault(
                    ModifiedFile(path, self.baseline_root / path, self.target_root / path)
                )
        return ChangeSet(added=list(added), deleted=list(deleted), modified=list(modified))
