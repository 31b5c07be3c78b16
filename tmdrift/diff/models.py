"""Data types shared by the tree differ, the orchestrator and the path context."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class DomainEntityType(Enum):
    """What a repository path holds."""

    UNKNOWN = "unknown"
    LIBRARY = "library"
    COMPONENTS = "components"
    SECURITY_REQUIREMENTS = "security-requirements"
    TEST_CASES = "test-cases"
    THREATS = "threats"
    PROPERTIES = "properties"
    COMPONENT_TYPE = "component-types"
    PROPERTY_TYPE = "property-types"
    PROPERTY_OPTIONS = "property-options"

    # Mapping families, valued by their folder name under mappings/
    COMPONENT_PROPERTY = "component-property"
    COMPONENT_PROPERTY_OPTIONS = "component-property-options"
    COMPONENT_PROPERTY_OPTION_THREATS = "component-property-option-threats"
    COMPONENT_PROPERTY_OPTION_THREAT_SECURITY_REQUIREMENTS = (
        "component-property-option-threat-security-requirements"
    )
    COMPONENT_THREAT = "component-threat"
    COMPONENT_THREAT_SECURITY_REQUIREMENTS = "component-threat-security-requirements"
    COMPONENT_SECURITY_REQUIREMENTS = "component-security-requirements"
    THREAT_SECURITY_REQUIREMENTS = "threat-security-requirements"

    @property
    def is_mapping(self) -> bool:
        return self in COMPONENT_MAPPING_TYPES or self in THREAT_MAPPING_TYPES

    @property
    def is_global(self) -> bool:
        return self in GLOBAL_TYPES


COMPONENT_MAPPING_TYPES = (
    DomainEntityType.COMPONENT_PROPERTY,
    DomainEntityType.COMPONENT_PROPERTY_OPTIONS,
    DomainEntityType.COMPONENT_PROPERTY_OPTION_THREATS,
    DomainEntityType.COMPONENT_PROPERTY_OPTION_THREAT_SECURITY_REQUIREMENTS,
    DomainEntityType.COMPONENT_THREAT,
    DomainEntityType.COMPONENT_THREAT_SECURITY_REQUIREMENTS,
    DomainEntityType.COMPONENT_SECURITY_REQUIREMENTS,
)

THREAT_MAPPING_TYPES = (DomainEntityType.THREAT_SECURITY_REQUIREMENTS,)

GLOBAL_TYPES = (
    DomainEntityType.COMPONENT_TYPE,
    DomainEntityType.PROPERTY_TYPE,
    DomainEntityType.PROPERTY_OPTIONS,
)

MAPPINGS_FOLDER = "mappings"
GLOBAL_FOLDER = "global"


@dataclass(frozen=True)
class RepositoryPathInfo:
    """Classification of one repository-relative path."""

    entity_type: DomainEntityType
    library_key: str | None = None  # None for global and mapping entities

    @property
    def is_known(self) -> bool:
        return self.entity_type is not DomainEntityType.UNKNOWN


class NodeKind:
    BLOB = "blob"
    TREE = "tree"


@dataclass(frozen=True)
class KindChange:
    """A path that is a file on one side and a folder on the other."""

    path: str
    baseline_kind: str
    target_kind: str


@dataclass
class FolderDiffReport:
    """Flat added/deleted/modified relative paths between two snapshots.

    ``added`` paths exist only in the target, ``deleted`` paths only in the
    baseline. Paths always use forward slashes.
    """

    baseline_root: Path = field(default_factory=Path)
    target_root: Path = field(default_factory=Path)
    added: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    kind_changes: list[KindChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.deleted or self.modified)

    @classmethod
    def merge_all(
        cls, baseline_root: Path, target_root: Path, reports: list[FolderDiffReport]
    ) -> FolderDiffReport:
        """One report holding every report's paths, first occurrence order, no duplicates."""
        added: dict[str, None] = {}
        deleted: dict[str, None] = {}
        modified: dict[str, None] = {}
        kind_changes: dict[KindChange, None] = {}
        for report in reports:
            added.update(dict.fromkeys(report.added))
            deleted.update(dict.fromkeys(report.deleted))
            modified.update(dict.fromkeys(report.modified))
            kind_changes.update(dict.fromkeys(report.kind_changes))
        return cls(
            baseline_root=baseline_root,
            target_root=target_root,
            added=list(added),
            deleted=list(deleted),
            modified=list(modified),
            kind_changes=list(kind_changes),
        )


@dataclass(frozen=True)
class ModifiedFile:
    """One modified path resolved against both roots."""

    relative_path: str
    baseline_path: Path
    target_path: Path


@dataclass
class ChangeSet:
    """Absolute paths of changed documents for one entity type.

    Added documents are read from the target root and deleted documents from
    the baseline root.
    """

    added: list[Path] = field(default_factory=list)
    deleted: list[Path] = field(default_factory=list)
    modified: list[ModifiedFile] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.deleted or self.modified)
