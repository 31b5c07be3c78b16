"""Drift aggregate — the nested result of one drift computation.

Shape::

    Drift
    ├── added_libraries      [AddedLibrary]    whole library new in the target
    ├── deleted_libraries    [DeletedLibrary]  whole library gone from the target
    ├── modified_libraries   [LibraryDrift]    per-kind diffs inside a library
    └── global_drift         GlobalDrift       component/property types, options

Component and threat records carry mapping collections so that mapping
changes can sit next to the entity that owns them.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from tmdrift.models.entities import (
    Component,
    ComponentType,
    Library,
    Property,
    PropertyOption,
    PropertyType,
    SecurityRequirement,
    TestCase,
    Threat,
)

T = TypeVar("T")

# Owner library used when a mapping owner cannot be placed in any library
UNASSIGNED_LIBRARY = UUID(int=0)


@dataclass(frozen=True)
class FieldChange:
    """One allow-listed field whose value differs between baseline and target."""

    field: str
    old_value: str
    new_value: str


# ── Mapping entries ──────────────────────────────────────────────────


@dataclass(frozen=True)
class SecurityRequirementMapping:
    security_requirement: UUID


@dataclass(frozen=True)
class ThreatMapping:
    threat: UUID
    security_requirement: UUID | None = None


@dataclass(frozen=True)
class PropertyMapping:
    property: UUID
    option: UUID | None = None


@dataclass(frozen=True)
class PropertyThreatMapping:
    property: UUID
    option: UUID
    threat: UUID
    security_requirement: UUID | None = None


MAPPING_ENTRY_TYPES = (
    SecurityRequirementMapping,
    ThreatMapping,
    PropertyMapping,
    PropertyThreatMapping,
)


@dataclass
class ComponentMappingCollection:
    """Mapping entries owned by one component."""

    properties: list[PropertyMapping] = field(default_factory=list)
    threats: list[ThreatMapping] = field(default_factory=list)
    security_requirements: list[SecurityRequirementMapping] = field(default_factory=list)
    property_threats: list[PropertyThreatMapping] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.properties or self.threats
            or self.security_requirements or self.property_threats
        )

    def add(self, entry) -> None:
        bucket = self._bucket_for(entry)
        if entry not in bucket:
            bucket.append(entry)

    def merge(self, other: ComponentMappingCollection) -> None:
        for entry in other.entries():
            self.add(entry)

    def entries(self) -> list:
        return [
            *self.properties, *self.threats,
            *self.security_requirements, *self.property_threats,
        ]

    def _bucket_for(self, entry) -> list:
        if isinstance(entry, PropertyMapping):
            return self.properties
        if isinstance(entry, ThreatMapping):
            return self.threats
        if isinstance(entry, SecurityRequirementMapping):
            return self.security_requirements
        if isinstance(entry, PropertyThreatMapping):
            return self.property_threats
        raise TypeError(f"Not a component mapping entry: {entry!r}")


@dataclass
class ThreatMappingCollection:
    """Mapping entries owned by one threat."""

    security_requirements: list[SecurityRequirementMapping] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.security_requirements

    def add(self, entry) -> None:
        if not isinstance(entry, SecurityRequirementMapping):
            raise TypeError(f"Not a threat mapping entry: {entry!r}")
        if entry not in self.security_requirements:
            self.security_requirements.append(entry)

    def merge(self, other: ThreatMappingCollection) -> None:
        for entry in other.entries():
            self.add(entry)

    def entries(self) -> list:
        return list(self.security_requirements)


# ── Entity records ───────────────────────────────────────────────────


@dataclass
class ModifiedEntity(Generic[T]):
    entity: T
    changed_fields: list[FieldChange] = field(default_factory=list)

    @property
    def key(self) -> UUID:
        return self.entity.guid


@dataclass
class AddedComponent:
    component: Component
    mappings: ComponentMappingCollection = field(default_factory=ComponentMappingCollection)

    @property
    def key(self) -> UUID:
        return self.component.guid


@dataclass
class RemovedComponent:
    component: Component
    mappings: ComponentMappingCollection = field(default_factory=ComponentMappingCollection)

    @property
    def key(self) -> UUID:
        return self.component.guid


@dataclass
class ModifiedComponent:
    component: Component
    changed_fields: list[FieldChange] = field(default_factory=list)
    mappings_added: ComponentMappingCollection = field(default_factory=ComponentMappingCollection)
    mappings_removed: ComponentMappingCollection = field(default_factory=ComponentMappingCollection)

    @property
    def key(self) -> UUID:
        return self.component.guid


@dataclass
class AddedThreat:
    threat: Threat
    mappings: ThreatMappingCollection = field(default_factory=ThreatMappingCollection)

    @property
    def key(self) -> UUID:
        return self.threat.guid


@dataclass
class RemovedThreat:
    threat: Threat
    mappings: ThreatMappingCollection = field(default_factory=ThreatMappingCollection)

    @property
    def key(self) -> UUID:
        return self.threat.guid


@dataclass
class ModifiedThreat:
    threat: Threat
    changed_fields: list[FieldChange] = field(default_factory=list)
    mappings_added: ThreatMappingCollection = field(default_factory=ThreatMappingCollection)
    mappings_removed: ThreatMappingCollection = field(default_factory=ThreatMappingCollection)

    @property
    def key(self) -> UUID:
        return self.threat.guid


@dataclass
class EntityDiff(Generic[T]):
    """Added, removed and modified records of one entity kind.

    Records are identified by ``record_key`` (the entity UUID); one key
    appears in at most one of the three lists.
    """

    added: list = field(default_factory=list)
    removed: list = field(default_factory=list)
    modified: list = field(default_factory=list)
    _index: dict[UUID, tuple[str, Any]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)

    def keys(self) -> set[UUID]:
        return set(self._lookup())

    def contains(self, key: UUID) -> bool:
        return key in self._lookup()

    def add(self, bucket: str, record) -> bool:
        """Append ``record`` to ``bucket`` unless its key is already in the diff."""
        index = self._lookup()
        key = record_key(record)
        if key in index:
            return False
        getattr(self, bucket).append(record)
        index[key] = (bucket, record)
        return True

    def find(self, bucket: str, key: UUID):
        entry = self._lookup().get(key)
        if entry is not None and entry[0] == bucket:
            return entry[1]
        return None

    def _lookup(self) -> dict[UUID, tuple[str, Any]]:
        # Rebuilt when records were appended to the lists directly
        if len(self._index) != len(self.added) + len(self.removed) + len(self.modified):
            self._index = {}
            for bucket in ("added", "removed", "modified"):
                for record in getattr(self, bucket):
                    self._index.setdefault(record_key(record), (bucket, record))
        return self._index


def record_key(record) -> UUID:
    """UUID of an entity or of a record wrapping one."""
    key = getattr(record, "key", None)
    return key if key is not None else record.guid


# ── Library-level aggregate ──────────────────────────────────────────


@dataclass
class LibraryDrift:
    """Changes inside a library present on both sides."""

    library_guid: UUID
    name: str = ""
    library: Library | None = None  # target-side document, when it could be read
    library_changes: list[FieldChange] = field(default_factory=list)
    components: EntityDiff[Component] = field(default_factory=EntityDiff)
    threats: EntityDiff[Threat] = field(default_factory=EntityDiff)
    security_requirements: EntityDiff[SecurityRequirement] = field(default_factory=EntityDiff)
    test_cases: EntityDiff[TestCase] = field(default_factory=EntityDiff)
    properties: EntityDiff[Property] = field(default_factory=EntityDiff)

    @property
    def is_empty(self) -> bool:
        return not self.library_changes and all(
            d.is_empty for d in (
                self.components, self.threats, self.security_requirements,
                self.test_cases, self.properties,
            )
        )


class _WholeLibrary:
    """Keyed access to the per-kind record lists of an added or deleted library."""

    library: Library
    _index: dict[str, dict[UUID, Any]]

    @property
    def library_guid(self) -> UUID:
        return self.library.guid

    def add(self, attribute: str, record) -> bool:
        """Append ``record`` to ``attribute`` unless its key is already there."""
        index = self._lookup(attribute)
        key = record_key(record)
        if key in index:
            return False
        getattr(self, attribute).append(record)
        index[key] = record
        return True

    def find(self, attribute: str, key: UUID):
        return self._lookup(attribute).get(key)

    def _lookup(self, attribute: str) -> dict[UUID, Any]:
        records = getattr(self, attribute)
        index = self._index.get(attribute)
        if index is None or len(index) != len(records):
            index = {}
            for record in records:
                index.setdefault(record_key(record), record)
            self._index[attribute] = index
        return index


@dataclass
class AddedLibrary(_WholeLibrary):
    """A library that exists only in the target, with everything inside it."""

    library: Library
    components: list[AddedComponent] = field(default_factory=list)
    threats: list[AddedThreat] = field(default_factory=list)
    security_requirements: list[SecurityRequirement] = field(default_factory=list)
    test_cases: list[TestCase] = field(default_factory=list)
    properties: list[Property] = field(default_factory=list)
    _index: dict[str, dict[UUID, Any]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )


@dataclass
class DeletedLibrary(_WholeLibrary):
    """A library that exists only in the baseline, with everything inside it."""

    library: Library
    components: list[RemovedComponent] = field(default_factory=list)
    threats: list[RemovedThreat] = field(default_factory=list)
    security_requirements: list[SecurityRequirement] = field(default_factory=list)
    test_cases: list[TestCase] = field(default_factory=list)
    properties: list[Property] = field(default_factory=list)
    _index: dict[str, dict[UUID, Any]] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )


@dataclass
class GlobalDrift:
    """Changes to entities shared by all libraries."""

    component_types: EntityDiff[ComponentType] = field(default_factory=EntityDiff)
    property_types: EntityDiff[PropertyType] = field(default_factory=EntityDiff)
    property_options: EntityDiff[PropertyOption] = field(default_factory=EntityDiff)

    @property
    def is_empty(self) -> bool:
        return all(
            d.is_empty
            for d in (self.component_types, self.property_types, self.property_options)
        )


@dataclass
class Drift:
    """Complete drift between a baseline and a target."""

    added_libraries: list[AddedLibrary] = field(default_factory=list)
    deleted_libraries: list[DeletedLibrary] = field(default_factory=list)
    modified_libraries: list[LibraryDrift] = field(default_factory=list)
    global_drift: GlobalDrift = field(default_factory=GlobalDrift)

    @property
    def has_drift(self) -> bool:
        return bool(
            self.added_libraries or self.deleted_libraries
            or self.modified_libraries or not self.global_drift.is_empty
        )

    def library_guids(self) -> list[UUID]:
        return [
            *(lib.library_guid for lib in self.added_libraries),
            *(lib.library_guid for lib in self.deleted_libraries),
            *(lib.library_guid for lib in self.modified_libraries),
        ]

    def to_dict(self) -> dict:
        """Plain-data form with every list ordered by UUID."""
        return _to_plain(self)

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def _to_plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: _to_plain(getattr(value, f.name))
            for f in fields(value) if not f.name.startswith("_")
        }
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        items = [_to_plain(v) for v in value]
        if value and all(_sort_key(v) is not None for v in value):
            items = [
                item for _, item in sorted(
                    zip((_sort_key(v) for v in value), items), key=lambda pair: pair[0]
                )
            ]
        return items
    return value


def _sort_key(value: Any) -> str | None:
    """Ordering key for records that carry an identity; None leaves order as is."""
    if isinstance(value, (AddedLibrary, DeletedLibrary, LibraryDrift)):
        return str(value.library_guid)
    if isinstance(value, FieldChange):
        return value.field
    if isinstance(value, MAPPING_ENTRY_TYPES):
        return "|".join(str(getattr(value, f.name)) for f in fields(value))
    if is_dataclass(value) and (hasattr(value, "key") or hasattr(value, "guid")):
        return str(record_key(value))
    return None
