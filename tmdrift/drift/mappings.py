"""Mapping drift reconciler.

Mapping files name the entities they link by position, owner first::

    mappings/component-threat/12_40.yaml          component 12 → threat 40
    mappings/component-property-option-threat-security-requirements/
        12_3_7_40_88.yaml                          component 12 → property 3
                                                   → option 7 → threat 40 → SR 88

Added and deleted mapping files are grouped by owner (component or threat)
and attached to the owner's drift record. Where the record lives is decided
by ``ADDED_STRATEGIES`` / ``REMOVED_STRATEGIES``, tried in order; if none
applies, a synthetic modified record is created for the owner.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from uuid import UUID

from tmdrift.diff.models import DomainEntityType
from tmdrift.diff.path_context import EntityPathContext
from tmdrift.drift.aggregate import DriftBuilder
from tmdrift.errors import IndexLookupError, LibraryPartitionError, MappingFilenameError
from tmdrift.index.service import IndexService
from tmdrift.models.drift import (
    UNASSIGNED_LIBRARY,
    ComponentMappingCollection,
    ModifiedComponent,
    ModifiedThreat,
    PropertyMapping,
    PropertyThreatMapping,
    SecurityRequirementMapping,
    ThreatMapping,
    ThreatMappingCollection,
)
from tmdrift.models.entities import Component, Threat

logger = logging.getLogger(__name__)

# Stands in for an id the index cannot resolve
UNRESOLVED_UUID = UUID(int=0)


@dataclass(frozen=True)
class OwnerKind:
    """An entity kind that owns mapping files."""

    name: str
    attribute: str  # attribute on LibraryDrift / AddedLibrary / DeletedLibrary
    entity_cls: type
    collection_cls: type
    modified_record: Callable
    owned_ids: Callable[[IndexService, UUID], Awaitable[set[int]]]


COMPONENT_OWNER = OwnerKind(
    "component", "components", Component, ComponentMappingCollection, ModifiedComponent,
    lambda index, library_guid: index.owned_component_ids(library_guid),
)
THREAT_OWNER = OwnerKind(
    "threat", "threats", Threat, ThreatMappingCollection, ModifiedThreat,
    lambda index, library_guid: index.owned_threat_ids(library_guid),
)


@dataclass(frozen=True)
class MappingFamily:
    """One mapping folder: its owner, id arity, and entry constructor.

    ``build`` receives the resolved UUIDs of every id after the owner's.
    """

    entity_type: DomainEntityType
    owner: OwnerKind
    arity: int
    build: Callable[[list[UUID]], object]


MAPPING_FAMILIES = (
    MappingFamily(
        DomainEntityType.COMPONENT_PROPERTY, COMPONENT_OWNER, 2,
        lambda ids: PropertyMapping(ids[0]),
    ),
    MappingFamily(
        DomainEntityType.COMPONENT_PROPERTY_OPTIONS, COMPONENT_OWNER, 3,
        lambda ids: PropertyMapping(ids[0], ids[1]),
    ),
    MappingFamily(
        DomainEntityType.COMPONENT_PROPERTY_OPTION_THREATS, COMPONENT_OWNER, 4,
        lambda ids: PropertyThreatMapping(ids[0], ids[1], ids[2]),
    ),
    MappingFamily(
        DomainEntityType.COMPONENT_PROPERTY_OPTION_THREAT_SECURITY_REQUIREMENTS,
        COMPONENT_OWNER, 5,
        lambda ids: PropertyThreatMapping(ids[0], ids[1], ids[2], ids[3]),
    ),
    MappingFamily(
        DomainEntityType.COMPONENT_THREAT, COMPONENT_OWNER, 2,
        lambda ids: ThreatMapping(ids[0]),
    ),
    MappingFamily(
        DomainEntityType.COMPONENT_THREAT_SECURITY_REQUIREMENTS, COMPONENT_OWNER, 3,
        lambda ids: ThreatMapping(ids[0], ids[1]),
    ),
    MappingFamily(
        DomainEntityType.COMPONENT_SECURITY_REQUIREMENTS, COMPONENT_OWNER, 2,
        lambda ids: SecurityRequirementMapping(ids[0]),
    ),
    MappingFamily(
        DomainEntityType.THREAT_SECURITY_REQUIREMENTS, THREAT_OWNER, 2,
        lambda ids: SecurityRequirementMapping(ids[0]),
    ),
)


def parse_mapping_ids(path: str | Path, arity: int) -> list[int]:
    """Parse ``12_40.yaml`` into ``[12, 40]``, requiring exactly ``arity`` ids.

    Raises:
        MappingFilenameError: If the name has the wrong number of ids or a
            part is not a positive integer.
    """
    stem = Path(str(path).replace("\\", "/")).stem
    parts = stem.split("_")
    if len(parts) != arity:
        raise MappingFilenameError(
            f"{path}: expected {arity} ids separated by '_', found {len(parts)}"
        )
    if not all(part.isdigit() and int(part) > 0 for part in parts):
        raise MappingFilenameError(f"{path}: ids must be positive integers")
    return [int(part) for part in parts]


# ── Attachment strategies ────────────────────────────────────────────


@dataclass(frozen=True)
class AttachmentStrategy:
    """Finds the mapping collection an owner's delta should merge into."""

    name: str
    find: Callable[[DriftBuilder, OwnerKind, UUID], object]


def _in_added_library(builder: DriftBuilder, owner: OwnerKind, guid: UUID):
    for library in builder.added_libraries:
        record = library.find(owner.attribute, guid)
        if record is not None:
            return record.mappings
    return None


def _in_deleted_library(builder: DriftBuilder, owner: OwnerKind, guid: UUID):
    for library in builder.deleted_libraries:
        record = library.find(owner.attribute, guid)
        if record is not None:
            return record.mappings
    return None


def _in_modified_library(bucket: str, collection: str):
    def find(builder: DriftBuilder, owner: OwnerKind, guid: UUID):
        for library in builder.modified_libraries:
            record = getattr(library, owner.attribute).find(bucket, guid)
            if record is not None:
                return getattr(record, collection)
        return None
    return find


ADDED_STRATEGIES = (
    AttachmentStrategy("added-library", _in_added_library),
    AttachmentStrategy("modified-library-added", _in_modified_library("added", "mappings")),
    AttachmentStrategy(
        "modified-library-modified", _in_modified_library("modified", "mappings_added")
    ),
)

REMOVED_STRATEGIES = (
    AttachmentStrategy("deleted-library", _in_deleted_library),
    AttachmentStrategy("modified-library-removed", _in_modified_library("removed", "mappings")),
    AttachmentStrategy(
        "modified-library-modified", _in_modified_library("modified", "mappings_removed")
    ),
)


@dataclass
class _OwnerDelta:
    owner: OwnerKind
    owner_id: int
    added: object = None
    removed: object = None

    def __post_init__(self):
        self.added = self.owner.collection_cls()
        self.removed = self.owner.collection_cls()


@dataclass
class MappingReconciler:
    """Turns mapping file changes into per-owner add/remove deltas."""

    index: IndexService
    library_guids: list[UUID]
    builder: DriftBuilder
    _owned_cache: dict[tuple[str, UUID], set[int]] = field(default_factory=dict)

    async def reconcile(self, context: EntityPathContext) -> None:
        deltas: dict[tuple[str, int], _OwnerDelta] = {}

        for family in MAPPING_FAMILIES:
            changes = context.changes_for(family.entity_type)
            for pair in changes.modified:
                logger.warning(
                    "Mapping %s changed in content only; mapping edits are not reconciled",
                    pair.relative_path,
                )
            await self._collect(family, changes.added, "added", deltas)
            await self._collect(family, changes.deleted, "removed", deltas)

        for delta in deltas.values():
            owner_guid = await self._uuid_of(delta.owner_id, f"{delta.owner.name} owner")
            if owner_guid == UNRESOLVED_UUID:
                logger.error(
                    "Dropping mappings of %s %d: the owner is not in the index",
                    delta.owner.name, delta.owner_id,
                )
                continue
            if not delta.added.is_empty:
                await self.attach(delta.owner, delta.owner_id, owner_guid, delta.added, "added")
            if not delta.removed.is_empty:
                await self.attach(
                    delta.owner, delta.owner_id, owner_guid, delta.removed, "removed"
                )

    async def _collect(
        self,
        family: MappingFamily,
        paths: Iterable[Path],
        direction: str,
        deltas: dict[tuple[str, int], _OwnerDelta],
    ) -> None:
        for path in paths:
            try:
                ids = parse_mapping_ids(path, family.arity)
            except MappingFilenameError as e:
                logger.warning("Skipping mapping file: %s", e)
                continue

            owner_id, referenced = ids[0], ids[1:]
            resolved = [await self._uuid_of(i, family.entity_type.value) for i in referenced]
            key = (family.owner.name, owner_id)
            if key not in deltas:
                deltas[key] = _OwnerDelta(family.owner, owner_id)
            getattr(deltas[key], direction).add(family.build(resolved))

    async def attach(
        self,
        owner: OwnerKind,
        owner_id: int,
        owner_guid: UUID,
        collection,
        direction: str,
    ) -> str:
        """Merge ``collection`` into the first matching record; return where it went."""
        strategies = ADDED_STRATEGIES if direction == "added" else REMOVED_STRATEGIES
        for strategy in strategies:
            target = strategy.find(self.builder, owner, owner_guid)
            if target is not None:
                target.merge(collection)
                logger.debug(
                    "%s mappings of %s %s merged via %s",
                    direction, owner.name, owner_guid, strategy.name,
                )
                return strategy.name

        return await self._attach_synthetic(owner, owner_id, owner_guid, collection, direction)

    async def _attach_synthetic(
        self, owner: OwnerKind, owner_id: int, owner_guid: UUID, collection, direction: str
    ) -> str:
        library_guid = await self._library_of(owner, owner_id)
        try:
            library = self.builder.get_or_create_modified_library(library_guid)
        except LibraryPartitionError as e:
            logger.error(
                "Dropping %s mappings of %s %s: %s", direction, owner.name, owner_guid, e
            )
            return "dropped"

        record = owner.modified_record(owner.entity_cls(guid=owner_guid, library_guid=library_guid))
        getattr(record, f"mappings_{direction}").merge(collection)
        if not self.builder.append_record(getattr(library, owner.attribute), "modified", record):
            logger.error(
                "Dropping %s mappings of %s %s: owner already recorded as added or removed",
                direction, owner.name, owner_guid,
            )
            return "dropped"
        return "synthetic"

    async def _library_of(self, owner: OwnerKind, owner_id: int) -> UUID:
        for library_guid in self.library_guids:
            cache_key = (owner.name, library_guid)
            if cache_key not in self._owned_cache:
                self._owned_cache[cache_key] = await owner.owned_ids(self.index, library_guid)
            if owner_id in self._owned_cache[cache_key]:
                return library_guid
        logger.error(
            "%s %d is not owned by any library in this run; using the unassigned library",
            owner.name.capitalize(), owner_id,
        )
        return UNASSIGNED_LIBRARY

    async def _uuid_of(self, entity_id: int, role: str) -> UUID:
        try:
            return await self.index.uuid_of(entity_id)
        except IndexLookupError as e:
            logger.error("Cannot resolve %s id %d: %s", role, entity_id, e)
            return UNRESOLVED_UUID
