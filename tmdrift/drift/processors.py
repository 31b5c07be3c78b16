"""Per-entity drift processors.

Every library-owned kind goes through the same three steps:

- added documents are read in one batch and attached under their
  AddedLibrary, or else under the ModifiedLibrary's ``added`` list;
- deleted documents likewise under their DeletedLibrary, or else the
  ModifiedLibrary's ``removed`` list;
- modified pairs are read side by side, compared on the kind's allow-listed
  fields, and recorded under the ModifiedLibrary only when something changed.

Libraries themselves and global entities have their own, smaller processors.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass

from tmdrift.diff.models import ChangeSet, DomainEntityType
from tmdrift.drift.aggregate import DriftBuilder
from tmdrift.drift.comparer import compare_fields
from tmdrift.errors import EntityReadError, LibraryPartitionError
from tmdrift.models.drift import (
    AddedComponent,
    AddedThreat,
    EntityDiff,
    FieldChange,
    ModifiedComponent,
    ModifiedEntity,
    ModifiedThreat,
    RemovedComponent,
    RemovedThreat,
)
from tmdrift.models.entities import (
    Component,
    ComponentType,
    Property,
    PropertyOption,
    PropertyType,
    SecurityRequirement,
    TestCase,
    Threat,
)
from tmdrift.readers.yaml_reader import EntityReader

logger = logging.getLogger(__name__)


def _same(entity):
    return entity


@dataclass(frozen=True)
class EntityKind:
    """How one entity kind is stored in the aggregate."""

    entity_cls: type
    entity_type: DomainEntityType
    attribute: str  # attribute name on LibraryDrift / AddedLibrary / GlobalDrift
    added_record: Callable = _same
    removed_record: Callable = _same
    modified_record: Callable = ModifiedEntity

    @property
    def label(self) -> str:
        return self.entity_cls.__name__


COMPONENTS = EntityKind(
    Component, DomainEntityType.COMPONENTS, "components",
    AddedComponent, RemovedComponent, ModifiedComponent,
)
THREATS = EntityKind(
    Threat, DomainEntityType.THREATS, "threats",
    AddedThreat, RemovedThreat, ModifiedThreat,
)
SECURITY_REQUIREMENTS = EntityKind(
    SecurityRequirement, DomainEntityType.SECURITY_REQUIREMENTS, "security_requirements"
)
TEST_CASES = EntityKind(TestCase, DomainEntityType.TEST_CASES, "test_cases")
PROPERTIES = EntityKind(Property, DomainEntityType.PROPERTIES, "properties")

LIBRARY_ENTITY_KINDS = (COMPONENTS, THREATS, SECURITY_REQUIREMENTS, TEST_CASES, PROPERTIES)

COMPONENT_TYPES = EntityKind(ComponentType, DomainEntityType.COMPONENT_TYPE, "component_types")
PROPERTY_TYPES = EntityKind(PropertyType, DomainEntityType.PROPERTY_TYPE, "property_types")
PROPERTY_OPTIONS = EntityKind(PropertyOption, DomainEntityType.PROPERTY_OPTIONS, "property_options")

GLOBAL_KINDS = (COMPONENT_TYPES, PROPERTY_TYPES, PROPERTY_OPTIONS)


# ── Libraries ────────────────────────────────────────────────────────


async def process_libraries(
    changes: ChangeSet,
    reader: EntityReader,
    field_names: Iterable[str],
    builder: DriftBuilder,
) -> None:
    """Record whole-library additions, deletions and library-level field changes.

    Runs before the entity processors so that entities of a new or removed
    library are anchored under it.
    """
    for library in await reader.read_many(changes.added):
        try:
            builder.add_library(library)
            logger.info("Library added: %s (%s)", library.name, library.guid)
        except LibraryPartitionError as e:
            logger.error("Skipping added library %s: %s", library.guid, e)

    for library in await reader.read_many(changes.deleted):
        try:
            builder.delete_library(library)
            logger.info("Library deleted: %s (%s)", library.name, library.guid)
        except LibraryPartitionError as e:
            logger.error("Skipping deleted library %s: %s", library.guid, e)

    async for library, field_changes in changed_pairs(changes, reader, field_names):
        try:
            bucket = builder.get_or_create_modified_library(library.guid, library.name)
        except LibraryPartitionError as e:
            logger.error("Skipping modified library %s: %s", library.guid, e)
            continue
        bucket.name = library.name
        bucket.library = library
        bucket.library_changes = field_changes


# ── Library-owned entities ───────────────────────────────────────────


async def process_entities(
    kind: EntityKind,
    changes: ChangeSet,
    reader: EntityReader,
    field_names: Iterable[str],
    builder: DriftBuilder,
) -> None:
    """Attach one kind's added, deleted and modified entities to the aggregate."""
    field_names = tuple(field_names)

    if changes.added:
        for entity in await reader.read_many(changes.added):
            _attach_added(kind, entity, builder)

    if changes.deleted:
        for entity in await reader.read_many(changes.deleted):
            _attach_removed(kind, entity, builder)

    async for entity, field_changes in changed_pairs(changes, reader, field_names):
        bucket = _modified_bucket(kind, entity, builder, "modified")
        if bucket is not None:
            builder.append_record(
                getattr(bucket, kind.attribute), "modified",
                kind.modified_record(entity, field_changes),
            )


def _attach_added(kind: EntityKind, entity, builder: DriftBuilder) -> None:
    record = kind.added_record(entity)
    added_library = builder.added_library(entity.library_guid) if entity.library_guid else None
    if added_library is not None:
        builder.append_to_library(added_library, kind.attribute, record)
        return
    bucket = _modified_bucket(kind, entity, builder, "added")
    if bucket is not None:
        builder.append_record(getattr(bucket, kind.attribute), "added", record)


def _attach_removed(kind: EntityKind, entity, builder: DriftBuilder) -> None:
    record = kind.removed_record(entity)
    deleted_library = builder.deleted_library(entity.library_guid) if entity.library_guid else None
    if deleted_library is not None:
        builder.append_to_library(deleted_library, kind.attribute, record)
        return
    bucket = _modified_bucket(kind, entity, builder, "removed")
    if bucket is not None:
        builder.append_record(getattr(bucket, kind.attribute), "removed", record)


def _modified_bucket(kind: EntityKind, entity, builder: DriftBuilder, action: str):
    if entity.library_guid is None:
        logger.warning(
            "%s %s has no owning library; not recorded as %s", kind.label, entity.guid, action
        )
        return None
    try:
        return builder.get_or_create_modified_library(entity.library_guid)
    except LibraryPartitionError as e:
        logger.error("Skipping %s %s %s: %s", action, kind.label, entity.guid, e)
        return None


# ── Global entities ──────────────────────────────────────────────────


async def process_global(
    kind: EntityKind,
    changes: ChangeSet,
    reader: EntityReader,
    field_names: Iterable[str],
    builder: DriftBuilder,
) -> None:
    """Record changes to entities shared by every library."""
    diff: EntityDiff = getattr(builder.global_drift, kind.attribute)

    if changes.added:
        for entity in await reader.read_many(changes.added):
            builder.append_record(diff, "added", entity)
    if changes.deleted:
        for entity in await reader.read_many(changes.deleted):
            builder.append_record(diff, "removed", entity)
    async for entity, field_changes in changed_pairs(changes, reader, field_names):
        builder.append_record(diff, "modified", ModifiedEntity(entity, field_changes))


# ── Shared ───────────────────────────────────────────────────────────


async def changed_pairs(
    changes: ChangeSet,
    reader: EntityReader,
    field_names: Iterable[str],
) -> AsyncIterator[tuple[object, list[FieldChange]]]:
    """Yield ``(target entity, field changes)`` for modified pairs that really differ.

    Pairs are skipped, with a log line saying why, when either document is
    missing or unreadable or when no allow-listed field changed.
    """
    field_names = tuple(field_names)
    for pair in changes.modified:
        if not (pair.baseline_path.is_file() and pair.target_path.is_file()):
            logger.info("Skipping %s: not present on both sides", pair.relative_path)
            continue
        try:
            old = await reader.read_one(pair.baseline_path)
            new = await reader.read_one(pair.target_path)
        except EntityReadError as e:
            logger.warning("Skipping modified %s: %s", pair.relative_path, e)
            continue
        if old is None or new is None:
            logger.info("Skipping %s: document vanished while reading", pair.relative_path)
            continue

        field_changes = compare_fields(old, new, field_names)
        if not field_changes:
            logger.debug("%s changed only outside compared fields", pair.relative_path)
            continue
        yield new, field_changes
