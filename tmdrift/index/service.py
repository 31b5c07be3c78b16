"""UUID ↔ integer id index.

Entity identity is a UUID, but on disk entities are named by integer ids
handed out by the index. The index file is YAML::

    entities:
      - id: 12
        guid: 6f1c...
        libraryGuid: 0b9e...
        entityType: Component

Callers must ``refresh()`` before a drift run whenever the file may have
changed; lookups never reload on their own.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from uuid import UUID

import yaml

from tmdrift.errors import IndexLookupError, InputValidationError

logger = logging.getLogger(__name__)


class IndexEntityType:
    LIBRARY = "library"
    COMPONENT = "component"
    THREAT = "threat"
    SECURITY_REQUIREMENT = "securityrequirement"
    TEST_CASE = "testcase"
    PROPERTY = "property"
    PROPERTY_OPTION = "propertyoption"
    COMPONENT_TYPE = "componenttype"
    PROPERTY_TYPE = "propertytype"


def normalize_entity_type(value: str) -> str:
    """``SecurityRequirement``, ``security-requirement`` → ``securityrequirement``."""
    return re.sub(r"[^a-z0-9]", "", str(value).lower())


@dataclass(frozen=True)
class IndexEntry:
    id: int
    guid: UUID
    library_guid: UUID | None
    entity_type: str


class IndexService(Protocol):
    """Identity lookups the drift engine needs."""

    async def refresh(self) -> None: ...

    async def int_id_of(self, guid: UUID) -> int: ...

    async def uuid_of(self, entity_id: int) -> UUID: ...

    async def owned_component_ids(self, library_guid: UUID) -> set[int]: ...

    async def owned_threat_ids(self, library_guid: UUID) -> set[int]: ...

    async def owned_security_requirement_ids(self, library_guid: UUID) -> set[int]: ...


class LibraryMetadataSource(Protocol):
    """Resolves a library UUID to its folder name on disk."""

    async def folder_key_of(self, library_guid: UUID) -> str: ...


class InMemoryIndex:
    """Index over a list of entries held in memory."""

    def __init__(self, entries: list[IndexEntry] | None = None):
        self._load_entries(entries or [])

    def _load_entries(self, entries: list[IndexEntry]) -> None:
        by_guid: dict[UUID, IndexEntry] = {}
        by_id: dict[int, IndexEntry] = {}
        owned: dict[tuple[UUID, str], set[int]] = defaultdict(set)

        for entry in entries:
            if entry.id in by_id and by_id[entry.id].guid != entry.guid:
                logger.warning(
                    "Index id %d is assigned to both %s and %s; keeping the latter",
                    entry.id, by_id[entry.id].guid, entry.guid,
                )
            by_guid[entry.guid] = entry
            by_id[entry.id] = entry
            if entry.library_guid is not None:
                owned[(entry.library_guid, entry.entity_type)].add(entry.id)

        self._by_guid = by_guid
        self._by_id = by_id
        self._owned = dict(owned)

    @property
    def count(self) -> int:
        return len(self._by_id)

    async def refresh(self) -> None:
        pass

    async def int_id_of(self, guid: UUID) -> int:
        entry = self._by_guid.get(guid)
        if entry is None:
            raise IndexLookupError(f"UUID {guid} not found in index")
        return entry.id

    async def uuid_of(self, entity_id: int) -> UUID:
        entry = self._by_id.get(entity_id)
        if entry is None:
            raise IndexLookupError(f"Id {entity_id} not found in index")
        return entry.guid

    async def owned_component_ids(self, library_guid: UUID) -> set[int]:
        return self._owned_ids(library_guid, IndexEntityType.COMPONENT)

    async def owned_threat_ids(self, library_guid: UUID) -> set[int]:
        return self._owned_ids(library_guid, IndexEntityType.THREAT)

    async def owned_security_requirement_ids(self, library_guid: UUID) -> set[int]:
        return self._owned_ids(library_guid, IndexEntityType.SECURITY_REQUIREMENT)

    def _owned_ids(self, library_guid: UUID, entity_type: str) -> set[int]:
        return set(self._owned.get((library_guid, entity_type), ()))


class YamlIndexService(InMemoryIndex):
    """Index loaded from a YAML index file."""

    def __init__(self, index_path: str | Path):
        self.index_path = Path(index_path)
        super().__init__()

    async def refresh(self) -> None:
        entries = await asyncio.to_thread(load_index_file, self.index_path)
        self._load_entries(entries)
        logger.info("Loaded %d index entries from %s", len(entries), self.index_path)

    @classmethod
    async def open(cls, index_path: str | Path) -> YamlIndexService:
        service = cls(index_path)
        await service.refresh()
        return service


class IndexLibraryMetadata:
    """Library folder keys derived from the index (the folder is the integer id)."""

    def __init__(self, index: IndexService):
        self.index = index

    async def folder_key_of(self, library_guid: UUID) -> str:
        return str(await self.index.int_id_of(library_guid))


def load_index_file(path: str | Path) -> list[IndexEntry]:
    """Parse an index file into entries.

    Raises:
        InputValidationError: If the file is missing or malformed.
    """
    path = Path(path)
    if not path.is_file():
        raise InputValidationError(f"Index file not found: {path}")

    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise InputValidationError(f"Index file {path} is not valid YAML: {e}")

    if not isinstance(data, dict) or not isinstance(data.get("entities", []), list):
        raise InputValidationError(f"Index file {path} must hold an 'entities' list")

    entries = []
    for position, raw in enumerate(data.get("entities", [])):
        try:
            library_guid = raw.get("libraryGuid")
            entries.append(
                IndexEntry(
                    id=int(raw["id"]),
                    guid=UUID(str(raw["guid"])),
                    library_guid=UUID(str(library_guid)) if library_guid else None,
                    entity_type=normalize_entity_type(raw.get("entityType", "")),
                )
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Skipping malformed index entry #%d in %s: %s", position, path, e)
    return entries
