"""Tests for the UUID ↔ id index."""

import asyncio
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest
import yaml

from tmdrift.errors import IndexLookupError, InputValidationError
from tmdrift.index.service import (
    IndexEntry,
    IndexLibraryMetadata,
    InMemoryIndex,
    YamlIndexService,
    load_index_file,
    normalize_entity_type,
)

LIB = uuid4()
COMPONENT = uuid4()
THREAT = uuid4()
SR = uuid4()


def _write_index(path: Path, entities: list[dict]) -> None:
    with open(path, "w") as f:
        yaml.dump({"entities": entities}, f)


def _sample_entities() -> list[dict]:
    return [
        {"id": 5, "guid": str(LIB), "entityType": "Library"},
        {"id": 100, "guid": str(COMPONENT), "libraryGuid": str(LIB), "entityType": "Component"},
        {"id": 7, "guid": str(THREAT), "libraryGuid": str(LIB), "entityType": "Threat"},
        {"id": 8, "guid": str(SR), "libraryGuid": str(LIB), "entityType": "SecurityRequirement"},
    ]


# --- Loading Tests ---


def test_load_index_file():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "index.yaml"
        _write_index(path, _sample_entities())

        entries = load_index_file(path)

        assert len(entries) == 4
        assert entries[0] == IndexEntry(5, LIB, None, "library")
        assert entries[3].entity_type == "securityrequirement"


def test_malformed_entries_are_skipped():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "index.yaml"
        _write_index(path, [
            {"id": 5, "guid": str(LIB), "entityType": "Library"},
            {"id": "x", "guid": str(uuid4())},
            {"guid": str(uuid4())},
            {"id": 9, "guid": "not-a-uuid"},
        ])
        assert [e.id for e in load_index_file(path)] == [5]


def test_missing_or_invalid_index_file():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(InputValidationError):
            load_index_file(Path(tmp) / "missing.yaml")

        path = Path(tmp) / "bad.yaml"
        path.write_text("entities: {not: a list}\n")
        with pytest.raises(InputValidationError):
            load_index_file(path)


def test_normalize_entity_type():
    assert normalize_entity_type("SecurityRequirement") == "securityrequirement"
    assert normalize_entity_type("security-requirement") == "securityrequirement"
    assert normalize_entity_type("Test_Case") == "testcase"


# --- Lookup Tests ---


def test_yaml_index_lookups():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "index.yaml"
        _write_index(path, _sample_entities())

        async def run():
            index = await YamlIndexService.open(path)
            assert await index.int_id_of(COMPONENT) == 100
            assert await index.uuid_of(7) == THREAT
            assert await index.owned_component_ids(LIB) == {100}
            assert await index.owned_threat_ids(LIB) == {7}
            assert await index.owned_security_requirement_ids(LIB) == {8}
            assert await index.owned_component_ids(uuid4()) == set()
            assert await IndexLibraryMetadata(index).folder_key_of(LIB) == "5"

        asyncio.run(run())


def test_lookup_misses_raise():
    index = InMemoryIndex()

    async def run():
        with pytest.raises(IndexLookupError):
            await index.int_id_of(uuid4())
        with pytest.raises(IndexLookupError):
            await index.uuid_of(42)

    asyncio.run(run())


def test_refresh_picks_up_changes():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "index.yaml"
        _write_index(path, _sample_entities()[:1])

        async def run():
            index = await YamlIndexService.open(path)
            assert index.count == 1
            _write_index(path, _sample_entities())
            assert index.count == 1
            await index.refresh()
            assert index.count == 4

        asyncio.run(run())


def test_owned_ids_are_copies():
    index = InMemoryIndex([IndexEntry(100, COMPONENT, LIB, "component")])

    async def run():
        owned = await index.owned_component_ids(LIB)
        owned.add(999)
        assert await index.owned_component_ids(LIB) == {100}

    asyncio.run(run())
