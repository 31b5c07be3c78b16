"""End-to-end tests for the drift service over golden and client repositories."""

import asyncio
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest
import yaml
from git import Actor, Repo

from tmdrift.config import DriftOptions
from tmdrift.diff.library_scope import LibraryScopedDiff
from tmdrift.drift.service import DriftService
from tmdrift.errors import InputValidationError
from tmdrift.index.service import IndexEntry, InMemoryIndex
from tmdrift.models.drift import (
    AddedComponent,
    AddedThreat,
    FieldChange,
    ModifiedComponent,
    RemovedComponent,
    SecurityRequirementMapping,
    ThreatMapping,
)
from tmdrift.models.entities import Threat
from tmdrift.readers.yaml_reader import YamlEntityReader, default_readers

AUTHOR = Actor("Test", "test@example.com")

CORE = uuid4()
CLOUD = uuid4()
LEGACY = uuid4()
OTHER = uuid4()
WEB_SERVER = uuid4()
DATABASE = uuid4()
SQLI = uuid4()
XSS = uuid4()
INPUT_VALIDATION = uuid4()
COMPUTE = uuid4()
STORAGE_THREAT = uuid4()
LEGACY_COMPONENTS = [uuid4(), uuid4(), uuid4()]
OTHER_COMPONENT = uuid4()
SERVER_TYPE = uuid4()


def _index() -> InMemoryIndex:
    return InMemoryIndex([
        IndexEntry(5, CORE, None, "library"),
        IndexEntry(3, CLOUD, None, "library"),
        IndexEntry(9, LEGACY, None, "library"),
        IndexEntry(6, OTHER, None, "library"),
        IndexEntry(100, WEB_SERVER, CORE, "component"),
        IndexEntry(101, DATABASE, CORE, "component"),
        IndexEntry(7, SQLI, CORE, "threat"),
        IndexEntry(8, XSS, CORE, "threat"),
        IndexEntry(88, INPUT_VALIDATION, CORE, "securityrequirement"),
        IndexEntry(12, COMPUTE, CLOUD, "component"),
        IndexEntry(40, STORAGE_THREAT, CLOUD, "threat"),
        IndexEntry(91, LEGACY_COMPONENTS[0], LEGACY, "component"),
        IndexEntry(92, LEGACY_COMPONENTS[1], LEGACY, "component"),
        IndexEntry(93, LEGACY_COMPONENTS[2], LEGACY, "component"),
        IndexEntry(200, OTHER_COMPONENT, OTHER, "component"),
        IndexEntry(1, SERVER_TYPE, None, "componenttype"),
    ])


def _doc(kind: str, guid, library=None, name="", **spec) -> str:
    metadata = {"guid": str(guid), "name": name}
    if library is not None:
        metadata["libraryGuid"] = str(library)
    return yaml.dump({"kind": kind, "apiVersion": "v1", "metadata": metadata, "spec": spec})


def _write(root: Path, files: dict[str, str]) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def _core_library(version="1.0", notes="") -> dict[str, str]:
    return {
        "5/5.yaml": _doc("library", CORE, name="Core", version=version, releaseNotes=notes),
        "5/components/100.yaml": _doc("component", WEB_SERVER, CORE, "Web Server"),
        "5/components/101.yaml": _doc("component", DATABASE, CORE, "Database"),
        "5/threats/7.yaml": _doc("threat", SQLI, CORE, "SQL Injection", riskName="High"),
        "global/component-types/1.yaml": _doc("component-type", SERVER_TYPE, name="Server"),
    }


def _compute(baseline, target, libraries, include_uncommitted=True, options=None):
    service = DriftService(_index(), options=options, max_workers=2)
    return asyncio.run(service.compute(baseline, target, libraries, include_uncommitted))


# --- Modified Library Tests ---


def test_renamed_component():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        target = _core_library()
        target["5/components/100.yaml"] = _doc("component", WEB_SERVER, CORE, "Web Server v2")
        _write(Path(client), target)

        drift = _compute(golden, client, [CORE])

        assert not drift.added_libraries and not drift.deleted_libraries
        assert len(drift.modified_libraries) == 1
        library = drift.modified_libraries[0]
        assert library.library_guid == CORE
        assert library.name == "Core"
        assert library.library_changes == []
        [record] = library.components.modified
        assert isinstance(record, ModifiedComponent)
        assert record.component.guid == WEB_SERVER
        assert record.changed_fields == [FieldChange("name", "Web Server", "Web Server v2")]
        assert library.threats.is_empty


def test_added_and_removed_entities_in_existing_library():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        target = _core_library()
        del target["5/components/101.yaml"]
        target["5/threats/8.yaml"] = _doc("threat", XSS, CORE, "XSS")
        target["5/security-requirements/88.yaml"] = _doc(
            "security-requirement", INPUT_VALIDATION, CORE, "Validate input"
        )
        _write(Path(client), target)

        drift = _compute(golden, client, [CORE])

        library = drift.modified_libraries[0]
        assert [r.key for r in library.components.removed] == [DATABASE]
        assert isinstance(library.components.removed[0], RemovedComponent)
        assert [r.key for r in library.threats.added] == [XSS]
        assert isinstance(library.threats.added[0], AddedThreat)
        assert [sr.guid for sr in library.security_requirements.added] == [INPUT_VALIDATION]


def test_unlisted_field_changes_are_ignored():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        target = _core_library()
        target["5/threats/7.yaml"] = _doc(
            "threat", SQLI, CORE, "SQL Injection", riskName="High", updatedAt="2025-06-01"
        )
        _write(Path(client), target)

        assert not _compute(golden, client, [CORE]).has_drift


def test_custom_compare_fields():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        target = _core_library()
        target["5/threats/7.yaml"] = _doc("threat", SQLI, CORE, "SQL Injection", riskName="Low")
        _write(Path(client), target)

        options = DriftOptions()
        options.compare_fields["threat"] = ("name",)

        assert not _compute(golden, client, [CORE], options=options).has_drift
        drift = _compute(golden, client, [CORE])
        assert drift.modified_libraries[0].threats.modified[0].changed_fields == [
            FieldChange("risk_name", "High", "Low")
        ]


def test_library_version_change():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library("1.0"))
        _write(Path(client), _core_library("1.1", "Bug fixes"))

        drift = _compute(golden, client, [CORE])

        library = drift.modified_libraries[0]
        assert library.library.version == "1.1"
        assert FieldChange("version", "1.0", "1.1") in library.library_changes
        assert FieldChange("release_notes", "", "Bug fixes") in library.library_changes


# --- Whole Library Tests ---


def test_deleted_library_carries_its_components():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        files = {"9/9.yaml": _doc("library", LEGACY, name="Legacy")}
        for i, guid in enumerate(LEGACY_COMPONENTS, start=91):
            files[f"9/components/{i}.yaml"] = _doc("component", guid, LEGACY, f"Part {i}")
        _write(Path(golden), files)

        drift = _compute(golden, client, [LEGACY])

        assert drift.modified_libraries == []
        [deleted] = drift.deleted_libraries
        assert deleted.library_guid == LEGACY
        assert deleted.library.name == "Legacy"
        assert {r.key for r in deleted.components} == set(LEGACY_COMPONENTS)
        assert all(isinstance(r, RemovedComponent) for r in deleted.components)


def test_added_library_carries_entities_and_mappings():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(client), {
            "3/3.yaml": _doc("library", CLOUD, name="Cloud"),
            "3/components/12.yaml": _doc("component", COMPUTE, CLOUD, "Compute"),
            "3/threats/40.yaml": _doc("threat", STORAGE_THREAT, CLOUD, "Open bucket"),
            "mappings/component-threat/12_40.yaml": "",
        })

        drift = _compute(golden, client, [CLOUD])

        [added] = drift.added_libraries
        assert added.library.name == "Cloud"
        [component] = added.components
        assert isinstance(component, AddedComponent)
        assert component.key == COMPUTE
        assert component.mappings.threats == [ThreatMapping(STORAGE_THREAT)]
        assert [t.key for t in added.threats] == [STORAGE_THREAT]
        assert drift.modified_libraries == []


# --- Mapping Tests ---


def test_mapping_added_to_unchanged_component():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        target = _core_library()
        target["mappings/component-threat/100_7.yaml"] = ""
        _write(Path(client), target)

        drift = _compute(golden, client, [CORE])

        library = drift.modified_libraries[0]
        assert library.name == "Core"
        [record] = library.components.modified
        assert record.component.guid == WEB_SERVER
        assert record.changed_fields == []
        assert record.mappings_added.threats == [ThreatMapping(SQLI)]


def test_mapping_removed_from_modified_component():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        baseline = _core_library()
        baseline["mappings/component-threat/100_7.yaml"] = ""
        _write(Path(golden), baseline)
        target = _core_library()
        target["5/components/100.yaml"] = _doc("component", WEB_SERVER, CORE, "Web Tier")
        _write(Path(client), target)

        drift = _compute(golden, client, [CORE])

        [record] = drift.modified_libraries[0].components.modified
        assert record.changed_fields == [FieldChange("name", "Web Server", "Web Tier")]
        assert record.mappings_removed.threats == [ThreatMapping(SQLI)]
        assert record.mappings_added.is_empty


def test_threat_mapping_attaches_to_added_threat():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        target = _core_library()
        target["5/threats/8.yaml"] = _doc("threat", XSS, CORE, "XSS")
        target["mappings/threat-security-requirements/8_88.yaml"] = ""
        _write(Path(client), target)

        drift = _compute(golden, client, [CORE])

        [threat] = drift.modified_libraries[0].threats.added
        assert threat.mappings.security_requirements == [
            SecurityRequirementMapping(INPUT_VALIDATION)
        ]


def test_mappings_of_other_libraries_are_out_of_scope():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        target = _core_library()
        target["mappings/component-threat/200_7.yaml"] = ""
        target["6/6.yaml"] = _doc("library", OTHER, name="Other")
        _write(Path(client), target)

        assert not _compute(golden, client, [CORE]).has_drift


# --- Global Tests ---


def test_global_drift():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        target = _core_library()
        target["global/component-types/1.yaml"] = _doc("component-type", SERVER_TYPE, name="Host")
        _write(Path(client), target)

        drift = _compute(golden, client, [CORE])

        assert drift.has_drift
        assert drift.modified_libraries == []
        [record] = drift.global_drift.component_types.modified
        assert record.changed_fields == [FieldChange("name", "Server", "Host")]


# --- Run Tests ---


def test_repeated_runs_are_identical():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        baseline = _core_library()
        baseline.update({"9/9.yaml": _doc("library", LEGACY, name="Legacy")})
        _write(Path(golden), baseline)
        target = _core_library("2.0")
        target["5/threats/8.yaml"] = _doc("threat", XSS, CORE, "XSS")
        target["mappings/component-threat/100_8.yaml"] = ""
        target["mappings/component-threat/101_8.yaml"] = ""
        _write(Path(client), target)

        first = _compute(golden, client, [CORE, LEGACY])
        second = _compute(golden, client, [LEGACY, CORE])

        assert first.to_json() == second.to_json()
        assert first.has_drift


def test_unreadable_modified_document_is_skipped(caplog):
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        target = _core_library()
        target["5/components/100.yaml"] = "guid: [\n"
        target["5/components/101.yaml"] = _doc("component", DATABASE, CORE, "Primary Database")
        target["5/threats/7.yaml"] = "- not\n- a mapping\n"
        _write(Path(client), target)

        with caplog.at_level("WARNING"):
            drift = _compute(golden, client, [CORE])

        [library] = drift.modified_libraries
        assert [r.key for r in library.components.modified] == [DATABASE]
        assert library.threats.is_empty
        assert "5/components/100.yaml" in caplog.text
        assert "5/threats/7.yaml" in caplog.text


class _BlockingReader(YamlEntityReader):
    """Reader whose batch reads wait until released."""

    def __init__(self, entity_cls):
        super().__init__(entity_cls)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def read_many(self, paths):
        self.started.set()
        await self.release.wait()
        return await super().read_many(paths)


def test_cancelled_run_publishes_nothing():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        target = _core_library()
        target["5/threats/8.yaml"] = _doc("threat", XSS, CORE, "XSS")
        _write(Path(client), target)

        async def run():
            readers = default_readers()
            blocking = _BlockingReader(Threat)
            readers[Threat] = blocking
            service = DriftService(_index(), readers=readers, max_workers=2)
            task = asyncio.create_task(service.compute(golden, client, [CORE]))
            await blocking.started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return task

        task = asyncio.run(run())

        assert task.cancelled()
        with pytest.raises(asyncio.CancelledError):
            task.result()


def test_committed_only_ignores_working_tree():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        _write(Path(golden), _core_library())
        _write(Path(client), _core_library())
        for root in (golden, client):
            repo = Repo.init(root)
            repo.git.add("--all")
            repo.index.commit("initial", author=AUTHOR, committer=AUTHOR)
        _write(Path(client), {"5/components/100.yaml": _doc("component", WEB_SERVER, CORE, "Edited")})

        assert not _compute(golden, client, [CORE], include_uncommitted=False).has_drift
        assert _compute(golden, client, [CORE], include_uncommitted=True).has_drift


def test_library_list_is_required():
    with tempfile.TemporaryDirectory() as golden, tempfile.TemporaryDirectory() as client:
        with pytest.raises(InputValidationError):
            _compute(golden, client, [])


def test_library_scope():
    scope = asyncio.run(LibraryScopedDiff(_index()).resolve_scope([CORE, CORE, LEGACY]))
    assert scope.library_guids == [CORE, LEGACY]
    assert scope.folders == ["global", "5", "9"]
    assert scope.component_ids == {100, 101, 91, 92, 93}
    assert scope.threat_ids == {7, 8}
    assert scope.security_requirement_ids == {88}
