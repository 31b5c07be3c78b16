"""Tests for the YAML entity readers."""

import asyncio
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest
import yaml

from tmdrift.errors import EntityReadError
from tmdrift.models.entities import Component, Library, PropertyOption, SecurityRequirement, Threat
from tmdrift.readers.yaml_reader import YamlEntityReader, default_readers, flatten_document

LIB = uuid4()


# --- Document Shape Tests ---


def test_nested_document():
    guid = uuid4()
    text = yaml.dump({
        "kind": "threat",
        "apiVersion": "v1",
        "metadata": {"guid": str(guid), "name": "SQL Injection", "libraryGuid": str(LIB),
                     "labels": ["web", "owasp"]},
        "spec": {
            "description": "  Untrusted input reaches a query  ",
            "riskName": "High",
            "flags": {"automated": True, "isHidden": "false"},
            "i18n": {"zh": {"name": "SQL注入", "description": "描述"}},
        },
    }, allow_unicode=True)

    threat = YamlEntityReader(Threat).parse_text(text)

    assert threat.guid == guid
    assert threat.library_guid == LIB
    assert threat.name == "SQL Injection"
    assert threat.risk_name == "High"
    assert threat.automated is True
    assert threat.is_hidden is False
    assert threat.labels == ["web", "owasp"]
    assert threat.chinese_name == "SQL注入"
    assert threat.chinese_description == "描述"


def test_flat_document():
    guid = uuid4()
    text = yaml.dump({
        "guid": str(guid),
        "name": "Web Server",
        "libraryId": str(LIB),
        "labels": "a, b ,",
        "isHidden": "yes",
    })

    component = YamlEntityReader(Component).parse_text(text)

    assert component.guid == guid
    assert component.library_guid == LIB
    assert component.labels == ["a", "b"]
    assert component.is_hidden is True
    assert component.description == ""


def test_metadata_wins_over_spec():
    flat = flatten_document({
        "name": "root",
        "metadata": {"Name": "meta"},
        "spec": {"name": "spec", "Description": "d"},
    })
    assert flat["name"] == "meta"
    assert flat["description"] == "d"


def test_kind_aliases_are_accepted():
    guid = uuid4()
    reader = YamlEntityReader(SecurityRequirement)
    for kind in ("SecurityRequirement", "security-requirement", "securityRequirements"):
        doc = {"kind": kind, "metadata": {"guid": str(guid)}}
        assert reader.from_document(doc).guid == guid


def test_library_release_notes():
    guid = uuid4()
    text = yaml.dump({
        "kind": "library",
        "metadata": {"guid": str(guid), "name": "Core"},
        "spec": {"version": "2.1", "releaseNotes": "Added cloud threats"},
    })
    library = YamlEntityReader(Library).parse_text(text)
    assert library.version == "2.1"
    assert library.release_notes == "Added cloud threats"
    assert library.library_guid == guid


def test_property_option_localized_text():
    guid = uuid4()
    doc = {"kind": "property-option", "metadata": {"guid": str(guid)},
           "spec": {"optionText": "Yes", "i18n": {"zh": {"optionText": "是"}}}}
    option = YamlEntityReader(PropertyOption).from_document(doc)
    assert option.option_text == "Yes"
    assert option.chinese_option_text == "是"


# --- Error Tests ---


def test_wrong_kind_raises():
    doc = {"kind": "threat", "metadata": {"guid": str(uuid4())}}
    with pytest.raises(EntityReadError, match="expected kind 'component'"):
        YamlEntityReader(Component).from_document(doc)


def test_missing_guid_raises():
    with pytest.raises(EntityReadError, match="missing guid"):
        YamlEntityReader(Component).parse_text("name: no guid\n")


def test_bad_values_raise():
    reader = YamlEntityReader(Component)
    with pytest.raises(EntityReadError):
        reader.parse_text("guid: not-a-uuid\n")
    with pytest.raises(EntityReadError):
        reader.parse_text(f"guid: {uuid4()}\nisHidden: maybe\n")
    with pytest.raises(EntityReadError):
        reader.parse_text("- just\n- a list\n")
    with pytest.raises(EntityReadError):
        reader.parse_text("key: [unclosed\n")


# --- Async Read Tests ---


def test_read_one_missing_returns_none():
    with tempfile.TemporaryDirectory() as tmp:
        result = asyncio.run(YamlEntityReader(Component).read_one(Path(tmp) / "1.yaml"))
        assert result is None


def test_read_many_skips_bad_documents():
    with tempfile.TemporaryDirectory() as tmp:
        good = Path(tmp) / "1.yaml"
        bad = Path(tmp) / "2.yaml"
        guid = uuid4()
        good.write_text(yaml.dump({"guid": str(guid), "name": "ok"}))
        bad.write_text("guid: [\n")

        components = asyncio.run(
            YamlEntityReader(Component).read_many([good, bad, Path(tmp) / "3.yaml"])
        )

        assert [c.guid for c in components] == [guid]


def test_read_one_raises_on_unparsable_file():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "1.yaml"
        path.write_text("guid: [\n")
        with pytest.raises(EntityReadError):
            asyncio.run(YamlEntityReader(Component).read_one(path))


def test_default_readers_cover_every_kind():
    readers = default_readers()
    assert len(readers) == 9
    assert readers[Threat].entity_cls is Threat
