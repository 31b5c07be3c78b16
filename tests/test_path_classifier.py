"""Tests for repository path classification."""

import pytest

from tmdrift.diff.models import DomainEntityType
from tmdrift.diff.path_classifier import classify_path, split_path


# --- Library Tests ---


def test_library_document():
    info = classify_path("12/12.yaml")
    assert info.entity_type == DomainEntityType.LIBRARY
    assert info.library_key == "12"


def test_library_document_needs_matching_name():
    assert classify_path("12/13.yaml").entity_type == DomainEntityType.UNKNOWN


def test_library_entity_folders():
    cases = {
        "5/components/100.yaml": DomainEntityType.COMPONENTS,
        "5/threats/7.yaml": DomainEntityType.THREATS,
        "5/security-requirements/8.yaml": DomainEntityType.SECURITY_REQUIREMENTS,
        "5/test-cases/9.yaml": DomainEntityType.TEST_CASES,
        "5/testcases/9.yaml": DomainEntityType.TEST_CASES,
        "5/properties/3.yaml": DomainEntityType.PROPERTIES,
    }
    for path, expected in cases.items():
        info = classify_path(path)
        assert info.entity_type == expected, path
        assert info.library_key == "5"


def test_backslashes_and_case():
    info = classify_path("5\\Components\\100.yaml")
    assert info.entity_type == DomainEntityType.COMPONENTS
    assert info.library_key == "5"


# --- Global and Mapping Tests ---


def test_global_folders_have_no_library():
    info = classify_path("global/component-types/4.yaml")
    assert info.entity_type == DomainEntityType.COMPONENT_TYPE
    assert info.library_key is None
    assert classify_path("global/property-type/1.yaml").entity_type == DomainEntityType.PROPERTY_TYPE
    assert (
        classify_path("global/property-options/1.yaml").entity_type
        == DomainEntityType.PROPERTY_OPTIONS
    )


def test_mapping_folders():
    info = classify_path("mappings/component-threat/12_40.yaml")
    assert info.entity_type == DomainEntityType.COMPONENT_THREAT
    assert info.library_key is None
    info = classify_path("mappings/threat-security-requirements/40_88.yaml")
    assert info.entity_type == DomainEntityType.THREAT_SECURITY_REQUIREMENTS
    info = classify_path(
        "mappings/component-property-option-threat-security-requirements/1_2_3_4_5.yaml"
    )
    assert (
        info.entity_type
        == DomainEntityType.COMPONENT_PROPERTY_OPTION_THREAT_SECURITY_REQUIREMENTS
    )


# --- Unknown Tests ---


def test_unrecognized_paths_are_unknown():
    for path in ("README.md", "5/notes/1.yaml", "mappings/other/1_2.yaml", "global", "mappings"):
        assert classify_path(path).entity_type == DomainEntityType.UNKNOWN, path


def test_empty_path_raises():
    with pytest.raises(ValueError):
        classify_path("")
    with pytest.raises(ValueError):
        classify_path(None)


def test_split_path_drops_empty_segments():
    assert split_path("/a//b\\c/") == ["a", "b", "c"]
