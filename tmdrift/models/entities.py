"""Domain entities read from the YAML content library.

Each dataclass field declares the YAML keys it is read from (see
``tmdrift.readers.yaml_reader``). ``FIELD_ACCESSORS`` lists, per entity kind,
the fields that drift comparison may look at.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from operator import attrgetter
from typing import Any, ClassVar
from uuid import UUID


def _text(*keys: str) -> Any:
    return field(default="", metadata={"keys": keys, "parse": "str"})


def _flag(*keys: str) -> Any:
    return field(default=False, metadata={"keys": keys, "parse": "bool"})


def _ref(*keys: str) -> Any:
    return field(default=None, metadata={"keys": keys, "parse": "uuid"})


def _labels() -> Any:
    return field(default_factory=list, metadata={"keys": ("labels",), "parse": "labels"})


def _guid() -> Any:
    return field(metadata={"keys": ("guid",), "parse": "uuid"})


@dataclass
class Library:
    KIND: ClassVar[str] = "library"

    guid: UUID = _guid()
    name: str = _text("name")
    version: str = _text("version")
    description: str = _text("description")
    release_notes: str = _text("releaseNotes")
    image_url: str = _text("imageUrl")
    sharing_type: str = _text("sharingType")
    is_default: bool = _flag("isDefault")
    readonly: bool = _flag("readonly")
    labels: list[str] = _labels()
    created_at: str = _text("createdAt", "dateCreated")
    updated_at: str = _text("updatedAt", "lastUpdated")

    @property
    def library_guid(self) -> UUID:
        return self.guid


@dataclass
class Component:
    KIND: ClassVar[str] = "component"

    guid: UUID = _guid()
    library_guid: UUID | None = _ref("libraryGuid", "libraryId")
    name: str = _text("name")
    version: str = _text("version")
    description: str = _text("description")
    chinese_description: str = _text("chineseDescription")
    image_path: str = _text("imagePath")
    component_type_guid: UUID | None = _ref("componentTypeGuid")
    labels: list[str] = _labels()
    is_hidden: bool = _flag("isHidden")
    is_overridden: bool = _flag("isOverridden")
    updated_at: str = _text("updatedAt", "lastUpdated")


@dataclass
class Threat:
    KIND: ClassVar[str] = "threat"

    guid: UUID = _guid()
    library_guid: UUID | None = _ref("libraryGuid", "libraryId")
    name: str = _text("name")
    chinese_name: str = _text("chineseName")
    description: str = _text("description")
    chinese_description: str = _text("chineseDescription")
    reference: str = _text("reference")
    intelligence: str = _text("intelligence")
    risk_name: str = _text("riskName")
    automated: bool = _flag("automated")
    labels: list[str] = _labels()
    is_hidden: bool = _flag("isHidden")
    is_overridden: bool = _flag("isOverridden")
    updated_at: str = _text("updatedAt", "lastUpdated")


@dataclass
class SecurityRequirement:
    KIND: ClassVar[str] = "securityrequirement"

    guid: UUID = _guid()
    library_guid: UUID | None = _ref("libraryGuid", "libraryId")
    name: str = _text("name")
    chinese_name: str = _text("chineseName")
    description: str = _text("description")
    chinese_description: str = _text("chineseDescription")
    risk_name: str = _text("riskName")
    is_compensating_control: bool = _flag("isCompensatingControl")
    labels: list[str] = _labels()
    is_hidden: bool = _flag("isHidden")
    is_overridden: bool = _flag("isOverridden")
    updated_at: str = _text("updatedAt", "lastUpdated")


@dataclass
class TestCase:
    KIND: ClassVar[str] = "testcase"
    __test__ = False  # not a pytest class

    guid: UUID = _guid()
    library_guid: UUID | None = _ref("libraryGuid", "libraryId")
    name: str = _text("name")
    chinese_name: str = _text("chineseName")
    description: str = _text("description")
    chinese_description: str = _text("chineseDescription")
    labels: list[str] = _labels()
    is_hidden: bool = _flag("isHidden")
    is_overridden: bool = _flag("isOverridden")
    updated_at: str = _text("updatedAt", "lastUpdated")


@dataclass
class Property:
    KIND: ClassVar[str] = "property"

    guid: UUID = _guid()
    library_guid: UUID | None = _ref("libraryGuid", "libraryId")
    name: str = _text("name")
    chinese_name: str = _text("chineseName")
    description: str = _text("description")
    chinese_description: str = _text("chineseDescription")
    property_type_guid: UUID | None = _ref("propertyTypeGuid")
    is_selected: bool = _flag("isSelected")
    is_optional: bool = _flag("isOptional")
    is_global: bool = _flag("isGlobal")
    labels: list[str] = _labels()
    is_hidden: bool = _flag("isHidden")
    is_overridden: bool = _flag("isOverridden")
    updated_at: str = _text("updatedAt", "lastUpdated")


@dataclass
class ComponentType:
    KIND: ClassVar[str] = "componenttype"

    guid: UUID = _guid()
    library_guid: UUID | None = _ref("libraryGuid", "libraryId")
    name: str = _text("name")
    chinese_name: str = _text("chineseName")
    description: str = _text("description")
    chinese_description: str = _text("chineseDescription")
    is_hidden: bool = _flag("isHidden")
    is_security_control: bool = _flag("isSecurityControl")


@dataclass
class PropertyType:
    KIND: ClassVar[str] = "propertytype"

    guid: UUID = _guid()
    name: str = _text("name")


@dataclass
class PropertyOption:
    KIND: ClassVar[str] = "propertyoption"

    guid: UUID = _guid()
    property_guid: UUID | None = _ref("propertyGuid")
    option_text: str = _text("optionText")
    chinese_option_text: str = _text("chineseOptionText")
    is_default: bool = _flag("isDefault")
    is_hidden: bool = _flag("isHidden")
    is_overridden: bool = _flag("isOverridden")


# Field name → getter, per entity kind. Only names listed here can appear in
# a comparison allow-list.
FIELD_ACCESSORS: dict[type, dict[str, Callable[[Any], Any]]] = {
    Library: {
        "name": attrgetter("name"),
        "version": attrgetter("version"),
        "description": attrgetter("description"),
        "release_notes": attrgetter("release_notes"),
        "image_url": attrgetter("image_url"),
        "sharing_type": attrgetter("sharing_type"),
        "is_default": attrgetter("is_default"),
        "readonly": attrgetter("readonly"),
        "labels": attrgetter("labels"),
        "updated_at": attrgetter("updated_at"),
    },
    Component: {
        "name": attrgetter("name"),
        "version": attrgetter("version"),
        "description": attrgetter("description"),
        "chinese_description": attrgetter("chinese_description"),
        "image_path": attrgetter("image_path"),
        "component_type_guid": attrgetter("component_type_guid"),
        "labels": attrgetter("labels"),
        "is_hidden": attrgetter("is_hidden"),
        "is_overridden": attrgetter("is_overridden"),
        "library_guid": attrgetter("library_guid"),
        "updated_at": attrgetter("updated_at"),
    },
    Threat: {
        "name": attrgetter("name"),
        "chinese_name": attrgetter("chinese_name"),
        "description": attrgetter("description"),
        "chinese_description": attrgetter("chinese_description"),
        "reference": attrgetter("reference"),
        "intelligence": attrgetter("intelligence"),
        "risk_name": attrgetter("risk_name"),
        "automated": attrgetter("automated"),
        "labels": attrgetter("labels"),
        "is_hidden": attrgetter("is_hidden"),
        "is_overridden": attrgetter("is_overridden"),
        "library_guid": attrgetter("library_guid"),
        "updated_at": attrgetter("updated_at"),
    },
    SecurityRequirement: {
        "name": attrgetter("name"),
        "chinese_name": attrgetter("chinese_name"),
        "description": attrgetter("description"),
        "chinese_description": attrgetter("chinese_description"),
        "risk_name": attrgetter("risk_name"),
        "is_compensating_control": attrgetter("is_compensating_control"),
        "labels": attrgetter("labels"),
        "is_hidden": attrgetter("is_hidden"),
        "is_overridden": attrgetter("is_overridden"),
        "library_guid": attrgetter("library_guid"),
        "updated_at": attrgetter("updated_at"),
    },
    TestCase: {
        "name": attrgetter("name"),
        "chinese_name": attrgetter("chinese_name"),
        "description": attrgetter("description"),
        "chinese_description": attrgetter("chinese_description"),
        "labels": attrgetter("labels"),
        "is_hidden": attrgetter("is_hidden"),
        "is_overridden": attrgetter("is_overridden"),
        "library_guid": attrgetter("library_guid"),
        "updated_at": attrgetter("updated_at"),
    },
    Property: {
        "name": attrgetter("name"),
        "chinese_name": attrgetter("chinese_name"),
        "description": attrgetter("description"),
        "chinese_description": attrgetter("chinese_description"),
        "property_type_guid": attrgetter("property_type_guid"),
        "is_selected": attrgetter("is_selected"),
        "is_optional": attrgetter("is_optional"),
        "is_global": attrgetter("is_global"),
        "labels": attrgetter("labels"),
        "is_hidden": attrgetter("is_hidden"),
        "is_overridden": attrgetter("is_overridden"),
        "library_guid": attrgetter("library_guid"),
        "updated_at": attrgetter("updated_at"),
    },
    ComponentType: {
        "name": attrgetter("name"),
        "chinese_name": attrgetter("chinese_name"),
        "description": attrgetter("description"),
        "chinese_description": attrgetter("chinese_description"),
        "is_hidden": attrgetter("is_hidden"),
        "is_security_control": attrgetter("is_security_control"),
    },
    PropertyType: {
        "name": attrgetter("name"),
    },
    PropertyOption: {
        "option_text": attrgetter("option_text"),
        "chinese_option_text": attrgetter("chinese_option_text"),
        "is_default": attrgetter("is_default"),
        "is_hidden": attrgetter("is_hidden"),
        "is_overridden": attrgetter("is_overridden"),
        "property_guid": attrgetter("property_guid"),
    },
}
