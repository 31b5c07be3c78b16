"""Drift configuration — which fields to compare and how to run.

Settings can be loaded from YAML::

    index: ./index.yaml
    include_uncommitted: true
    max_workers: 4
    log_level: INFO
    compare_fields:
      component: [name, description, labels]
      threat: [name, risk_name]

Kinds left out of ``compare_fields`` keep their default allow-list.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from tmdrift.errors import InputValidationError, UnsupportedFieldError
from tmdrift.models.entities import (
    FIELD_ACCESSORS,
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

LOG_LEVEL_ENV = "TMDRIFT_LOG_LEVEL"

ENTITY_KINDS: dict[str, type] = {
    "library": Library,
    "component": Component,
    "threat": Threat,
    "security_requirement": SecurityRequirement,
    "test_case": TestCase,
    "property": Property,
    "property_option": PropertyOption,
    "property_type": PropertyType,
    "component_type": ComponentType,
}

# Identifiers, timestamps and ownership are left out on purpose.
DEFAULT_COMPARE_FIELDS: dict[str, tuple[str, ...]] = {
    "library": (
        "is_default", "sharing_type", "release_notes", "image_url",
        "name", "version", "description", "readonly",
    ),
    "component": (
        "component_type_guid", "is_hidden", "name", "image_path",
        "labels", "version", "description", "chinese_description",
    ),
    "threat": (
        "risk_name", "automated", "is_hidden", "name", "chinese_name", "labels",
        "description", "reference", "intelligence", "chinese_description",
    ),
    "security_requirement": (
        "risk_name", "is_compensating_control", "is_hidden", "name",
        "chinese_name", "labels", "description", "chinese_description",
    ),
    "test_case": (
        "is_hidden", "name", "chinese_name", "labels", "description",
        "chinese_description",
    ),
    "property": (
        "is_selected", "is_optional", "is_global", "is_hidden", "name",
        "chinese_name", "labels", "description", "chinese_description",
    ),
    "property_option": (
        "is_default", "is_hidden", "option_text", "chinese_option_text",
    ),
    "property_type": ("name",),
    "component_type": (
        "name", "description", "chinese_name", "chinese_description",
        "is_hidden", "is_security_control",
    ),
}


@dataclass
class DriftOptions:
    """Per-kind allow-lists of fields compared for modified entities."""

    compare_fields: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_COMPARE_FIELDS)
    )

    def fields_for(self, entity_cls: type) -> tuple[str, ...]:
        for kind, cls in ENTITY_KINDS.items():
            if cls is entity_cls:
                return tuple(self.compare_fields.get(kind, ()))
        raise InputValidationError(f"No compare fields configured for {entity_cls.__name__}")

    def validate(self) -> None:
        """Check every configured field exists on its entity kind.

        Raises:
            InputValidationError: For an unknown entity kind.
            UnsupportedFieldError: For a field the kind does not expose.
        """
        for kind, names in self.compare_fields.items():
            if kind not in ENTITY_KINDS:
                raise InputValidationError(
                    f"Unknown entity kind '{kind}'; expected one of {sorted(ENTITY_KINDS)}"
                )
            accessors = FIELD_ACCESSORS[ENTITY_KINDS[kind]]
            for name in names:
                if name not in accessors:
                    raise UnsupportedFieldError(f"'{name}' cannot be compared on {kind}")


@dataclass
class DriftSettings:
    """Runtime settings for a drift run."""

    index_path: Path | None = None
    include_uncommitted: bool = True
    max_workers: int | None = None
    log_level: str = "WARNING"
    options: DriftOptions = field(default_factory=DriftOptions)


def load_settings(path: str | Path | None = None) -> DriftSettings:
    """Load settings from a YAML file; defaults when ``path`` is None.

    ``TMDRIFT_LOG_LEVEL`` overrides the file's ``log_level``.
    """
    data = {}
    if path is not None:
        path = Path(path)
        if not path.is_file():
            raise InputValidationError(f"Config file not found: {path}")
        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise InputValidationError(f"Config file {path} is not valid YAML: {e}")
        if not isinstance(data, dict):
            raise InputValidationError(f"Config file {path} must hold a mapping")

    configured = data.get("compare_fields") or {}
    if not isinstance(configured, dict):
        raise InputValidationError("compare_fields must map entity kinds to field lists")
    compare_fields = dict(DEFAULT_COMPARE_FIELDS)
    for kind, names in configured.items():
        if names is not None and not isinstance(names, list):
            raise InputValidationError(f"compare_fields.{kind} must be a list of field names")
        compare_fields[kind] = tuple(names or ())
    options = DriftOptions(compare_fields=compare_fields)
    options.validate()

    index_path = data.get("index")
    if index_path and path is not None and not Path(index_path).is_absolute():
        index_path = path.parent / index_path

    max_workers = data.get("max_workers")
    if max_workers is not None and (
        isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1
    ):
        raise InputValidationError(f"max_workers must be a positive integer, got {max_workers!r}")
    return DriftSettings(
        index_path=Path(index_path) if index_path else None,
        include_uncommitted=bool(data.get("include_uncommitted", True)),
        max_workers=max_workers,
        log_level=os.environ.get(LOG_LEVEL_ENV) or str(data.get("log_level", "WARNING")),
        options=options,
    )
