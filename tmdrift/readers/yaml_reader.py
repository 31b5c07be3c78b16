"""YAML entity readers.

Entity documents come in two shapes. The nested shape::

    kind: threat
    apiVersion: v1
    metadata: {guid: ..., name: ..., libraryGuid: ..., labels: [...]}
    spec:
      description: ...
      flags: {isHidden: false, automated: true}
      i18n: {zh: {name: ..., description: ...}}

and a flat shape where the same keys sit at the top level. Both are
flattened into one case-insensitive key space before fields are filled in;
``metadata`` wins over ``spec``, which wins over top-level keys.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable
from dataclasses import fields
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar
from uuid import UUID

import yaml

from tmdrift.errors import EntityReadError
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

logger = logging.getLogger(__name__)

E = TypeVar("E")

TRUE_STRINGS = {"true", "yes", "1", "on"}
FALSE_STRINGS = {"false", "no", "0", "off", ""}

# i18n.zh keys and the flattened keys they fill
LOCALIZED_KEYS = {
    "name": "chinesename",
    "description": "chinesedescription",
    "optiontext": "chineseoptiontext",
}


class EntityReader(Protocol[E]):
    """Reads entities of one kind from documents on disk."""

    async def read_many(self, paths: Iterable[Path]) -> list[E]: ...

    async def read_one(self, path: Path) -> E | None: ...


class YamlEntityReader(Generic[E]):
    """Reads one entity kind from YAML documents."""

    def __init__(self, entity_cls: type[E]):
        self.entity_cls = entity_cls

    def __repr__(self) -> str:
        return f"YamlEntityReader({self.entity_cls.__name__})"

    async def read_one(self, path: Path) -> E | None:
        """Read one document.

        Returns None when the file does not exist.

        Raises:
            EntityReadError: If the file exists but cannot be read or parsed.
        """
        path = Path(path)
        if not path.is_file():
            return None
        return await asyncio.to_thread(self.parse_file, path)

    async def read_many(self, paths: Iterable[Path]) -> list[E]:
        """Read a batch of documents in one worker thread.

        Missing or unparsable documents are logged and left out.
        """
        return await asyncio.to_thread(self._read_batch, [Path(p) for p in paths])

    def _read_batch(self, paths: list[Path]) -> list[E]:
        entities = []
        for path in paths:
            if not path.is_file():
                logger.warning("%s document not found: %s", self.entity_cls.__name__, path)
                continue
            try:
                entities.append(self.parse_file(path))
            except EntityReadError as e:
                logger.warning("Skipping %s", e)
        return entities

    def parse_file(self, path: Path) -> E:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise EntityReadError(path, str(e))
        return self.parse_text(text, path)

    def parse_text(self, text: str, path: Path | str = "<string>") -> E:
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise EntityReadError(path, f"invalid YAML: {e}")
        if not isinstance(document, dict):
            raise EntityReadError(path, "document is not a mapping")
        return self.from_document(document, path)

    def from_document(self, document: dict, path: Path | str = "<document>") -> E:
        flat = flatten_document(document)

        kind = flat.get("kind")
        if kind is not None and not _kind_matches(str(kind), self.entity_cls.KIND):
            raise EntityReadError(
                path, f"expected kind '{self.entity_cls.KIND}', found '{kind}'"
            )
        if not flat.get("guid"):
            raise EntityReadError(path, "missing guid")

        values = {}
        for f in fields(self.entity_cls):
            keys = f.metadata.get("keys", ())
            raw = _first_present(flat, keys)
            if raw is _MISSING:
                continue
            try:
                values[f.name] = _PARSERS[f.metadata["parse"]](raw)
            except (TypeError, ValueError) as e:
                raise EntityReadError(path, f"bad value for '{keys[0]}': {e}")
        return self.entity_cls(**values)


def flatten_document(document: dict) -> dict[str, Any]:
    """Collapse metadata/spec/flags/i18n sections into one lower-cased key space."""
    flat: dict[str, Any] = {}
    metadata = _section(document, "metadata")
    spec = _section(document, "spec")
    flags = _section(spec, "flags") or _section(document, "flags")
    i18n = _section(spec, "i18n") or _section(document, "i18n")

    for section in (metadata, spec, flags, document):
        for key, value in section.items():
            if not isinstance(value, dict):
                flat.setdefault(str(key).lower(), value)

    for key, value in _section(i18n, "zh").items():
        target = LOCALIZED_KEYS.get(str(key).lower())
        if target and not isinstance(value, dict):
            flat.setdefault(target, value)
    return flat


def _section(mapping: dict, name: str) -> dict:
    for key, value in mapping.items():
        if str(key).lower() == name and isinstance(value, dict):
            return value
    return {}


_MISSING = object()


def _first_present(flat: dict, keys: tuple[str, ...]):
    for key in keys:
        if key.lower() in flat:
            return flat[key.lower()]
    return _MISSING


def _kind_matches(kind: str, expected: str) -> bool:
    normalized = re.sub(r"[^a-z0-9]", "", kind.lower())
    plural = expected[:-1] + "ies" if expected.endswith("y") else expected + "s"
    return normalized in (expected, plural)


def _parse_str(value: Any) -> str:
    return "" if value is None else str(value)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in TRUE_STRINGS:
        return True
    if text in FALSE_STRINGS:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_uuid(value: Any) -> UUID | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return value if isinstance(value, UUID) else UUID(str(value).strip())


def _parse_labels(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


_PARSERS = {
    "str": _parse_str,
    "bool": _parse_bool,
    "uuid": _parse_uuid,
    "labels": _parse_labels,
}


def default_readers() -> dict[type, YamlEntityReader]:
    """One YAML reader per entity kind."""
    return {
        cls: YamlEntityReader(cls)
        for cls in (
            Library, Component, Threat, SecurityRequirement, TestCase, Property,
            ComponentType, PropertyType, PropertyOption,
        )
    }
