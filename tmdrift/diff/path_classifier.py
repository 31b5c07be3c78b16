"""Map repository-relative paths to the domain entity they hold.

Layout understood here::

    {lib}/{lib}.yaml
    {lib}/{components|threats|security-requirements|test-cases|properties}/{id}.yaml
    global/{component-types|property-types|property-options}/{id}.yaml
    mappings/{family}/{id}_{id}[_...].yaml
"""

from __future__ import annotations

from tmdrift.diff.models import (
    GLOBAL_FOLDER,
    MAPPINGS_FOLDER,
    DomainEntityType,
    RepositoryPathInfo,
)

LIBRARY_FOLDERS: dict[str, DomainEntityType] = {
    "components": DomainEntityType.COMPONENTS,
    "threats": DomainEntityType.THREATS,
    "security-requirements": DomainEntityType.SECURITY_REQUIREMENTS,
    "test-cases": DomainEntityType.TEST_CASES,
    "testcases": DomainEntityType.TEST_CASES,
    "properties": DomainEntityType.PROPERTIES,
}

GLOBAL_FOLDERS: dict[str, DomainEntityType] = {
    "component-types": DomainEntityType.COMPONENT_TYPE,
    "component-type": DomainEntityType.COMPONENT_TYPE,
    "property-types": DomainEntityType.PROPERTY_TYPE,
    "property-type": DomainEntityType.PROPERTY_TYPE,
    "property-options": DomainEntityType.PROPERTY_OPTIONS,
}

MAPPING_FOLDERS: dict[str, DomainEntityType] = {
    t.value: t
    for t in DomainEntityType
    if t.is_mapping
}

UNKNOWN = RepositoryPathInfo(DomainEntityType.UNKNOWN)


def split_path(path: str) -> list[str]:
    """Split on either separator, dropping empty segments."""
    return [part for part in path.replace("\\", "/").split("/") if part]


def classify_path(path: str) -> RepositoryPathInfo:
    """Classify a repository-relative path.

    Raises:
        ValueError: If ``path`` is None or empty.
    """
    if not path:
        raise ValueError("Path must be a non-empty string")

    parts = split_path(path)
    if not parts:
        return UNKNOWN

    head = parts[0].lower()

    if head == MAPPINGS_FOLDER:
        if len(parts) < 2:
            return UNKNOWN
        entity_type = MAPPING_FOLDERS.get(parts[1].lower())
        return RepositoryPathInfo(entity_type) if entity_type else UNKNOWN

    if head == GLOBAL_FOLDER:
        if len(parts) < 2:
            return UNKNOWN
        entity_type = GLOBAL_FOLDERS.get(parts[1].lower())
        return RepositoryPathInfo(entity_type) if entity_type else UNKNOWN

    library_key = parts[0]
    if len(parts) == 2 and parts[1].lower() == f"{library_key}.yaml".lower():
        return RepositoryPathInfo(DomainEntityType.LIBRARY, library_key)

    if len(parts) > 1:
        entity_type = LIBRARY_FOLDERS.get(parts[1].lower())
        if entity_type:
            return RepositoryPathInfo(entity_type, library_key)

    return UNKNOWN
