"""Identity index and library metadata lookups."""

from tmdrift.index.service import (
    IndexEntry,
    IndexLibraryMetadata,
    IndexService,
    InMemoryIndex,
    LibraryMetadataSource,
    YamlIndexService,
)

__all__ = [
    "IndexEntry",
    "IndexLibraryMetadata",
    "IndexService",
    "InMemoryIndex",
    "LibraryMetadataSource",
    "YamlIndexService",
]
