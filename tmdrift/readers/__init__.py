"""Entity readers for the YAML content library."""

from tmdrift.readers.yaml_reader import EntityReader, YamlEntityReader, default_readers

__all__ = ["EntityReader", "YamlEntityReader", "default_readers"]
