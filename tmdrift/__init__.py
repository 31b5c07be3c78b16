"""tmdrift: drift detection between golden and client threat-framework libraries."""

__version__ = "0.1.0"
