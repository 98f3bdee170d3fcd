"""Building blocks for a lean consensus node: SSZ, types, storage, encodings, metrics and HTTP API."""

__version__ = "0.1.0"