"""Site visit server - capture ingest and media asset processing backend."""

__version__ = "0.1.0"
