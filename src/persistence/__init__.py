"""Persistence layer -- registry store and run archive."""
from src.persistence.registry_store import JsonRegistryStore
from src.persistence.run_archive import RunArchive
from src.persistence.schema import init_archive_db

__all__ = [
    "JsonRegistryStore",
    "RunArchive",
    "init_archive_db",
]
