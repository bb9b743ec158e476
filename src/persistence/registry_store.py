"""JSON-file registry store, keyed by resource name."""
from __future__ import annotations

import logging
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

from src.foundry_shared.models import RegistryEntry
from src.foundry_shared.utils import atomic_write_json, is_valid_target_name, load_json, tokenize

logger = logging.getLogger(__name__)

REGISTRY_SCHEMA_VERSION = 1


class JsonRegistryStore:
    """Persisted registry of created resources.

    The whole collection lives in one JSON document
    (``{"schema_version": 1, "entries": {name: {...}}}``) rewritten
    atomically on every upsert.  Names are unique by construction.

    Args:
        path: Location of the registry document.  Created on first write.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, RegistryEntry]:
        data = load_json(self._path)
        if not isinstance(data, dict):
            if self._path.exists():
                logger.warning("Registry %s is unreadable; treating it as empty", self._path)
            return {}
        known = set(RegistryEntry.__dataclass_fields__)
        entries: dict[str, RegistryEntry] = {}
        for name, raw in (data.get("entries") or {}).items():
            if not isinstance(raw, dict):
                continue
            fields = {k: v for k, v in raw.items() if k in known}
            fields["name"] = name
            fields["keywords"] = list(fields.get("keywords") or [])
            entries[name] = RegistryEntry(**fields)
        return entries

    def _write(self, entries: dict[str, RegistryEntry]) -> None:
        atomic_write_json(
            self._path,
            {
                "schema_version": REGISTRY_SCHEMA_VERSION,
                "entries": {name: asdict(entries[name]) for name in sorted(entries)},
            },
        )

    def all(self) -> list[RegistryEntry]:
        with self._lock:
            return [e for _, e in sorted(self._read().items())]

    def get(self, name: str) -> RegistryEntry | None:
        with self._lock:
            return self._read().get(name)

    def query(self, name_or_keywords: str | list[str]) -> list[RegistryEntry]:
        """Entries sharing at least one token with the query (token-set, not substring)."""
        terms = [name_or_keywords] if isinstance(name_or_keywords, str) else list(name_or_keywords)
        wanted: set[str] = set()
        for term in terms:
            wanted |= tokenize(term.replace("-", " "))
        if not wanted:
            return []
        with self._lock:
            entries = self._read()
        hits = []
        for name in sorted(entries):
            entry = entries[name]
            tokens = tokenize(entry.name.replace("-", " "))
            for keyword in entry.keywords:
                tokens |= tokenize(keyword.replace("-", " "))
            if tokens & wanted:
                hits.append(entry)
        return hits

    def upsert(self, entry: RegistryEntry) -> None:
        """Insert or replace ``entry.name``.

        Raises:
            ValueError: the name is not lowercase-hyphenated 3-50 characters.
        """
        if not is_valid_target_name(entry.name):
            raise ValueError(f"Invalid registry name '{entry.name}'")
        with self._lock:
            entries = self._read()
            entry.updated_at = datetime.now(timezone.utc).isoformat()
            entries[entry.name] = entry
            self._write(entries)
        logger.info("Registry upsert: %s (version %d)", entry.name, entry.version)

    def remove(self, name: str) -> bool:
        with self._lock:
            entries = self._read()
            if name not in entries:
                return False
            del entries[name]
            self._write(entries)
        return True
