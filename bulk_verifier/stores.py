"""Durable JSON stores holding classified leads."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Set

from .io import read_json, write_json
from .models import Lead, normalise_email

LOGGER = logging.getLogger(__name__)


class OutputStore:
    """Append-only JSON array of lead records kept in a single file.

    Each append re-reads the file, adds the record and rewrites the whole
    array. Only one process may write to a store at a time.
    """

    def __init__(self, path: str | Path, *, label: str | None = None) -> None:
        self.path = Path(path)
        self.label = label or self.path.stem

    def load(self) -> List[Dict[str, Any]]:
        """Return the stored records, or an empty list if the file is absent or unreadable."""

        if not self.path.exists():
            return []
        try:
            data = read_json(self.path)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Could not parse %s store at %s, treating it as empty: %s", self.label, self.path, exc)
            return []
        if not isinstance(data, list):
            LOGGER.warning("%s store at %s is not a JSON array, treating it as empty", self.label, self.path)
            return []
        return data

    def keys(self) -> Set[str]:
        keys: Set[str] = set()
        for item in self.load():
            email = item.get("email") if isinstance(item, dict) else None
            if isinstance(email, str):
                keys.add(normalise_email(email))
        return keys

    def append(self, lead: Lead) -> None:
        records = self.load()
        records.append(lead.to_record())
        write_json(self.path, records)

    def __len__(self) -> int:
        return len(self.load())


def classified_keys(stores: Iterable[OutputStore]) -> Set[str]:
    """Return every normalised email already present in ``stores``."""

    keys: Set[str] = set()
    for store in stores:
        keys |= store.keys()
    return keys


__all__ = ["OutputStore", "classified_keys"]
