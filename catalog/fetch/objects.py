"""Representations of objects listed from the store."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

METADATA_SUFFIX = ".metadata.json"


def is_metadata_key(key: str) -> bool:
    """Metadata files end with ``.metadata.json`` in any letter case."""
    return key.lower().endswith(METADATA_SUFFIX)


@dataclass(slots=True)
class ObjectInfo:
    """One listed object: its key, size and last-modified time."""

    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None

    @property
    def is_metadata(self) -> bool:
        return is_metadata_key(self.key)
