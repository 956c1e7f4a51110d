"""Deterministic key builders for title deduplication."""
from __future__ import annotations

from typing import Tuple

from catalog.storage.models import Dataset

GroupKey = Tuple[str, str]


def normalize_title(title: str, *, case_sensitive: bool = False) -> str:
    """Trim and, unless ``case_sensitive``, lower-case a title."""
    if not isinstance(title, str):
        raise TypeError(f"Title must be a string, got {type(title).__name__}")
    normalised = title.strip()
    if not case_sensitive:
        normalised = normalised.lower()
    return normalised


def group_key(dataset: Dataset, position: int, *, case_sensitive: bool = False) -> GroupKey:
    """Return the title group a dataset belongs to.

    Invalid records and records without a usable title never collide: they
    receive a key unique to their position in the input.
    """
    normalised = normalize_title(dataset.title or "", case_sensitive=case_sensitive)
    if not dataset.is_valid or not normalised:
        return ("singleton", str(position))
    return ("title", normalised)
