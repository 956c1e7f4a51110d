"""In-memory catalog index with raw and deduplicated views."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import structlog

from catalog.quality.config import DeduplicationConfig
from catalog.quality.dedup import DeduplicationResult, RemovedDuplicate, deduplicate
from catalog.storage.models import UNIQUE, Dataset

LOGGER = structlog.get_logger(__name__)

UNSECTIONED = "_unsectioned"

Sections = Dict[str, List[Dataset]]


class IndexState(str, enum.Enum):
    EMPTY = "empty"
    LOADED = "loaded"
    DEDUPLICATED = "deduplicated"


@dataclass
class DeduplicationMetadata:
    """Snapshot of the last deduplication pass.

    Timing fields are excluded from equality so two passes over the same data
    compare equal.
    """

    enabled: bool = False
    duplicates_found: int = 0
    duplicates_removed: int = 0
    last_deduplication_time: Optional[datetime] = field(default=None, compare=False)
    processing_time_ms: float = field(default=0.0, compare=False)
    removed_duplicates: List[RemovedDuplicate] = field(default_factory=list)

    def as_dict(self) -> Dict[str, object]:
        return {
            "enabled": self.enabled,
            "duplicatesFound": self.duplicates_found,
            "duplicatesRemoved": self.duplicates_removed,
            "lastDeduplicationTime": (
                self.last_deduplication_time.isoformat() if self.last_deduplication_time else None
            ),
            "processingTimeMs": round(self.processing_time_ms, 3),
            "removedDuplicates": [entry.as_dict() for entry in self.removed_duplicates],
        }


@dataclass
class SearchResult:
    """Matches grouped by section; empty sections are omitted."""

    sections: Sections
    total_results: int


def partition(datasets: Iterable[Dataset]) -> Sections:
    """Group datasets by section, keeping input order within each section."""
    sections: Sections = {}
    for dataset in datasets:
        sections.setdefault(dataset.section or UNSECTIONED, []).append(dataset)
    return sections


class CatalogIndex:
    """Owns the datasets of the most recent load and the active view.

    ``load`` stores the raw universe and exposes it unchanged. ``apply``
    recomputes the active view from that universe with the current
    deduplication config, so toggling deduplication never needs a reload.
    The index is single-writer: callers serialise concurrent access.
    """

    def __init__(self, config: Optional[DeduplicationConfig] = None) -> None:
        self._config = config or DeduplicationConfig.create_default()
        self._original: Dict[str, Dataset] = {}
        self._search_text: Dict[str, str] = {}
        self._sections: Sections = {}
        self._annotated: Dict[str, Dataset] = {}
        self._removed: Dict[str, RemovedDuplicate] = {}
        self._metadata = DeduplicationMetadata()
        self._last_result: Optional[DeduplicationResult] = None
        self._state = IndexState.EMPTY
        self.last_updated: Optional[datetime] = None

    # -- loading and configuration ---------------------------------------

    def load(self, datasets: Iterable[Dataset]) -> None:
        """Replace the indexed universe; the active view becomes the raw one."""
        original: Dict[str, Dataset] = {}
        search_text: Dict[str, str] = {}
        for dataset in datasets:
            if dataset.id in original:
                LOGGER.warning("duplicate_dataset_id", dataset_id=dataset.id)
            original[dataset.id] = dataset
            search_text[dataset.id] = f"{dataset.title or ''} {dataset.description or ''}".lower()
        annotated = [dataset.annotated(UNIQUE) for dataset in original.values()]

        self._original = original
        self._search_text = search_text
        self._annotated = {dataset.id: dataset for dataset in annotated}
        self._sections = partition(annotated)
        self._removed = {}
        self._metadata = DeduplicationMetadata()
        self._last_result = None
        self._state = IndexState.LOADED
        self.last_updated = datetime.now(timezone.utc)
        LOGGER.info("index_loaded", datasets=len(original), sections=len(self._sections))

    def set_config(self, config: Union[DeduplicationConfig, Mapping[str, Any]]) -> None:
        """Store a new config without recomputing; raises ConfigurationError."""
        self._config = DeduplicationConfig.coerce(config)

    def apply(self) -> DeduplicationMetadata:
        """Rebuild the active view from the original datasets."""
        config = self._config
        result = deduplicate(list(self._original.values()), config)
        sections = partition(result.survivors)
        annotated = {dataset.id: dataset for dataset in result.datasets}
        removed = {entry.id: entry for entry in result.removed}
        if config.enabled:
            metadata = DeduplicationMetadata(
                enabled=True,
                duplicates_found=result.duplicates_found,
                duplicates_removed=result.duplicates_removed,
                last_deduplication_time=datetime.now(timezone.utc),
                processing_time_ms=result.processing_time_ms,
                removed_duplicates=list(result.removed),
            )
        else:
            metadata = DeduplicationMetadata()

        self._sections = sections
        self._annotated = annotated
        self._removed = removed
        self._metadata = metadata
        self._last_result = result if config.enabled else None
        if self._state is not IndexState.EMPTY:
            self._state = IndexState.DEDUPLICATED if config.enabled else IndexState.LOADED
        self.last_updated = datetime.now(timezone.utc)
        return metadata

    # -- search -----------------------------------------------------------

    def _matches(self, sections: Sections, query: str) -> SearchResult:
        needle = query.lower()
        if not needle.strip():
            return SearchResult(sections={}, total_results=0)
        results: Sections = {}
        total = 0
        for section, datasets in sections.items():
            matching = [
                dataset for dataset in datasets
                if needle in self._search_text.get(dataset.id, "")
            ]
            if matching:
                results[section] = matching
                total += len(matching)
        return SearchResult(sections=results, total_results=total)

    def search(self, query: str) -> SearchResult:
        """Case-insensitive substring search over the active view."""
        return self._matches(self._sections, query)

    def search_raw(self, query: str) -> SearchResult:
        """Search every loaded dataset, ignoring deduplication."""
        return self._matches(partition(self._original.values()), query)

    def view(self, config: DeduplicationConfig) -> Sections:
        """Build a throwaway view with ``config``; index state is untouched."""
        result = deduplicate(list(self._original.values()), config)
        return partition(result.survivors)

    def search_view(self, query: str, config: DeduplicationConfig) -> SearchResult:
        """Search the view ``config`` would produce without activating it."""
        return self._matches(self.view(config), query)

    # -- accessors ----------------------------------------------------------

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def deduplication_config(self) -> DeduplicationConfig:
        return self._config

    @property
    def deduplication_metadata(self) -> DeduplicationMetadata:
        return self._metadata

    @property
    def last_result(self) -> Optional[DeduplicationResult]:
        return self._last_result

    @property
    def sections(self) -> Sections:
        return {section: list(datasets) for section, datasets in self._sections.items()}

    def get_sections(self) -> List[str]:
        return list(self._sections)

    def get_datasets_in_section(self, section: str) -> List[Dataset]:
        return list(self._sections.get(section, []))

    def get_dataset(self, dataset_id: str) -> Optional[Dataset]:
        """Return the dataset as annotated by the last pass, duplicates included."""
        return self._annotated.get(dataset_id)

    def get_original_datasets(self) -> List[Dataset]:
        return list(self._original.values())

    def get_removed_duplicates(self) -> List[RemovedDuplicate]:
        return list(self._removed.values())

    def is_duplicate(self, dataset_id: str) -> bool:
        return dataset_id in self._removed

    def kept_instead_of(self, dataset_id: str) -> Optional[str]:
        entry = self._removed.get(dataset_id)
        return entry.kept_instead_id if entry else None

    def active_count(self) -> int:
        return sum(len(datasets) for datasets in self._sections.values())
