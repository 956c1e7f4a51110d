"""Catalog service: load a bucket into the index and answer browse/search/export."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import httpx
import structlog

from catalog.fetch.objects import ObjectInfo
from catalog.fetch.store import ObjectStore, ObjectStoreError, open_object_store
from catalog.index.catalog_index import CatalogIndex, SearchResult, Sections
from catalog.normalize.dates import DateDisplayConfig
from catalog.observability.metrics import MetricsRegistry, record_duration
from catalog.observability.tracing import clear_context, set_context
from catalog.orchestrator.settings import CatalogSettings
from catalog.parse.metadata import invalid_dataset, parse_dataset
from catalog.quality.config import DeduplicationConfig
from catalog.quality.dedup import build_report
from catalog.storage.models import Dataset

LOGGER = structlog.get_logger(__name__)


def _sections_json(sections: Sections) -> Dict[str, List[dict]]:
    return {
        section: [dataset.to_json_dict() for dataset in datasets]
        for section, datasets in sections.items()
    }


@dataclass
class CatalogResponse:
    """The active view grouped by section plus a summary of the last load."""

    sections: Sections
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(len(datasets) for datasets in self.sections.values())

    def to_json_dict(self) -> Dict[str, Any]:
        return {"sections": _sections_json(self.sections), "metadata": self.metadata}


@dataclass
class SearchResponse:
    """Search matches grouped by section."""

    sections: Sections
    total_results: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "sections": _sections_json(self.sections),
            "totalResults": self.total_results,
            "metadata": self.metadata,
        }


class CatalogService:
    """Drives list -> fetch -> parse -> index for one bucket.

    The service owns the active deduplication and date display configuration.
    An object store may be injected; otherwise one is opened from the store
    settings for the duration of each load.
    """

    def __init__(
        self,
        settings: CatalogSettings,
        *,
        store: Optional[ObjectStore] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._metrics = metrics or MetricsRegistry()
        self._index = CatalogIndex(settings.deduplication)
        self._date_display = settings.date_display
        self._total_objects = 0
        self._metadata_files = 0

    @property
    def settings(self) -> CatalogSettings:
        return self._settings

    @property
    def index(self) -> CatalogIndex:
        return self._index

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    @property
    def deduplication_config(self) -> DeduplicationConfig:
        return self._index.deduplication_config

    @property
    def date_display_config(self) -> DateDisplayConfig:
        return self._date_display

    # -- loading -------------------------------------------------------------

    async def load_catalog(self) -> CatalogResponse:
        """Load every metadata file in the bucket and rebuild the index.

        Counters are gathered per load and replace the service metrics once
        the new index is in place. A listing failure propagates and leaves the
        previous index, bucket summary and metrics untouched.
        """
        load_id = uuid.uuid4().hex[:12]
        set_context(bucket=self._settings.store.bucket, load_id=load_id)
        load_metrics = MetricsRegistry()
        try:
            with record_duration(load_metrics, "load_duration_ms"):
                if self._store is not None:
                    objects, datasets = await self._collect(self._store, load_metrics)
                else:
                    async with open_object_store(self._settings.store, metrics=load_metrics) as store:
                        objects, datasets = await self._collect(store, load_metrics)
                self._index.load(datasets)
                self._total_objects = len(objects)
                self._metadata_files = len(datasets)
                metadata = self._index.apply()
            load_metrics.set("duplicates_removed", metadata.duplicates_removed)
            self._metrics.reset(load_metrics.snapshot())
            LOGGER.info(
                "catalog_loaded",
                datasets=len(datasets),
                sections=len(self._index.get_sections()),
                duplicates_removed=metadata.duplicates_removed,
            )
        finally:
            clear_context()
        return self.browse()

    async def _collect(
        self, store: ObjectStore, metrics: MetricsRegistry
    ) -> Tuple[List[ObjectInfo], List[Dataset]]:
        objects = await store.list_objects()
        metadata_objects = [info for info in objects if info.is_metadata]
        metrics.set("metadata_files", len(metadata_objects))
        if not metadata_objects:
            LOGGER.warning("no_metadata_files", objects=len(objects))

        semaphore = asyncio.Semaphore(self._settings.store.concurrency)

        async def load_one(info: ObjectInfo) -> Dataset:
            async with semaphore:
                try:
                    body = await store.get_object(info.key)
                except (ObjectStoreError, httpx.HTTPError) as exc:
                    metrics.incr("fetch_failures")
                    LOGGER.warning("metadata_fetch_failed", key=info.key, error=str(exc))
                    return invalid_dataset(
                        info.key,
                        f"Failed to fetch metadata: {exc}",
                        last_modified=info.last_modified,
                    )
            return parse_dataset(body, info.key, info)

        datasets = list(await asyncio.gather(*(load_one(info) for info in metadata_objects)))
        for dataset in datasets:
            if dataset.is_valid:
                metrics.incr("datasets_valid")
            else:
                metrics.incr("datasets_invalid")
                LOGGER.info("invalid_metadata", key=dataset.metadata_key, error=dataset.description)
        return objects, datasets

    # -- configuration -------------------------------------------------------

    def set_deduplication_config(
        self, config: Union[DeduplicationConfig, Mapping[str, Any]]
    ) -> Dict[str, Any]:
        """Validate and activate ``config``; raises ConfigurationError.

        On error the previous config and view stay active.
        """
        self._index.set_config(config)
        metadata = self._index.apply()
        self._metrics.set("duplicates_removed", metadata.duplicates_removed)
        LOGGER.info("deduplication_config_changed", config=self._index.deduplication_config.as_dict())
        return metadata.as_dict()

    def set_date_display_config(
        self, config: Union[DateDisplayConfig, Mapping[str, Any]]
    ) -> DateDisplayConfig:
        self._date_display = DateDisplayConfig.coerce(config)
        return self._date_display

    # -- queries ---------------------------------------------------------------

    def browse(self) -> CatalogResponse:
        """Return the active view with the load summary."""
        index = self._index
        original = index.get_original_datasets()
        valid = sum(1 for dataset in original if dataset.is_valid)
        dedup = index.deduplication_metadata
        metadata: Dict[str, Any] = {
            "totalDatasets": index.active_count(),
            "originalDatasetCount": len(original),
            "validDatasets": valid,
            "invalidDatasets": len(original) - valid,
            "deduplicationEnabled": dedup.enabled,
            "duplicatesFound": dedup.duplicates_found,
            "duplicatesRemoved": dedup.duplicates_removed,
            "lastDeduplicationTime": (
                dedup.last_deduplication_time.isoformat() if dedup.last_deduplication_time else None
            ),
            "processingTimeMs": round(dedup.processing_time_ms, 3),
            "bucketInfo": {
                "name": self._settings.store.bucket,
                "totalObjects": self._total_objects,
                "metadataFiles": self._metadata_files,
            },
            "deduplicationConfig": index.deduplication_config.as_dict(),
            "dateDisplayConfig": self._date_display.as_dict(),
            "state": index.state.value,
            "metrics": self._metrics.snapshot(),
        }
        return CatalogResponse(sections=index.sections, metadata=metadata)

    def _view_config(self, deduplicate: Optional[bool]) -> DeduplicationConfig:
        config = self._index.deduplication_config
        if deduplicate is None or deduplicate == config.enabled:
            return config
        return config.update(enabled=deduplicate)

    def _search(self, query: str, config: DeduplicationConfig) -> SearchResult:
        if config == self._index.deduplication_config:
            return self._index.search(query)
        return self._index.search_view(query, config)

    def search(self, query: str, deduplicate: Optional[bool] = None) -> SearchResponse:
        """Search the active view, or a one-off view when ``deduplicate`` is given."""
        config = self._view_config(deduplicate)
        result = self._search(query, config)
        metadata: Dict[str, Any] = {
            "deduplicationEnabled": config.enabled,
            "searchQuery": query,
        }
        if config.enabled:
            original_count = self._index.search_raw(query).total_results
            metadata["duplicatesInSearch"] = original_count - result.total_results
            metadata["originalResultCount"] = original_count
        LOGGER.debug("search", query=query, results=result.total_results, deduplicate=config.enabled)
        return SearchResponse(
            sections=result.sections,
            total_results=result.total_results,
            metadata=metadata,
        )

    def export_datasets(
        self,
        query: Optional[str] = None,
        deduplicate: Optional[bool] = None,
    ) -> List[Dataset]:
        """Flatten the (optionally searched) view into a list for the writers."""
        if query:
            sections = self.search(query, deduplicate=deduplicate).sections
        else:
            config = self._view_config(deduplicate)
            if config == self._index.deduplication_config:
                sections = self._index.sections
            else:
                sections = self._index.view(config)
        return [dataset for datasets in sections.values() for dataset in datasets]

    def deduplication_report(self) -> Optional[Dict[str, Any]]:
        """Summarise the last deduplication pass; ``None`` when disabled."""
        result = self._index.last_result
        if result is None:
            return None
        return build_report(result, self._index.deduplication_config)
