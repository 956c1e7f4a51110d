"""Human-readable rendering of browse and search responses."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from catalog.index.catalog_index import Sections
from catalog.normalize.dates import DateDisplayConfig, format_timestamp
from catalog.storage.models import Dataset

RULE = "=" * 50
THIN_RULE = "-" * 30


def _plural(count: int, word: str, plural: Optional[str] = None) -> str:
    return f"{count} {word if count == 1 else (plural or word + 's')}"


def highlight_terms(text: str, query: str) -> str:
    """Wrap query words longer than two characters in ``**`` markers."""
    terms = [term for term in query.lower().split() if len(term) > 2]
    for term in terms:
        text = re.sub(f"({re.escape(term)})", r"**\1**", text, flags=re.IGNORECASE)
    return text


def duplicate_marker(dataset: Dataset) -> str:
    info = dataset.deduplication_info
    if info is None or info.is_duplicate or info.duplicate_count <= 1:
        return ""
    removed = info.duplicate_count - 1
    return f" ({_plural(removed, 'duplicate')} removed)"


def render_dataset(
    dataset: Dataset,
    *,
    date_config: Optional[DateDisplayConfig] = None,
    query: Optional[str] = None,
    verbose: bool = False,
    now: Optional[datetime] = None,
) -> List[str]:
    """Render one dataset as indented lines; dates only when ``date_config`` is set."""
    flag = "" if dataset.is_valid else " [invalid]"
    lines = [f"  * {dataset.title}{flag}{duplicate_marker(dataset)}"]
    if dataset.description:
        description = highlight_terms(dataset.description, query) if query else dataset.description
        lines.append(f"    {description}")
    if date_config is not None and dataset.timestamp_available:
        lines.append(f"    Last modified: {format_timestamp(dataset.last_modified, date_config, now=now)}")
    if dataset.creator or dataset.date_created:
        lines.append(
            f"    By: {dataset.creator or 'Unknown'} | Created: {dataset.date_created or 'Unknown'}"
        )
    if dataset.distribution:
        lines.append(f"    {_plural(len(dataset.distribution), 'download')} available")
        if verbose:
            for item in dataset.distribution:
                formats = ", ".join(item.encoding_formats)
                lines.append(f"      - {item.label or formats or 'Download'} ({formats or 'N/A'})")
    lines.append("")
    return lines


def _render_sections(
    sections: Sections,
    noun: str,
    noun_plural: str,
    *,
    date_config: Optional[DateDisplayConfig],
    query: Optional[str],
    verbose: bool,
    now: Optional[datetime],
) -> List[str]:
    lines: List[str] = []
    for section, datasets in sections.items():
        lines.append("")
        lines.append(f"[ {section.upper()} ] ({_plural(len(datasets), noun, noun_plural)})")
        for dataset in datasets:
            lines.extend(
                render_dataset(dataset, date_config=date_config, query=query, verbose=verbose, now=now)
            )
    return lines


def render_browse(
    sections: Sections,
    metadata: Dict[str, Any],
    *,
    date_config: Optional[DateDisplayConfig] = None,
    verbose: bool = False,
    now: Optional[datetime] = None,
) -> str:
    lines = ["S3 Dataset Catalog", RULE, f"Total datasets: {metadata.get('totalDatasets', 0)}"]
    if metadata.get("deduplicationEnabled"):
        lines.append(f"Deduplication: {metadata.get('duplicatesRemoved', 0)} duplicates removed")
    if date_config is not None:
        lines.append(f"Date format: {date_config.format}")
    if not sections:
        lines.append("")
        lines.append("No datasets found.")
        return "\n".join(lines)
    lines.extend(
        _render_sections(sections, "dataset", "datasets", date_config=date_config, query=None, verbose=verbose, now=now)
    )
    lines.append(RULE)
    lines.append(
        f"Browse complete - {_plural(len(sections), 'section')}, "
        f"{_plural(metadata.get('totalDatasets', 0), 'dataset')}"
    )
    if verbose:
        bucket = metadata.get("bucketInfo", {})
        lines.extend([
            "",
            "Statistics",
            THIN_RULE,
            f"Bucket: {bucket.get('name', '')}",
            f"Total objects in bucket: {bucket.get('totalObjects', 0)}",
            f"Metadata files found: {bucket.get('metadataFiles', 0)}",
            f"Valid datasets: {metadata.get('validDatasets', 0)}",
            f"Invalid datasets: {metadata.get('invalidDatasets', 0)}",
        ])
        if metadata.get("deduplicationEnabled"):
            lines.append(f"Original datasets: {metadata.get('originalDatasetCount', 0)}")
            lines.append(f"Duplicate groups: {metadata.get('duplicatesFound', 0)}")
            lines.append(f"Processing time: {round(metadata.get('processingTimeMs') or 0)}ms")
    return "\n".join(lines)


def render_search(
    query: str,
    sections: Sections,
    total_results: int,
    metadata: Dict[str, Any],
    *,
    date_config: Optional[DateDisplayConfig] = None,
    verbose: bool = False,
    now: Optional[datetime] = None,
) -> str:
    lines = ["Search Results", RULE, f'Query: "{query}"', f"Found: {_plural(total_results, 'dataset')}"]
    if metadata.get("deduplicationEnabled"):
        lines.append(f"Deduplication: {metadata.get('duplicatesInSearch', 0)} duplicates filtered from results")
        original = metadata.get("originalResultCount")
        if original is not None and original != total_results:
            lines.append(f"Original matches: {original}")
    if date_config is not None:
        lines.append(f"Date format: {date_config.format}")
    if total_results == 0:
        lines.append("")
        lines.append("No matching datasets found.")
        return "\n".join(lines)
    lines.extend(
        _render_sections(sections, "match", "matches", date_config=date_config, query=query, verbose=verbose, now=now)
    )
    lines.append(RULE)
    lines.append(
        f"Search complete - {_plural(total_results, 'match', 'matches')} in {_plural(len(sections), 'section')}"
    )
    return "\n".join(lines)
