"""JSON and CSV exports of cataloged datasets."""
from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import orjson

from catalog.storage.models import Dataset

__all__ = [
    "dataset_rows",
    "render_json",
    "render_csv",
    "write_json",
    "write_csv",
]


def _row(dataset: Dataset) -> Dict[str, object]:
    info = dataset.deduplication_info
    formats = sorted({fmt for item in dataset.distribution for fmt in item.encoding_formats})
    return {
        "id": dataset.id,
        "section": dataset.section or "",
        "projectPath": dataset.project_path,
        "title": dataset.title,
        "description": dataset.description or "",
        "creator": dataset.creator or "",
        "dateCreated": dataset.date_created or "",
        "lastModified": dataset.last_modified.isoformat() if dataset.last_modified else "",
        "isValid": dataset.is_valid,
        "distributionCount": len(dataset.distribution),
        "encodingFormats": ";".join(formats),
        "duplicateCount": info.duplicate_count if info else 1,
        "metadataKey": dataset.metadata_key,
    }


def dataset_rows(datasets: Iterable[Dataset]) -> List[Dict[str, object]]:
    """Flatten datasets into CSV-friendly rows."""
    return [_row(dataset) for dataset in datasets]


def render_json(datasets: Iterable[Dataset], *, metadata: Optional[Dict[str, object]] = None) -> bytes:
    payload = {
        "datasets": [dataset.to_json_dict() for dataset in datasets],
        "metadata": dict(metadata or {}),
    }
    payload["metadata"].setdefault("count", len(payload["datasets"]))
    return orjson.dumps(payload, option=orjson.OPT_INDENT_2)


def render_csv(datasets: Iterable[Dataset]) -> str:
    rows = dataset_rows(datasets)
    if not rows:
        return ""
    fieldnames = sorted({key for row in rows for key in row.keys()})
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def write_json(datasets: Iterable[Dataset], path: Path, *, metadata: Optional[Dict[str, object]] = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(render_json(datasets, metadata=metadata))


def write_csv(datasets: Iterable[Dataset], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        handle.write(render_csv(datasets))
