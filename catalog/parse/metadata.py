"""Parsers for schema.org Dataset metadata files."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union

import orjson
from pydantic import ValidationError

from catalog.fetch.objects import ObjectInfo
from catalog.quality.validate import MetadataValidator
from catalog.storage.models import Dataset, Distribution

_SUFFIX_RE = re.compile(r"\.metadata\.json$", re.IGNORECASE)
_VALIDATOR = MetadataValidator()


def _flatten_graph(payload: object) -> Iterable[Dict[str, object]]:
    if isinstance(payload, dict):
        if "@graph" in payload and isinstance(payload["@graph"], list):
            for node in payload["@graph"]:
                if isinstance(node, dict):
                    yield from _flatten_graph(node)
        else:
            yield payload
    elif isinstance(payload, list):
        for item in payload:
            if isinstance(item, dict):
                yield from _flatten_graph(item)


def _is_dataset_type(type_value: object) -> bool:
    if isinstance(type_value, list):
        return any(_is_dataset_type(item) for item in type_value)
    if isinstance(type_value, str):
        return type_value.rsplit("/", 1)[-1].rsplit(":", 1)[-1].lower() == "dataset"
    return False


def _dataset_node(payload: object) -> object:
    """Pick the Dataset node out of a JSON-LD document.

    A document without a typed Dataset node falls back to its first object so
    bare ``{"name": ...}`` payloads keep working. Non-object payloads are
    returned unchanged and rejected by schema validation.
    """
    nodes = list(_flatten_graph(payload))
    for node in nodes:
        if _is_dataset_type(node.get("@type")):
            return node
    if nodes:
        return nodes[0]
    return payload


def _first_str(value: object) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str) and item.strip():
                return item.strip()
    return None


def _creator_name(creator: object) -> Optional[str]:
    if isinstance(creator, str):
        return creator.strip() or None
    if isinstance(creator, dict):
        return _first_str(creator.get("name"))
    if isinstance(creator, list):
        names = [name for name in (_creator_name(item) for item in creator) if name]
        return ", ".join(names) or None
    return None


def _distributions(raw: object) -> List[Distribution]:
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    return [Distribution.model_validate(item) for item in raw if isinstance(item, dict)]


def key_parts(object_key: str) -> Tuple[str, Optional[str], str]:
    """Split a metadata key into ``(id, section, project_path)``.

    The id is the key without its ``.metadata.json`` suffix and the section
    the first path segment; keys at the bucket root have no section.
    """
    dataset_id = _SUFFIX_RE.sub("", object_key)
    parts = object_key.split("/")
    section = parts[0] if len(parts) > 1 and parts[0] else None
    project_path = "/".join(parts[1:-1])
    return dataset_id, section, project_path


def invalid_dataset(
    object_key: str,
    error: str,
    *,
    last_modified: Optional[datetime] = None,
) -> Dataset:
    """Build the placeholder record for metadata that could not be parsed.

    The placeholder title embeds the id so two broken files never share a
    title.
    """
    dataset_id, section, project_path = key_parts(object_key)
    return Dataset(
        id=dataset_id,
        title=f"Invalid Metadata ({dataset_id})",
        description=error,
        metadata_key=object_key,
        is_valid=False,
        section=section,
        project_path=project_path,
        last_modified=last_modified,
    )


def parse_dataset(
    raw: Union[str, bytes],
    object_key: str,
    object_info: Optional[ObjectInfo] = None,
) -> Dataset:
    """Convert one metadata payload into a Dataset; never raises."""
    last_modified = object_info.last_modified if object_info else None
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        return invalid_dataset(object_key, f"Malformed JSON: {exc}", last_modified=last_modified)

    node = _dataset_node(payload)
    validation = _VALIDATOR.validate(node)
    if not validation.ok:
        return invalid_dataset(object_key, "; ".join(validation.errors), last_modified=last_modified)

    dataset_id, section, project_path = key_parts(object_key)
    try:
        return Dataset(
            id=dataset_id,
            title=_first_str(node.get("name")) or "",
            description=_first_str(node.get("description")),
            creator=_creator_name(node.get("creator")),
            date_created=node.get("dateCreated"),
            distribution=_distributions(node.get("distribution")),
            metadata_key=object_key,
            is_valid=True,
            section=section,
            project_path=project_path,
            last_modified=last_modified,
        )
    except ValidationError as exc:
        return invalid_dataset(object_key, str(exc), last_modified=last_modified)
