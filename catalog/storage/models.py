"""Pydantic models for cataloged datasets."""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CatalogModel(BaseModel):
    """Base model serialising to the camelCase keys used in JSON output."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Distribution(CatalogModel):
    """A schema.org DataDownload entry; opaque to indexing and deduplication.

    Values are kept as published. schema.org allows most properties to repeat,
    so any field may hold a list.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    type: Optional[Any] = Field(default=None, alias="@type")
    name: Optional[Any] = None
    description: Optional[Any] = None
    content_url: Optional[Any] = None
    encoding_format: Optional[Any] = None
    content_size: Optional[Any] = None
    upload_date: Optional[Any] = None
    date_published: Optional[Any] = None
    keywords: Optional[Any] = None
    license: Optional[Any] = None
    creator: Optional[Any] = None
    in_language: Optional[Any] = None
    measurement_method: Optional[Any] = None
    measurement_technique: Optional[Any] = None
    sha256: Optional[Any] = None
    version: Optional[Any] = None

    @property
    def encoding_formats(self) -> List[str]:
        return _strings(self.encoding_format)

    @property
    def label(self) -> Optional[str]:
        names = _strings(self.name)
        return names[0] if names else None


def _strings(value: Any) -> List[str]:
    items = value if isinstance(value, list) else [value]
    return [str(item).strip() for item in items if isinstance(item, (str, int, float)) and str(item).strip()]


class DeduplicationInfo(CatalogModel):
    """Outcome of a deduplication pass for a single dataset."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    is_duplicate: bool = False
    duplicate_count: int = 1
    kept_instead_id: Optional[str] = None


UNIQUE = DeduplicationInfo()


class Dataset(CatalogModel):
    """One cataloged item: schema.org metadata plus the object timestamp."""

    id: str
    title: str = ""
    description: Optional[str] = None
    creator: Optional[str] = None
    date_created: Optional[str] = None
    distribution: List[Distribution] = Field(default_factory=list)
    metadata_key: str = ""
    is_valid: bool = True
    section: Optional[str] = None
    project_path: str = ""
    last_modified: Optional[datetime] = None
    deduplication_info: Optional[DeduplicationInfo] = None

    @property
    def timestamp_available(self) -> bool:
        return self.last_modified is not None

    def annotated(self, info: DeduplicationInfo) -> "Dataset":
        """Return a copy carrying ``info``; the receiver is left untouched."""
        return self.model_copy(update={"deduplication_info": info})
