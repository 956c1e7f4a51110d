"""Settings for a catalog run, read from TOML, the environment and CLI flags."""
from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from catalog.normalize.dates import DateDisplayConfig
from catalog.quality.config import ConfigurationError, DeduplicationConfig, describe_validation_error


class StoreSettings(BaseModel):
    """Where the bucket lives and how to talk to it."""

    endpoint: str = ""
    bucket: str = ""
    use_ssl: bool = True
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_keys: int = Field(default=1000, gt=0, le=1000)
    concurrency: int = Field(default=8, gt=0)
    retry_attempts: int = Field(default=4, gt=0)
    retry_backoff_seconds: float = Field(default=1.0, ge=0)
    user_agent: str = "s3-dataset-catalog/0.1"

    @field_validator("endpoint", mode="before")
    @classmethod
    def _strip_endpoint(cls, value: Optional[str]) -> str:
        return (value or "").strip().rstrip("/")

    def base_url(self) -> str:
        """Return the endpoint with a scheme, defaulting by ``use_ssl``."""
        if not self.endpoint:
            raise ConfigurationError(
                "S3 endpoint must be provided via settings, --endpoint or S3_ENDPOINT"
            )
        if "://" in self.endpoint:
            return self.endpoint
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.endpoint}"

    def bucket_url(self) -> str:
        if not self.bucket:
            raise ConfigurationError(
                "S3 bucket must be provided via settings, --bucket or S3_BUCKET_NAME"
            )
        return f"{self.base_url()}/{self.bucket}"


class CatalogSettings(BaseModel):
    """Explicit configuration handed to the catalog service."""

    store: StoreSettings = Field(default_factory=StoreSettings)
    deduplication: DeduplicationConfig = Field(default_factory=DeduplicationConfig)
    date_display: DateDisplayConfig = Field(default_factory=DateDisplayConfig)


def load_settings_file(path: Path) -> Dict[str, Any]:
    """Read the TOML configuration file; a missing file yields no settings."""
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def build_settings(
    raw: Mapping[str, Any],
    *,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> CatalogSettings:
    """Merge file settings, ``S3_*`` environment variables and CLI overrides."""
    env = os.environ if environ is None else environ
    store = dict(raw.get("store", {}))
    if env.get("S3_ENDPOINT"):
        store["endpoint"] = env["S3_ENDPOINT"]
    if env.get("S3_BUCKET_NAME"):
        store["bucket"] = env["S3_BUCKET_NAME"]
    payload: Dict[str, Any] = {
        "store": store,
        "deduplication": dict(raw.get("deduplication", {})),
        "date_display": dict(raw.get("date_display", {})),
    }
    for section, values in (overrides or {}).items():
        payload.setdefault(section, {}).update(
            {key: value for key, value in values.items() if value is not None}
        )
    try:
        return CatalogSettings.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(describe_validation_error(exc, "settings")) from exc
