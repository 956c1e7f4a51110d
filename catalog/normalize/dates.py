"""Timestamp parsing and display helpers."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as dateparser
from pydantic import BaseModel, ConfigDict, StrictBool, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from catalog.quality.config import ConfigurationError, describe_validation_error

_UNITS = (
    ("year", 365 * 24 * 3600),
    ("month", 30 * 24 * 3600),
    ("week", 7 * 24 * 3600),
    ("day", 24 * 3600),
    ("hour", 3600),
    ("minute", 60),
)


class DateDisplayConfig(BaseModel):
    """How object timestamps are rendered for humans."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    format: Literal["relative", "absolute", "both"] = "relative"
    show_time: StrictBool = True
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def _known_zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    @classmethod
    def coerce(cls, value: Union["DateDisplayConfig", Mapping[str, Any], None]) -> "DateDisplayConfig":
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise ConfigurationError(
                f"DateDisplayConfig requires a mapping, got {type(value).__name__}"
            )
        try:
            return cls.model_validate(dict(value))
        except ValidationError as exc:
            raise ConfigurationError(describe_validation_error(exc, "DateDisplayConfig")) from exc

    def update(self, **changes: Any) -> "DateDisplayConfig":
        return self.coerce({**self.model_dump(), **changes})

    def as_dict(self) -> dict:
        return self.model_dump(by_alias=True)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an object-store timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if not text:
            return None
        try:
            parsed = dateparser.parse(text)
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_relative(value: datetime, *, now: Optional[datetime] = None) -> str:
    """Render ``value`` relative to ``now``, e.g. ``"3 hours ago"``."""
    reference = now or datetime.now(timezone.utc)
    delta = (reference - value).total_seconds()
    seconds = abs(delta)
    if seconds < 60:
        return "just now"
    for unit, size in _UNITS:
        if seconds >= size:
            count = int(seconds // size)
            label = f"{count} {unit}{'' if count == 1 else 's'}"
            return f"{label} ago" if delta > 0 else f"in {label}"
    return "just now"


def format_absolute(value: datetime, config: DateDisplayConfig) -> str:
    zone = ZoneInfo(config.timezone)
    local = value.astimezone(zone)
    if config.show_time:
        return local.strftime("%b %d, %Y %H:%M ") + (local.tzname() or config.timezone)
    return local.strftime("%b %d, %Y")


def format_timestamp(
    value: Optional[datetime],
    config: DateDisplayConfig,
    *,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Render a timestamp per ``config``; ``None`` when the timestamp is unknown."""
    if value is None:
        return None
    if config.format == "relative":
        return format_relative(value, now=now)
    if config.format == "absolute":
        return format_absolute(value, config)
    return f"{format_relative(value, now=now)} ({format_absolute(value, config)})"
