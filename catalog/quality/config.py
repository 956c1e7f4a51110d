"""Validated configuration for title-based deduplication."""
from __future__ import annotations

from typing import Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, StrictBool, ValidationError
from pydantic.alias_generators import to_camel

from catalog.quality.keys import normalize_title


class ConfigurationError(ValueError):
    """Raised when a configuration payload fails validation."""


def describe_validation_error(exc: ValidationError, model: str) -> str:
    problems = [
        f"{'.'.join(str(part) for part in error['loc']) or model}: {error['msg']}"
        for error in exc.errors()
    ]
    return f"Invalid {model}: " + "; ".join(problems)


class DeduplicationConfig(BaseModel):
    """How datasets sharing a title are collapsed.

    Only the ``title-based`` strategy exists; it is still validated as an
    enumeration so that unknown strategies are rejected up front. The default
    configuration is disabled, in which case deduplication does no grouping
    work at all.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    enabled: StrictBool = False
    strategy: Literal["title-based"] = "title-based"
    keep_latest: StrictBool = True
    case_sensitive: StrictBool = False

    @classmethod
    def coerce(cls, value: Union["DeduplicationConfig", Mapping[str, Any], None]) -> "DeduplicationConfig":
        """Build a config from an instance or mapping, raising ConfigurationError."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise ConfigurationError(
                f"DeduplicationConfig requires a mapping, got {type(value).__name__}"
            )
        try:
            return cls.model_validate(dict(value))
        except ValidationError as exc:
            raise ConfigurationError(describe_validation_error(exc, "DeduplicationConfig")) from exc

    @classmethod
    def create_default(cls) -> "DeduplicationConfig":
        return cls()

    @classmethod
    def create_enabled(cls, **overrides: Any) -> "DeduplicationConfig":
        return cls.coerce({"enabled": True, **overrides})

    def update(self, **changes: Any) -> "DeduplicationConfig":
        """Return a new validated config with ``changes`` applied."""
        return self.coerce({**self.model_dump(), **changes})

    def normalize_title(self, title: str) -> str:
        return normalize_title(title, case_sensitive=self.case_sensitive)

    def titles_match(self, first: str, second: str) -> bool:
        if not self.enabled:
            return False
        return self.normalize_title(first) == self.normalize_title(second)

    def as_dict(self) -> dict:
        return self.model_dump(by_alias=True)

    def __str__(self) -> str:
        return (
            f"DeduplicationConfig(enabled={self.enabled}, strategy={self.strategy}, "
            f"keepLatest={self.keep_latest}, caseSensitive={self.case_sensitive})"
        )
