"""JSON Schema validation of dataset metadata payloads."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import jsonschema

_TEXT = {"type": ["string", "null"]}
_REPEATABLE_TEXT = {"type": ["string", "array", "null"], "items": {"type": "string"}}

DATASET_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "schema.org Dataset metadata",
    "type": "object",
    "properties": {
        "@type": {"type": ["string", "array"]},
        "name": _REPEATABLE_TEXT,
        "description": _REPEATABLE_TEXT,
        "dateCreated": _TEXT,
        "creator": {"type": ["string", "object", "array", "null"]},
        "distribution": {
            "type": ["array", "object", "null"],
            "items": {"type": "object"},
        },
    },
}


@dataclass
class ValidationResult:
    """Outcome of validating a single payload."""

    ok: bool
    errors: List[str]


class MetadataValidator:
    """Checks that a metadata payload has the shape the parser relies on."""

    def __init__(self, schema: Optional[Dict[str, Any]] = None) -> None:
        self._schema = schema or DATASET_SCHEMA
        jsonschema.Draft202012Validator.check_schema(self._schema)
        self._validator = jsonschema.Draft202012Validator(self._schema)

    def validate(self, payload: object) -> ValidationResult:
        errors = [
            f"{error.json_path}: {error.message}"
            for error in sorted(self._validator.iter_errors(payload), key=lambda err: err.json_path)
        ]
        return ValidationResult(ok=not errors, errors=errors)
