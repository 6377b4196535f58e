"""JSON Schema (Draft 7) validation of tool arguments."""

from __future__ import annotations

from typing import Any

import jsonschema
from jsonschema import Draft7Validator

from chainpilot.core.errors import SchemaValidationError


def validate_arguments(data: Any, schema: dict[str, Any]) -> None:
    """Validate ``data`` against ``schema``.

    Raises:
        SchemaValidationError: With the first violation's message, its dotted
            data path and the schema path that rejected it
    """
    try:
        Draft7Validator.check_schema(schema)
    except jsonschema.exceptions.SchemaError as exc:
        raise SchemaValidationError(f"Schema is malformed: {exc.message}") from exc

    errors = list(Draft7Validator(schema).iter_errors(data))
    if not errors:
        return

    first = errors[0]
    raise SchemaValidationError(
        first.message,
        path=".".join(str(p) for p in first.path),
        schema_path=".".join(str(p) for p in first.schema_path),
    )
