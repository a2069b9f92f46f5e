"""Schema Validator - Validates request values against OpenAPI schema fragments.

Recursive descent over the schema: ``$ref`` is resolved through the component
registry, then the ``type`` keyword selects the checks. Only the keyword subset
this server consumes is supported (type, properties, required, items,
min/maxItems, min/maxLength, pattern, minimum/maximum). Undeclared object keys
are ignored so request bodies may be supersets of their schemas.

Validation stops at the first failure; sibling branches are not attempted.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

from api_mock.errors import (
    InvalidJsonBody,
    InvalidSchemaPattern,
    MissingHeaders,
    MissingRequestBody,
    SchemaDepthExceeded,
    ValidationFailure,
)
from api_mock.registry import ComponentRegistry

DEFAULT_MAX_DEPTH = 64
JSON_MEDIA_TYPE = "application/json"


class SchemaValidator:
    """Validates JSON values against schema fragments.

    Usage:
        validator = SchemaValidator(registry)
        validator.validate(body, schema)  # raises ValidationFailure
    """

    def __init__(self, registry: ComponentRegistry, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self._registry = registry
        self._max_depth = max_depth

    def validate(self, value: Any, schema: dict[str, Any] | None) -> None:
        """Validate a value against a schema fragment.

        Raises:
            ValidationFailure: The value violates a constraint.
            InvalidSchemaPattern: The schema's ``pattern`` does not compile.
            SchemaDepthExceeded: Nesting went past ``max_depth``.
        """
        self._validate(value, schema, "$", 0)

    def _validate(self, value: Any, schema: Any, path: str, depth: int) -> None:
        if depth > self._max_depth:
            raise SchemaDepthExceeded(self._max_depth)
        if not isinstance(schema, dict):
            return

        if "$ref" in schema:
            resolved = self._registry.resolve(schema["$ref"])
            if resolved is not None:
                self._validate(value, resolved, path, depth + 1)
                return

        schema_type = schema.get("type")
        if schema_type == "object":
            self._validate_object(value, schema, path, depth)
        elif schema_type == "array":
            self._validate_array(value, schema, path, depth)
        elif schema_type == "string":
            self._validate_string(value, schema, path)
        elif schema_type in ("number", "integer"):
            self._validate_number(value, schema, path)
        elif schema_type == "boolean":
            if not isinstance(value, bool):
                raise ValidationFailure("wrong_type", "Expected boolean type", path)
        # Any other or absent type: no constraint

    def _validate_object(self, value: Any, schema: dict[str, Any], path: str, depth: int) -> None:
        if not isinstance(value, dict):
            raise ValidationFailure("wrong_type", "Expected object type", path)

        required = schema.get("required")
        if not isinstance(required, list):
            # Swagger 2 style `required: true` on a schema carries no field names
            required = []
        missing = [name for name in required if isinstance(name, str) and name not in value]
        if missing:
            raise ValidationFailure(
                "missing_required", "Missing required fields", path, fields=missing
            )

        properties = schema.get("properties")
        if not isinstance(properties, dict):
            return
        for name, prop_schema in properties.items():
            if name in value:
                self._validate(value[name], prop_schema, f"{path}.{name}", depth + 1)

    def _validate_array(self, value: Any, schema: dict[str, Any], path: str, depth: int) -> None:
        if not isinstance(value, list):
            raise ValidationFailure("wrong_type", "Expected array type", path)

        min_items = as_int(schema.get("minItems"))
        if min_items is not None and len(value) < min_items:
            raise ValidationFailure(
                "array_too_short", "Array too short", path,
                minItems=min_items, actual=len(value),
            )

        max_items = as_int(schema.get("maxItems"))
        if max_items is not None and len(value) > max_items:
            raise ValidationFailure(
                "array_too_long", "Array too long", path,
                maxItems=max_items, actual=len(value),
            )

        items_schema = schema.get("items")
        if items_schema is not None:
            for index, item in enumerate(value):
                self._validate(item, items_schema, f"{path}[{index}]", depth + 1)

    def _validate_string(self, value: Any, schema: dict[str, Any], path: str) -> None:
        if not isinstance(value, str):
            raise ValidationFailure("wrong_type", "Expected string type", path)

        # Length bounds apply to the UTF-8 byte length, not the character count
        length = len(value.encode("utf-8"))

        min_length = as_int(schema.get("minLength"))
        if min_length is not None and length < min_length:
            raise ValidationFailure(
                "string_too_short", "String too short", path,
                minLength=min_length, actual=length,
            )

        max_length = as_int(schema.get("maxLength"))
        if max_length is not None and length > max_length:
            raise ValidationFailure(
                "string_too_long", "String too long", path,
                maxLength=max_length, actual=length,
            )

        pattern = schema.get("pattern")
        if isinstance(pattern, str):
            if not compile_pattern(pattern).search(value):
                raise ValidationFailure(
                    "pattern_mismatch", "String does not match pattern", path,
                    pattern=pattern,
                )

    def _validate_number(self, value: Any, schema: dict[str, Any], path: str) -> None:
        # bool is an int subclass but not a JSON number
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationFailure("wrong_type", "Expected numeric type", path)

        minimum = as_number(schema.get("minimum"))
        if minimum is not None and value < minimum:
            raise ValidationFailure(
                "number_too_small", "Number too small", path,
                minimum=minimum, actual=value,
            )

        maximum = as_number(schema.get("maximum"))
        if maximum is not None and value > maximum:
            raise ValidationFailure(
                "number_too_large", "Number too large", path,
                maximum=maximum, actual=value,
            )


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a schema pattern, mapping regex errors to InvalidSchemaPattern."""
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidSchemaPattern(pattern, str(e)) from e


def as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def as_number(value: Any) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


# =============================================================================
# Request-level checks
# =============================================================================


def required_headers(operation: dict[str, Any]) -> list[str]:
    """Names of header parameters the operation marks as required."""
    parameters = operation.get("parameters") or []
    return [
        param["name"]
        for param in parameters
        if isinstance(param, dict)
        and param.get("in") == "header"
        and param.get("required") is True
        and isinstance(param.get("name"), str)
    ]


def validate_headers(operation: dict[str, Any], headers: dict[str, str]) -> None:
    """Check that every required header is present (names compared case-insensitively).

    Raises:
        MissingHeaders: Listing every missing header name.
    """
    present = {name.lower() for name in headers}
    missing = [name for name in required_headers(operation) if name.lower() not in present]
    if missing:
        raise MissingHeaders(missing)


def request_body_schema(operation: dict[str, Any]) -> dict[str, Any] | None:
    """Extract ``requestBody.content["application/json"].schema``, if declared."""
    request_body = operation.get("requestBody")
    if not isinstance(request_body, dict):
        return None
    content = request_body.get("content") or {}
    json_content = content.get(JSON_MEDIA_TYPE) or {}
    schema = json_content.get("schema")
    return schema if isinstance(schema, dict) else None


def validate_request_body(
    operation: dict[str, Any],
    body: bytes | None,
    validator: SchemaValidator,
) -> Any:
    """Parse and validate a raw request body against the operation's JSON schema.

    Operations without a JSON body schema accept anything. An empty body is
    treated as absent.

    Returns:
        The parsed body, or None if there was none to validate.

    Raises:
        MissingRequestBody: Body absent but ``requestBody.required`` is true.
        InvalidJsonBody: Body is not valid JSON.
        ValidationFailure: Parsed body violates the schema.
    """
    schema = request_body_schema(operation)
    if schema is None:
        return None

    if not body:
        if operation["requestBody"].get("required") is True:
            raise MissingRequestBody()
        return None

    try:
        value = json.loads(body, parse_constant=_reject_constant, parse_float=_parse_finite_float)
    except ValueError as e:
        raise InvalidJsonBody(str(e)) from e

    validator.validate(value, schema)
    return value


def _reject_constant(name: str) -> Any:
    """``json.loads`` hook for NaN/Infinity/-Infinity, which JSON does not allow."""
    raise ValueError(f"Invalid JSON constant: {name}")


def _parse_finite_float(text: str) -> float:
    # Literals like 1e999 overflow to inf, which cannot be sent back as JSON
    number = float(text)
    if not math.isfinite(number):
        raise ValueError(f"Number out of range: {text}")
    return number
