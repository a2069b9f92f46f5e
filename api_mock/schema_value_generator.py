"""Schema Value Generator - Synthesizes mock values from OpenAPI schemas.

Mirrors SchemaValidator's type dispatch but produces values instead of checking
them, so a freshly generated value validates against its own schema. Field
overrides from the mock config are checked before the schema and always win.

Randomness comes from an injected ``random.Random``, which also reseeds the
Faker instance used for names, emails and filler text, so runs are
reproducible with a seed.
"""

from __future__ import annotations

import logging
import math
import random
import re
import uuid
from datetime import datetime, timezone
from typing import Any

from faker import Faker

from api_mock.field_patterns import MockFieldConfig
from api_mock.registry import ComponentRegistry
from api_mock.schema_validator import (
    DEFAULT_MAX_DEPTH,
    JSON_MEDIA_TYPE,
    as_int,
    as_number,
    compile_pattern,
)

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM = 0
DEFAULT_MAXIMUM = 100
DEFAULT_RANGE_SPAN = 100
DEFAULT_MIN_ITEMS = 1
DEFAULT_MAX_ITEMS = 5
PATTERN_ATTEMPTS = 20
FAKER_LOCALE = "en_US"
PADDING_WORD_POOL = 16


class MockGenerator:
    """Generates schema-conformant mock values.

    Usage:
        generator = MockGenerator(registry, rng=random.Random(42))
        body = generator.generate(response_schema, field_overrides=config.fields)
    """

    def __init__(
        self,
        registry: ComponentRegistry,
        rng: random.Random | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        emit_optional_properties: bool = False,
        faker: Faker | None = None,
    ) -> None:
        """Initialize the generator.

        Args:
            registry: Component registry for $ref resolution.
            rng: Random source; a fresh unseeded one if None.
            max_depth: Nesting depth past which null is produced.
            emit_optional_properties: Emit properties missing from a non-empty
                ``required`` list instead of dropping them.
            faker: Faker instance for names, emails and text. It is reseeded
                from ``rng`` so output stays reproducible; a new one if None.
        """
        self._registry = registry
        self._rng = rng or random.Random()
        self._max_depth = max_depth
        self._emit_optional = emit_optional_properties
        self._faker = faker if faker is not None else Faker(FAKER_LOCALE)
        self._faker.seed_instance(self._rng.getrandbits(64))

    @property
    def rng(self) -> random.Random:
        return self._rng

    def generate(
        self,
        schema: dict[str, Any] | None,
        field_overrides: MockFieldConfig | None = None,
        field_name: str | None = None,
    ) -> Any:
        """Generate a value for a schema fragment.

        Args:
            schema: Schema fragment to generate for.
            field_overrides: Field name -> pattern table; checked before the schema.
            field_name: Name of the property being generated, if any.

        Returns:
            A JSON-compatible value.
        """
        return self._generate(schema, field_overrides, field_name, 0, frozenset())

    def _generate(
        self,
        schema: Any,
        overrides: MockFieldConfig | None,
        field_name: str | None,
        depth: int,
        visited: frozenset[str],
    ) -> Any:
        if overrides is not None:
            pattern = overrides.get(field_name)
            if pattern is not None:
                return pattern.generate(self._rng)

        if depth > self._max_depth:
            logger.debug("Max schema depth %d reached, generating null", self._max_depth)
            return None
        if not isinstance(schema, dict):
            return None

        ref = schema.get("$ref")
        if ref is not None:
            if ref in visited:
                # Circular reference - stop expanding
                return None
            resolved = self._registry.resolve(ref)
            if resolved is not None:
                return self._generate(resolved, overrides, field_name, depth + 1, visited | {ref})
            schema = {}

        schema_type = schema.get("type", "object")
        if schema_type == "string":
            return self._generate_string(schema)
        if schema_type in ("integer", "number"):
            return self._generate_number(schema, schema_type)
        if schema_type == "boolean":
            return self._rng.random() < 0.5
        if schema_type == "array":
            return self._generate_array(schema, overrides, field_name, depth, visited)
        if schema_type == "object":
            return self._generate_object(schema, overrides, depth, visited)
        return None

    # -------------------------------------------------------------------------
    # Strings
    # -------------------------------------------------------------------------

    def _generate_string(self, schema: dict[str, Any]) -> Any:
        fmt = schema.get("format")
        enum_values = schema.get("enum")
        if fmt is None and isinstance(enum_values, list) and enum_values:
            # Enum values are returned as declared, without length fitting
            return self._rng.choice(enum_values)

        value = self._format_value(fmt)
        pattern = schema.get("pattern")
        if isinstance(pattern, str):
            value = self._match_pattern(compile_pattern(pattern), value, schema)
        return self._fit_length(value, schema)

    def _format_value(self, fmt: Any) -> str:
        if fmt == "date-time":
            return datetime.now(timezone.utc).isoformat()
        if fmt == "uuid":
            return str(uuid.UUID(int=self._rng.getrandbits(128), version=4))
        if fmt == "email":
            return self._faker.free_email()
        if fmt == "name":
            return self._faker.name()
        if fmt == "username":
            return self._faker.user_name()
        if fmt == "company":
            return self._faker.company()
        return self._sentence()

    def _sentence(self, min_words: int = 3, max_words: int = 9) -> str:
        nb_words = self._rng.randint(min_words, max_words)
        return self._faker.sentence(nb_words=nb_words, variable_nb_words=False)

    def _match_pattern(self, pattern: re.Pattern[str], value: str, schema: dict[str, Any]) -> str:
        """Best effort: try a few candidates until one matches the pattern."""
        candidates = [value]
        for _ in range(PATTERN_ATTEMPTS):
            candidates.append(self._sentence(1, 3))
            candidates.append(str(uuid.UUID(int=self._rng.getrandbits(128), version=4)))
            candidates.append(str(self._rng.randint(0, 10**6)))
        for candidate in candidates:
            fitted = self._fit_length(candidate, schema)
            if pattern.search(fitted):
                return fitted
        logger.debug("No generated candidate matched pattern %r", pattern.pattern)
        return value

    def _fit_length(self, value: str, schema: dict[str, Any]) -> str:
        """Pad or truncate text into minLength/maxLength, counted in UTF-8 bytes."""
        min_length = as_int(schema.get("minLength"))
        max_length = as_int(schema.get("maxLength"))
        length = _utf8_length(value)

        if min_length is not None and length < min_length:
            pool = self._faker.words(nb=PADDING_WORD_POOL)
            parts = [value]
            while length < min_length:
                word = self._rng.choice(pool)
                parts.append(word)
                length += _utf8_length(word) + 1
            value = " ".join(parts)

        if max_length is not None and length > max_length:
            limit = max(max_length, min_length or 0)
            value = value.encode("utf-8")[:limit].decode("utf-8", errors="ignore")
            # A multi-byte character cut at the limit is dropped whole
            shortfall = (min_length or 0) - _utf8_length(value)
            if shortfall > 0:
                value += " " * shortfall
        return value

    # -------------------------------------------------------------------------
    # Numbers
    # -------------------------------------------------------------------------

    def _generate_number(self, schema: dict[str, Any], schema_type: str) -> int | float:
        low, high = _numeric_range(as_number(schema.get("minimum")), as_number(schema.get("maximum")))

        if schema_type == "integer":
            int_low, int_high = math.ceil(low), math.floor(high)
            if int_low > int_high:
                # No whole number fits the bounds
                return int_low
            return self._rng.randint(int_low, int_high)

        # uniform() may overshoot ``high`` by an ulp
        raw = min(max(self._rng.uniform(low, high), low), high)
        rounded = round(raw, 2)
        return rounded if low <= rounded <= high else raw

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    def _generate_array(
        self,
        schema: dict[str, Any],
        overrides: MockFieldConfig | None,
        field_name: str | None,
        depth: int,
        visited: frozenset[str],
    ) -> list[Any]:
        items_schema = schema.get("items")
        if items_schema is None:
            return []
        if isinstance(items_schema, dict) and items_schema.get("$ref") in visited:
            return []

        min_items = as_int(schema.get("minItems"))
        max_items = as_int(schema.get("maxItems"))
        if min_items is None:
            min_items = DEFAULT_MIN_ITEMS if max_items is None else min(DEFAULT_MIN_ITEMS, max_items)
        if max_items is None:
            max_items = max(DEFAULT_MAX_ITEMS, min_items)
        low = max(min_items, 0)
        count = self._rng.randint(low, max_items) if low <= max_items else low

        return [
            self._generate(items_schema, overrides, field_name, depth + 1, visited)
            for _ in range(count)
        ]

    def _generate_object(
        self,
        schema: dict[str, Any],
        overrides: MockFieldConfig | None,
        depth: int,
        visited: frozenset[str],
    ) -> dict[str, Any]:
        properties = schema.get("properties")
        if not isinstance(properties, dict):
            properties = {}
        required = schema.get("required")
        if not isinstance(required, list):
            required = []
        required = [name for name in required if isinstance(name, str)]
        required_set = set(required)

        mock: dict[str, Any] = {}
        for name, prop_schema in properties.items():
            if not required_set or name in required_set or self._emit_optional:
                mock[name] = self._generate(prop_schema, overrides, name, depth + 1, visited)

        # Required names with no declared schema still need a key to validate
        for name in required:
            if name not in mock:
                mock[name] = self._generate({}, overrides, name, depth + 1, visited)

        return mock


def response_schema_for(operation: dict[str, Any], status_code: int) -> dict[str, Any] | None:
    """Find the JSON response schema for a status code.

    Looks for an exact status key first, then the ``NXX`` wildcard, then
    ``default``. Returns None if no JSON schema is declared.
    """
    responses = operation.get("responses")
    if not isinstance(responses, dict):
        return None

    # YAML documents may use unquoted (integer) status keys
    response_def = responses.get(str(status_code), responses.get(status_code))
    if response_def is None:
        response_def = responses.get(f"{status_code // 100}XX")
    if response_def is None:
        response_def = responses.get("default")
    if not isinstance(response_def, dict):
        return None

    content = response_def.get("content") or {}
    json_content = content.get(JSON_MEDIA_TYPE) or {}
    schema = json_content.get("schema")
    return schema if isinstance(schema, dict) else None


def _numeric_range(
    minimum: int | float | None, maximum: int | float | None
) -> tuple[int | float, int | float]:
    """Apply default bounds; a lone bound that would invert the range moves the other."""
    if minimum is None and maximum is None:
        return DEFAULT_MINIMUM, DEFAULT_MAXIMUM
    if minimum is None:
        low = DEFAULT_MINIMUM if maximum >= DEFAULT_MINIMUM else maximum - DEFAULT_RANGE_SPAN
        return low, maximum
    if maximum is None:
        high = DEFAULT_MAXIMUM if minimum <= DEFAULT_MAXIMUM else minimum + DEFAULT_RANGE_SPAN
        return minimum, high
    return minimum, maximum


def _utf8_length(text: str) -> int:
    return len(text.encode("utf-8"))
