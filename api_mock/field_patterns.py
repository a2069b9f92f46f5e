"""Field Pattern Providers - Configured generators that override schema generation.

A pattern is bound to a property name in the mock config. When the generator
reaches a property with that name, the pattern produces the value and the
schema is not consulted. Patterns never look at the schema they replace.

Config example (YAML):
    fields:
      patterns:
        status: {type: enum, values: [active, suspended]}
        balance: {type: number, min: 0, max: 5000, decimals: 2}
        card_number: {type: card, length: 16}
        created: {type: date, format: "%Y-%m-%d"}
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Self, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_CARD_LENGTH = 16


class EnumPattern(BaseModel):
    """Uniform pick from a fixed list of values."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["enum"] = "enum"
    values: list[Any] = Field(min_length=1, description="Candidate values")

    def generate(self, rng: random.Random) -> Any:
        return rng.choice(self.values)


class NumberPattern(BaseModel):
    """Uniform draw from [min, max], rounded to ``decimals`` places (whole number if unset)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["number"] = "number"
    min: float | None = Field(default=None, description="Lower bound (default 0)")
    max: float | None = Field(default=None, description="Upper bound (default 100)")
    decimals: int | None = Field(default=None, ge=0, description="Decimal places to keep")

    @model_validator(mode="after")
    def check_range(self) -> Self:
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min must not be greater than max")
        return self

    def generate(self, rng: random.Random) -> int | float:
        low = self.min if self.min is not None else 0.0
        high = self.max if self.max is not None else 100.0
        num = rng.uniform(low, high)
        if self.decimals is None:
            return int(round(num))
        return round(num, self.decimals)


class CardPattern(BaseModel):
    """Fixed-length string of random decimal digits (payment-card-like)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["card"] = "card"
    length: int = Field(default=DEFAULT_CARD_LENGTH, ge=1, description="Number of digits")

    def generate(self, rng: random.Random) -> str:
        return "".join(str(rng.randrange(10)) for _ in range(self.length))


class DatePattern(BaseModel):
    """Current UTC time, ISO-8601 with milliseconds unless a strftime format is given."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["date"] = "date"
    format: str | None = Field(default=None, description="strftime format string")

    def generate(self, rng: random.Random) -> str:
        return format_timestamp(datetime.now(timezone.utc), self.format)


FieldPattern = Annotated[
    Union[EnumPattern, NumberPattern, CardPattern, DatePattern],
    Field(discriminator="type"),
]


def format_timestamp(moment: datetime, fmt: str | None = None) -> str:
    """Format a timestamp; the default is ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    if fmt is not None:
        return moment.strftime(fmt)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class MockFieldConfig(BaseModel):
    """Field name -> pattern table loaded from the ``fields`` config section."""

    model_config = ConfigDict(extra="forbid")

    patterns: dict[str, FieldPattern] = Field(
        default_factory=dict, description="Field name -> pattern mapping"
    )

    def get(self, field_name: str | None) -> EnumPattern | NumberPattern | CardPattern | DatePattern | None:
        if field_name is None:
            return None
        return self.patterns.get(field_name)
