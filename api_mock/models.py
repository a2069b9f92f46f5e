"""Internal data models for api-mock.

Configuration and log records use Pydantic v2; the transport boundary
(MockRequest/MockResponse) uses plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from api_mock.field_patterns import MockFieldConfig
from api_mock.schema_validator import DEFAULT_MAX_DEPTH

DEFAULT_STATUS_CODE = 200


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class MockConfig(BaseModel):
    """Top-level mock behavior configuration (YAML or JSON file).

    Read as one snapshot per request. Replaced wholesale through the admin
    endpoint, never mutated in place.
    """

    model_config = ConfigDict(extra="forbid")

    delay: int | None = Field(
        default=None, ge=0, description="Artificial delay before generating a response, in ms"
    )
    status_code: int = Field(
        default=DEFAULT_STATUS_CODE, ge=100, le=599, description="Status code of every mock response"
    )
    headers: dict[str, str] = Field(
        default_factory=dict, description="Extra headers added to every mock response"
    )
    fields: MockFieldConfig | None = Field(
        default=None, description="Per-field generation overrides"
    )
    emit_optional_properties: bool = Field(
        default=False,
        description="Emit properties not listed in a non-empty 'required' list",
    )
    max_schema_depth: int = Field(
        default=DEFAULT_MAX_DEPTH, ge=1, description="Recursion limit for validation and generation"
    )
    request_log_limit: int | None = Field(
        default=None, ge=1, description="Keep at most this many request log entries (unbounded if unset)"
    )


# =============================================================================
# Request Log Models
# =============================================================================


class RequestLogEntry(BaseModel):
    """One handled request, recorded whether it succeeded or failed."""

    model_config = ConfigDict(extra="forbid")

    timestamp: datetime = Field(description="When handling finished (UTC)")
    method: str = Field(description="HTTP method")
    path: str = Field(description="Request path")
    headers: dict[str, str] = Field(default_factory=dict, description="Request header snapshot")
    response_status: int = Field(description="Status code sent back")


# =============================================================================
# Transport Boundary
# =============================================================================


@dataclass
class MockRequest:
    """A raw inbound request as handed over by the transport layer."""

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None


@dataclass
class MockResponse:
    """Status, headers and JSON body to send back."""

    status_code: int
    body: Any
    headers: dict[str, str] = field(default_factory=dict)
