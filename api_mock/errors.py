"""Request failure kinds and their JSON error bodies.

Every failure raised while handling a mock request is a MockError subclass
carrying the HTTP status it maps to. RequestHandler converts them into
responses in one place; none reach the transport layer.
"""

from __future__ import annotations

from typing import Any


class MockError(Exception):
    """Base class for failures converted into structured error responses."""

    status_code = 500
    error = "Internal server error"

    def context(self) -> dict[str, Any]:
        """Failure-specific fields added next to the ``error`` key."""
        return {}

    def to_body(self) -> dict[str, Any]:
        return {"error": self.error, **self.context()}

    def __str__(self) -> str:
        details = ", ".join(f"{k}={v!r}" for k, v in self.context().items())
        return f"{self.error} ({details})" if details else self.error


# =============================================================================
# Routing
# =============================================================================


class RouteNotFound(MockError):
    status_code = 404
    error = "Route not found"

    def __init__(self, path: str, method: str) -> None:
        super().__init__(path, method)
        self.path = path
        self.method = method

    def context(self) -> dict[str, Any]:
        return {"requested_path": self.path, "method": self.method}


class MethodNotAllowed(MockError):
    status_code = 405
    error = "Method not allowed"

    def __init__(self, allowed_methods: list[str]) -> None:
        super().__init__(allowed_methods)
        self.allowed_methods = allowed_methods

    def context(self) -> dict[str, Any]:
        return {"allowed_methods": self.allowed_methods}


# =============================================================================
# Request checks
# =============================================================================


class MissingHeaders(MockError):
    status_code = 400
    error = "Missing required headers"

    def __init__(self, missing_headers: list[str]) -> None:
        super().__init__(missing_headers)
        self.missing_headers = missing_headers

    def context(self) -> dict[str, Any]:
        return {"missing_headers": self.missing_headers}


class MissingRequestBody(MockError):
    status_code = 400
    error = "Missing required request body"


class InvalidJsonBody(MockError):
    status_code = 400
    error = "Invalid JSON in request body"

    def __init__(self, details: str) -> None:
        super().__init__(details)
        self.details = details

    def context(self) -> dict[str, Any]:
        return {"details": self.details}


class ValidationFailure(MockError):
    """A value violated one constraint of its schema.

    Attributes:
        kind: Violated constraint (missing_required, wrong_type, string_too_long, ...)
        error: Human-readable description used as the ``error`` field
        path: JSONPath of the offending value (e.g., "$.items[0].name")
        details: Constraint context such as bounds, pattern and actual value
    """

    status_code = 400

    def __init__(self, kind: str, error: str, path: str = "$", **details: Any) -> None:
        super().__init__(kind, error, path)
        self.kind = kind
        self.error = error
        self.path = path
        self.details = details

    def context(self) -> dict[str, Any]:
        return {"kind": self.kind, "path": self.path, **self.details}


# =============================================================================
# Server-side failures
# =============================================================================


class InvalidSchemaPattern(MockError):
    """A schema ``pattern`` is not a valid regular expression (a defect in the OpenAPI document)."""

    error = "Invalid pattern in schema"

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(pattern, reason)
        self.pattern = pattern
        self.reason = reason

    def context(self) -> dict[str, Any]:
        return {"pattern": self.pattern, "details": self.reason}


class SchemaDepthExceeded(MockError):
    error = "Schema nesting too deep"

    def __init__(self, max_depth: int) -> None:
        super().__init__(max_depth)
        self.max_depth = max_depth

    def context(self) -> dict[str, Any]:
        return {"max_depth": self.max_depth}


class StateLockError(MockError):
    def context(self) -> dict[str, Any]:
        return {"details": "Failed to acquire state lock"}


class UnexpectedError(MockError):
    """Wraps any non-MockError exception raised while handling a request."""

    def __init__(self, cause: Exception) -> None:
        super().__init__(cause)
        self.cause = cause

    def context(self) -> dict[str, Any]:
        return {"details": f"{type(self.cause).__name__}: {self.cause}"}
