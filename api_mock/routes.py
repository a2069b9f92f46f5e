"""Route Table - Maps OpenAPI path templates to their operations.

Templates are matched segment by segment: a segment written as ``{name}``
matches any single non-empty concrete segment, every other segment must be
identical. Overlapping templates (``/users/me`` vs ``/users/{id}``) are tried
in specificity order so the outcome never depends on dict ordering.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

logger = logging.getLogger(__name__)

HTTP_METHODS = frozenset({"get", "put", "post", "delete", "options", "head", "patch", "trace"})


def split_path(path: str) -> tuple[str, ...]:
    """Split a path on ``/``, discarding empty segments."""
    return tuple(segment for segment in path.split("/") if segment)


def is_placeholder(segment: str) -> bool:
    return segment.startswith("{")


def match_path_template(template: str, path: str) -> bool:
    """Check whether a concrete request path matches a path template.

    Args:
        template: Path template, e.g. "/users/{id}/posts".
        path: Concrete request path, e.g. "/users/42/posts".

    Returns:
        True if segment counts are equal and every literal segment matches.
    """
    return _segments_match(split_path(template), split_path(path))


def _segments_match(template_segments: tuple[str, ...], path_segments: tuple[str, ...]) -> bool:
    if len(template_segments) != len(path_segments):
        return False
    return all(
        is_placeholder(t) or t == p for t, p in zip(template_segments, path_segments)
    )


def _merge_parameters(
    path_params: list[Any], operation_params: list[Any]
) -> list[Any]:
    """Combine path-item and operation parameters; operation entries win on (name, in)."""
    overridden = {
        (p.get("name"), p.get("in")) for p in operation_params if isinstance(p, dict)
    }
    inherited = [
        p for p in path_params
        if isinstance(p, dict) and (p.get("name"), p.get("in")) not in overridden
    ]
    return inherited + list(operation_params)


@dataclass(frozen=True)
class Route:
    """One path template and its operations keyed by upper-cased method."""

    template: str
    operations: Mapping[str, dict[str, Any]]
    order: int = 0
    segments: tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "segments", split_path(self.template))
        object.__setattr__(self, "operations", MappingProxyType(dict(self.operations)))

    @property
    def allowed_methods(self) -> list[str]:
        return list(self.operations.keys())

    @property
    def placeholder_count(self) -> int:
        return sum(1 for s in self.segments if is_placeholder(s))

    @property
    def literal_prefix_length(self) -> int:
        """Number of leading literal segments before the first placeholder."""
        count = 0
        for segment in self.segments:
            if is_placeholder(segment):
                break
            count += 1
        return count

    def specificity_key(self) -> tuple[int, int, int]:
        # Fewest placeholders first, then longest literal prefix, then declaration order
        return (self.placeholder_count, -self.literal_prefix_length, self.order)

    def matches(self, path: str) -> bool:
        return _segments_match(self.segments, split_path(path))

    def operation_for(self, method: str) -> dict[str, Any] | None:
        """Look up the operation for a request method (case-insensitive)."""
        return self.operations.get(method.upper())


class RouteTable:
    """Ordered collection of routes built once from the spec.

    Usage:
        table = RouteTable.from_spec(parsed_spec)
        route = table.find_route("/users/42")
        operation = route.operation_for("GET") if route else None
    """

    def __init__(self, routes: list[Route] | None = None) -> None:
        self._routes: tuple[Route, ...] = tuple(
            sorted(routes or [], key=Route.specificity_key)
        )

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> RouteTable:
        """Build the table from ``spec["paths"]``.

        Only HTTP method keys become operations. Path-level ``parameters`` are
        inherited by every operation of that path.
        """
        paths = spec.get("paths")
        if not isinstance(paths, dict):
            return cls()

        routes: dict[str, Route] = {}
        for order, (template, path_item) in enumerate(paths.items()):
            if not isinstance(path_item, dict):
                continue
            path_params = path_item.get("parameters") or []
            operations: dict[str, dict[str, Any]] = {}
            for method, operation in path_item.items():
                if method.lower() not in HTTP_METHODS or not isinstance(operation, dict):
                    continue
                if path_params:
                    operation = {
                        **operation,
                        "parameters": _merge_parameters(
                            path_params, operation.get("parameters") or []
                        ),
                    }
                operations[method.upper()] = operation
            # Duplicate templates overwrite earlier ones
            routes[template] = Route(template=template, operations=operations, order=order)

        return cls(list(routes.values()))

    @property
    def routes(self) -> tuple[Route, ...]:
        return self._routes

    def find_route(self, path: str) -> Route | None:
        """Return the most specific route whose template matches the path."""
        segments = split_path(path)
        for route in self._routes:
            matched = _segments_match(route.segments, segments)
            logger.debug("Checking route '%s' against '%s': %s", route.template, path, matched)
            if matched:
                return route
        return None

    def __len__(self) -> int:
        return len(self._routes)

    def __iter__(self):
        return iter(self._routes)
