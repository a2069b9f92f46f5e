"""Component Registry - Named schema fragments and $ref resolution.

Holds the fragments declared under ``components.schemas`` and resolves local
``#/components/schemas/<Name>`` pointers to them. A pointer that cannot be
resolved yields None; callers degrade to "no constraint" rather than failing.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping

SCHEMA_REF_PREFIX = "#/components/schemas/"


class ComponentRegistry:
    """Read-only mapping from component name to schema fragment.

    Usage:
        registry = ComponentRegistry.from_spec(parsed_spec)
        schema = registry.resolve("#/components/schemas/User")
    """

    def __init__(self, components: Mapping[str, Any] | None = None) -> None:
        self._components: Mapping[str, Any] = MappingProxyType(dict(components or {}))

    @classmethod
    def from_spec(cls, spec: dict[str, Any]) -> ComponentRegistry:
        """Build a registry from a parsed OpenAPI document.

        A document without ``components.schemas`` produces an empty registry.
        """
        components = spec.get("components")
        schemas = components.get("schemas") if isinstance(components, dict) else None
        if not isinstance(schemas, dict):
            return cls()
        return cls(schemas)

    @property
    def components(self) -> Mapping[str, Any]:
        return self._components

    def resolve(self, ref: Any) -> dict[str, Any] | None:
        """Resolve a ``$ref`` pointer to its schema fragment.

        Args:
            ref: Pointer of the form ``#/components/schemas/<Name>``.

        Returns:
            The stored fragment, or None if the pointer is malformed or unknown.
        """
        if not isinstance(ref, str) or not ref.startswith(SCHEMA_REF_PREFIX):
            return None
        resolved = self._components.get(ref[len(SCHEMA_REF_PREFIX):])
        return resolved if isinstance(resolved, dict) else None

    def __contains__(self, name: object) -> bool:
        return name in self._components

    def __len__(self) -> int:
        return len(self._components)
