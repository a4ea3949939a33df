"""flowbridge.platforms

Platform, direction and entity-kind tags shared by every layer.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class Platform(str, Enum):
    """Workflow platforms understood by the converter."""

    N8N = "n8n"
    MAKE = "make"

    @property
    def other(self) -> "Platform":
        return Platform.MAKE if self is Platform.N8N else Platform.N8N

    @classmethod
    def parse(cls, value: Any) -> "Platform":
        if isinstance(value, Platform):
            return value
        s = str(value or "").strip().lower()
        if s in ("n8n", "a"):
            return cls.N8N
        if s in ("make", "make.com", "integromat", "b"):
            return cls.MAKE
        raise ValueError(f"Unknown platform: {value!r}")


class Direction(str, Enum):
    """Conversion direction (source platform -> target platform)."""

    N8N_TO_MAKE = "n8n_to_make"
    MAKE_TO_N8N = "make_to_n8n"

    @property
    def source(self) -> Platform:
        return Platform.N8N if self is Direction.N8N_TO_MAKE else Platform.MAKE

    @property
    def target(self) -> Platform:
        return self.source.other

    @property
    def reverse(self) -> "Direction":
        return Direction.MAKE_TO_N8N if self is Direction.N8N_TO_MAKE else Direction.N8N_TO_MAKE

    @property
    def key(self) -> str:
        """camelCase key used by mapping databases (n8nToMake / makeToN8n)."""
        return "n8nToMake" if self is Direction.N8N_TO_MAKE else "makeToN8n"

    @classmethod
    def between(cls, source: Platform, target: Platform) -> "Direction":
        if source is target:
            raise ValueError(f"Source and target platform are the same: {source.value}")
        return cls.N8N_TO_MAKE if source is Platform.N8N else cls.MAKE_TO_N8N

    @classmethod
    def parse(cls, value: Any) -> "Direction":
        """Accept enum members, values and loose spellings ('n8n-to-make', 'make->n8n', 'makeToN8n')."""
        if isinstance(value, Direction):
            return value
        s = str(value or "").strip().lower()
        for sep in ("->", "-to-", "_to_", " to ", "2", "to"):
            if sep in s:
                left, _, right = s.partition(sep)
                try:
                    return cls.between(Platform.parse(left), Platform.parse(right))
                except ValueError:
                    continue
        raise ValueError(f"Unknown conversion direction: {value!r}")


class EntityKind(str, Enum):
    """Closed set of entity variants the entity converter dispatches on."""

    GENERIC = "generic"
    VARIABLES = "variables"
    ROUTER = "router"
    CONDITIONAL = "conditional"
    WEBHOOK = "webhook"
    HTTP = "http"
    CODE = "code"
    NOTE = "note"
    TRIGGER = "trigger"
    PLACEHOLDER = "placeholder"

    @classmethod
    def parse(cls, value: Any, default: Optional["EntityKind"] = None) -> "EntityKind":
        if isinstance(value, EntityKind):
            return value
        s = str(value or "").strip().lower()
        for k in cls:
            if k.value == s:
                return k
        if default is not None:
            return default
        raise ValueError(f"Unknown entity kind: {value!r}")

    @property
    def is_branching(self) -> bool:
        return self in (EntityKind.ROUTER, EntityKind.CONDITIONAL)
