"""flowbridge.errors

Exception hierarchy and the severity/category tags attached to log entries.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class FlowBridgeError(Exception):
    """Base class for every error raised by flowbridge."""


class InvalidWorkflowError(FlowBridgeError):
    """Workflow document is missing its entity list or is otherwise malformed."""


class MappingNotFoundError(FlowBridgeError):
    """No mapping applies to an entity type (raised only in strict mode)."""

    def __init__(self, entity_type: str, direction: Any = None):
        self.entity_type = entity_type
        self.direction = direction
        d = getattr(direction, "value", direction)
        suffix = f" ({d})" if d else ""
        super().__init__(f"No mapping found for type: {entity_type}{suffix}")


class MappingDatabaseError(FlowBridgeError):
    """Mapping database is malformed or could not be read."""


class CustomTransformError(FlowBridgeError):
    """A mapping's custom transform raised or returned something unusable."""

    def __init__(self, entity_type: str, cause: BaseException):
        self.entity_type = entity_type
        self.cause = cause
        super().__init__(f"Custom transform failed for {entity_type}: {cause}")


class GraphResolutionError(FlowBridgeError):
    """An edge endpoint could not be resolved to a converted entity."""

    def __init__(self, source: Any, target: Any, missing: Any):
        self.source = source
        self.target = target
        self.missing = missing
        super().__init__(f"Cannot resolve connection {source} -> {target}: unknown entity {missing!r}")


class ErrorSeverity(str, Enum):
    """Log levels for structured diagnostics."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ErrorCategory(str, Enum):
    """Error categories for better error classification."""

    VALIDATION = "validation"
    IO = "io"
    MAPPING = "mapping"
    EXPRESSION = "expression"
    TRANSFORM = "transform"
    GRAPH = "graph"
    CONVERSION = "conversion"


def error_details(exc: BaseException) -> Dict[str, Optional[str]]:
    """Small JSON-friendly description of an exception for log details."""
    return {"error": type(exc).__name__, "message": str(exc)}
