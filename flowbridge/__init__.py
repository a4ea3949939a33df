"""flowbridge package

Public API is re-exported here for convenience.
"""

from .version import __version__
from .platforms import (  # noqa: F401
    Direction,
    EntityKind,
    Platform,
)
from .errors import (  # noqa: F401
    CustomTransformError,
    ErrorCategory,
    ErrorSeverity,
    FlowBridgeError,
    GraphResolutionError,
    InvalidWorkflowError,
    MappingDatabaseError,
    MappingNotFoundError,
)
from .options import ConversionOptions, resolve_options  # noqa: F401
from .diagnostics import Diagnostics, LogEntry, ReviewEntry  # noqa: F401
from .expressions import (  # noqa: F401
    evaluate_expression,
    extract_expressions,
    is_expression,
    transpile,
    transpile_with_report,
)
from .params import ParameterProcessor, identify_expressions_for_review  # noqa: F401
from .registry import (  # noqa: F401
    MappingRecord,
    MappingRegistry,
    ParameterRule,
    default_registry,
    load_mapping_database,
)
from .entities import EntityConverter, EntityResult  # noqa: F401
from .dag import Dag, Edge, build_make_dag, build_n8n_dag  # noqa: F401
from .convert import (  # noqa: F401
    ConversionResult,
    convert,
    convert_workflow,
    detect_platform,
    load_workflow,
    make_to_n8n,
    n8n_to_make,
    save_workflow,
)
from .cli import main  # noqa: F401


__all__ = [
    "__version__",
    "Direction",
    "EntityKind",
    "Platform",
    "CustomTransformError",
    "ErrorCategory",
    "ErrorSeverity",
    "FlowBridgeError",
    "GraphResolutionError",
    "InvalidWorkflowError",
    "MappingDatabaseError",
    "MappingNotFoundError",
    "ConversionOptions",
    "resolve_options",
    "Diagnostics",
    "LogEntry",
    "ReviewEntry",
    "evaluate_expression",
    "extract_expressions",
    "is_expression",
    "transpile",
    "transpile_with_report",
    "ParameterProcessor",
    "identify_expressions_for_review",
    "MappingRecord",
    "MappingRegistry",
    "ParameterRule",
    "default_registry",
    "load_mapping_database",
    "EntityConverter",
    "EntityResult",
    "Dag",
    "Edge",
    "build_make_dag",
    "build_n8n_dag",
    "ConversionResult",
    "convert",
    "convert_workflow",
    "detect_platform",
    "load_workflow",
    "make_to_n8n",
    "n8n_to_make",
    "save_workflow",
    "main",
]
