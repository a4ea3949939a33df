"""flowbridge.options

Conversion options record.

Precedence rule: explicit value -> env var (see flowbridge.defaults) -> default.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, NamedTuple, Optional

from .defaults import (
    DEFAULT_COPY_NON_MAPPED,
    DEFAULT_DEBUG,
    DEFAULT_EVALUATE_EXPRESSIONS,
    DEFAULT_PRESERVE_IDS,
    DEFAULT_SKIP_DISABLED,
    DEFAULT_STRICT_MODE,
    DEFAULT_TRANSFORM_PARAMETER_VALUES,
)


# camelCase keys accepted from JSON / JS-style option records.
_CAMEL_KEYS = {
    "strictMode": "strict_mode",
    "preserveIds": "preserve_ids",
    "evaluateExpressions": "evaluate_expressions",
    "expressionContext": "expression_context",
    "copyNonMappedParameters": "copy_non_mapped_parameters",
    "debug": "debug",
    "skipDisabled": "skip_disabled",
    "transformParameterValues": "transform_parameter_values",
}


class ConversionOptions(NamedTuple):
    """Flat, read-only configuration for one conversion call."""

    strict_mode: bool = DEFAULT_STRICT_MODE
    preserve_ids: bool = DEFAULT_PRESERVE_IDS
    evaluate_expressions: bool = DEFAULT_EVALUATE_EXPRESSIONS
    expression_context: Optional[Mapping[str, Any]] = None
    copy_non_mapped_parameters: bool = DEFAULT_COPY_NON_MAPPED
    debug: bool = DEFAULT_DEBUG
    skip_disabled: bool = DEFAULT_SKIP_DISABLED
    transform_parameter_values: bool = DEFAULT_TRANSFORM_PARAMETER_VALUES

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ConversionOptions":
        """Build options from a dict using either camelCase or snake_case keys.

        Unknown keys are ignored.
        """
        if not data:
            return cls()
        kwargs: Dict[str, Any] = {}
        for k, v in data.items():
            name = _CAMEL_KEYS.get(k, k)
            if name not in cls._fields:
                continue
            if name == "expression_context":
                kwargs[name] = dict(v) if isinstance(v, Mapping) else None
            else:
                kwargs[name] = bool(v)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        inv = {v: k for k, v in _CAMEL_KEYS.items()}
        return {inv[f]: getattr(self, f) for f in self._fields}


def resolve_options(options: Any = None, **overrides: Any) -> ConversionOptions:
    """Normalize None / dict / ConversionOptions into ConversionOptions, then apply non-None overrides."""
    if isinstance(options, ConversionOptions):
        base = options
    elif isinstance(options, Mapping):
        base = ConversionOptions.from_dict(options)
    elif options is None:
        base = ConversionOptions()
    else:
        raise TypeError(f"options must be a dict or ConversionOptions, got {type(options).__name__}")
    changes = {k: v for k, v in overrides.items() if v is not None and k in ConversionOptions._fields}
    return base._replace(**changes) if changes else base
