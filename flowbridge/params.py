"""flowbridge.params

Parameter-tree processing: recursive value transformation between platforms.

For every value in a parameter tree:
- expression strings are transpiled (flowbridge.expressions); unresolvable or
  unknown constructs are recorded for review
- booleans going to Make become "1"/"0"; "1"/"0"/"true"/"false" coming from
  Make become booleans
- ISO-8601 timestamps are normalized to `YYYY-MM-DDTHH:MM:SS.sssZ` (UTC)
- everything else passes through

Paths use dotted/indexed notation: `rules.conditions[0].value1`.
"""

from __future__ import annotations

import copy
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .expressions import is_expression, transpile_with_report, try_evaluate
from .options import ConversionOptions
from .platforms import Direction, Platform
from .registry import MappingRecord, apply_named_transform

logger = logging.getLogger(__name__)

_ISO_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")
_ISO_FULL_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:[.,](\d+))?(Z|[+-]\d{2}:?\d{2})?$"
)
_PATH_TOKEN_RE = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

PathToken = Union[str, int]


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def parse_path(path: str) -> List[PathToken]:
    """'a.b[0].c' -> ['a', 'b', 0, 'c']"""
    out: List[PathToken] = []
    for m in _PATH_TOKEN_RE.finditer(str(path or "")):
        if m.group(1) is not None:
            out.append(m.group(1))
        else:
            out.append(int(m.group(2)))
    return out


def join_path(base: str, key: PathToken) -> str:
    if isinstance(key, int):
        return f"{base}[{key}]"
    return f"{base}.{key}" if base else str(key)


def lookup_path(tree: Any, path: str) -> Tuple[bool, Any]:
    """Return (found, value) for a dotted/indexed path."""
    cur = tree
    tokens = parse_path(path)
    if not tokens:
        return False, None
    for tok in tokens:
        if isinstance(tok, int):
            if isinstance(cur, list) and 0 <= tok < len(cur):
                cur = cur[tok]
                continue
            return False, None
        if isinstance(cur, Mapping) and tok in cur:
            cur = cur[tok]
            continue
        return False, None
    return True, cur


def get_path(tree: Any, path: str, default: Any = None) -> Any:
    found, value = lookup_path(tree, path)
    return value if found else default


def has_path(tree: Any, path: str) -> bool:
    return lookup_path(tree, path)[0]


def set_path(tree: Dict[str, Any], path: str, value: Any) -> None:
    """Write value at path, creating intermediate dicts/lists as needed."""
    tokens = parse_path(path)
    if not tokens:
        raise ValueError(f"Empty parameter path: {path!r}")
    cur: Any = tree
    for i, tok in enumerate(tokens):
        last = i == len(tokens) - 1
        nxt = None if last else tokens[i + 1]
        blank: Any = [] if isinstance(nxt, int) else {}
        if isinstance(tok, int):
            if not isinstance(cur, list):
                raise ValueError(f"Path {path!r}: index {tok} applied to a non-list")
            while len(cur) <= tok:
                cur.append(None)
            if last:
                cur[tok] = value
            else:
                if not isinstance(cur[tok], (dict, list)):
                    cur[tok] = blank
                cur = cur[tok]
        else:
            if not isinstance(cur, dict):
                raise ValueError(f"Path {path!r}: key {tok!r} applied to a non-dict")
            if last:
                cur[tok] = value
            else:
                if not isinstance(cur.get(tok), (dict, list)):
                    cur[tok] = blank
                cur = cur[tok]


def iter_leaves(tree: Any, path: str = "") -> Iterator[Tuple[str, Any]]:
    """Yield (path, value) for every scalar in natural iteration order."""
    if isinstance(tree, Mapping):
        for k, v in tree.items():
            yield from iter_leaves(v, join_path(path, str(k)))
    elif isinstance(tree, (list, tuple)):
        for i, v in enumerate(tree):
            yield from iter_leaves(v, join_path(path, i))
    else:
        yield path, tree


def identify_expressions_for_review(tree: Any, platform: Optional[Platform] = None) -> List[str]:
    """Paths of every string value that contains an expression, in natural order."""
    return [p for p, v in iter_leaves(tree) if is_expression(v, platform)]


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def normalize_iso_datetime(value: str) -> str:
    """Normalize an ISO-8601 timestamp to UTC with millisecond precision.

    Naive timestamps are read as UTC. Anything that does not parse is returned unchanged.
    """
    m = _ISO_FULL_RE.match(value.strip())
    if not m:
        return value
    y, mo, d, h, mi, s, frac, tz = m.groups()
    try:
        micro = int((frac or "0")[:6].ljust(6, "0"))
        tzinfo = timezone.utc
        if tz and tz != "Z":
            sign = -1 if tz[0] == "-" else 1
            digits = tz[1:].replace(":", "")
            tzinfo = timezone(sign * timedelta(hours=int(digits[:2]), minutes=int(digits[2:])))
        dt = datetime(int(y), int(mo), int(d), int(h), int(mi), int(s), micro, tzinfo=tzinfo)
    except ValueError:
        return value
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{dt.microsecond // 1000:03d}Z"


def looks_like_iso_datetime(value: Any) -> bool:
    return isinstance(value, str) and _ISO_PREFIX_RE.match(value) is not None


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class ParameterProcessor:
    """Transforms parameter trees for one conversion direction.

    Review entries and warnings raised while processing are collected on the
    instance (`review`, `warnings`) so the caller can attach them to an entity.
    """

    def __init__(
        self,
        direction: Direction,
        options: Optional[ConversionOptions] = None,
        *,
        node_ids: Optional[Mapping[str, Any]] = None,
        node_names: Optional[Mapping[str, str]] = None,
    ):
        self.direction = Direction.parse(direction)
        self.options = options or ConversionOptions()
        self.node_ids: Mapping[str, Any] = node_ids or {}
        self.node_names: Mapping[str, str] = node_names or {}
        self.review: List[Tuple[str, str]] = []
        self.warnings: List[str] = []

    def __repr__(self) -> str:
        return f"ParameterProcessor({self.direction.value}, review={len(self.review)})"

    def drain(self) -> Tuple[List[Tuple[str, str]], List[str]]:
        """Return and clear collected (review, warnings)."""
        review, warnings = self.review, self.warnings
        self.review, self.warnings = [], []
        return review, warnings

    def process(self, tree: Any, path: str = "") -> Any:
        """Return a transformed deep copy of tree."""
        if isinstance(tree, Mapping):
            return {k: self.process(v, join_path(path, str(k))) for k, v in tree.items()}
        if isinstance(tree, (list, tuple)):
            return [self.process(v, join_path(path, i)) for i, v in enumerate(tree)]
        return self.process_value(tree, path)

    def process_value(self, value: Any, path: str = "") -> Any:
        if isinstance(value, (Mapping, list, tuple)):
            return self.process(value, path)
        if isinstance(value, bool):
            if self.options.transform_parameter_values and self.direction is Direction.N8N_TO_MAKE:
                return "1" if value else "0"
            return value
        if isinstance(value, str):
            return self._process_string(value, path)
        return copy.deepcopy(value)

    def _process_string(self, value: str, path: str) -> Any:
        src, dst = self.direction.source, self.direction.target

        if self.options.evaluate_expressions and is_expression(value, src):
            ok, resolved = try_evaluate(value, self.options.expression_context, src)
            if ok:
                return copy.deepcopy(resolved)

        res = transpile_with_report(value, src, dst, node_ids=self.node_ids, node_names=self.node_names)
        if res.changed or res.needs_review:
            if res.ambiguous:
                self.review.append((path, f"Ambiguous reference(s): {', '.join(res.ambiguous)}"))
            elif res.unknown:
                self.review.append((path, f"Untranslated construct(s): {', '.join(res.unknown)}"))
            return res.text

        if not self.options.transform_parameter_values:
            return value
        if self.direction is Direction.MAKE_TO_N8N:
            if value in ("1", "true"):
                return True
            if value in ("0", "false"):
                return False
        if looks_like_iso_datetime(value):
            return normalize_iso_datetime(value)
        return value

    # ------------------------------------------------------------------
    # Parameter-path maps
    # ------------------------------------------------------------------

    def map_parameters(self, source: Mapping[str, Any], record: MappingRecord) -> Dict[str, Any]:
        """Apply a record's parameter rules to source parameters.

        A rule with a transform uses only that transform; other rules get the
        standard processing. Missing source values fall back to the rule default.
        """
        target: Dict[str, Any] = {}
        src = source if isinstance(source, Mapping) else {}
        for rule in record.rules:
            found, value = lookup_path(src, rule.source_path) if rule.source_path else (False, None)
            if not found:
                if rule.has_default:
                    set_path(target, rule.target_path, copy.deepcopy(rule.default))
                continue
            if rule.transform is not None:
                try:
                    value, known = apply_named_transform(copy.deepcopy(value), rule.transform)
                except Exception as e:
                    self.warnings.append(f"Transform for {rule.source_path!r} failed: {e}")
                    value, known = self.process_value(value, rule.source_path or ""), True
                if not known:
                    self.warnings.append(f"Unknown parameter transform {rule.transform!r} for {rule.source_path!r}")
            else:
                value = self.process_value(value, rule.source_path or "")
            set_path(target, rule.target_path, value)

        if self.options.copy_non_mapped_parameters:
            self.copy_unmapped(src, target, record.mapped_source_paths)
        return target

    def copy_unmapped(self, source: Mapping[str, Any], target: Dict[str, Any], mapped: Tuple[str, ...] = ()) -> None:
        """Copy top-level keys not covered by any mapped path (existing target keys win)."""
        for key, value in source.items():
            if any(p == key or p.startswith(f"{key}.") or p.startswith(f"{key}[") for p in mapped):
                continue
            if key in target:
                continue
            target[key] = self.process_value(value, key)
