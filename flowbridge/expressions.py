"""flowbridge.expressions

Expression transpiler between the n8n and Make template micro-languages.

Dialects:
- n8n: a string is an expression when it starts with "="; every `{{ ... }}`
  segment inside it is evaluated. Pure form: `={{ $json.field }}`.
- Make: every `{{...}}` segment in any string is evaluated. Pure form: `{{1.field}}`.

Rewrites are table-driven literal substitutions (no parser): variable
references, a fixed function-name table, and scope prefixes. Nested calls are
rewritten left-to-right without precedence awareness. Anything unknown is
passed through and reported so the caller can flag the parameter for review.
Whitespace just inside `{{` and `}}` is carried over unchanged, so a pure
reference round-trips in either padding style.

The transpiler never raises.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, List, Mapping, NamedTuple, Optional, Tuple

from .defaults import MAKE_DEFAULT_JSON_REF
from .platforms import Platform

logger = logging.getLogger(__name__)

_SEGMENT_RE = re.compile(r"\{\{(.*?)\}\}", re.S)

# (n8n spelling, Make spelling)
FUNCTION_TABLE: Tuple[Tuple[str, str], ...] = (
    ("$str.upper", "upper"),
    ("$str.lower", "lower"),
    ("$str.trim", "trim"),
    ("$str.replace", "replace"),
    ("$str.substr", "substring"),
    ("$array.first", "first"),
    ("$array.last", "last"),
    ("$array.join", "join"),
    ("$date.now", "now"),
    ("$date.format", "formatDate"),
    ("$math.round", "round"),
    ("$math.random", "random"),
    ("$if", "ifThenElse"),
)

# Scope prefixes: (n8n, Make)
SCOPE_TABLE: Tuple[Tuple[str, str], ...] = (
    ("$env.", "env."),
    ("$workflow.", "scenario."),
    ("$parameter.", "parameters."),
    ("$binary.", "binary."),
)

# Make built-ins without an n8n equivalent in the table; kept as-is without a review flag.
_MAKE_PASSTHROUGH_FUNCTIONS = {"if", "length", "toString", "parseNumber", "get", "map", "emptyarray", "ifempty"}

_N8N_NODE_REF_RES = (
    re.compile(r"""\$node\[\s*["']([^"']+)["']\s*\]\.json\."""),
    re.compile(r"""\$\(\s*["']([^"']+)["']\s*\)\.item\.json\."""),
)
_N8N_JSON_BRACKET_RE = re.compile(r"""\$json\[\s*["']([A-Za-z_][\w]*)["']\s*\]""")
_N8N_UNKNOWN_RE = re.compile(r"\$[A-Za-z_][\w]*")

_MAKE_NUMERIC_REF_RE = re.compile(r"(?<![\w$.\"'])(\d+)\.(?=[A-Za-z_$\[`])")
_MAKE_CALL_RE = re.compile(r"(?<![\w$.])([A-Za-z_][\w]*)\s*\(")

_PURE_REF_RE = re.compile(r"^\$(json|workflow|env)((?:\.[A-Za-z_][\w]*)+)$")
_PURE_NODE_REF_RE = re.compile(r"""^\$node\[\s*["']([^"']+)["']\s*\]\.json((?:\.[A-Za-z_][\w]*)+)$""")


class TranspileResult(NamedTuple):
    """Transpiled text plus what the caller should flag for review."""

    text: Any
    changed: bool = False
    ambiguous: Tuple[str, ...] = ()
    unknown: Tuple[str, ...] = ()

    @property
    def needs_review(self) -> bool:
        return bool(self.ambiguous or self.unknown)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


def has_segments(text: Any) -> bool:
    return isinstance(text, str) and _SEGMENT_RE.search(text) is not None


def is_expression(value: Any, platform: Optional[Platform] = None) -> bool:
    """True if value is an expression in the given dialect (either dialect when None)."""
    if not isinstance(value, str):
        return False
    if platform is None:
        return has_segments(value)
    if Platform.parse(platform) is Platform.N8N:
        return value.startswith("=") and has_segments(value)
    return has_segments(value)


def is_pure_expression(value: Any, platform: Platform) -> bool:
    """True if the whole string is exactly one delimited expression."""
    if not isinstance(value, str):
        return False
    body = value
    if Platform.parse(platform) is Platform.N8N:
        if not body.startswith("="):
            return False
        body = body[1:]
    body = body.strip()
    m = _SEGMENT_RE.fullmatch(body)
    return m is not None and "{{" not in m.group(1)


def extract_expressions(text: Any, platform: Optional[Platform] = None) -> List[str]:
    """Return the inner content (stripped) of every `{{ }}` segment."""
    if not is_expression(text, platform):
        return []
    return [m.group(1).strip() for m in _SEGMENT_RE.finditer(text)]


# ---------------------------------------------------------------------------
# Segment rewriters
# ---------------------------------------------------------------------------


def _n8n_to_make(inner: str, node_ids: Mapping[str, Any], json_ref: str, ambiguous: List[str], unknown: List[str]) -> str:
    out = inner

    def _node_ref(m: "re.Match[str]") -> str:
        name = m.group(1)
        if name in node_ids:
            return f"{node_ids[name]}."
        ambiguous.append(m.group(0).rstrip("."))
        return m.group(0)

    for rx in _N8N_NODE_REF_RES:
        out = rx.sub(_node_ref, out)

    out = _N8N_JSON_BRACKET_RE.sub(lambda m: f"$json.{m.group(1)}", out)
    out = out.replace("$json.", f"{json_ref}.")

    for src, dst in SCOPE_TABLE:
        out = out.replace(src, dst)

    for src, dst in FUNCTION_TABLE:
        out = re.sub(re.escape(src) + r"\s*\(", dst + "(", out)

    # Unresolved `$node[...]` and `$(...)` references were already reported as ambiguous.
    for m in _N8N_UNKNOWN_RE.finditer(out):
        if m.group(0) != "$node":
            unknown.append(m.group(0))
    return out


def _make_to_n8n(inner: str, node_names: Mapping[str, str], json_ref: str, ambiguous: List[str], unknown: List[str]) -> str:
    out = inner

    for src, dst in FUNCTION_TABLE:
        out = re.sub(r"(?<![\w$.])" + re.escape(dst) + r"\s*\(", src + "(", out)

    def _numeric_ref(m: "re.Match[str]") -> str:
        num = m.group(1)
        if num == json_ref:
            return "$json."
        name = node_names.get(num)
        if name is not None:
            return f'$node["{name}"].json.'
        ambiguous.append(f"{num}.")
        return m.group(0)

    out = _MAKE_NUMERIC_REF_RE.sub(_numeric_ref, out)

    for src, dst in SCOPE_TABLE:
        out = re.sub(r"(?<![\w$.])" + re.escape(dst), lambda m, s=src: s, out)

    for m in _MAKE_CALL_RE.finditer(out):
        name = m.group(1)
        if name in _MAKE_PASSTHROUGH_FUNCTIONS:
            continue
        unknown.append(name)
    return out


def _rewrap(raw: str, rewrite: Callable[[str], str]) -> str:
    """Rewrite the content of one segment, keeping its inner padding as written."""
    inner = raw.strip()
    if not inner:
        return "{{" + raw + "}}"
    lead = raw[: len(raw) - len(raw.lstrip())]
    trail = raw[len(raw.rstrip()) :]
    return "{{" + lead + rewrite(inner) + trail + "}}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def transpile_with_report(
    text: Any,
    source: Platform,
    target: Platform,
    *,
    node_ids: Optional[Mapping[str, Any]] = None,
    node_names: Optional[Mapping[str, str]] = None,
    json_ref: str = MAKE_DEFAULT_JSON_REF,
) -> TranspileResult:
    """Transpile every expression in text from the source dialect to the target dialect.

    node_ids: n8n node name -> Make module id (resolves `$node["Name"]` refs)
    node_names: Make module id (str) -> n8n node name (resolves `N.field` refs)
    """
    if not isinstance(text, str):
        return TranspileResult(text)
    try:
        src = Platform.parse(source)
        dst = Platform.parse(target)
    except ValueError:
        return TranspileResult(text)
    if src is dst:
        return TranspileResult(text)

    ambiguous: List[str] = []
    unknown: List[str] = []
    try:
        if src is Platform.N8N:
            if not text.startswith("="):
                return TranspileResult(text)
            ids = node_ids or {}
            body = text[1:]
            out = _SEGMENT_RE.sub(
                lambda m: _rewrap(m.group(1), lambda s: _n8n_to_make(s, ids, json_ref, ambiguous, unknown)),
                body,
            )
        else:
            if not has_segments(text):
                return TranspileResult(text)
            names = {str(k): v for k, v in (node_names or {}).items()}
            out = "=" + _SEGMENT_RE.sub(
                lambda m: _rewrap(m.group(1), lambda s: _make_to_n8n(s, names, json_ref, ambiguous, unknown)),
                text,
            )
    except Exception as e:
        logger.debug("transpile fell back to passthrough for %r: %s", text, e)
        return TranspileResult(text, False, (), (text,))

    return TranspileResult(out, out != text, tuple(dict.fromkeys(ambiguous)), tuple(dict.fromkeys(unknown)))


def transpile(text: Any, source: Platform, target: Platform, **kw: Any) -> Any:
    """Transpile text; see transpile_with_report for keyword arguments."""
    return transpile_with_report(text, source, target, **kw).text


# ---------------------------------------------------------------------------
# Narrow evaluation (variable substitution only)
# ---------------------------------------------------------------------------


def _ctx_get(context: Mapping[str, Any], *names: str) -> Any:
    for n in names:
        if n in context:
            return context[n]
    return None


def _walk(value: Any, dotted: str) -> Tuple[bool, Any]:
    cur = value
    for part in [p for p in dotted.split(".") if p]:
        if isinstance(cur, Mapping) and part in cur:
            cur = cur[part]
        elif isinstance(cur, (list, tuple)) and part.isdigit() and int(part) < len(cur):
            cur = cur[int(part)]
        else:
            return False, None
    return True, cur


def _resolve_ref(inner: str, context: Mapping[str, Any]) -> Tuple[bool, Any]:
    m = _PURE_REF_RE.match(inner)
    if m:
        scope, rest = m.group(1), m.group(2)
        root = _ctx_get(context, "$" + scope, scope)
        if root is None:
            return False, None
        return _walk(root, rest)
    m = _PURE_NODE_REF_RE.match(inner)
    if m:
        nodes = _ctx_get(context, "$node", "node")
        if not isinstance(nodes, Mapping) or m.group(1) not in nodes:
            return False, None
        node = nodes[m.group(1)]
        data = node.get("json", node) if isinstance(node, Mapping) else None
        return _walk(data, m.group(2))
    return False, None


def try_evaluate(text: Any, context: Optional[Mapping[str, Any]], platform: Platform = Platform.N8N) -> Tuple[bool, Any]:
    """Resolve simple variable references from context.

    Only `$json.x`, `$workflow.x`, `$env.x` and `$node["N"].json.x` (or their
    Make spellings) are supported. A pure expression resolves to the raw value;
    an embedded one resolves when every segment does, by string substitution.
    Returns (ok, value); ok is False when anything is unresolvable.
    """
    if not isinstance(text, str) or not context:
        return False, None
    plat = Platform.parse(platform)
    if not is_expression(text, plat):
        return False, None

    def _normalize(inner: str) -> str:
        if plat is Platform.MAKE:
            return _make_to_n8n(inner, {}, MAKE_DEFAULT_JSON_REF, [], [])
        return inner

    if is_pure_expression(text, plat):
        inner = _normalize(extract_expressions(text, plat)[0])
        return _resolve_ref(inner, context)

    body = text[1:] if plat is Platform.N8N else text
    failed = False

    def _sub(m: "re.Match[str]") -> str:
        nonlocal failed
        ok, value = _resolve_ref(_normalize(m.group(1).strip()), context)
        if not ok:
            failed = True
            return m.group(0)
        return "" if value is None else str(value)

    out = _SEGMENT_RE.sub(_sub, body)
    if failed:
        return False, None
    return True, out


def evaluate_expression(text: Any, context: Optional[Mapping[str, Any]], platform: Platform = Platform.N8N) -> Any:
    """Resolved value of text, or None when try_evaluate cannot resolve it."""
    ok, value = try_evaluate(text, context, platform)
    return value if ok else None
