"""flowbridge.convert

Whole-workflow conversion between n8n and Make.

One call runs `Validate -> ConvertEntities -> ReconstructGraph -> Finalize`:
- Validate checks the entity list (normalizing the legacy Make blueprint shape)
- ConvertEntities converts every entity in input order (flowbridge.entities)
- ReconstructGraph rebuilds the target connection model (flowbridge.dag)
- Finalize packs logs, review entries, unmapped ids and debug info

Workflow-level errors (invalid input, strict-mode aborts) produce an empty
converted workflow plus an error log entry; they are never raised.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .dag import (
    Dag,
    Edge,
    build_dag,
    connections_from_edges,
    edges_from_connections,
    edges_from_flow,
    flow_from_edges,
    iter_flow_modules,
    sequential_edges,
)
from .defaults import (
    DEFAULT_JSON_ENSURE_ASCII,
    DEFAULT_JSON_INDENT,
    DEFAULT_MAKE_WORKFLOW_NAME,
    DEFAULT_N8N_WORKFLOW_NAME,
)
from .diagnostics import Diagnostics, LogEntry, LogSink, ReviewEntry
from .entities import EntityConverter, EntityResult, coerce_id, entity_name, entity_type
from .errors import (
    ErrorCategory,
    ErrorSeverity,
    FlowBridgeError,
    GraphResolutionError,
    InvalidWorkflowError,
    MappingDatabaseError,
    error_details,
)
from .options import ConversionOptions, resolve_options
from .platforms import Direction, EntityKind, Platform
from .registry import MappingRegistry, resolve_registry, split_type

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


class ConversionResult:
    """
    Result of one conversion call.

    - .converted_workflow: target document ({} on fatal failure)
    - .logs: LogEntry list (the single channel for errors/warnings)
    - .parameters_needing_review: ReviewEntry list
    - .unmapped_entities: ids of placeholder entities
    - .debug_info: counts (plus trace/timing in debug mode)
    - .edges: reconstructed edges between converted entity ids
    """

    def __init__(
        self,
        converted_workflow: Dict[str, Any],
        logs: List[LogEntry],
        parameters_needing_review: List[ReviewEntry],
        unmapped_entities: List[str],
        debug_info: Dict[str, Any],
        *,
        edges: Optional[List[Edge]] = None,
        direction: Optional[Direction] = None,
        ok: bool = True,
    ):
        self.converted_workflow = converted_workflow
        self.logs = logs
        self.parameters_needing_review = parameters_needing_review
        self.unmapped_entities = unmapped_entities
        self.debug_info = debug_info
        self.edges = list(edges or [])
        self.direction = direction
        self.ok = ok

    def __repr__(self) -> str:
        d = self.direction.value if self.direction is not None else "?"
        return (
            f"ConversionResult({d}, ok={self.ok}, errors={len(self.errors)}, "
            f"warnings={len(self.warnings)}, review={len(self.parameters_needing_review)}, "
            f"unmapped={len(self.unmapped_entities)})"
        )

    @property
    def success(self) -> bool:
        return self.ok

    @property
    def errors(self) -> List[LogEntry]:
        return [e for e in self.logs if e.level is ErrorSeverity.ERROR]

    @property
    def warnings(self) -> List[LogEntry]:
        return [e for e in self.logs if e.level is ErrorSeverity.WARNING]

    @property
    def dag(self) -> Dag:
        """Graph of the converted workflow (ids as nodes)."""
        wf = self.converted_workflow
        if self.direction is Direction.MAKE_TO_N8N:
            items = [(str(n.get("id")), n.get("type"), n.get("name")) for n in wf.get("nodes") or []]
        else:
            items = [(str(m.get("id")), m.get("module"), m.get("label")) for m in iter_flow_modules(wf.get("flow"))]
        platform = self.direction.target.value if self.direction is not None else ""
        return build_dag(
            platform,
            [i for i, _, _ in items],
            self.edges,
            {i: {"type": t, "name": n} for i, t, n in items},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "convertedWorkflow": self.converted_workflow,
            "logs": [e.to_dict() for e in self.logs],
            "parametersNeedingReview": [r.to_dict() for r in self.parameters_needing_review],
            "unmappedEntities": list(self.unmapped_entities),
            "debugInfo": self.debug_info,
        }

    def save(
        self,
        output_path: Union[str, Path],
        indent: int = DEFAULT_JSON_INDENT,
        ensure_ascii: bool = DEFAULT_JSON_ENSURE_ASCII,
    ) -> Path:
        if not self.ok:
            raise ValueError("No data to save (conversion failed).")
        return save_workflow(self.converted_workflow, output_path, indent=indent, ensure_ascii=ensure_ascii)


# ---------------------------------------------------------------------------
# Validation + platform detection
# ---------------------------------------------------------------------------


def detect_platform(workflow: Any) -> Optional[Platform]:
    """Guess the platform of a workflow document (None when unrecognizable)."""
    if not isinstance(workflow, Mapping):
        return None
    if isinstance(workflow.get("nodes"), list):
        return Platform.N8N
    if isinstance(workflow.get("flow"), list) or isinstance(workflow.get("modules"), list):
        return Platform.MAKE
    if isinstance(workflow.get("blueprint"), Mapping):
        return Platform.MAKE
    return None


def validate_n8n_workflow(workflow: Any) -> Dict[str, Any]:
    """Validate the structure of an n8n workflow document."""
    if not isinstance(workflow, Mapping):
        raise InvalidWorkflowError("Workflow data must be a dictionary")
    if "nodes" not in workflow:
        raise InvalidWorkflowError("n8n workflow missing 'nodes' field")
    if not isinstance(workflow["nodes"], list):
        raise InvalidWorkflowError("'nodes' field must be a list")
    for i, node in enumerate(workflow["nodes"]):
        if not isinstance(node, Mapping):
            raise InvalidWorkflowError(f"node #{i} must be a dictionary")
    conns = workflow.get("connections")
    if conns is not None and not isinstance(conns, Mapping):
        raise InvalidWorkflowError("'connections' field must be a dictionary")
    return dict(workflow)


def normalize_make_workflow(workflow: Any) -> Tuple[Dict[str, Any], bool]:
    """Validate a Make blueprint; returns (normalized, was_legacy).

    Legacy shape `{"blueprint": {"name", "flow"?, "metadata"?}, "modules": [...]}`
    becomes `{"name", "flow", "metadata"?}`.
    """
    if not isinstance(workflow, Mapping):
        raise InvalidWorkflowError("Workflow data must be a dictionary")
    if isinstance(workflow.get("flow"), list):
        out = dict(workflow)
        legacy = False
    else:
        bp = workflow.get("blueprint")
        bp = bp if isinstance(bp, Mapping) else {}
        flow = workflow.get("modules")
        if not isinstance(flow, list):
            flow = bp.get("flow")
        if not isinstance(flow, list):
            if "flow" in workflow:
                raise InvalidWorkflowError("'flow' field must be a list")
            raise InvalidWorkflowError("Make blueprint missing 'flow' field")
        out = {"name": bp.get("name") or workflow.get("name"), "flow": flow}
        meta = bp.get("metadata") or workflow.get("metadata")
        if isinstance(meta, Mapping):
            out["metadata"] = meta
        legacy = True
    for mod in iter_flow_modules(out["flow"]):
        routes = mod.get("routes")
        if routes is not None and not isinstance(routes, list):
            raise InvalidWorkflowError(f"module {mod.get('id')!r}: 'routes' must be a list")
    if any(not isinstance(m, Mapping) for m in out["flow"]):
        raise InvalidWorkflowError("every 'flow' entry must be a dictionary")
    return out, legacy


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def load_workflow(file_path: Union[str, Path]) -> Dict[str, Any]:
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            result = json.loads(f.read())
            if not isinstance(result, dict):
                raise ValueError("Invalid workflow file: expected dictionary")
            return result
    except FileNotFoundError:
        raise InvalidWorkflowError(f"Workflow file not found: {file_path}")
    except json.JSONDecodeError as e:
        raise InvalidWorkflowError(f"Invalid JSON in workflow file {file_path}: {str(e)}")
    except UnicodeDecodeError as e:
        raise InvalidWorkflowError(f"Encoding error reading workflow file {file_path}: {str(e)}")
    except Exception as e:
        raise InvalidWorkflowError(f"Unexpected error loading workflow file {file_path}: {str(e)}")


def save_workflow(
    workflow: Dict[str, Any],
    file_path: Union[str, Path],
    *,
    indent: int = DEFAULT_JSON_INDENT,
    ensure_ascii: bool = DEFAULT_JSON_ENSURE_ASCII,
) -> Path:
    try:
        output_path = Path(file_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(workflow, f, indent=indent, ensure_ascii=ensure_ascii)
            f.write("\n")
        return output_path
    except Exception as e:
        raise FlowBridgeError(f"Failed to save workflow to {file_path}: {str(e)}")


def normalize_workflow_input(workflow: Union[Dict[str, Any], str, Path, Mapping]) -> Dict[str, Any]:
    if isinstance(workflow, (str, Path)):
        return load_workflow(workflow)
    if isinstance(workflow, Mapping):
        return dict(workflow)
    raise InvalidWorkflowError(f"Workflow data must be a dictionary or a file path, got {type(workflow).__name__}")


# ---------------------------------------------------------------------------
# Graph converter
# ---------------------------------------------------------------------------


class _Planned:
    __slots__ = ("entity", "source_key", "target_id", "target_name", "index")

    def __init__(self, entity: Dict[str, Any], source_key: str, target_id: Any, target_name: str, index: int):
        self.entity = entity
        self.source_key = source_key
        self.target_id = target_id
        self.target_name = target_name
        self.index = index


class _GraphConverter:
    """State for one conversion pass. Not reused across calls."""

    def __init__(self, direction: Direction, registry: MappingRegistry, options: ConversionOptions, diagnostics: Diagnostics):
        self.direction = direction
        self.source = direction.source
        self.target = direction.target
        self.registry = registry
        self.options = options
        self.diagnostics = diagnostics
        self.skipped: Dict[str, str] = {}
        self.total = 0

    # -- ConvertEntities ------------------------------------------------

    def _source_key(self, entity: Mapping[str, Any], index: int) -> str:
        if self.source is Platform.N8N:
            name = entity.get("name")
            if isinstance(name, str) and name:
                return name
        if entity.get("id") is not None:
            return str(entity["id"])
        return f"#{index}"

    def _collect(self, workflow: Dict[str, Any]) -> List[Tuple[str, Dict[str, Any]]]:
        if self.source is Platform.N8N:
            items = list(workflow.get("nodes") or [])
        else:
            items = list(iter_flow_modules(workflow.get("flow")))
        self.total = len(items)
        out: List[Tuple[str, Dict[str, Any]]] = []
        for i, entity in enumerate(items):
            key = self._source_key(entity, i)
            if self.options.skip_disabled and entity.get("disabled"):
                label = entity_name(entity, self.source) or key
                self.skipped[key] = label
                self.diagnostics.info(f"Skipped disabled entity '{label}'", category=ErrorCategory.CONVERSION, entity=key)
                continue
            out.append((key, entity))
        return out

    def _default_name(self, entity: Mapping[str, Any], index: int) -> str:
        _, suffix = split_type(entity_type(entity, self.source))
        return f"{suffix or 'Entity'} {index + 1}"

    def _plan(self, items: List[Tuple[str, Dict[str, Any]]]) -> List[_Planned]:
        planned: List[_Planned] = []
        used_ids: set = set()
        used_names: set = set()
        counter = 0
        for index, (key, entity) in enumerate(items):
            target_id: Any = None
            if self.options.preserve_ids and entity.get("id") is not None:
                target_id = coerce_id(entity["id"], self.target)
                if str(target_id) in used_ids:
                    self.diagnostics.warning(
                        f"Duplicate id {entity['id']!r}; assigning a new id",
                        category=ErrorCategory.VALIDATION,
                        entity=key,
                    )
                    target_id = None
            if target_id is None:
                counter += 1
                while str(counter) in used_ids:
                    counter += 1
                target_id = str(counter) if self.target is Platform.N8N else counter
            used_ids.add(str(target_id))

            name = entity_name(entity, self.source) or self._default_name(entity, index)
            if self.target is Platform.N8N:
                # n8n connections are keyed by name, so names must be unique.
                base, n = name, 0
                while name in used_names:
                    n += 1
                    name = f"{base}{n}"
            used_names.add(name)
            planned.append(_Planned(entity, key, target_id, name, index))
        return planned

    def _convert_entities(self, planned: List[_Planned]) -> List[EntityResult]:
        if self.direction is Direction.N8N_TO_MAKE:
            node_ids = {p.source_key: p.target_id for p in planned}
            converter = EntityConverter(self.registry, self.direction, self.options, self.diagnostics, node_ids=node_ids)
        else:
            node_names = {p.source_key: p.target_name for p in planned}
            converter = EntityConverter(self.registry, self.direction, self.options, self.diagnostics, node_names=node_names)

        results: List[EntityResult] = []
        for p in planned:
            try:
                res = converter.convert(p.entity, target_id=p.target_id, target_name=p.target_name, index=p.index)
            except Exception as e:
                if self.options.strict_mode:
                    if isinstance(e, FlowBridgeError):
                        raise
                    raise FlowBridgeError(f"Entity '{p.target_name}' failed to convert: {e}") from e
                logger.debug("entity %s failed", p.source_key, exc_info=True)
                res = converter.placeholder(
                    p.entity,
                    target_id=p.target_id,
                    target_name=p.target_name,
                    index=p.index,
                    reason=f"Failed to convert '{p.target_name}' ({type(e).__name__}: {e}); created placeholder",
                )
            results.append(res)
        return results

    # -- ReconstructGraph -----------------------------------------------

    def _drop(self, src: Any, dst: Any, missing: Any) -> None:
        err = GraphResolutionError(src, dst, missing)
        reason = "skipped" if str(missing) in self.skipped else "not found"
        self.diagnostics.warning(f"{err} ({reason}); connection dropped", category=ErrorCategory.GRAPH, details=error_details(err))

    def _edges_n8n_to_make(self, workflow: Dict[str, Any], planned: List[_Planned]) -> List[Edge]:
        conns = workflow.get("connections")
        ids = [str(p.target_id) for p in planned]
        if not conns:
            return sequential_edges(ids)
        name_to_id = {p.source_key: str(p.target_id) for p in planned}
        edges, unresolved = edges_from_connections(conns, name_to_id)
        for src, dst, missing in unresolved:
            self._drop(src, dst, missing)
        return edges

    def _edges_make_to_n8n(self, workflow: Dict[str, Any], planned: List[_Planned]) -> List[Edge]:
        key_to_id = {p.source_key: str(p.target_id) for p in planned}
        raw_keys: Dict[int, str] = {}
        for i, mod in enumerate(iter_flow_modules(workflow.get("flow"))):
            raw_keys[id(mod)] = self._source_key(mod, i)

        def _key(mod: Dict[str, Any]) -> str:
            return raw_keys[id(mod)]

        edges: List[Edge] = []
        for e in edges_from_flow(workflow.get("flow"), _key):
            if e.source not in key_to_id or e.target not in key_to_id:
                self._drop(e.source, e.target, e.source if e.source not in key_to_id else e.target)
                continue
            edges.append(Edge(key_to_id[e.source], key_to_id[e.target], e.output_index, e.input_index))
        return edges

    # -- Finalize ---------------------------------------------------------

    def _assemble_make(self, workflow: Dict[str, Any], planned: List[_Planned], results: List[EntityResult], edges: List[Edge]) -> Dict[str, Any]:
        modules = {str(p.target_id): r.entity for p, r in zip(planned, results)}
        counts = {str(p.target_id): r.branches for p, r in zip(planned, results) if r.kind.is_branching}
        flow, notes = flow_from_edges([str(p.target_id) for p in planned], edges, modules, counts)
        for note in notes:
            self.diagnostics.info(note, category=ErrorCategory.GRAPH)
        first_kind = results[0].kind if results else None
        return {
            "name": workflow.get("name") or DEFAULT_MAKE_WORKFLOW_NAME,
            "flow": flow,
            "metadata": {
                "instant": first_kind is EntityKind.WEBHOOK,
                "version": 1,
                "scenario": {
                    "roundtrips": 1,
                    "maxErrors": 3,
                    "autoCommit": True,
                    "autoCommitTriggerLast": True,
                    "sequential": False,
                    "confidential": False,
                    "dataloss": False,
                    "dlq": False,
                    "freshVariables": False,
                },
                "designer": {"orphans": []},
            },
        }

    def _assemble_n8n(self, workflow: Dict[str, Any], planned: List[_Planned], results: List[EntityResult], edges: List[Edge]) -> Dict[str, Any]:
        id_to_name = {str(p.target_id): p.target_name for p in planned}
        counts = {str(p.target_id): r.branches for p, r in zip(planned, results) if r.kind.is_branching}
        return {
            "name": workflow.get("name") or DEFAULT_N8N_WORKFLOW_NAME,
            "nodes": [r.entity for r in results],
            "connections": connections_from_edges(edges, id_to_name, counts),
            "active": False,
            "settings": {"executionOrder": "v1"},
        }

    def run(self, workflow: Dict[str, Any]) -> Tuple[Dict[str, Any], List[Edge]]:
        planned = self._plan(self._collect(workflow))
        results = self._convert_entities(planned)
        if self.direction is Direction.N8N_TO_MAKE:
            edges = self._edges_n8n_to_make(workflow, planned)
            return self._assemble_make(workflow, planned, results, edges), edges
        edges = self._edges_make_to_n8n(workflow, planned)
        return self._assemble_n8n(workflow, planned, results, edges), edges


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _failed(diagnostics: Diagnostics, direction: Direction, total: int) -> ConversionResult:
    diagnostics.reset_outputs()
    return ConversionResult(
        {},
        diagnostics.entries(),
        [],
        [],
        diagnostics.summary(source=direction.source.value, target=direction.target.value, total=total),
        direction=direction,
        ok=False,
    )


def convert_workflow(
    workflow: Union[Dict[str, Any], str, Path],
    direction: Union[Direction, str],
    *,
    registry: Any = None,
    options: Any = None,
    log_sink: Optional[LogSink] = None,
) -> ConversionResult:
    """Convert a workflow document in the given direction.

    registry: MappingRegistry, mapping database dict, JSON path, or None (built-in)
    options: ConversionOptions or a dict with camelCase/snake_case keys
    log_sink: optional callable(level, message) receiving every log entry
    """
    d = Direction.parse(direction)
    opts = resolve_options(options)
    diag = Diagnostics(sink=log_sink, debug=opts.debug)

    try:
        reg = resolve_registry(registry)
    except MappingDatabaseError as e:
        diag.error(f"Mapping database error: {e}", category=ErrorCategory.MAPPING, details=error_details(e))
        return _failed(diag, d, 0)

    try:
        data = normalize_workflow_input(workflow)
        if d.source is Platform.N8N:
            data = validate_n8n_workflow(data)
        else:
            data, legacy = normalize_make_workflow(data)
            if legacy:
                diag.info("Normalized legacy Make blueprint shape", category=ErrorCategory.VALIDATION)
    except InvalidWorkflowError as e:
        diag.error(f"Invalid {d.source.value} workflow: {e}", category=ErrorCategory.VALIDATION, details=error_details(e))
        return _failed(diag, d, 0)

    graph = _GraphConverter(d, reg, opts, diag)
    try:
        converted, edges = graph.run(data)
    except FlowBridgeError as e:
        diag.error(f"Conversion aborted in strict mode: {e}", category=ErrorCategory.CONVERSION, details=error_details(e))
        return _failed(diag, d, graph.total)

    debug_info = diag.summary(source=d.source.value, target=d.target.value, total=graph.total)
    debug_info["skippedEntities"] = len(graph.skipped)
    return ConversionResult(
        converted,
        diag.entries(),
        list(diag.review),
        list(diag.unmapped),
        debug_info,
        edges=edges,
        direction=d,
        ok=True,
    )


def n8n_to_make(workflow: Union[Dict[str, Any], str, Path], **kw: Any) -> ConversionResult:
    return convert_workflow(workflow, Direction.N8N_TO_MAKE, **kw)


def make_to_n8n(workflow: Union[Dict[str, Any], str, Path], **kw: Any) -> ConversionResult:
    return convert_workflow(workflow, Direction.MAKE_TO_N8N, **kw)


def convert(
    workflow: Union[Dict[str, Any], str, Path],
    *,
    to: Optional[Union[Platform, str]] = None,
    output_path: Optional[Union[str, Path]] = None,
    **kw: Any,
) -> ConversionResult:
    """Convert with the source platform detected from the document.

    to defaults to the other platform. Raises ValueError when the platform
    cannot be detected or equals `to`.
    """
    data = normalize_workflow_input(workflow)
    source = detect_platform(data)
    if source is None:
        raise ValueError("Cannot detect workflow platform (expected n8n 'nodes' or Make 'flow')")
    target = Platform.parse(to) if to is not None else source.other
    result = convert_workflow(copy.deepcopy(data), Direction.between(source, target), **kw)
    if output_path is not None and result.ok:
        result.save(output_path)
    return result
