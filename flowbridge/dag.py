"""flowbridge.dag

Stdlib-only graph helpers shared by both workflow shapes.

Both platform connection models are views of one edge list:
- n8n: `connections[sourceName]["main"][outputIndex] = [{"node": targetName, "type": "main", "index": inputIndex}]`
- Make: nested `flow` lists; a module is followed by the next module of its
  list, and a router's `routes[i].flow` hangs off output i.

Design goals:
- tiny, ergonomic API (dict subclass + helper methods)
- stable output ordering (Python 3.7+ dict insertion order)
"""

from __future__ import annotations

from collections import deque
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Set, Tuple, Union

NodeId = str


class Edge(NamedTuple):
    source: NodeId
    target: NodeId
    output_index: int = 0
    input_index: int = 0


class _PrettyText(str):
    """A str that renders nicely in REPLs by making repr() equal to the text itself."""

    def __repr__(self) -> str:  # pragma: no cover
        return str(self)


class _DagNodes(list):
    __slots__ = ("_dag",)

    def __init__(self, items: Iterable[NodeId], dag: "Dag"):
        super().__init__(items)
        self._dag = dag

    def toposort(self) -> List[NodeId]:
        return self._dag._toposort_nodes()


class Dag(dict):
    """Tiny dict subclass representing a workflow graph (best-effort DAG).

    Underlying structure:
      {
        "platform": "n8n" | "make",
        "nodes": [<entity_id>, ...],
        "edges": [[src, dst, output_index, input_index], ...],
        "entities": {entity_id: {"type": "...", "name": "..."}}
      }
    """

    @property
    def platform(self) -> Optional[str]:
        p = self.get("platform")
        return p if isinstance(p, str) else None

    @property
    def nodes(self) -> List[NodeId]:
        n = self.get("nodes")
        base = [str(x) for x in n] if isinstance(n, list) else []
        return _DagNodes(base, self)

    @property
    def edges(self) -> List[Edge]:
        e = self.get("edges")
        out: List[Edge] = []
        if not isinstance(e, list):
            return out
        for it in e:
            if isinstance(it, (list, tuple)) and len(it) >= 2:
                oi = int(it[2]) if len(it) > 2 else 0
                ii = int(it[3]) if len(it) > 3 else 0
                out.append(Edge(str(it[0]), str(it[1]), oi, ii))
        return out

    @property
    def entities(self) -> Dict[NodeId, Dict[str, Any]]:
        """Entity metadata keyed by id (type/name)."""
        m = self.get("entities")
        return m if isinstance(m, dict) else {}

    def _ordered(self, ids: Set[NodeId]) -> List[NodeId]:
        nodes = self.nodes
        return sorted(ids, key=lambda n: (nodes.index(n) if n in nodes else 10**9, n))

    def deps(self, node_id: Union[str, int]) -> List[NodeId]:
        """Immediate upstream entities of node_id."""
        nid = str(node_id)
        return self._ordered({e.source for e in self.edges if e.target == nid})

    def rdeps(self, node_id: Union[str, int]) -> List[NodeId]:
        """Immediate downstream entities of node_id."""
        nid = str(node_id)
        return self._ordered({e.target for e in self.edges if e.source == nid})

    def outputs(self, node_id: Union[str, int]) -> Dict[int, List[NodeId]]:
        """Downstream entities of node_id grouped by output index."""
        nid = str(node_id)
        out: Dict[int, List[NodeId]] = {}
        for e in self.edges:
            if e.source == nid:
                out.setdefault(e.output_index, []).append(e.target)
        return dict(sorted(out.items()))

    def _walk(self, start: NodeId, step: Callable[[NodeId], List[NodeId]]) -> List[NodeId]:
        seen: Set[NodeId] = set()
        q = deque(step(start))
        while q:
            cur = q.popleft()
            if cur in seen:
                continue
            seen.add(cur)
            for nxt in step(cur):
                if nxt not in seen:
                    q.append(nxt)
        return self._ordered(seen)

    def ancestors(self, node_id: Union[str, int]) -> List[NodeId]:
        """All upstream ancestors (transitive)."""
        return self._walk(str(node_id), self.deps)

    def descendants(self, node_id: Union[str, int]) -> List[NodeId]:
        """All downstream descendants (transitive)."""
        return self._walk(str(node_id), self.rdeps)

    def roots(self) -> List[NodeId]:
        targets = {e.target for e in self.edges}
        return [n for n in self.nodes if n not in targets]

    def _toposort_nodes(self) -> List[NodeId]:
        """Best-effort topological ordering. Falls back to original nodes order if cycles exist."""
        nodes = self.nodes
        indeg: Dict[NodeId, int] = {n: 0 for n in nodes}
        adj: Dict[NodeId, List[NodeId]] = {n: [] for n in nodes}
        for e in self.edges:
            if e.source not in indeg or e.target not in indeg:
                continue
            adj[e.source].append(e.target)
            indeg[e.target] += 1

        q = deque([n for n in nodes if indeg.get(n, 0) == 0])
        out: List[NodeId] = []
        while q:
            n = q.popleft()
            out.append(n)
            for m in adj.get(n, []):
                indeg[m] -= 1
                if indeg[m] == 0:
                    q.append(m)

        # Cycle or missing nodes: return stable nodes order
        if len(out) != len(nodes):
            return list(nodes)
        return out

    def toposort(self) -> "Dag":
        """Return a new Dag whose `nodes` ordering is topologically sorted (best-effort)."""
        ordered = self._toposort_nodes()
        idx = {n: i for i, n in enumerate(ordered)}
        edges_sorted = sorted(self.edges, key=lambda e: (idx.get(e.source, 10**9), idx.get(e.target, 10**9), e.output_index))
        d = dict(self)
        d["nodes"] = list(ordered)
        d["edges"] = [list(e) for e in edges_sorted]
        return Dag(d)

    def to_dot(self, *, label: str = "id") -> str:
        """Graphviz DOT string; edges from outputs other than 0 carry the output index as label.

        label can be a preset ("id" | "type" | "name" | "id_type") or a template such as "{id} - {name}".
        """
        lines = ["digraph workflow {", "  rankdir=LR;"]
        for n in self.nodes:
            safe = _format_node_label(label, n, self.entities.get(n, {})).replace('"', '\\"')
            lines.append(f'  "{n}" [label="{safe}"];')
        for e in self.edges:
            attr = f' [label="{e.output_index}"]' if e.output_index else ""
            lines.append(f'  "{e.source}" -> "{e.target}"{attr};')
        lines.append("}")
        return _PrettyText("\n".join(lines))

    def to_mermaid(self, *, direction: str = "LR", label: str = "{id}: {name}") -> str:
        """Mermaid flowchart string (direction LR|TD)."""
        dir2 = direction if direction in ("LR", "TD") else "LR"
        lines = [f"flowchart {dir2}"]

        # Mermaid IDs can't contain ':' reliably; use a safe prefix and keep original as label.
        def _mid(n: str) -> str:
            return "n_" + "".join(ch if ch.isalnum() else "_" for ch in n)

        for n in self.nodes:
            ln = _format_node_label(label, n, self.entities.get(n, {})).replace('"', '\\"')
            lines.append(f'  {_mid(n)}["{ln}"]')
        for e in self.edges:
            arrow = f"-- {e.output_index} -->" if e.output_index else "-->"
            lines.append(f"  {_mid(e.source)} {arrow} {_mid(e.target)}")
        return _PrettyText("\n".join(lines))


def _format_node_label(label: str, node_id: str, meta: Dict[str, Any]) -> str:
    """Format node label from preset or template string."""
    if isinstance(label, str) and "{" in label and "}" in label:
        mapping = {
            "id": str(node_id),
            "type": str(meta.get("type") or ""),
            "name": str(meta.get("name") or ""),
        }
        try:
            out = label.format(**mapping)
            return out if out else str(node_id)
        except (KeyError, IndexError, ValueError):
            return str(node_id)

    if label in ("type", "name"):
        return str(meta.get(label) or node_id)
    if label in ("id_type", "id:type"):
        t = meta.get("type")
        return f"{node_id}: {t}" if isinstance(t, str) and t else str(node_id)
    return str(node_id)


# ---------------------------------------------------------------------------
# n8n connections <-> edges
# ---------------------------------------------------------------------------


def edges_from_connections(
    connections: Mapping[str, Any], name_to_id: Mapping[str, NodeId]
) -> Tuple[List[Edge], List[Tuple[str, str, str]]]:
    """Resolve an n8n connections map into edges.

    Returns (edges, unresolved) where unresolved holds (source, target, missing)
    name triples for endpoints missing from name_to_id. Only `main` connections
    are considered.
    """
    edges: List[Edge] = []
    unresolved: List[Tuple[str, str, str]] = []
    if not isinstance(connections, Mapping):
        return edges, unresolved
    for src_name, by_type in connections.items():
        groups = by_type.get("main") if isinstance(by_type, Mapping) else None
        if not isinstance(groups, list):
            continue
        for out_idx, group in enumerate(groups):
            for conn in group if isinstance(group, list) else []:
                if not isinstance(conn, Mapping):
                    continue
                dst_name = str(conn.get("node", ""))
                missing = src_name if src_name not in name_to_id else (dst_name if dst_name not in name_to_id else None)
                if missing is not None:
                    unresolved.append((str(src_name), dst_name, str(missing)))
                    continue
                in_idx = conn.get("index", 0)
                edges.append(
                    Edge(str(name_to_id[src_name]), str(name_to_id[dst_name]), out_idx, in_idx if isinstance(in_idx, int) else 0)
                )
    return edges, unresolved


def connections_from_edges(
    edges: Iterable[Edge],
    id_to_name: Mapping[NodeId, str],
    branch_counts: Optional[Mapping[NodeId, int]] = None,
) -> Dict[str, Dict[str, List[List[Dict[str, Any]]]]]:
    """Build an n8n connections map; branching entities get one output group per branch."""
    conns: Dict[str, Dict[str, List[List[Dict[str, Any]]]]] = {}

    def _groups(src: NodeId, size: int) -> List[List[Dict[str, Any]]]:
        main = conns.setdefault(id_to_name[src], {}).setdefault("main", [])
        while len(main) < size:
            main.append([])
        return main

    for nid, count in (branch_counts or {}).items():
        if count > 0 and nid in id_to_name:
            _groups(nid, count)
    for e in edges:
        if e.source not in id_to_name or e.target not in id_to_name:
            continue
        main = _groups(e.source, e.output_index + 1)
        main[e.output_index].append({"node": id_to_name[e.target], "type": "main", "index": e.input_index})
    return conns


def sequential_edges(ids: Iterable[NodeId]) -> List[Edge]:
    """Chain ids in order at output 0."""
    seq = [str(i) for i in ids]
    return [Edge(a, b, 0, 0) for a, b in zip(seq, seq[1:])]


# ---------------------------------------------------------------------------
# Make flows <-> edges
# ---------------------------------------------------------------------------


def iter_flow_modules(flow: Any) -> Iterator[Dict[str, Any]]:
    """Depth-first, in-order walk over a (nested) Make flow."""
    for mod in flow if isinstance(flow, list) else []:
        if not isinstance(mod, dict):
            continue
        yield mod
        for route in mod.get("routes") or []:
            if isinstance(route, dict):
                yield from iter_flow_modules(route.get("flow"))


def edges_from_flow(flow: Any, key: Callable[[Dict[str, Any]], Optional[NodeId]]) -> List[Edge]:
    """Edges implied by a nested Make flow.

    Each list is a chain at output 0; the first module of `routes[i].flow` is
    connected from the router's output i. key() maps a module to its node id
    (None drops the module and any edge touching it).
    """
    edges: List[Edge] = []

    def _chain(items: Any, head: Optional[Tuple[Optional[NodeId], int]]) -> None:
        prev = head
        for mod in items if isinstance(items, list) else []:
            if not isinstance(mod, dict):
                continue
            nid = key(mod)
            if prev is not None and prev[0] is not None and nid is not None:
                edges.append(Edge(prev[0], nid, prev[1], 0))
            routes = mod.get("routes")
            if isinstance(routes, list):
                for i, route in enumerate(routes):
                    if isinstance(route, dict):
                        _chain(route.get("flow"), (nid, i))
            prev = (nid, 0)

    _chain(flow, None)
    return edges


def flow_from_edges(
    order: List[NodeId],
    edges: Iterable[Edge],
    modules: Mapping[NodeId, Dict[str, Any]],
    branch_counts: Optional[Mapping[NodeId, int]] = None,
) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Lay edges out as a nested Make flow.

    A chain follows output 0; a branching module's output i fills
    `routes[i].flow`; several targets on one output are chained in that route
    with a note. An entity reached a second time stays at its first
    position; extra targets of a non-branching entity and unreached entities
    are appended to the top-level flow in order. Returns (flow, notes).
    """
    counts = branch_counts or {}
    by_source: Dict[NodeId, Dict[int, List[NodeId]]] = {}
    has_incoming: Set[NodeId] = set()
    for e in edges:
        if e.source in modules and e.target in modules:
            by_source.setdefault(e.source, {}).setdefault(e.output_index, []).append(e.target)
            has_incoming.add(e.target)

    placed: Set[NodeId] = set()
    pending: List[NodeId] = []
    notes: List[str] = []

    def _build(start: NodeId) -> List[Dict[str, Any]]:
        chain: List[Dict[str, Any]] = []
        cur: Optional[NodeId] = start
        while cur is not None:
            if cur in placed:
                notes.append(f"Entity {cur} is reached from several branches; kept at its first position")
                break
            placed.add(cur)
            mod = modules[cur]
            chain.append(mod)
            outs = by_source.get(cur, {})
            n = counts.get(cur, 0)
            if n > 0:
                routes = mod.setdefault("routes", [])
                width = max([n] + [i + 1 for i in outs])
                while len(routes) < width:
                    routes.append({"flow": []})
                    notes.append(f"Entity {cur} output {len(routes) - 1} has no matching condition; added an unconditional route")
                for i in range(width):
                    if len(outs.get(i, [])) > 1:
                        notes.append(f"Entity {cur} output {i} has {len(outs[i])} targets; they were chained in one route")
                    flow: List[Dict[str, Any]] = []
                    for t in outs.get(i, []):
                        flow.extend(_build(t))
                    routes[i]["flow"] = flow
                cur = None
                continue
            targets = [t for i in sorted(outs) for t in outs[i]]
            nxt = [t for t in targets if t not in placed]
            if len(targets) > 1:
                notes.append(f"Entity {cur} fans out to {len(targets)} entities; extra branches were appended to the main flow")
                pending.extend(nxt[1:])
            cur = nxt[0] if nxt else None
            if targets and not nxt:
                notes.append(f"Entity {targets[0]} is reached from several branches; kept at its first position")
        return chain

    out: List[Dict[str, Any]] = []
    for nid in order:
        if nid in placed or nid in has_incoming:
            continue
        out.extend(_build(nid))
        while pending:
            t = pending.pop(0)
            if t not in placed:
                out.extend(_build(t))
    for nid in order:
        if nid not in placed:
            out.extend(_build(nid))
    return out, notes


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_dag(
    platform: str,
    nodes: Iterable[NodeId],
    edges: Iterable[Edge],
    entities: Optional[Mapping[NodeId, Dict[str, Any]]] = None,
) -> Dag:
    return Dag(
        {
            "platform": str(platform),
            "nodes": [str(n) for n in nodes],
            "edges": [list(e) for e in edges],
            "entities": dict(entities or {}),
        }
    )


def build_n8n_dag(workflow: Mapping[str, Any]) -> Dag:
    """Build a DAG from an n8n workflow (ids as nodes, connections resolved by name)."""
    nodes: List[NodeId] = []
    entities: Dict[NodeId, Dict[str, Any]] = {}
    name_to_id: Dict[str, NodeId] = {}
    for i, n in enumerate(workflow.get("nodes") or []):
        if not isinstance(n, dict):
            continue
        nid = str(n.get("id", i + 1))
        nodes.append(nid)
        entities[nid] = {"type": n.get("type"), "name": n.get("name")}
        if isinstance(n.get("name"), str):
            name_to_id[n["name"]] = nid
    edges, _ = edges_from_connections(workflow.get("connections") or {}, name_to_id)
    return build_dag("n8n", nodes, edges, entities)


def build_make_dag(workflow: Mapping[str, Any]) -> Dag:
    """Build a DAG from a Make blueprint (nested flows walked depth-first)."""
    nodes: List[NodeId] = []
    entities: Dict[NodeId, Dict[str, Any]] = {}
    for mod in iter_flow_modules(workflow.get("flow")):
        nid = str(mod.get("id"))
        nodes.append(nid)
        entities[nid] = {"type": mod.get("module") or mod.get("type"), "name": mod.get("label") or mod.get("name")}
    edges = edges_from_flow(workflow.get("flow"), lambda m: str(m.get("id")))
    return build_dag("make", nodes, edges, entities)
