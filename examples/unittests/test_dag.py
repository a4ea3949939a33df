#!/usr/bin/env python3
"""Offline tests for DAG building and connection-model translation (n8n + Make).

No network calls.

Run:
  python3 -m unittest examples.unittests.test_dag -v
"""

import sys
import unittest
from pathlib import Path

# Allow running this file directly without installing the package.
_repo_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(_repo_root))

from flowbridge import Edge, build_make_dag, build_n8n_dag  # noqa: E402
from flowbridge.dag import (  # noqa: E402
    connections_from_edges,
    edges_from_connections,
    edges_from_flow,
    flow_from_edges,
    iter_flow_modules,
    sequential_edges,
)


def _conn(name, index=0):
    return {"node": name, "type": "main", "index": index}


class TestN8nDag(unittest.TestCase):
    def setUp(self):
        self.wf = {
            "nodes": [
                {"id": "a", "name": "Hook", "type": "n8n-nodes-base.webhook"},
                {"id": "b", "name": "Check", "type": "n8n-nodes-base.if"},
                {"id": "c", "name": "Yes", "type": "n8n-nodes-base.set"},
                {"id": "d", "name": "No", "type": "n8n-nodes-base.set"},
            ],
            "connections": {
                "Hook": {"main": [[_conn("Check")]]},
                "Check": {"main": [[_conn("Yes")], [_conn("No")]]},
            },
        }

    def test_edges_and_queries(self):
        d = build_n8n_dag(self.wf)
        self.assertEqual(d.platform, "n8n")
        self.assertIn(Edge("a", "b", 0, 0), d.edges)
        self.assertIn(Edge("b", "d", 1, 0), d.edges)
        self.assertEqual(d.deps("c"), ["b"])
        self.assertEqual(d.rdeps("b"), ["c", "d"])
        self.assertEqual(d.outputs("b"), {0: ["c"], 1: ["d"]})
        self.assertEqual(d.ancestors("d"), ["a", "b"])
        self.assertEqual(d.descendants("a"), ["b", "c", "d"])
        self.assertEqual(d.roots(), ["a"])

    def test_render(self):
        d = build_n8n_dag(self.wf)
        dot = d.to_dot(label="name")
        self.assertIn("digraph workflow", dot)
        self.assertIn('"b" -> "d" [label="1"];', dot)
        mm = d.to_mermaid()
        self.assertIn('n_a["a: Hook"]', mm)
        self.assertIn("n_b -- 1 --> n_d", mm)
        self.assertIn('["b - n8n-nodes-base.if"]', d.to_mermaid(label="{id} - {type}"))
        self.assertIn('n_c["c"]', d.to_mermaid(label="id"))

    def test_toposort(self):
        wf = {
            "nodes": [
                {"id": "z", "name": "Last"},
                {"id": "y", "name": "Middle"},
                {"id": "x", "name": "First"},
            ],
            "connections": {"First": {"main": [[_conn("Middle")]]}, "Middle": {"main": [[_conn("Last")]]}},
        }
        d = build_n8n_dag(wf)
        self.assertEqual(d.nodes.toposort(), ["x", "y", "z"])
        self.assertEqual(d.toposort().nodes, ["x", "y", "z"])

    def test_cycle_keeps_order(self):
        wf = {
            "nodes": [{"id": "1", "name": "A"}, {"id": "2", "name": "B"}],
            "connections": {"A": {"main": [[_conn("B")]]}, "B": {"main": [[_conn("A")]]}},
        }
        self.assertEqual(build_n8n_dag(wf).nodes.toposort(), ["1", "2"])


class TestMakeDag(unittest.TestCase):
    def test_nested_flow(self):
        bp = {
            "flow": [
                {"id": 1, "module": "gateway:CustomWebHook", "label": "Hook"},
                {
                    "id": 2,
                    "module": "builtin:BasicRouter",
                    "routes": [
                        {"flow": [{"id": 3, "module": "util:SetVariables"}, {"id": 4, "module": "http:ActionSendData"}]},
                        {"flow": [{"id": 5, "module": "http:ActionSendData"}]},
                    ],
                },
            ]
        }
        self.assertEqual([m["id"] for m in iter_flow_modules(bp["flow"])], [1, 2, 3, 4, 5])
        d = build_make_dag(bp)
        self.assertEqual(d.platform, "make")
        self.assertEqual(
            d.edges,
            [Edge("1", "2", 0, 0), Edge("2", "3", 0, 0), Edge("3", "4", 0, 0), Edge("2", "5", 1, 0)],
        )
        self.assertEqual(d.entities["1"], {"type": "gateway:CustomWebHook", "name": "Hook"})

    def test_modules_after_router_continue_from_output_zero(self):
        flow = [
            {"id": 1, "module": "builtin:BasicRouter", "routes": [{"flow": []}]},
            {"id": 2, "module": "http:ActionSendData"},
        ]
        edges = edges_from_flow(flow, lambda m: str(m["id"]))
        self.assertEqual(edges, [Edge("1", "2", 0, 0)])


class TestConnectionModels(unittest.TestCase):
    def test_edges_from_connections_unresolved(self):
        conns = {"A": {"main": [[_conn("B"), _conn("Ghost")]]}, "Gone": {"main": [[_conn("A")]]}}
        edges, unresolved = edges_from_connections(conns, {"A": "1", "B": "2"})
        self.assertEqual(edges, [Edge("1", "2", 0, 0)])
        self.assertEqual(unresolved, [("A", "Ghost", "Ghost"), ("Gone", "A", "Gone")])

    def test_connections_from_edges_fixed_groups(self):
        edges = [Edge("1", "2", 0, 0), Edge("1", "3", 2, 0)]
        conns = connections_from_edges(edges, {"1": "R", "2": "X", "3": "Y", "4": "Z"}, {"1": 4})
        self.assertEqual(
            conns,
            {"R": {"main": [[_conn("X")], [], [_conn("Y")], []]}},
        )

    def test_sequential_edges(self):
        self.assertEqual(sequential_edges([1, 2, 3]), [Edge("1", "2"), Edge("2", "3")])
        self.assertEqual(sequential_edges(["only"]), [])

    def test_flow_from_edges_router(self):
        modules = {i: {"id": int(i)} for i in ("1", "2", "3", "4")}
        modules["2"]["routes"] = [{"flow": []}, {"flow": []}]
        edges = [Edge("1", "2"), Edge("2", "3", 0), Edge("2", "4", 1)]
        flow, notes = flow_from_edges(["1", "2", "3", "4"], edges, modules, {"2": 2})
        self.assertEqual([m["id"] for m in flow], [1, 2])
        self.assertEqual([[m["id"] for m in r["flow"]] for r in flow[1]["routes"]], [[3], [4]])
        self.assertEqual(notes, [])

    def test_flow_from_edges_fan_out_and_merge(self):
        modules = {i: {"id": int(i)} for i in ("1", "2", "3", "4")}
        edges = [Edge("1", "2"), Edge("1", "3"), Edge("2", "4"), Edge("3", "4")]
        flow, notes = flow_from_edges(["1", "2", "3", "4"], edges, modules)
        self.assertEqual([m["id"] for m in flow], [1, 2, 4, 3])
        self.assertEqual(len(notes), 2)

    def test_flow_from_edges_extra_router_output(self):
        modules = {"1": {"id": 1, "routes": [{"flow": []}]}, "2": {"id": 2}}
        flow, notes = flow_from_edges(["1", "2"], [Edge("1", "2", 1)], modules, {"1": 1})
        self.assertEqual(len(flow[0]["routes"]), 2)
        self.assertEqual(flow[0]["routes"][1]["flow"], [{"id": 2}])
        self.assertEqual(len(notes), 1)

    def test_flow_from_edges_shared_router_output(self):
        modules = {"1": {"id": 1, "routes": [{"flow": []}]}, "3": {"id": 3}, "4": {"id": 4}}
        edges = [Edge("1", "3", 0), Edge("1", "4", 0)]
        flow, notes = flow_from_edges(["1", "3", "4"], edges, modules, {"1": 1})
        self.assertEqual([m["id"] for m in flow], [1])
        self.assertEqual(flow[0]["routes"][0]["flow"], [{"id": 3}, {"id": 4}])
        self.assertEqual(notes, ["Entity 1 output 0 has 2 targets; they were chained in one route"])


if __name__ == "__main__":
    unittest.main()
