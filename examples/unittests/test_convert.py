#!/usr/bin/env python3
"""Offline tests for whole-workflow conversion (graph rebuild, logs, options, I/O).

Run:
  python3 -m unittest examples.unittests.test_convert -v
"""

import json
import sys
import tempfile
import unittest
from pathlib import Path

# Allow running this file directly without installing the package.
_repo_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(_repo_root))

from flowbridge import (  # noqa: E402
    Edge,
    InvalidWorkflowError,
    Platform,
    convert,
    convert_workflow,
    detect_platform,
    load_workflow,
    make_to_n8n,
    n8n_to_make,
    save_workflow,
)


def _node(name, type_, **params):
    return {"name": name, "type": "n8n-nodes-base." + type_, "parameters": params}


def _link(target):
    return {"node": target, "type": "main", "index": 0}


def _three_node_workflow(connections=None):
    wf = {
        "name": "Three",
        "nodes": [
            _node("A", "httpRequest", url="https://a"),
            _node("B", "httpRequest", url="https://b"),
            _node("C", "httpRequest", url="https://c"),
        ],
    }
    if connections is not None:
        wf["connections"] = connections
    return wf


class TestN8nToMake(unittest.TestCase):
    def test_custom_database(self):
        wf = {
            "nodes": [{"name": "Fetch", "type": "http-request", "parameters": {"url": "https://x", "method": "GET"}}],
            "connections": {},
        }
        db = {
            "mappings": [
                {
                    "sourceType": "http-request",
                    "targetType": "http-module",
                    "direction": "n8nToMake",
                    "parameterMappings": {"url": "URL", "method": "method"},
                }
            ]
        }
        res = n8n_to_make(wf, registry=db)
        self.assertTrue(res.ok)
        mod = res.converted_workflow["flow"][0]
        self.assertEqual(mod["module"], "http-module")
        self.assertEqual(mod["mapper"], {"URL": "https://x", "method": "GET"})
        self.assertEqual(res.unmapped_entities, [])
        self.assertEqual(res.debug_info["mappedEntities"], 1)

    def test_sequential_when_no_connections(self):
        res = n8n_to_make(_three_node_workflow())
        self.assertEqual(res.edges, [Edge("1", "2", 0, 0), Edge("2", "3", 0, 0)])
        flow = res.converted_workflow["flow"]
        self.assertEqual([m["id"] for m in flow], [1, 2, 3])
        self.assertEqual([m["label"] for m in flow], ["A", "B", "C"])
        self.assertEqual(res.converted_workflow["name"], "Three")

    def test_connections_resolved(self):
        conns = {"A": {"main": [[_link("C")]]}, "C": {"main": [[_link("B")]]}}
        res = n8n_to_make(_three_node_workflow(conns))
        self.assertEqual(res.edges, [Edge("1", "3", 0, 0), Edge("3", "2", 0, 0)])
        self.assertEqual([m["label"] for m in res.converted_workflow["flow"]], ["A", "C", "B"])

    def test_dangling_connection_dropped(self):
        conns = {"A": {"main": [[_link("Ghost")]]}}
        res = n8n_to_make(_three_node_workflow(conns))
        self.assertTrue(res.ok)
        self.assertEqual(res.edges, [])
        self.assertEqual(len(res.warnings), 1)
        self.assertIn("Ghost", res.warnings[0].message)
        self.assertEqual(res.warnings[0].details["error"], "GraphResolutionError")

    def test_switch_with_three_routes(self):
        wf = {
            "nodes": [
                _node("Hook", "webhook", path="in"),
                _node(
                    "Route",
                    "switch",
                    rules={
                        "conditions": [
                            {"value1": "={{ $json.k }}", "operation": "equal", "value2": "x"},
                            {"value1": "={{ $json.k }}", "operation": "equal", "value2": "y"},
                            {"value1": "={{ $json.k }}", "operation": "equal", "value2": "z"},
                        ]
                    },
                ),
                _node("X", "httpRequest", url="https://x"),
                _node("Y", "httpRequest", url="https://y"),
            ],
            "connections": {
                "Hook": {"main": [[_link("Route")]]},
                "Route": {"main": [[_link("X")], [], [_link("Y")]]},
            },
        }
        res = n8n_to_make(wf)
        make = res.converted_workflow
        self.assertTrue(make["metadata"]["instant"])
        self.assertEqual(len(make["flow"]), 2)
        routes = make["flow"][1]["routes"]
        self.assertEqual(len(routes), 3)
        self.assertEqual([m["label"] for m in routes[0]["flow"]], ["X"])
        self.assertEqual(routes[1]["flow"], [])
        self.assertEqual([m["label"] for m in routes[2]["flow"]], ["Y"])

    def test_if_routes(self):
        wf = {
            "nodes": [
                _node("Check", "if", conditions={"number": [{"value1": "={{ $json.n }}", "operation": "larger", "value2": 1}]}),
                _node("Yes", "httpRequest", url="https://yes"),
                _node("No", "httpRequest", url="https://no"),
            ],
            "connections": {"Check": {"main": [[_link("Yes")], [_link("No")]]}},
        }
        make = n8n_to_make(wf).converted_workflow
        self.assertEqual(len(make["flow"]), 1)
        self.assertFalse(make["metadata"]["instant"])
        routes = make["flow"][0]["routes"]
        self.assertEqual([r["label"] for r in routes], ["True", "False"])
        self.assertEqual([m["label"] for m in routes[1]["flow"]], ["No"])

    def test_unmapped_placeholder(self):
        wf = {"nodes": [{"name": "Odd", "type": "custom.weirdo", "parameters": {"a": 1}}]}
        res = n8n_to_make(wf)
        mod = res.converted_workflow["flow"][0]
        self.assertEqual(mod["module"], "helper:Note")
        self.assertEqual(res.unmapped_entities, ["1"])
        self.assertEqual(len(res.warnings), 1)
        self.assertEqual(res.debug_info["unmappedEntities"], 1)

    def test_ambiguous_reference_reviewed(self):
        wf = {"nodes": [_node("Fetch", "httpRequest", url='={{ $node["Gone"].json.url }}')]}
        res = n8n_to_make(wf)
        self.assertEqual([(r.entity, r.path) for r in res.parameters_needing_review], [("Fetch", "url")])

    def test_node_reference_rewritten_to_module_id(self):
        wf = {
            "nodes": [
                _node("First", "httpRequest", url="https://a"),
                _node("Second", "httpRequest", url='={{$node["First"].json.next}}'),
            ]
        }
        flow = n8n_to_make(wf).converted_workflow["flow"]
        self.assertEqual(flow[1]["mapper"]["url"], "{{1.next}}")

    def test_preserve_ids(self):
        wf = {"nodes": [dict(_node("A", "httpRequest"), id="5"), dict(_node("B", "httpRequest"), id="5")]}
        res = n8n_to_make(wf, options={"preserveIds": True})
        self.assertEqual([m["id"] for m in res.converted_workflow["flow"]], [5, 1])
        self.assertEqual(len(res.warnings), 1)

    def test_manual_trigger(self):
        wf = {"nodes": [_node("Start", "manualTrigger")]}
        mod = n8n_to_make(wf).converted_workflow["flow"][0]
        self.assertEqual(mod["mapper"]["interval"], {"value": 1, "unit": "days"})
        self.assertIn("notes", mod)

    def test_rules_without_defaults_write_nothing(self):
        wf = {"nodes": [_node("Fetch", "httpRequest", url="https://x", method="GET")]}
        make = n8n_to_make(wf).converted_workflow
        self.assertEqual(make["flow"][0]["mapper"], {"url": "https://x", "method": "GET"})
        self.assertEqual(json.loads(json.dumps(make)), make)


class TestMakeToN8n(unittest.TestCase):
    def test_placeholder_and_default_name(self):
        res = make_to_n8n({"flow": [{"id": 1, "module": "custom:Weirdo", "mapper": {"a": 1}}]})
        node = res.converted_workflow["nodes"][0]
        self.assertEqual(node["type"], "n8n-nodes-base.noOp")
        self.assertEqual(node["name"], "Weirdo 1")
        self.assertEqual(res.unmapped_entities, ["1"])
        self.assertEqual(len(res.warnings), 1)
        self.assertEqual(res.converted_workflow["name"], "Converted from Make")

    def test_app_modules_not_taken_for_families(self):
        flow = [
            {"id": 1, "module": "google-maps:geocode", "mapper": {"address": "Main St"}},
            {"id": 2, "module": "github:createIssueComment", "mapper": {"body": "hi"}},
        ]
        res = make_to_n8n({"flow": flow})
        nodes = res.converted_workflow["nodes"]
        self.assertEqual([n["type"] for n in nodes], ["n8n-nodes-base.noOp", "n8n-nodes-base.noOp"])
        self.assertEqual(nodes[1]["parameters"]["__stubInfo"]["originalParameters"], {"body": "hi"})
        self.assertEqual(res.unmapped_entities, ["1", "2"])

    def test_sequential_flow(self):
        flow = [
            {"id": 1, "module": "http:ActionSendData", "label": "A", "mapper": {"url": "a"}},
            {"id": 2, "module": "http:ActionSendData", "label": "B", "mapper": {"url": "b"}},
            {"id": 3, "module": "http:ActionSendData", "label": "C", "mapper": {"url": "c"}},
        ]
        res = make_to_n8n({"name": "Seq", "flow": flow})
        self.assertEqual(res.edges, [Edge("1", "2", 0, 0), Edge("2", "3", 0, 0)])
        conns = res.converted_workflow["connections"]
        self.assertEqual(conns["A"]["main"], [[{"node": "B", "type": "main", "index": 0}]])
        self.assertEqual(conns["B"]["main"], [[{"node": "C", "type": "main", "index": 0}]])
        self.assertEqual(res.converted_workflow["settings"], {"executionOrder": "v1"})

    def test_router_to_switch_groups(self):
        flow = [
            {
                "id": 1,
                "module": "builtin:BasicRouter",
                "label": "Router",
                "routes": [
                    {"condition": {"left": "{{1.k}}", "operator": "equal", "right": "x"}, "flow": [{"id": 2, "module": "http:ActionSendData", "label": "X"}]},
                    {"flow": []},
                    {"flow": [{"id": 3, "module": "http:ActionSendData", "label": "Y"}]},
                ],
            }
        ]
        res = make_to_n8n({"flow": flow})
        nodes = res.converted_workflow["nodes"]
        self.assertEqual([n["name"] for n in nodes], ["Router", "X", "Y"])
        self.assertEqual(nodes[0]["type"], "n8n-nodes-base.switch")
        main = res.converted_workflow["connections"]["Router"]["main"]
        self.assertEqual(len(main), 3)
        self.assertEqual(main[0], [{"node": "X", "type": "main", "index": 0}])
        self.assertEqual(main[1], [])
        self.assertEqual(main[2], [{"node": "Y", "type": "main", "index": 0}])
        conds = nodes[0]["parameters"]["rules"]["conditions"]
        self.assertEqual(conds[1]["operation"], "else")

    def test_duplicate_labels_made_unique(self):
        flow = [
            {"id": 1, "module": "http:ActionSendData", "label": "Call"},
            {"id": 2, "module": "http:ActionSendData", "label": "Call"},
        ]
        res = make_to_n8n({"flow": flow})
        self.assertEqual([n["name"] for n in res.converted_workflow["nodes"]], ["Call", "Call1"])
        self.assertIn("Call", res.converted_workflow["connections"])

    def test_legacy_blueprint_shape(self):
        legacy = {"blueprint": {"name": "Old"}, "modules": [{"id": 1, "module": "http:ActionSendData", "label": "A"}]}
        res = make_to_n8n(legacy)
        self.assertTrue(res.ok)
        self.assertEqual(res.converted_workflow["name"], "Old")
        self.assertIn("Normalized legacy Make blueprint shape", [e.message for e in res.logs])

    def test_stub_round_trip(self):
        original = {"flow": [{"id": 1, "module": "custom:Weirdo", "label": "Odd", "mapper": {"a": 1}}]}
        n8n = make_to_n8n(original).converted_workflow
        back = n8n_to_make(n8n)
        mod = back.converted_workflow["flow"][0]
        self.assertEqual(mod["module"], "custom:Weirdo")
        self.assertEqual(mod["mapper"], {"a": 1})
        self.assertEqual(mod["label"], "Odd")
        self.assertEqual(back.unmapped_entities, [])

    def test_preserve_ids_as_strings(self):
        res = make_to_n8n({"flow": [{"id": 10, "module": "http:ActionSendData", "label": "A"}]}, options={"preserve_ids": True})
        self.assertEqual(res.converted_workflow["nodes"][0]["id"], "10")


class TestFailuresAndOptions(unittest.TestCase):
    def test_invalid_input_is_fatal(self):
        res = n8n_to_make({"foo": 1})
        self.assertFalse(res.ok)
        self.assertEqual(res.converted_workflow, {})
        self.assertEqual(len(res.errors), 1)
        self.assertTrue(res.errors[0].message.startswith("Invalid n8n workflow"))
        self.assertEqual(res.parameters_needing_review, [])

    def test_bad_mapping_database_is_fatal(self):
        res = n8n_to_make(_three_node_workflow(), registry={"nope": 1})
        self.assertFalse(res.ok)
        self.assertEqual(len(res.errors), 1)

    def test_strict_mode_aborts(self):
        wf = {"nodes": [_node("A", "httpRequest"), {"name": "Odd", "type": "custom.weirdo", "parameters": {}}]}
        res = n8n_to_make(wf, options={"strictMode": True})
        self.assertFalse(res.ok)
        self.assertEqual(res.converted_workflow, {})
        self.assertEqual(res.unmapped_entities, [])
        self.assertTrue(res.errors[0].message.startswith("Conversion aborted in strict mode"))
        self.assertEqual(res.parameters_needing_review, [])

    def _bad_rule_db(self):
        return {
            "mappings": [
                {
                    "sourceType": "bad.type",
                    "targetType": "bad:Module",
                    "parameterMappings": [{"sourcePath": "a", "targetPath": "x"}, {"sourcePath": "b", "targetPath": "x.y"}],
                }
            ]
        }

    def test_entity_failure_becomes_placeholder(self):
        wf = {"nodes": [{"name": "Bad", "type": "bad.type", "parameters": {"a": [1], "b": 2}}]}
        res = n8n_to_make(wf, registry=self._bad_rule_db())
        self.assertTrue(res.ok)
        self.assertEqual(res.converted_workflow["flow"][0]["module"], "helper:Note")
        self.assertEqual(res.unmapped_entities, ["1"])
        self.assertEqual(len(res.warnings), 1)

    def test_entity_failure_strict_is_fatal(self):
        wf = {"nodes": [{"name": "Bad", "type": "bad.type", "parameters": {"a": [1], "b": 2}}]}
        res = n8n_to_make(wf, registry=self._bad_rule_db(), options={"strictMode": True})
        self.assertFalse(res.ok)

    def test_skip_disabled(self):
        wf = _three_node_workflow({"A": {"main": [[_link("B")]]}, "B": {"main": [[_link("C")]]}})
        wf["nodes"][1]["disabled"] = True
        res = n8n_to_make(wf, options={"skipDisabled": True})
        self.assertEqual([m["label"] for m in res.converted_workflow["flow"]], ["A", "C"])
        self.assertEqual(len(res.warnings), 2)
        self.assertEqual(res.debug_info["skippedEntities"], 1)
        self.assertEqual(res.debug_info["totalEntities"], 3)
        self.assertTrue(any(e.level.value == "info" and "disabled" in e.message for e in res.logs))

    def test_log_sink_receives_every_entry(self):
        seen = []
        res = make_to_n8n({"flow": [{"id": 1, "module": "custom:Weirdo"}]}, log_sink=lambda lvl, msg: seen.append((lvl, msg)))
        self.assertEqual(seen, [(e.level.value, e.message) for e in res.logs])
        self.assertEqual(seen[0][0], "warning")

    def test_debug_trace(self):
        res = n8n_to_make(_three_node_workflow(), options={"debug": True})
        self.assertEqual(len(res.debug_info["trace"]), 3)
        self.assertIn("elapsedMs", res.debug_info)
        self.assertNotIn("trace", n8n_to_make(_three_node_workflow()).debug_info)

    def test_to_dict_shape(self):
        d = make_to_n8n({"flow": [{"id": 1, "module": "custom:Weirdo"}]}).to_dict()
        self.assertEqual(
            sorted(d), ["convertedWorkflow", "debugInfo", "logs", "parametersNeedingReview", "unmappedEntities"]
        )
        self.assertEqual(d["logs"][0]["level"], "warning")
        self.assertEqual(d["unmappedEntities"], ["1"])
        json.dumps(d)

    def test_input_not_mutated(self):
        wf = _three_node_workflow()
        snapshot = json.dumps(wf, sort_keys=True)
        n8n_to_make(wf)
        self.assertEqual(json.dumps(wf, sort_keys=True), snapshot)

    def test_direction_spellings(self):
        res = convert_workflow(_three_node_workflow(), "n8n-to-make")
        self.assertIn("flow", res.converted_workflow)
        with self.assertRaises(ValueError):
            convert_workflow(_three_node_workflow(), "sideways")

    def test_dag_of_result(self):
        res = n8n_to_make(_three_node_workflow())
        dag = res.dag
        self.assertEqual(dag.nodes, ["1", "2", "3"])
        self.assertEqual(dag.deps("3"), ["2"])
        self.assertIn("n_1", dag.to_mermaid())


class TestDetectionAndIO(unittest.TestCase):
    def test_detect_platform(self):
        self.assertIs(detect_platform({"nodes": []}), Platform.N8N)
        self.assertIs(detect_platform({"flow": []}), Platform.MAKE)
        self.assertIs(detect_platform({"blueprint": {}, "modules": []}), Platform.MAKE)
        self.assertIsNone(detect_platform({"x": 1}))
        self.assertIsNone(detect_platform([]))

    def test_convert_auto_direction(self):
        res = convert(_three_node_workflow())
        self.assertIn("flow", res.converted_workflow)
        res = convert({"flow": [{"id": 1, "module": "http:ActionSendData", "label": "A"}]})
        self.assertIn("nodes", res.converted_workflow)

    def test_convert_rejects(self):
        with self.assertRaises(ValueError):
            convert({"x": 1})
        with self.assertRaises(ValueError):
            convert({"nodes": []}, to="n8n")

    def test_load_save(self):
        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "wf.json"
            save_workflow(_three_node_workflow(), src)
            self.assertEqual(load_workflow(src)["name"], "Three")

            out = Path(td) / "nested" / "out.json"
            res = convert(src, output_path=out)
            self.assertTrue(out.exists())
            self.assertEqual(json.loads(out.read_text(encoding="utf-8")), res.converted_workflow)

    def test_load_errors(self):
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(InvalidWorkflowError):
                load_workflow(Path(td) / "missing.json")
            bad = Path(td) / "bad.json"
            bad.write_text("{oops", encoding="utf-8")
            with self.assertRaises(InvalidWorkflowError):
                load_workflow(bad)

    def test_save_failed_result_raises(self):
        res = n8n_to_make({"foo": 1})
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ValueError):
                res.save(Path(td) / "x.json")


if __name__ == "__main__":
    unittest.main()
