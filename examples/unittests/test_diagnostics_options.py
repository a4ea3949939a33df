#!/usr/bin/env python3
"""Offline tests for diagnostics collection, conversion options and platform tags.

Run:
  python3 -m unittest examples.unittests.test_diagnostics_options -v
"""

import sys
import unittest
from pathlib import Path

# Allow running this file directly without installing the package.
_repo_root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(_repo_root))

from flowbridge import (  # noqa: E402
    ConversionOptions,
    Diagnostics,
    Direction,
    EntityKind,
    ErrorSeverity,
    Platform,
    resolve_options,
)


class TestDiagnostics(unittest.TestCase):
    def test_sink_forwarding(self):
        seen = []
        diag = Diagnostics(sink=lambda level, msg: seen.append((level, msg)))
        diag.info("one")
        diag.warning("two")
        diag.error("three")
        self.assertEqual(seen, [("info", "one"), ("warning", "two"), ("error", "three")])
        self.assertEqual([e.message for e in diag.warnings], ["two"])
        self.assertEqual(diag.entries(ErrorSeverity.ERROR)[0].to_dict(), {"level": "error", "message": "three"})

    def test_broken_sink_does_not_break(self):
        def sink(level, msg):
            raise RuntimeError("sink down")

        diag = Diagnostics(sink=sink)
        with self.assertLogs("flowbridge.diagnostics", level="ERROR"):
            diag.warning("still recorded")
        self.assertEqual(len(diag.logs), 1)

    def test_flag_dedupes_by_entity_and_path(self):
        diag = Diagnostics()
        diag.flag("A", "first", "url")
        diag.flag("A", "second", "url")
        diag.flag("A", "whole entity")
        diag.flag("B", "first", "url")
        self.assertEqual([(r.entity, r.reason, r.path) for r in diag.review], [
            ("A", "first", "url"),
            ("A", "whole entity", None),
            ("B", "first", "url"),
        ])
        self.assertEqual(diag.review[1].to_dict(), {"entity": "A", "reason": "whole entity"})

    def test_summary(self):
        diag = Diagnostics()
        diag.mark_mapped()
        diag.mark_unmapped(3)
        diag.mark_unmapped(3)
        diag.warning("w")
        s = diag.summary(source="n8n", target="make", total=2)
        self.assertEqual(
            s,
            {
                "sourcePlatform": "n8n",
                "targetPlatform": "make",
                "totalEntities": 2,
                "mappedEntities": 1,
                "unmappedEntities": 2,
                "warnings": 1,
                "errors": 0,
            },
        )
        self.assertEqual(diag.unmapped, ["3"])

    def test_debug_trace(self):
        diag = Diagnostics(debug=True)
        diag.record(source="1", target="2")
        s = diag.summary(source="make", target="n8n", total=1)
        self.assertEqual(s["trace"], [{"source": "1", "target": "2"}])
        self.assertIn("elapsedMs", s)

        quiet = Diagnostics()
        quiet.record(source="1")
        self.assertEqual(quiet.trace, [])

    def test_reset_outputs_keeps_logs(self):
        diag = Diagnostics()
        diag.flag("A", "r")
        diag.mark_unmapped("1")
        diag.error("boom")
        diag.reset_outputs()
        self.assertEqual(diag.review, [])
        self.assertEqual(diag.unmapped, [])
        self.assertEqual(len(diag.logs), 1)


class TestOptions(unittest.TestCase):
    def test_defaults(self):
        o = ConversionOptions()
        self.assertFalse(o.evaluate_expressions)
        self.assertTrue(o.transform_parameter_values)
        self.assertIsNone(o.expression_context)

    def test_from_dict_accepts_both_spellings(self):
        o = ConversionOptions.from_dict({"strictMode": 1, "preserve_ids": True, "expressionContext": {"$json": {}}, "bogus": 1})
        self.assertTrue(o.strict_mode)
        self.assertTrue(o.preserve_ids)
        self.assertEqual(o.expression_context, {"$json": {}})

    def test_to_dict_camel_case(self):
        d = ConversionOptions(skip_disabled=True).to_dict()
        self.assertTrue(d["skipDisabled"])
        self.assertIn("copyNonMappedParameters", d)
        self.assertEqual(len(d), len(ConversionOptions._fields))

    def test_resolve_options(self):
        self.assertEqual(resolve_options(None), ConversionOptions())
        base = ConversionOptions(debug=True)
        self.assertIs(resolve_options(base), base)
        o = resolve_options({"debug": True}, strict_mode=True, preserve_ids=None)
        self.assertTrue(o.debug)
        self.assertTrue(o.strict_mode)
        self.assertEqual(o.preserve_ids, ConversionOptions().preserve_ids)
        with self.assertRaises(TypeError):
            resolve_options("strict")


class TestPlatformTags(unittest.TestCase):
    def test_direction_parse(self):
        self.assertIs(Direction.parse("n8n-to-make"), Direction.N8N_TO_MAKE)
        self.assertIs(Direction.parse("make->n8n"), Direction.MAKE_TO_N8N)
        self.assertIs(Direction.parse("makeToN8n"), Direction.MAKE_TO_N8N)
        self.assertIs(Direction.parse("n8n_to_make"), Direction.N8N_TO_MAKE)
        with self.assertRaises(ValueError):
            Direction.parse("n8n-to-n8n")

    def test_direction_properties(self):
        d = Direction.N8N_TO_MAKE
        self.assertIs(d.source, Platform.N8N)
        self.assertIs(d.target, Platform.MAKE)
        self.assertIs(d.reverse, Direction.MAKE_TO_N8N)
        self.assertEqual(d.key, "n8nToMake")
        self.assertIs(Platform.parse("Integromat"), Platform.MAKE)

    def test_entity_kind(self):
        self.assertIs(EntityKind.parse("router"), EntityKind.ROUTER)
        self.assertIs(EntityKind.parse("nope", EntityKind.GENERIC), EntityKind.GENERIC)
        self.assertTrue(EntityKind.CONDITIONAL.is_branching)
        self.assertFalse(EntityKind.HTTP.is_branching)
        with self.assertRaises(ValueError):
            EntityKind.parse("nope")


if __name__ == "__main__":
    unittest.main()
