#!/usr/bin/env python3
"""
CLI entrypoint for the flowbridge package.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .convert import convert, load_workflow, save_workflow
from .defaults import DEFAULT_JSON_ENSURE_ASCII, DEFAULT_JSON_INDENT, DEFAULT_LOG_LEVEL
from .errors import FlowBridgeError
from .registry import default_registry

__all__ = ["main"]


def _flag(value: bool):
    # Unset flags keep the env/default value.
    return True if value else None


def main(argv=None) -> int:
    p = argparse.ArgumentParser(prog="flowbridge", description="Convert workflow JSON between n8n and Make.")

    p.add_argument("--input-path", "-i", default=None, help="Input workflow JSON (n8n workflow or Make blueprint)")
    p.add_argument("--output-path", "-o", default=None, help="Output path for the converted workflow (default: stdout)")
    p.add_argument("--to", choices=["n8n", "make"], default=None, help="Target platform (default: the other platform)")
    p.add_argument("--mapping-db", default=None, help="Mapping database JSON (default: built-in or FLOWBRIDGE_MAPPING_DB)")

    p.add_argument("--strict", action="store_true", help="Abort on any unmapped or failing entity")
    p.add_argument("--preserve-ids", action="store_true", help="Reuse source entity ids")
    p.add_argument("--copy-non-mapped", action="store_true", help="Copy parameters without a mapping rule")
    p.add_argument("--skip-disabled", action="store_true", help="Skip disabled entities")
    p.add_argument("--debug", action="store_true", help="Attach per-entity trace and timing to the report")

    p.add_argument("--report", default=None, help="Write the full result document (logs, review list, debug info) here")
    p.add_argument("--mermaid", action="store_true", help="Print the converted graph as a Mermaid flowchart")
    p.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")

    args = p.parse_args(argv)

    level = logging.DEBUG if args.verbose else getattr(logging, str(DEFAULT_LOG_LEVEL).upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if not args.input_path:
        p.error("--input-path is required")

    try:
        data = load_workflow(args.input_path)
        registry = default_registry(args.mapping_db)
    except FlowBridgeError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    options = {
        "strict_mode": _flag(args.strict),
        "preserve_ids": _flag(args.preserve_ids),
        "copy_non_mapped_parameters": _flag(args.copy_non_mapped),
        "skip_disabled": _flag(args.skip_disabled),
        "debug": _flag(args.debug),
    }
    try:
        result = convert(data, to=args.to, registry=registry, options={k: v for k, v in options.items() if v is not None})
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    try:
        if args.report:
            save_workflow(result.to_dict(), args.report)
        if result.ok and args.output_path:
            result.save(args.output_path)
    except FlowBridgeError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if not result.ok:
        for entry in result.errors:
            print(f"error: {entry.message}", file=sys.stderr)
        return 1

    if args.output_path:
        print(str(Path(args.output_path)))
    else:
        print(json.dumps(result.converted_workflow, indent=DEFAULT_JSON_INDENT, ensure_ascii=DEFAULT_JSON_ENSURE_ASCII))

    if args.mermaid:
        print(result.dag.to_mermaid())
    return 0


if __name__ == "__main__":
    sys.exit(main())
