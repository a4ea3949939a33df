#!/usr/bin/env python3
"""
Console example: load a workflow JSON from disk and convert it to the other platform.

The source platform is detected from the document (n8n `nodes` or Make `flow`).

Resolution order:
- CLI args override all
- else environment variables (FLOWBRIDGE_*)
- else defaults
"""

import argparse
from pathlib import Path
from typing import Optional

from flowbridge import convert


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Convert an n8n workflow or Make blueprint (console example).")
    parser.add_argument(
        "workflow",
        nargs="?",
        help="Path to workflow JSON (required)",
    )
    parser.add_argument(
        "--mapping-db", "-m",
        default=None,
        help="Mapping database JSON. Default: FLOWBRIDGE_MAPPING_DB or the built-in database.",
    )
    parser.add_argument(
        "--output-path", "-o",
        default=None,
        dest="output_path",
        help="Output path for the converted JSON. Default: <workflow>-converted.json",
    )
    parser.add_argument(
        "--strict", "-s",
        action="store_true",
        help="Fail on the first entity without a mapping.",
    )
    args = parser.parse_args(argv)

    if not args.workflow:
        parser.error("workflow path is required")

    workflow_path = Path(args.workflow)
    if not workflow_path.exists():
        print(f"ERROR: workflow file not found: {workflow_path}")
        return 1

    if args.output_path:
        output_path = Path(args.output_path)
    else:
        output_path = workflow_path.with_name(f"{workflow_path.stem}-converted{workflow_path.suffix}")

    options = {"strictMode": True} if args.strict else None
    result = convert(workflow_path, registry=args.mapping_db, options=options, output_path=output_path)

    if not result.ok:
        print("Conversion failed.")
    else:
        print("Conversion succeeded.")

    info = result.debug_info
    print(
        f"Entities: {info.get('mappedEntities', 0)} mapped, "
        f"{info.get('unmappedEntities', 0)} placeholders, {info.get('totalEntities', 0)} total"
    )
    if result.errors:
        print(f"Errors: {len(result.errors)}")
        for e in result.errors:
            print(f"  - {e.category.value}: {e.message}")
    if result.warnings:
        print(f"Warnings: {len(result.warnings)}")
        for w in result.warnings:
            print(f"  - {w.category.value}: {w.message}")
    if result.parameters_needing_review:
        print(f"Needs review: {len(result.parameters_needing_review)}")
        for r in result.parameters_needing_review:
            where = f"{r.entity}.{r.path}" if r.path else r.entity
            print(f"  - {where}: {r.reason}")

    if not result.ok:
        return 1
    print(f"Wrote: {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
