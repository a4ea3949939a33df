#!/usr/bin/env python3
"""
flowbridge pre-publish test runner.

Usage (from repo root):
    python examples/unittests/run_tests.py              # Run all tests
    python examples/unittests/run_tests.py --quick      # Core tests only (no CLI / file I/O)
    python examples/unittests/run_tests.py --verbose    # Show individual test names
    python examples/unittests/run_tests.py --list       # Just list what would run

Each test file runs in its own interpreter so logging setup done by the CLI
tests cannot leak into the others.
"""

import argparse
import subprocess
import sys
from pathlib import Path

TEST_DIR = Path(__file__).resolve().parent
REPO_ROOT = TEST_DIR.parents[1]

# Pure in-memory tests
CORE = [
    "test_dag.py",
    "test_diagnostics_options.py",
    "test_entities.py",
    "test_expressions.py",
    "test_params.py",
    "test_registry.py",
]

ALL_TESTS = sorted(p.name for p in TEST_DIR.glob("test_*.py"))


def list_tests(subset):
    print(f"\n{'='*60}")
    print(f"  {len(subset)} test files would run:")
    print(f"{'='*60}\n")
    for name in subset:
        tag = "core" if name in CORE else "io  "
        print(f"  [{tag}]  {name}")
    print()


def run_tests(subset, verbose=False):
    print(f"\n{'='*60}")
    print(f"  flowbridge test runner: {len(subset)} files")
    print(f"{'='*60}\n")

    failed = []
    passed = []

    for name in subset:
        module = f"examples.unittests.{name[:-3]}"
        cmd = [sys.executable, "-m", "unittest", module]
        if verbose:
            cmd.append("-v")

        print(f"  {name} ... ", end="", flush=True)

        result = subprocess.run(
            cmd,
            cwd=str(REPO_ROOT),
            capture_output=True,
            text=True,
        )

        stderr = result.stderr.strip()
        if result.returncode == 0:
            # e.g. "Ran 3 tests in 0.004s\n\nOK"
            ran_line = [l for l in stderr.splitlines() if l.startswith("Ran ")]
            count = ran_line[0] if ran_line else "?"
            print(f"OK  ({count})")
            passed.append(name)
        else:
            print("FAILED")
            failed.append((name, stderr))

    print(f"\n{'='*60}")
    print(f"  RESULTS: {len(passed)} passed, {len(failed)} failed")
    print(f"{'='*60}\n")

    if failed:
        print("  FAILURES:")
        for name, err in failed:
            print(f"\n  {name}:")
            # Show last 15 lines of stderr
            for line in err.splitlines()[-15:]:
                print(f"     {line}")
        print()
        return 1

    print("  All tests passed!\n")
    return 0


def main():
    parser = argparse.ArgumentParser(description="flowbridge test runner")
    parser.add_argument("--quick", action="store_true",
                        help="Run only the in-memory core tests")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show individual test names")
    parser.add_argument("--list", action="store_true",
                        help="List test files without running")
    args = parser.parse_args()

    subset = CORE if args.quick else ALL_TESTS

    if args.list:
        list_tests(subset)
        return 0

    return run_tests(subset, verbose=args.verbose)


if __name__ == "__main__":
    sys.exit(main())
