"""gotestmain CLI — generate a Go test main for Bazel's go_test action.

Usage::

    python -m gotestmain -import lib=example.com/lib -src lib=lib_test.go [options]

Options::

    -rundir DIR           Directory the harness changes to under Bazel (default .)
    -output PATH          Output file (default: standard output)
    -coverage             Emit coverage registration
    -import ALIAS=PATH    Package to import; repeatable
    -src ALIAS=FILE       Source file to scan for tests; repeatable
    -tags a,b             Build tags for source filtering; repeatable
    -goos / -goarch       Target platform (default: $GOOS/$GOARCH, then host)
    -cgo                  Treat the cgo build tag as satisfied
    --verbose / -v        Enable verbose logging

Each option also accepts the double-dash spelling (``--rundir``).
"""

import argparse
import logging
import sys

from gotestmain.buildctx import BuildContext
from gotestmain.errors import GeneratorError
from gotestmain.generator import GeneratorConfig, generate


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gotestmain",
        description=(
            "Generate the main package of a Go test binary.\n\n"
            "Scans the given test sources for Test, Benchmark and Example\n"
            "functions and writes a program that runs them."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-rundir", "--rundir",
        dest="run_dir",
        default=".",
        help="Path to directory where tests should run",
    )
    parser.add_argument(
        "-output", "--output",
        default="",
        help="Output file to write (defaults to stdout)",
    )
    parser.add_argument(
        "-coverage", "--coverage",
        action="store_true",
        default=False,
        help="Whether coverage is supported",
    )
    parser.add_argument(
        "-import", "--import",
        dest="imports",
        action="append",
        default=[],
        metavar="ALIAS=PATH",
        help="Package to import (repeatable)",
    )
    parser.add_argument(
        "-src", "--src",
        dest="sources",
        action="append",
        default=[],
        metavar="ALIAS=FILE",
        help="Source to process for tests (repeatable)",
    )
    parser.add_argument(
        "-tags", "--tags",
        action="append",
        default=[],
        help="Comma-separated build tags (repeatable)",
    )
    parser.add_argument(
        "-goos", "--goos",
        default=None,
        help="Target operating system for build constraints",
    )
    parser.add_argument(
        "-goarch", "--goarch",
        default=None,
        help="Target architecture for build constraints",
    )
    parser.add_argument(
        "-cgo", "--cgo",
        action="store_true",
        default=None,
        help="Treat the cgo build tag as satisfied",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=False,
        help="Enable verbose logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.  Returns exit code (0=success, 1=failure)."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    config = GeneratorConfig(
        run_dir=args.run_dir,
        output=args.output,
        coverage=args.coverage,
        imports=args.imports,
        sources=args.sources,
        build_context=BuildContext.from_environ(
            tags=args.tags,
            goos=args.goos,
            goarch=args.goarch,
            cgo_enabled=args.cgo,
        ),
    )

    try:
        result = generate(config)
    except GeneratorError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logging.getLogger(__name__).debug(
        "Generated %d tests, %d benchmarks, %d examples from %d files",
        len(result.cases.tests), len(result.cases.benchmarks),
        len(result.cases.examples), result.files_analyzed,
    )
    return 0
