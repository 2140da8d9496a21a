"""Harness Emitter — Renders finalized cases into the Go test main program.

The generated program's runtime behaviour is the compatibility surface
(see :mod:`gotestmain.harness`).  Its substitution points are fixed: the
import list, the tests, benchmarks and examples tables, the coverage
branch, the run directory and the TestMain hook.  Every string literal
placed into the program goes through :func:`go_quote`.
"""

import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Optional

from gotestmain.cases import Cases, Example, TestCase
from gotestmain.errors import GeneratorError
from gotestmain.harness import (
    COVERAGE_OUTPUT_ENV,
    COVERPROFILE_FLAG,
    RUN_FLAG,
    SHARD_INDEX_ENV,
    TEST_FILTER_ENV,
    TEST_SRCDIR_ENV,
    TOTAL_SHARDS_ENV,
)

logger = logging.getLogger(__name__)

# ── Constants ──

COVERDATA_IMPORT = "github.com/bazelbuild/rules_go/go/tools/coverdata"

_STD_IMPORTS = (
    "flag",
    "log",
    "os",
    "strconv",
    "testing",
    "testing/internal/testdeps",
)

_SIMPLE_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
}


# ── Exceptions ──


class OutputWriteError(GeneratorError):
    """The generated program could not be written to its destination."""


# ── Quoting ──


def go_quote(s: str) -> str:
    """Quote ``s`` as a Go interpreted string literal (``strconv.Quote``).

    Printable characters are kept; quotes and backslashes are escaped;
    control characters use ``\\a``-style or ``\\xNN`` escapes; other
    non-printable runes use ``\\uNNNN`` / ``\\UNNNNNNNN``.  Bytes that were
    not valid UTF-8 (decoded with ``surrogateescape``) come back as ``\\xNN``.
    """
    out = ['"']
    for ch in s:
        cp = ord(ch)
        if ch == '"' or ch == "\\":
            out.append("\\" + ch)
        elif 0xDC80 <= cp <= 0xDCFF:
            out.append(f"\\x{cp - 0xDC00:02x}")
        elif 0xD800 <= cp <= 0xDFFF:
            out.extend(f"\\x{b:02x}" for b in ch.encode("utf-8", "surrogatepass"))
        elif ch.isprintable():
            out.append(ch)
        elif ch in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[ch])
        elif cp < 0x20 or cp == 0x7F:
            out.append(f"\\x{cp:02x}")
        elif cp < 0x10000:
            out.append(f"\\u{cp:04x}")
        else:
            out.append(f"\\U{cp:08x}")
    out.append('"')
    return "".join(out)


def host_path(run_dir: str) -> str:
    """Convert a slash-separated path to the host separator."""
    return run_dir.replace("/", os.sep)


# ── Rendering ──


def _render_imports(cases: Cases) -> list[str]:
    lines = ["import ("]
    lines.extend(f"\t{go_quote(path)}" for path in _STD_IMPORTS)
    if cases.coverage:
        lines.append("")
        lines.append(f"\t{go_quote(COVERDATA_IMPORT)}")
    if cases.imports:
        lines.append("")
        lines.extend(f"\t{imp.alias} {go_quote(imp.path)}" for imp in cases.imports)
    lines.append(")")
    return lines


def _render_case_table(var: str, elem_type: str, cases: list[TestCase]) -> list[str]:
    if not cases:
        return [f"var {var} = []testing.{elem_type}{{}}"]
    lines = [f"var {var} = []testing.{elem_type}{{"]
    for case in cases:
        lines.append(f"\t{{{go_quote(case.name)}, {case.package}.{case.name}}},")
    lines.append("}")
    return lines


def _render_examples(examples: list[Example]) -> list[str]:
    if not examples:
        return ["var examples = []testing.InternalExample{}"]
    lines = ["var examples = []testing.InternalExample{"]
    for ex in examples:
        lines.append(
            f"\t{{Name: {go_quote(ex.name)}, F: {ex.package}.{ex.name}, "
            f"Output: {go_quote(ex.output)}, Unordered: {'true' if ex.unordered else 'false'}}},"
        )
    lines.append("}")
    return lines


def _render_shard_func() -> list[str]:
    return [
        "func testsInShard() []testing.InternalTest {",
        f"\ttotalShards, err := strconv.Atoi(os.Getenv({go_quote(TOTAL_SHARDS_ENV)}))",
        "\tif err != nil || totalShards <= 1 {",
        "\t\treturn allTests",
        "\t}",
        f"\tshardIndex, err := strconv.Atoi(os.Getenv({go_quote(SHARD_INDEX_ENV)}))",
        "\tif err != nil || shardIndex < 0 {",
        "\t\treturn allTests",
        "\t}",
        "\ttests := []testing.InternalTest{}",
        "\tfor i, t := range allTests {",
        "\t\tif i%totalShards == shardIndex {",
        "\t\t\ttests = append(tests, t)",
        "\t\t}",
        "\t}",
        "\treturn tests",
        "}",
    ]


def _render_coverage() -> list[str]:
    return [
        "",
        "\tif len(coverdata.Cover.Counters) > 0 {",
        "\t\ttesting.RegisterCover(coverdata.Cover)",
        "\t}",
        f"\tif coverageDat, ok := os.LookupEnv({go_quote(COVERAGE_OUTPUT_ENV)}); ok {{",
        "\t\tif testing.CoverMode() != \"\" {",
        f"\t\t\tflag.Lookup({go_quote(COVERPROFILE_FLAG)}).Value.Set(coverageDat)",
        "\t\t}",
        "\t}",
    ]


def _render_main(cases: Cases) -> list[str]:
    lines = [
        "func main() {",
        f"\t// {TEST_SRCDIR_ENV} is set by the Bazel test runner.",
        f"\tif _, ok := os.LookupEnv({go_quote(TEST_SRCDIR_ENV)}); ok {{",
        f"\t\tif err := os.Chdir({go_quote(host_path(cases.run_dir))}); err != nil {{",
        "\t\t\tlog.Fatalf(\"could not change to test directory: %v\", err)",
        "\t\t}",
        "\t}",
        "",
        f"\tif filter := os.Getenv({go_quote(TEST_FILTER_ENV)}); filter != \"\" {{",
        f"\t\tif f := flag.Lookup({go_quote(RUN_FLAG)}); f != nil {{",
        "\t\t\tf.Value.Set(filter)",
        "\t\t}",
        "\t}",
    ]
    if cases.coverage:
        lines.extend(_render_coverage())
    lines.append("")
    lines.append(
        "\tm := testing.MainStart(testdeps.TestDeps{}, testsInShard(), benchmarks, examples)"
    )
    if cases.test_main:
        lines.append(f"\t{cases.test_main}(m)")
    else:
        lines.append("\tos.Exit(m.Run())")
    lines.append("}")
    return lines


def render(cases: Cases) -> str:
    """Render the complete Go source of the test main program."""
    sections = [
        ["// Code generated by gotestmain. DO NOT EDIT.", "", "package main"],
        _render_imports(cases),
        _render_case_table("allTests", "InternalTest", cases.tests),
        _render_case_table("benchmarks", "InternalBenchmark", cases.benchmarks),
        _render_examples(cases.examples),
        _render_shard_func(),
        _render_main(cases),
    ]
    return "\n\n".join("\n".join(section) for section in sections) + "\n"


# ── Output ──


def write_output(text: str, output: Optional[str | Path] = None) -> Optional[Path]:
    """Write the program to ``output``, or to standard output when empty.

    Files are replaced atomically: the text goes to a temporary file in
    the same directory which is renamed over the target only after a
    successful write, so a failed run never leaves a truncated program.
    Returns the written path, or None for standard output.
    """
    if not output:
        try:
            sys.stdout.write(text)
            sys.stdout.flush()
        except OSError as exc:
            raise OutputWriteError(f"Could not write to standard output: {exc}") from exc
        return None

    path = Path(output)
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            errors="surrogateescape",
            newline="",
            delete=False,
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
        ) as tmp:
            tmp_path = Path(tmp.name)
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as exc:
        raise OutputWriteError(f"Could not write {path}: {exc}") from exc
    finally:
        if tmp_path is not None and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                logger.warning("Could not remove temporary file %s", tmp_path)

    logger.debug("Wrote %d bytes to %s", len(text), path)
    return path
