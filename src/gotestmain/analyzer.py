"""Source Analyzer — Classifies the top-level functions of one Go test file.

Works purely from syntactic shape; nothing is compiled or executed:

  - ``TestMain``            → entry-point override, not a case
  - ``Test*(x *pkg.T)``     → test case
  - ``Benchmark*(x *pkg.B)`` → benchmark case
  - ``Example*()`` with an ``Output:`` comment → example

The package alias in ``*pkg.T`` is not checked because the testing import
may be renamed.  Test/Benchmark-prefixed functions of any other shape are
treated as helpers and skipped without error.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from gotestmain.cases import (
    EXTERNAL_TEST_SUFFIX,
    Example,
    FileAnalysis,
    TestCase,
)
from gotestmain.scanner import CommentGroup, FuncDecl, GoFile, parse_file

logger = logging.getLogger(__name__)

# ── Constants ──

TEST_MAIN = "TestMain"
TEST_PREFIX = "Test"
BENCHMARK_PREFIX = "Benchmark"
EXAMPLE_PREFIX = "Example"

# Selector names the single parameter must reference
_CASE_PARAM_TYPES = {TEST_PREFIX: "T", BENCHMARK_PREFIX: "B"}

_OUTPUT_PREFIX_RE = re.compile(r"^[ \t\n\r\f\v]*(unordered )?output:", re.IGNORECASE)


# ── Package References ──


def effective_package_ref(alias: str, package_name: str) -> str:
    """Return the alias the harness uses for a file's package.

    Files in an external test package (``package lib_test``) are compiled
    separately from the library, so they are referenced as ``alias_test``.
    """
    if package_name.endswith(EXTERNAL_TEST_SUFFIX):
        return alias + EXTERNAL_TEST_SUFFIX
    return alias


# ── Examples ──


def is_example_name(name: str) -> bool:
    """``Example`` alone or followed by a non-lowercase character."""
    if not name.startswith(EXAMPLE_PREFIX):
        return False
    if len(name) == len(EXAMPLE_PREFIX):
        return True
    return not name[len(EXAMPLE_PREFIX)].islower()


def _last_comment(func: FuncDecl, comments: list[CommentGroup]) -> Optional[CommentGroup]:
    if func.body is None:
        return None
    start, end = func.body
    last = None
    for group in comments:
        if group.pos < start:
            continue
        if group.end > end:
            break
        last = group
    return last


def example_output(func: FuncDecl, comments: list[CommentGroup]) -> tuple[str, bool, bool]:
    """Extract ``(output, unordered, has_output)`` from an example body.

    The output is the text of the last comment group in the body when it
    begins with ``Output:`` or ``Unordered output:`` (any case).  Spaces
    and one newline after the colon are dropped.
    """
    last = _last_comment(func, comments)
    if last is None:
        return "", False, False
    text = last.text()
    m = _OUTPUT_PREFIX_RE.match(text)
    if not m:
        return "", False, False
    unordered = m.group(1) is not None
    text = text[m.end():].lstrip(" ")
    if text.startswith("\n"):
        text = text[1:]
    return text, unordered, True


def extract_examples(go_file: GoFile, package_ref: str) -> list[Example]:
    """Return the file's runnable examples in declaration order.

    Examples without an output comment only document usage and are left
    out; an explicit empty ``// Output:`` keeps the example.
    """
    examples: list[Example] = []
    for func in go_file.funcs:
        if func.is_method or not is_example_name(func.name):
            continue
        if func.params or func.results or func.type_params:
            continue
        output, unordered, has_output = example_output(func, go_file.comments)
        empty_output = has_output and output == ""
        if output == "" and not empty_output:
            logger.debug("Example %s has no output comment; skipped", func.name)
            continue
        examples.append(
            Example(
                package=package_ref,
                name=func.name,
                output=output,
                unordered=unordered,
            )
        )
    return examples


# ── Tests and Benchmarks ──


def has_case_shape(func: FuncDecl, type_name: str) -> bool:
    """One ``*<pkg>.<type_name>`` parameter and no results."""
    # Names are counted, not fields: TestX(a, b *testing.T) has two
    if len(func.params) != 1 or func.results:
        return False
    return func.params[0].pointer_selector() == type_name


def classify_func(func: FuncDecl) -> Optional[str]:
    """Classify a top-level function.

    Returns ``"test_main"``, ``"test"``, ``"benchmark"`` or None.  Methods
    are never candidates; TestMain is recognised by name alone.
    """
    if func.is_method:
        return None
    if func.name == TEST_MAIN:
        return "test_main"
    for prefix, kind in ((TEST_PREFIX, "test"), (BENCHMARK_PREFIX, "benchmark")):
        if func.name.startswith(prefix):
            if has_case_shape(func, _CASE_PARAM_TYPES[prefix]):
                return kind
            return None
    return None


def analyze(go_file: GoFile, alias: str) -> FileAnalysis:
    """Classify every top-level function of a parsed file.

    ``alias`` is the caller-supplied reference of the library the file
    belongs to.
    """
    package_ref = effective_package_ref(alias, go_file.package)
    analysis = FileAnalysis(
        file_path=go_file.path,
        package_name=go_file.package,
        package_ref=package_ref,
        examples=extract_examples(go_file, package_ref),
    )

    for func in go_file.funcs:
        kind = classify_func(func)
        if kind == "test_main":
            analysis.test_main = f"{package_ref}.{func.name}"
        elif kind == "test":
            analysis.tests.append(TestCase(package=package_ref, name=func.name))
        elif kind == "benchmark":
            analysis.benchmarks.append(TestCase(package=package_ref, name=func.name))
        elif not func.is_method and func.name.startswith((TEST_PREFIX, BENCHMARK_PREFIX)):
            analysis.skipped.append(func.name)
            logger.debug(
                "%s:%d: %s(%s) does not have a test signature; skipped",
                go_file.path, func.line, func.name,
                ", ".join(p.type_expr for p in func.params),
            )

    return analysis


def analyze_file(path: str | Path, alias: str) -> FileAnalysis:
    """Parse and analyze the Go file at ``path``."""
    return analyze(parse_file(path), alias)
