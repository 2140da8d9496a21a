"""Case Model — The aggregate of discovered tests handed to the emitter.

Holds the ``alias=path`` import table, accumulates per-file analyses in
discovery order, tracks which package references were actually used and
finalizes the sorted import list exactly once.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from gotestmain.errors import GeneratorError

logger = logging.getLogger(__name__)

# ── Constants ──

PAIR_SEPARATOR = "="
EXTERNAL_TEST_SUFFIX = "_test"


# ── Exceptions ──


class ArgumentShapeError(GeneratorError):
    """An ``alias=value`` argument did not split into exactly two parts."""


class CaseModelError(GeneratorError):
    """The case aggregate was used out of order."""


class UnknownImportError(CaseModelError):
    """A used package reference has no import path."""


# ── Data Classes ──


@dataclass(frozen=True)
class Import:
    """A package imported by the generated harness under ``alias``."""

    alias: str
    path: str


@dataclass(frozen=True)
class SourceFile:
    """A source file and the alias of the library it belongs to."""

    alias: str
    path: str


@dataclass
class TestCase:
    """A test or benchmark function, referenced as ``package.name``."""

    __test__ = False  # keep pytest from collecting this class

    package: str
    name: str


@dataclass
class Example:
    """An example function with its expected output."""

    package: str
    name: str
    output: str = ""
    unordered: bool = False


@dataclass
class FileAnalysis:
    """Everything one source file contributes to the harness.

    Attributes:
        file_path: Path of the analyzed file.
        package_name: Package name declared by the file.
        package_ref: Alias the generated code uses for this file's package,
            ``alias`` or ``alias_test`` for external test packages.
        tests: Test functions in declaration order.
        benchmarks: Benchmark functions in declaration order.
        examples: Examples with an output comment, in declaration order.
        test_main: ``package_ref.TestMain`` if the file declares TestMain.
        skipped: Test/Benchmark-prefixed functions rejected by shape.
    """

    file_path: str
    package_name: str
    package_ref: str
    tests: list[TestCase] = field(default_factory=list)
    benchmarks: list[TestCase] = field(default_factory=list)
    examples: list[Example] = field(default_factory=list)
    test_main: Optional[str] = None
    skipped: list[str] = field(default_factory=list)

    @property
    def contributes(self) -> bool:
        """True if the file adds any case or a TestMain override."""
        return bool(self.tests or self.benchmarks or self.examples or self.test_main)


@dataclass
class Cases:
    """Finalized harness data consumed by the emitter."""

    run_dir: str = "."
    imports: list[Import] = field(default_factory=list)
    tests: list[TestCase] = field(default_factory=list)
    benchmarks: list[TestCase] = field(default_factory=list)
    examples: list[Example] = field(default_factory=list)
    test_main: Optional[str] = None
    coverage: bool = False


# ── Argument Parsing ──


def parse_pair(kind: str, value: str) -> tuple[str, str]:
    """Split ``alias=value``; anything but exactly two parts is an error."""
    parts = value.split(PAIR_SEPARATOR)
    if len(parts) != 2:
        raise ArgumentShapeError(f"Invalid {kind} {value!r} specified")
    return parts[0], parts[1]


def parse_imports(values: list[str]) -> dict[str, Import]:
    """Parse ``alias=importpath`` values into an alias-keyed table.

    A repeated alias keeps the last path given.
    """
    table: dict[str, Import] = {}
    for value in values:
        alias, path = parse_pair("import", value)
        table[alias] = Import(alias=alias, path=path)
    return table


def parse_sources(values: list[str]) -> list[SourceFile]:
    """Parse ``alias=filepath`` values, keeping argument order."""
    sources: list[SourceFile] = []
    for value in values:
        alias, path = parse_pair("source", value)
        sources.append(SourceFile(alias=alias, path=path))
    return sources


# ── Builder ──


class CaseBuilder:
    """Accumulates file analyses into one :class:`Cases` aggregate.

    Usage::

        builder = CaseBuilder(parse_imports(["lib=example.com/lib"]))
        builder.add(analysis)
        cases = builder.finalize()
    """

    def __init__(
        self,
        imports: dict[str, Import],
        run_dir: str = ".",
        coverage: bool = False,
    ):
        self._imports = dict(imports)
        self._cases = Cases(run_dir=run_dir, coverage=coverage)
        self._used: set[str] = set()
        self._finalized = False

    @property
    def used(self) -> frozenset[str]:
        """Package references that contributed at least one case or TestMain."""
        return frozenset(self._used)

    def add(self, analysis: FileAnalysis) -> None:
        """Append one file's contribution, preserving discovery order."""
        if self._finalized:
            raise CaseModelError("Cases already finalized; cannot add more files")

        self._cases.tests.extend(analysis.tests)
        self._cases.benchmarks.extend(analysis.benchmarks)
        self._cases.examples.extend(analysis.examples)

        if analysis.test_main:
            # Last TestMain wins; duplicates across files are not rejected
            if self._cases.test_main and self._cases.test_main != analysis.test_main:
                logger.debug(
                    "TestMain %s replaces %s (from %s)",
                    analysis.test_main, self._cases.test_main, analysis.file_path,
                )
            self._cases.test_main = analysis.test_main

        if analysis.contributes:
            self._used.add(analysis.package_ref)

    def _resolve(self, ref: str) -> Import:
        imp = self._imports.get(ref)
        if imp is not None:
            return imp
        if ref.endswith(EXTERNAL_TEST_SUFFIX):
            base = self._imports.get(ref[: -len(EXTERNAL_TEST_SUFFIX)])
            if base is not None:
                return Import(alias=ref, path=base.path)
        raise UnknownImportError(f"No import specified for package reference {ref!r}")

    def finalize(self) -> Cases:
        """Resolve used references to imports, sorted by alias.  Call once."""
        if self._finalized:
            raise CaseModelError("Cases already finalized")
        self._finalized = True
        self._cases.imports = sorted(
            (self._resolve(ref) for ref in self._used),
            key=lambda imp: imp.alias,
        )
        logger.debug(
            "Finalized %d imports, %d tests, %d benchmarks, %d examples",
            len(self._cases.imports), len(self._cases.tests),
            len(self._cases.benchmarks), len(self._cases.examples),
        )
        return self._cases
