"""Harness Runtime — Behaviour the generated test main must exhibit.

The generated Go program runs a fixed sequence::

    Startup → Configure → Select → Execute → Exit

This module is the reference model of that sequence.  It owns the
environment variable names embedded by the emitter and reproduces the
harness's decisions (directory relocation, filter override, coverage
wiring, shard selection, exit ownership) against an abstract
:class:`Engine`, so the contract can be exercised without a Go toolchain.
"""

import logging
import os
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from typing import Optional, TypeVar

from gotestmain.cases import Cases, Example, TestCase

logger = logging.getLogger(__name__)

# ── Constants ──

# Set by the build system's test runner; its presence means "under Bazel"
TEST_SRCDIR_ENV = "TEST_SRCDIR"
TEST_FILTER_ENV = "TESTBRIDGE_TEST_ONLY"
TOTAL_SHARDS_ENV = "TEST_TOTAL_SHARDS"
SHARD_INDEX_ENV = "TEST_SHARD_INDEX"
COVERAGE_OUTPUT_ENV = "COVERAGE_OUTPUT_FILE"

RUN_FLAG = "test.run"
COVERPROFILE_FLAG = "test.coverprofile"

# strconv.Atoi syntax: optional sign, decimal digits, nothing else
_GO_INT_RE = re.compile(r"[+-]?[0-9]+")

T = TypeVar("T")


# ── Exceptions ──


class HarnessStartupError(Exception):
    """The harness could not change to its run directory."""


# ── Engine Interface ──


class TestRun(ABC):
    """Handle returned by :meth:`Engine.main_start`; passed to TestMain."""

    __test__ = False

    @abstractmethod
    def run(self) -> int:
        """Run everything and return the process exit code."""


class Engine(ABC):
    """The test execution runtime the harness drives (``testing`` in Go)."""

    @abstractmethod
    def set_flag(self, name: str, value: str) -> bool:
        """Set a registered flag; returns False if no such flag exists."""

    @abstractmethod
    def cover_counters(self) -> dict:
        """Coverage counters compiled into the binary."""

    @abstractmethod
    def register_cover(self, counters: dict) -> None:
        """Hand coverage counters to the engine."""

    @abstractmethod
    def cover_mode(self) -> str:
        """Active coverage mode, empty when coverage is off."""

    @abstractmethod
    def main_start(
        self,
        tests: Sequence[TestCase],
        benchmarks: Sequence[TestCase],
        examples: Sequence[Example],
    ) -> TestRun:
        """Prepare a run over the given cases."""


# ── Sharding ──


def parse_go_int(value: Optional[str]) -> Optional[int]:
    """Parse like Go's ``strconv.Atoi``; None when the value is not an integer."""
    if value is None or not _GO_INT_RE.fullmatch(value):
        return None
    return int(value)


def shard_spec(environ: Mapping[str, str]) -> Optional[tuple[int, int]]:
    """Return ``(total, index)`` when sharding is configured and valid."""
    total = parse_go_int(environ.get(TOTAL_SHARDS_ENV, ""))
    if total is None or total <= 1:
        return None
    index = parse_go_int(environ.get(SHARD_INDEX_ENV, ""))
    if index is None or index < 0:
        return None
    return total, index


def tests_in_shard(tests: Sequence[T], environ: Mapping[str, str]) -> list[T]:
    """Select the tests at positions ``p`` with ``p % total == index``.

    Missing or unparsable shard variables select every test.
    """
    spec = shard_spec(environ)
    if spec is None:
        return list(tests)
    total, index = spec
    return [t for i, t in enumerate(tests) if i % total == index]


# ── Runtime Model ──


class HarnessRuntime:
    """Executes the harness sequence for a finalized :class:`Cases`.

    ``test_main`` stands in for a registered TestMain override; when given,
    it receives the :class:`TestRun` and its return value is the exit code.
    """

    def __init__(
        self,
        cases: Cases,
        engine: Engine,
        environ: Optional[Mapping[str, str]] = None,
        chdir: Callable[[str], None] = os.chdir,
        test_main: Optional[Callable[[TestRun], int]] = None,
    ):
        self._cases = cases
        self._engine = engine
        self._environ = os.environ if environ is None else environ
        self._chdir = chdir
        self._test_main = test_main

    def startup(self) -> None:
        if TEST_SRCDIR_ENV not in self._environ:
            return
        try:
            self._chdir(self._cases.run_dir)
        except OSError as exc:
            raise HarnessStartupError(f"could not change to test directory: {exc}") from exc

    def configure(self) -> None:
        test_filter = self._environ.get(TEST_FILTER_ENV, "")
        if test_filter:
            self._engine.set_flag(RUN_FLAG, test_filter)

        if not self._cases.coverage:
            return
        counters = self._engine.cover_counters()
        if counters:
            self._engine.register_cover(counters)
        if COVERAGE_OUTPUT_ENV in self._environ and self._engine.cover_mode():
            self._engine.set_flag(COVERPROFILE_FLAG, self._environ[COVERAGE_OUTPUT_ENV])

    def select(self) -> list[TestCase]:
        return tests_in_shard(self._cases.tests, self._environ)

    def execute(self) -> TestRun:
        return self._engine.main_start(
            self.select(), list(self._cases.benchmarks), list(self._cases.examples)
        )

    def run(self) -> int:
        """Run Startup through Exit; returns the exit code.

        A startup failure is reported and yields exit code 1, matching
        ``log.Fatalf`` in the generated program.
        """
        try:
            self.startup()
        except HarnessStartupError as exc:
            logger.error("%s", exc)
            return 1
        self.configure()
        m = self.execute()
        if self._test_main is not None:
            return self._test_main(m)
        return m.run()
