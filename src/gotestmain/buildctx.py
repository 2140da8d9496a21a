"""Build Context — Decides which source files apply to the target platform.

Implements the file-selection rules of ``go/build``: ``_GOOS`` / ``_GOARCH``
file name suffixes, ``//go:build`` constraint expressions and legacy
``// +build`` lines.  The context is an immutable value passed into
:func:`filter_files` on every call; nothing here keeps global tag state.
"""

import logging
import os
import platform
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from gotestmain.errors import GeneratorError
from gotestmain.scanner import read_go_source

logger = logging.getLogger(__name__)

# ── Constants ──

KNOWN_OS = frozenset({
    "aix", "android", "darwin", "dragonfly", "freebsd", "hurd", "illumos",
    "ios", "js", "linux", "nacl", "netbsd", "openbsd", "plan9", "solaris",
    "wasip1", "windows", "zos",
})

UNIX_OS = frozenset({
    "aix", "android", "darwin", "dragonfly", "freebsd", "hurd", "illumos",
    "ios", "linux", "netbsd", "openbsd", "solaris",
})

KNOWN_ARCH = frozenset({
    "386", "amd64", "amd64p32", "arm", "armbe", "arm64", "arm64be",
    "loong64", "mips", "mipsle", "mips64", "mips64le", "mips64p32",
    "mips64p32le", "ppc", "ppc64", "ppc64le", "riscv", "riscv64", "s390",
    "s390x", "sparc", "sparc64", "wasm",
})

# Release tags go1.1 .. go1.N satisfied by the targeted toolchain
GO_RELEASE_MINOR = 22

_HOST_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

_GO_BUILD_RE = re.compile(r"^//go:build(?:\s|$)")
_PLUS_BUILD_RE = re.compile(r"^//\s*\+build(?:\s|$)")
_EXPR_TOKEN_RE = re.compile(r"\s*(\(|\)|!|&&|\|\||[A-Za-z0-9_.]+)")


# ── Exceptions ──


class BuildConstraintError(GeneratorError):
    """A //go:build or // +build line could not be parsed."""


# ── Host Detection ──


def _host_goos() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform.startswith("freebsd"):
        return "freebsd"
    return sys.platform if sys.platform in KNOWN_OS else "linux"


def _host_goarch() -> str:
    return _HOST_ARCH.get(platform.machine().lower(), "amd64")


# ── Data Classes ──


@dataclass(frozen=True)
class BuildContext:
    """Target platform and tags used to select source files.

    Attributes:
        goos: Target operating system, e.g. ``linux``.
        goarch: Target architecture, e.g. ``amd64``.
        tags: Extra build tags (from ``-tags``).
        cgo_enabled: Whether the ``cgo`` tag is satisfied.
        release_minor: Highest ``go1.N`` release tag satisfied.
        compiler: Compiler tag, ``gc`` for the standard toolchain.
    """

    goos: str = "linux"
    goarch: str = "amd64"
    tags: frozenset[str] = field(default_factory=frozenset)
    cgo_enabled: bool = False
    release_minor: int = GO_RELEASE_MINOR
    compiler: str = "gc"

    @classmethod
    def from_environ(
        cls,
        environ: Optional[dict[str, str]] = None,
        tags: Optional[list[str]] = None,
        goos: Optional[str] = None,
        goarch: Optional[str] = None,
        cgo_enabled: Optional[bool] = None,
    ) -> "BuildContext":
        """Build a context from explicit values, then ``$GOOS``-style env vars, then the host."""
        env = os.environ if environ is None else environ
        if cgo_enabled is None:
            cgo_enabled = env.get("CGO_ENABLED", "0") == "1"
        return cls(
            goos=goos or env.get("GOOS") or _host_goos(),
            goarch=goarch or env.get("GOARCH") or _host_goarch(),
            tags=frozenset(split_tags(tags or [])),
            cgo_enabled=cgo_enabled,
        )

    def match_tag(self, name: str) -> bool:
        """Report whether a single build tag is satisfied."""
        if not name:
            return False
        if name == "linux" and self.goos == "android":
            return True
        if name == "solaris" and self.goos == "illumos":
            return True
        if name == "darwin" and self.goos == "ios":
            return True
        if name == "unix" and self.goos in UNIX_OS:
            return True
        if name in (self.goos, self.goarch, self.compiler):
            return True
        if name == "cgo":
            return self.cgo_enabled
        if name in self.tags:
            return True
        if name.startswith("go1."):
            minor = name[4:]
            return minor.isdigit() and 1 <= int(minor) <= self.release_minor
        return False


def split_tags(values: list[str]) -> list[str]:
    """Flatten repeated comma-separated ``-tags`` values."""
    tags: list[str] = []
    for value in values:
        tags.extend(t.strip() for t in value.split(",") if t.strip())
    return tags


# ── File Name Rules ──


def good_os_arch_file(ctx: BuildContext, name: str) -> bool:
    """Apply the ``name_GOOS_GOARCH.go`` file name convention."""
    stem = name.split(".", 1)[0]
    i = stem.find("_")
    if i < 0:
        return True
    parts = stem[i:].split("_")
    if parts and parts[-1] == "test":
        parts = parts[:-1]
    n = len(parts)
    if n >= 2 and parts[n - 2] in KNOWN_OS and parts[n - 1] in KNOWN_ARCH:
        return ctx.match_tag(parts[n - 2]) and ctx.match_tag(parts[n - 1])
    if n >= 1 and (parts[n - 1] in KNOWN_OS or parts[n - 1] in KNOWN_ARCH):
        return ctx.match_tag(parts[n - 1])
    return True


# ── Constraint Expressions ──


class _ExprParser:
    """Recursive-descent evaluator for ``//go:build`` expressions."""

    def __init__(self, text: str, ctx: BuildContext):
        self._text = text
        self._ctx = ctx
        self._tokens = self._lex(text)
        self._i = 0

    def _lex(self, text: str) -> list[str]:
        tokens: list[str] = []
        pos = 0
        while pos < len(text):
            if text[pos:].strip() == "":
                break
            m = _EXPR_TOKEN_RE.match(text, pos)
            if not m:
                raise BuildConstraintError(f"invalid //go:build expression: {text!r}")
            tokens.append(m.group(1))
            pos = m.end()
        return tokens

    def _peek(self) -> Optional[str]:
        return self._tokens[self._i] if self._i < len(self._tokens) else None

    def evaluate(self) -> bool:
        if not self._tokens:
            raise BuildConstraintError("empty //go:build expression")
        value = self._or()
        if self._peek() is not None:
            raise BuildConstraintError(
                f"unexpected {self._peek()!r} in //go:build expression: {self._text!r}"
            )
        return value

    def _or(self) -> bool:
        value = self._and()
        while self._peek() == "||":
            self._i += 1
            rhs = self._and()
            value = value or rhs
        return value

    def _and(self) -> bool:
        value = self._not()
        while self._peek() == "&&":
            self._i += 1
            rhs = self._not()
            value = value and rhs
        return value

    def _not(self) -> bool:
        if self._peek() == "!":
            self._i += 1
            return not self._not()
        return self._atom()

    def _atom(self) -> bool:
        tok = self._peek()
        if tok is None:
            raise BuildConstraintError(f"unexpected end of //go:build expression: {self._text!r}")
        self._i += 1
        if tok == "(":
            value = self._or()
            if self._peek() != ")":
                raise BuildConstraintError(f"missing ')' in //go:build expression: {self._text!r}")
            self._i += 1
            return value
        if tok in (")", "&&", "||"):
            raise BuildConstraintError(f"unexpected {tok!r} in //go:build expression: {self._text!r}")
        return self._ctx.match_tag(tok)


def eval_go_build(ctx: BuildContext, expr: str) -> bool:
    """Evaluate a ``//go:build`` expression (without the prefix)."""
    return _ExprParser(expr, ctx).evaluate()


def eval_plus_build(ctx: BuildContext, line: str) -> bool:
    """Evaluate one ``// +build`` line: OR of space-separated AND-terms."""
    for option in line.split():
        terms = option.split(",")
        if all(_plus_build_term(ctx, term) for term in terms):
            return True
    return False


def _plus_build_term(ctx: BuildContext, term: str) -> bool:
    if term.startswith("!!") or term == "!":
        return False
    if term.startswith("!"):
        return not ctx.match_tag(term[1:])
    return ctx.match_tag(term)


# ── Header Scanning ──


def _header_comment_lines(source: str) -> tuple[list[str], int]:
    """Return the ``//`` lines before the package clause and the index of the last blank line."""
    lines: list[str] = []
    last_blank = -1
    in_block = False
    for raw in source.splitlines():
        line = raw.strip()
        if in_block:
            if "*/" in line:
                in_block = False
                line = line[line.index("*/") + 2:].strip()
                if not line:
                    continue
            else:
                continue
        if not line:
            last_blank = len(lines)
            continue
        if line.startswith("//"):
            lines.append(line)
            continue
        if line.startswith("/*"):
            rest = line[2:]
            if "*/" in rest:
                if rest[rest.index("*/") + 2:].strip():
                    break
                continue
            in_block = True
            continue
        break
    return lines, last_blank


def should_build(ctx: BuildContext, source: str, path: str = "<source>") -> bool:
    """Evaluate the build constraints in a file header.

    A ``//go:build`` line takes precedence; otherwise every ``// +build``
    line that is followed by a blank line must be satisfied.
    """
    lines, last_blank = _header_comment_lines(source)

    go_build: Optional[str] = None
    for line in lines:
        if _GO_BUILD_RE.match(line):
            if go_build is not None:
                raise BuildConstraintError(f"{path}: multiple //go:build comments")
            go_build = line[len("//go:build"):]
    if go_build is not None:
        return eval_go_build(ctx, go_build)

    for idx, line in enumerate(lines):
        if idx >= last_blank:
            break
        if _PLUS_BUILD_RE.match(line):
            expr = line[2:].strip()[len("+build"):]
            if not eval_plus_build(ctx, expr):
                return False
    return True


def match_file(ctx: BuildContext, path: str | Path) -> bool:
    """Report whether the Go file at ``path`` is part of the build for ``ctx``."""
    name = Path(path).name
    if name.startswith(("_", ".")):
        return False
    if not name.endswith(".go"):
        return False
    if not good_os_arch_file(ctx, name):
        return False
    return should_build(ctx, read_go_source(path), str(path))


def filter_files(ctx: BuildContext, paths: list[str]) -> list[str]:
    """Return the subset of ``paths`` that applies to ``ctx``, order preserved."""
    selected: list[str] = []
    for path in paths:
        if match_file(ctx, path):
            selected.append(path)
        else:
            logger.debug("Excluded by build constraints: %s", path)
    return selected
