"""Go Source Scanner — Tokenizer and top-level declaration parser for Go files.

Tokenizes Go source with automatic semicolon insertion, keeps comments and
groups them the way the Go parser does (example output lives in comments),
and parses the package clause plus the headers of top-level ``func``
declarations.  Function bodies and other declarations are skipped by
bracket matching, so the parser never needs a full Go grammar.

Pure Python. No Go toolchain dependency.
"""

import bisect
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from gotestmain.errors import GeneratorError

logger = logging.getLogger(__name__)

# ── Constants ──

IDENT = "IDENT"
KEYWORD = "KEYWORD"
NUMBER = "NUMBER"
CHAR = "CHAR"
STRING = "STRING"
OP = "OP"
SEMI = "SEMI"
COMMENT = "COMMENT"
EOF = "EOF"

GO_KEYWORDS = frozenset({
    "break", "case", "chan", "const", "continue", "default", "defer",
    "else", "fallthrough", "for", "func", "go", "goto", "if", "import",
    "interface", "map", "package", "range", "return", "select", "struct",
    "switch", "type", "var",
})

# A newline after one of these ends the statement
_SEMI_KEYWORDS = frozenset({"break", "continue", "fallthrough", "return"})
_SEMI_OPS = frozenset({"++", "--", ")", "]", "}"})

_OPERATORS = (
    "<<=", ">>=", "&^=", "...",
    "&&", "||", "<-", "++", "--", "==", "!=", "<=", ">=", ":=",
    "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "<<", ">>", "&^",
    "+", "-", "*", "/", "%", "&", "|", "^", "<", ">", "=", "!", "~",
    "(", ")", "[", "]", "{", "}", ",", ";", ".", ":",
)
_OPS_BY_LEN = {
    n: frozenset(op for op in _OPERATORS if len(op) == n) for n in (3, 2, 1)
}

_BRACKETS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = frozenset(_BRACKETS.values())

_IDENT_RE = re.compile(r"[^\W\d]\w*")

_NUMBER_RE = re.compile(
    r"0[xX][0-9a-fA-F_]*(?:\.[0-9a-fA-F_]*)?(?:[pP][+-]?[0-9_]+)?i?"
    r"|0[bBoO][0-9_]+i?"
    r"|(?:[0-9][0-9_]*(?:\.[0-9_]*)?|\.[0-9][0-9_]*)(?:[eE][+-]?[0-9_]+)?i?"
)

# Compiler directives such as //go:generate or //line are not comment text
_DIRECTIVE_PREFIXES = ("line ", "extern ", "export ")


# ── Exceptions ──


class GoSyntaxError(GeneratorError):
    """A Go source file could not be tokenized or parsed."""

    def __init__(self, path: str, line: int, col: int, msg: str):
        super().__init__(f"{path}:{line}:{col}: {msg}")
        self.path = path
        self.line = line
        self.col = col
        self.msg = msg


class SourceReadError(GeneratorError):
    """A source file could not be read from disk."""


# ── Data Classes ──


@dataclass(frozen=True)
class Token:
    """A lexical token.  Auto-inserted semicolons carry the value ``"\\n"``."""

    kind: str
    value: str
    offset: int
    line: int
    col: int

    @property
    def end(self) -> int:
        return self.offset + len(self.value)

    @property
    def end_line(self) -> int:
        if self.kind in (COMMENT, STRING):
            return self.line + self.value.count("\n")
        return self.line

    def is_op(self, value: str) -> bool:
        return self.kind == OP and self.value == value


@dataclass
class CommentGroup:
    """A run of adjacent comments with no tokens between them."""

    comments: list[Token] = field(default_factory=list)

    @property
    def pos(self) -> int:
        return self.comments[0].offset

    @property
    def end(self) -> int:
        return self.comments[-1].end

    def text(self) -> str:
        """Return the comment text without markers, as ``go/ast`` does.

        Comment markers, the first space of ``//`` comments, directives,
        trailing whitespace and leading blank lines are removed, runs of
        blank lines collapse to one, and non-empty text ends in a newline.
        """
        lines: list[str] = []
        for comment in self.comments:
            c = comment.value
            if c[1] == "/":
                c = c[2:]
                if c.startswith(" "):
                    c = c[1:]
                elif c and _is_directive(c):
                    continue
            else:
                c = c[2:-2]
            lines.extend(line.rstrip(" \t\n\r") for line in c.split("\n"))

        kept: list[str] = []
        for line in lines:
            if line or (kept and kept[-1]):
                kept.append(line)
        if kept and kept[-1]:
            kept.append("")
        return "\n".join(kept)


@dataclass
class Param:
    """One parameter of a function signature."""

    name: Optional[str]
    type_tokens: tuple[Token, ...]

    @property
    def type_expr(self) -> str:
        parts: list[str] = []
        prev: Optional[Token] = None
        for tok in self.type_tokens:
            if prev is not None and prev.kind in (IDENT, KEYWORD) and tok.kind in (IDENT, KEYWORD):
                parts.append(" ")
            parts.append(tok.value)
            prev = tok
        return "".join(parts)

    def pointer_selector(self) -> Optional[str]:
        """Return ``Name`` if the type is written ``*pkg.Name``, else None."""
        toks = self.type_tokens
        if (
            len(toks) == 4
            and toks[0].is_op("*")
            and toks[1].kind == IDENT
            and toks[2].is_op(".")
            and toks[3].kind == IDENT
        ):
            return toks[3].value
        return None


@dataclass
class FuncDecl:
    """The header of a top-level function declaration."""

    name: str
    line: int
    receiver: Optional[list[Param]] = None
    type_params: list[Token] = field(default_factory=list)
    params: list[Param] = field(default_factory=list)
    results: list[Token] = field(default_factory=list)
    body: Optional[tuple[int, int]] = None  # offsets of "{" and just past "}"

    @property
    def is_method(self) -> bool:
        return self.receiver is not None


@dataclass
class GoFile:
    """A parsed Go source file: package clause, functions and comments."""

    path: str
    package: str
    funcs: list[FuncDecl] = field(default_factory=list)
    comments: list[CommentGroup] = field(default_factory=list)


# ── Helpers ──


def _is_directive(c: str) -> bool:
    """Report whether a ``//`` comment body is a tool directive."""
    if c.startswith(_DIRECTIVE_PREFIXES):
        return True
    colon = c.find(":")
    if colon <= 0 or colon + 1 >= len(c):
        return False
    for i in range(colon + 2):
        if i == colon:
            continue
        ch = c[i]
        if not ("a" <= ch <= "z" or "0" <= ch <= "9"):
            return False
    return True


def _is_array_type(entry: list[Token], open_idx: int) -> bool:
    """Report whether the ``[`` at ``open_idx`` starts a slice or array type.

    ``name []T`` and ``name [N]T`` have an element type after the closing
    bracket; a generic instance such as ``List[int]`` ends at it.
    """
    if open_idx + 1 < len(entry) and entry[open_idx + 1].is_op("]"):
        return True
    depth = 0
    for i in range(open_idx, len(entry)):
        tok = entry[i]
        if tok.kind == OP and tok.value in _BRACKETS:
            depth += 1
        elif tok.kind == OP and tok.value in _CLOSERS:
            depth -= 1
            if depth == 0:
                return i + 1 < len(entry)
    return False


# ── Lexer ──


class _Lexer:
    """Converts Go source text into a token list, comments included."""

    def __init__(self, source: str, path: str):
        self._src = source
        self._path = path
        self._pos = 0
        self._tokens: list[Token] = []
        self._insert_semi = False
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", source)]

    def _position(self, offset: int) -> tuple[int, int]:
        line = bisect.bisect_right(self._line_starts, offset)
        return line, offset - self._line_starts[line - 1] + 1

    def _error(self, offset: int, msg: str) -> GoSyntaxError:
        line, col = self._position(offset)
        return GoSyntaxError(self._path, line, col, msg)

    def _emit(self, kind: str, value: str, offset: int) -> None:
        line, col = self._position(offset)
        self._tokens.append(Token(kind, value, offset, line, col))

    def tokenize(self) -> list[Token]:
        src = self._src
        n = len(src)
        if src.startswith("\ufeff"):
            self._pos = 1

        while True:
            while self._pos < n and (
                src[self._pos] in " \t\r"
                or (src[self._pos] == "\n" and not self._insert_semi)
            ):
                self._pos += 1

            if self._pos >= n:
                if self._insert_semi:
                    self._emit(SEMI, "\n", n)
                self._emit(EOF, "", n)
                return self._tokens

            start = self._pos
            c = src[start]

            if c == "\n":
                self._emit(SEMI, "\n", start)
                self._insert_semi = False
                self._pos += 1
                continue

            if src.startswith("//", start) or src.startswith("/*", start):
                self._scan_comment(start)
                continue

            m = _IDENT_RE.match(src, start)
            if m:
                word = m.group()
                if word in GO_KEYWORDS:
                    self._emit(KEYWORD, word, start)
                    self._insert_semi = word in _SEMI_KEYWORDS
                else:
                    self._emit(IDENT, word, start)
                    self._insert_semi = True
                self._pos = m.end()
                continue

            if "0" <= c <= "9" or (c == "." and start + 1 < n and "0" <= src[start + 1] <= "9"):
                m = _NUMBER_RE.match(src, start)
                self._emit(NUMBER, m.group(), start)
                self._insert_semi = True
                self._pos = m.end()
                continue

            if c in "\"'":
                end = self._scan_quoted(start, c)
                self._emit(STRING if c == '"' else CHAR, src[start:end], start)
                self._insert_semi = True
                self._pos = end
                continue

            if c == "`":
                close = src.find("`", start + 1)
                if close < 0:
                    raise self._error(start, "raw string literal not terminated")
                self._emit(STRING, src[start:close + 1], start)
                self._insert_semi = True
                self._pos = close + 1
                continue

            for size in (3, 2, 1):
                op = src[start:start + size]
                if op in _OPS_BY_LEN[size]:
                    break
            else:
                raise self._error(start, f"invalid character {c!r}")
            if op == ";":
                self._emit(SEMI, op, start)
                self._insert_semi = False
            else:
                self._emit(OP, op, start)
                self._insert_semi = op in _SEMI_OPS
            self._pos = start + len(op)

    def _scan_comment(self, start: int) -> None:
        src = self._src
        if src.startswith("//", start):
            end = src.find("\n", start)
            if end < 0:
                end = len(src)
        else:
            close = src.find("*/", start + 2)
            if close < 0:
                raise self._error(start, "comment not terminated")
            end = close + 2
        text = src[start:end]
        self._emit(COMMENT, text, start)
        if self._insert_semi and text.startswith("/*") and "\n" in text:
            # A multi-line general comment acts like a newline
            self._emit(SEMI, "\n", start + text.index("\n"))
            self._insert_semi = False
        self._pos = end

    def _scan_quoted(self, start: int, quote: str) -> int:
        src = self._src
        i = start + 1
        n = len(src)
        while i < n:
            ch = src[i]
            if ch == "\\":
                i += 2
                continue
            if ch == "\n":
                break
            if ch == quote:
                return i + 1
            i += 1
        kind = "string" if quote == '"' else "rune"
        raise self._error(start, f"{kind} literal not terminated")


def tokenize(source: str, path: str = "<source>") -> list[Token]:
    """Tokenize Go source, returning every token including comments."""
    return _Lexer(source, path).tokenize()


# ── Comment Grouping ──


def _consume_group(tokens: list[Token], i: int, n: int) -> tuple[CommentGroup, int]:
    group = CommentGroup()
    endline = tokens[i].line
    while i < len(tokens) and tokens[i].kind == COMMENT and tokens[i].line <= endline + n:
        group.comments.append(tokens[i])
        endline = tokens[i].end_line
        i += 1
    return group, i


def group_comments(tokens: list[Token]) -> list[CommentGroup]:
    """Group comments as the Go parser does.

    A comment on the same line as the preceding token starts a group of
    same-line comments only; following comments are grouped while each
    starts at most one line below where the previous one ended.
    """
    groups: list[CommentGroup] = []
    prev_line = 0
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.kind != COMMENT:
            prev_line = tok.line
            i += 1
            continue
        if tok.line == prev_line:
            group, i = _consume_group(tokens, i, 0)
            groups.append(group)
        while i < len(tokens) and tokens[i].kind == COMMENT:
            group, i = _consume_group(tokens, i, 1)
            groups.append(group)
    return groups


# ── Parser ──


class _Parser:
    """Parses the package clause and top-level function headers."""

    def __init__(self, tokens: list[Token], path: str):
        self._tokens = [t for t in tokens if t.kind != COMMENT]
        self._path = path
        self._i = 0

    def _error(self, tok: Token, msg: str) -> GoSyntaxError:
        return GoSyntaxError(self._path, tok.line, tok.col, msg)

    def _peek(self) -> Token:
        return self._tokens[self._i]

    def _next(self) -> Token:
        tok = self._tokens[self._i]
        if tok.kind != EOF:
            self._i += 1
        return tok

    def _expect(self, kind: str, what: str) -> Token:
        tok = self._peek()
        if tok.kind != kind:
            found = "newline" if tok.value == "\n" else (tok.value or "EOF")
            raise self._error(tok, f"expected {what}, found {found!r}")
        return self._next()

    def parse(self) -> tuple[str, list[FuncDecl]]:
        tok = self._peek()
        if not (tok.kind == KEYWORD and tok.value == "package"):
            raise self._error(tok, "expected 'package'")
        self._next()
        name = self._expect(IDENT, "package name")
        if name.value == "_":
            raise self._error(name, "invalid package name _")
        if self._peek().kind != EOF:
            self._expect(SEMI, "';' after package clause")

        funcs: list[FuncDecl] = []
        while self._peek().kind != EOF:
            tok = self._peek()
            if tok.kind == SEMI:
                self._next()
            elif tok.kind == KEYWORD and tok.value == "func":
                funcs.append(self._parse_func())
            elif tok.kind == KEYWORD and tok.value in ("import", "const", "var", "type"):
                self._skip_decl()
            else:
                raise self._error(tok, "non-declaration statement outside function body")
        return name.value, funcs

    def _collect_group(self, open_tok: Token) -> tuple[list[Token], Token]:
        """Consume tokens up to the bracket matching ``open_tok``."""
        stack = [open_tok]
        inner: list[Token] = []
        while True:
            tok = self._next()
            if tok.kind == EOF:
                raise self._error(open_tok, f"unclosed {open_tok.value!r}")
            if tok.kind == OP and tok.value in _BRACKETS:
                stack.append(tok)
            elif tok.kind == OP and tok.value in _CLOSERS:
                opener = stack.pop()
                if _BRACKETS[opener.value] != tok.value:
                    raise self._error(
                        tok, f"unexpected {tok.value!r}, expected {_BRACKETS[opener.value]!r}"
                    )
                if not stack:
                    return inner, tok
            inner.append(tok)

    def _skip_decl(self) -> None:
        self._next()
        while True:
            tok = self._peek()
            if tok.kind == EOF:
                return
            self._next()
            if tok.kind == SEMI:
                return
            if tok.kind == OP and tok.value in _BRACKETS:
                self._collect_group(tok)
            elif tok.kind == OP and tok.value in _CLOSERS:
                raise self._error(tok, f"unexpected {tok.value!r}")

    def _parse_func(self) -> FuncDecl:
        func_tok = self._next()
        receiver: Optional[list[Param]] = None
        if self._peek().is_op("("):
            inner, _ = self._collect_group(self._next())
            receiver = self._split_params(inner)

        name = self._expect(IDENT, "function name")
        type_params: list[Token] = []
        if self._peek().is_op("["):
            type_params, _ = self._collect_group(self._next())

        if not self._peek().is_op("("):
            raise self._error(self._peek(), f"expected '(' after func {name.value}")
        inner, _ = self._collect_group(self._next())
        params = self._split_params(inner)
        results = self._collect_results()

        body: Optional[tuple[int, int]] = None
        tok = self._peek()
        if tok.is_op("{"):
            _, close = self._collect_group(self._next())
            body = (tok.offset, close.end)

        tok = self._peek()
        if tok.kind not in (SEMI, EOF):
            raise self._error(tok, f"unexpected {tok.value!r} after top level declaration")

        return FuncDecl(
            name=name.value,
            line=func_tok.line,
            receiver=receiver,
            type_params=type_params,
            params=params,
            results=results,
            body=body,
        )

    def _collect_results(self) -> list[Token]:
        """Consume the result list, stopping at the body or end of declaration."""
        results: list[Token] = []
        while True:
            tok = self._peek()
            if tok.kind in (SEMI, EOF):
                return results
            if tok.is_op("{"):
                prev = results[-1] if results else None
                if prev is None or not (prev.kind == KEYWORD and prev.value in ("struct", "interface")):
                    return results
            self._next()
            results.append(tok)
            if tok.kind == OP and tok.value in _BRACKETS:
                inner, close = self._collect_group(tok)
                results.extend(inner)
                results.append(close)
            elif tok.kind == OP and tok.value in _CLOSERS:
                raise self._error(tok, f"unexpected {tok.value!r}")

    def _split_params(self, tokens: list[Token]) -> list[Param]:
        entries: list[list[Token]] = [[]]
        depth = 0
        for tok in tokens:
            if tok.kind == SEMI and depth == 0:
                raise self._error(tok, "unexpected newline in parameter list; possibly missing comma or )")
            if tok.kind == OP and tok.value in _BRACKETS:
                depth += 1
            elif tok.kind == OP and tok.value in _CLOSERS:
                depth -= 1
            elif depth == 0 and tok.is_op(","):
                if not entries[-1]:
                    raise self._error(tok, "unexpected comma; expecting parameter")
                entries.append([])
                continue
            entries[-1].append(tok)
        if not entries[-1]:
            entries.pop()

        params = [self._make_param(entry) for entry in entries]

        # In "a, b int" the bare names share the type that follows them
        if any(p.name is not None for p in params):
            pending: Optional[tuple[Token, ...]] = None
            for p in reversed(params):
                if p.name is not None:
                    pending = p.type_tokens
                elif len(p.type_tokens) == 1 and p.type_tokens[0].kind == IDENT and pending is not None:
                    p.name = p.type_tokens[0].value
                    p.type_tokens = pending
                else:
                    raise self._error(p.type_tokens[0], "mixed named and unnamed parameters")
        return params

    @staticmethod
    def _make_param(entry: list[Token]) -> Param:
        if len(entry) >= 2 and entry[0].kind == IDENT:
            second = entry[1]
            if second.is_op("."):
                return Param(name=None, type_tokens=tuple(entry))
            if second.is_op("[") and not _is_array_type(entry, 1):
                return Param(name=None, type_tokens=tuple(entry))
            return Param(name=entry[0].value, type_tokens=tuple(entry[1:]))
        return Param(name=None, type_tokens=tuple(entry))


# ── Public API ──


def parse_source(source: str, path: str = "<source>") -> GoFile:
    """Parse Go source text into a :class:`GoFile`.

    Raises GoSyntaxError on lexical errors, a missing package clause,
    unbalanced brackets or a malformed function header.
    """
    tokens = tokenize(source, path)
    package, funcs = _Parser(tokens, path).parse()
    return GoFile(
        path=path,
        package=package,
        funcs=funcs,
        comments=group_comments(tokens),
    )


def read_go_source(path: str | Path) -> str:
    """Read a Go file as UTF-8, keeping invalid bytes as surrogate escapes."""
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise SourceReadError(f"Could not read {path}: {exc}") from exc
    return raw.decode("utf-8", errors="surrogateescape")


def parse_file(path: str | Path) -> GoFile:
    """Read and parse the Go file at ``path``."""
    source = read_go_source(path)
    logger.debug("Parsing %s (%d bytes)", path, len(source))
    return parse_source(source, str(path))
