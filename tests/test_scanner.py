"""Tests for the Go Source Scanner.

Covers: tokenization (semicolon insertion, literals, operators, comments),
lexical errors with positions, comment grouping, comment text extraction,
directive detection, package clause and function header parsing, parameter
grouping, result lists, bodies, and parse errors.
"""

import textwrap

import pytest

from gotestmain.scanner import (
    CHAR,
    COMMENT,
    EOF,
    IDENT,
    KEYWORD,
    NUMBER,
    OP,
    SEMI,
    STRING,
    CommentGroup,
    GoSyntaxError,
    SourceReadError,
    Token,
    _is_directive,
    group_comments,
    parse_file,
    parse_source,
    read_go_source,
    tokenize,
)


def _kinds(source: str) -> list[str]:
    return [t.kind for t in tokenize(source)]


def _values(source: str) -> list[str]:
    return [t.value for t in tokenize(source) if t.kind not in (SEMI, EOF)]


def _comment(text: str, line: int = 1) -> Token:
    return Token(COMMENT, text, 0, line, 1)


# ── Tokenizer ──


class TestTokenize:
    def test_semicolons_inserted_at_line_ends(self):
        assert _kinds("package p\nfunc f() {}\n") == [
            KEYWORD, IDENT, SEMI, KEYWORD, IDENT, OP, OP, OP, OP, SEMI, EOF,
        ]

    def test_no_semicolon_after_open_brace(self):
        kinds = _kinds("func f() {\n}\n")
        assert kinds.count(SEMI) == 1

    def test_semicolon_after_return_keyword(self):
        assert _kinds("return\n") == [KEYWORD, SEMI, EOF]

    def test_semicolon_at_eof_without_newline(self):
        assert _kinds("package p") == [KEYWORD, IDENT, SEMI, EOF]

    def test_line_comment_then_semicolon(self):
        toks = tokenize("x := 1 // c\n")
        assert [t.kind for t in toks] == [IDENT, OP, NUMBER, COMMENT, SEMI, EOF]
        assert toks[3].value == "// c"

    def test_multiline_block_comment_acts_as_newline(self):
        assert _kinds("x /* a\nb */ y") == [IDENT, COMMENT, SEMI, IDENT, SEMI, EOF]

    def test_single_line_block_comment_keeps_statement_open(self):
        assert _kinds("x /* a */ + y\n") == [IDENT, COMMENT, OP, IDENT, SEMI, EOF]

    def test_longest_operator_wins(self):
        assert _values("a <<= b &^ c ... d := e") == [
            "a", "<<=", "b", "&^", "c", "...", "d", ":=", "e",
        ]

    def test_numbers(self):
        toks = [t for t in tokenize("0x1F 1.5e3 .5 1_000 3i 0b101") if t.kind == NUMBER]
        assert [t.value for t in toks] == ["0x1F", "1.5e3", ".5", "1_000", "3i", "0b101"]

    def test_interpreted_string_with_escaped_quote(self):
        toks = tokenize('s := "a\\"b"\n')
        strings = [t for t in toks if t.kind == STRING]
        assert strings[0].value == '"a\\"b"'

    def test_raw_string_spans_lines(self):
        toks = tokenize("s := `a\nb`\n")
        raw = [t for t in toks if t.kind == STRING][0]
        assert raw.value == "`a\nb`"
        assert raw.line == 1
        assert raw.end_line == 2

    def test_rune_literal(self):
        toks = tokenize("c := '\\''\n")
        assert [t.value for t in toks if t.kind == CHAR] == ["'\\''"]

    def test_comment_markers_inside_strings_are_not_comments(self):
        toks = tokenize('s := "// not a comment"\n')
        assert COMMENT not in [t.kind for t in toks]

    def test_unicode_identifier(self):
        assert _values("café := 1") == ["café", ":=", "1"]

    def test_positions(self):
        toks = tokenize("package p\n\nfunc  f()")
        func = [t for t in toks if t.value == "func"][0]
        name = [t for t in toks if t.value == "f"][0]
        assert (func.line, func.col) == (3, 1)
        assert (name.line, name.col) == (3, 7)

    def test_byte_order_mark_skipped(self):
        assert _kinds("\ufeffpackage p\n")[:2] == [KEYWORD, IDENT]


class TestTokenizeErrors:
    def test_unterminated_string(self):
        with pytest.raises(GoSyntaxError, match="string literal not terminated") as exc_info:
            tokenize('x := "abc\n', "a.go")
        assert exc_info.value.path == "a.go"
        assert (exc_info.value.line, exc_info.value.col) == (1, 6)

    def test_unterminated_rune(self):
        with pytest.raises(GoSyntaxError, match="rune literal not terminated"):
            tokenize("x := 'a\n")

    def test_unterminated_raw_string(self):
        with pytest.raises(GoSyntaxError, match="raw string literal not terminated"):
            tokenize("x := `abc")

    def test_unterminated_block_comment(self):
        with pytest.raises(GoSyntaxError, match="comment not terminated"):
            tokenize("/* abc")

    def test_invalid_character(self):
        with pytest.raises(GoSyntaxError, match="invalid character") as exc_info:
            tokenize("x @ y", "b.go")
        assert str(exc_info.value).startswith("b.go:1:3:")


# ── Comments ──


class TestCommentGrouping:
    SOURCE = textwrap.dedent("""\
        package p

        // a
        // b

        // c
        func f() {
        	x() // trailing
        	// Output: hi
        }
        """)

    def test_groups(self):
        groups = group_comments(tokenize(self.SOURCE))
        assert [[c.value for c in g.comments] for g in groups] == [
            ["// a", "// b"],
            ["// c"],
            ["// trailing"],
            ["// Output: hi"],
        ]

    def test_same_line_comments_group_together(self):
        groups = group_comments(tokenize("x /* a */ // b\n// c\n"))
        assert [[c.value for c in g.comments] for g in groups] == [
            ["/* a */", "// b"],
            ["// c"],
        ]

    def test_multiline_block_comment_extends_group(self):
        groups = group_comments(tokenize("package p\n/* a\nb */\n// c\n"))
        assert len(groups) == 1
        assert len(groups[0].comments) == 2

    def test_group_span(self):
        source = "package p\n// one\n// two\n"
        group = group_comments(tokenize(source))[0]
        assert source[group.pos:group.end] == "// one\n// two"


class TestCommentText:
    def test_line_comments_strip_one_space(self):
        group = CommentGroup([_comment("// hello"), _comment("//   indented", 2)])
        assert group.text() == "hello\n  indented\n"

    def test_directives_dropped(self):
        group = CommentGroup([_comment("//go:generate stringer"), _comment("// text", 2)])
        assert group.text() == "text\n"

    def test_block_comment_blank_lines_collapse(self):
        group = CommentGroup([_comment("/*\n  a\n\n\n  b\n*/")])
        assert group.text() == "  a\n\n  b\n"

    def test_trailing_whitespace_stripped(self):
        group = CommentGroup([_comment("// a  \t")])
        assert group.text() == "a\n"

    def test_empty_comment(self):
        assert CommentGroup([_comment("//")]).text() == ""


class TestIsDirective:
    @pytest.mark.parametrize("body", ["go:generate x", "line foo.go:1", "nolint:errcheck", "export Foo"])
    def test_directives(self, body):
        assert _is_directive(body) is True

    @pytest.mark.parametrize("body", ["Output: x", "a:", "no colon", "Go:generate"])
    def test_not_directives(self, body):
        assert _is_directive(body) is False


# ── Parser ──


MIXED_SOURCE = textwrap.dedent("""\
    package lib_test

    import (
    	"testing"
    	t2 "testing"
    )

    type S struct{ a int }

    func (s *S) TestMethod(t *testing.T) {}

    func TestA(t *testing.T) {}
    func TestTwo(a, b *testing.T) {}
    func TestUnnamed(*testing.T) {}
    func TestRet(t *testing.T) error { return nil }
    func Generic[T any](x T) struct{ y int } { return struct{ y int }{} }
    func external(x int) int

    var v = func() int { return 1 }()

    const (
    	c = 3
    )
    """)


class TestParseSource:
    def test_package_name(self):
        assert parse_source(MIXED_SOURCE).package == "lib_test"

    def test_function_names_in_order(self):
        gf = parse_source(MIXED_SOURCE)
        assert [f.name for f in gf.funcs] == [
            "TestMethod", "TestA", "TestTwo", "TestUnnamed", "TestRet", "Generic", "external",
        ]

    def test_receiver_marks_method(self):
        funcs = {f.name: f for f in parse_source(MIXED_SOURCE).funcs}
        assert funcs["TestMethod"].is_method is True
        assert funcs["TestMethod"].receiver[0].name == "s"
        assert funcs["TestA"].is_method is False

    def test_single_named_param(self):
        funcs = {f.name: f for f in parse_source(MIXED_SOURCE).funcs}
        param = funcs["TestA"].params[0]
        assert param.name == "t"
        assert param.type_expr == "*testing.T"
        assert param.pointer_selector() == "T"

    def test_grouped_names_share_type(self):
        funcs = {f.name: f for f in parse_source(MIXED_SOURCE).funcs}
        params = funcs["TestTwo"].params
        assert [p.name for p in params] == ["a", "b"]
        assert all(p.type_expr == "*testing.T" for p in params)

    def test_unnamed_param(self):
        funcs = {f.name: f for f in parse_source(MIXED_SOURCE).funcs}
        param = funcs["TestUnnamed"].params[0]
        assert param.name is None
        assert param.pointer_selector() == "T"

    def test_results_recorded(self):
        funcs = {f.name: f for f in parse_source(MIXED_SOURCE).funcs}
        assert [t.value for t in funcs["TestRet"].results] == ["error"]
        assert funcs["TestA"].results == []

    def test_struct_result_is_not_body(self):
        funcs = {f.name: f for f in parse_source(MIXED_SOURCE).funcs}
        generic = funcs["Generic"]
        assert [t.value for t in generic.type_params] == ["T", "any"]
        assert [t.value for t in generic.results] == ["struct", "{", "y", "int", "}"]
        assert generic.body is not None

    def test_body_span(self):
        src = "package p\n\nfunc F() { x() }\n"
        func = parse_source(src).funcs[0]
        start, end = func.body
        assert src[start:end] == "{ x() }"

    def test_bodiless_declaration(self):
        funcs = {f.name: f for f in parse_source(MIXED_SOURCE).funcs}
        assert funcs["external"].body is None
        assert [t.value for t in funcs["external"].results] == ["int"]

    def test_empty_result_parens_count_as_results(self):
        func = parse_source("package p\nfunc F() () {}\n").funcs[0]
        assert func.results

    def test_trailing_comma_in_params(self):
        src = "package p\nfunc F(\n\ta int,\n\tb string,\n) {}\n"
        func = parse_source(src).funcs[0]
        assert [p.name for p in func.params] == ["a", "b"]

    def test_variadic_param(self):
        func = parse_source("package p\nfunc F(xs ...int) {}\n").funcs[0]
        assert func.params[0].name == "xs"
        assert func.params[0].type_expr == "...int"

    def test_comments_kept(self):
        gf = parse_source("package p\n\n// Doc.\nfunc F() {\n\t// Output: x\n}\n")
        assert [g.text() for g in gf.comments] == ["Doc.\n", "Output: x\n"]

    def test_line_numbers(self):
        funcs = {f.name: f for f in parse_source(MIXED_SOURCE).funcs}
        assert funcs["TestA"].line == 12


class TestParamLists:
    def _params(self, signature: str):
        func = parse_source(f"package lib\n\nfunc {signature} {{}}\n").funcs[0]
        return [(p.name, p.type_expr) for p in func.params]

    def test_named_slice_before_named_param(self):
        assert self._params("check(xs []int, n int)") == [("xs", "[]int"), ("n", "int")]

    def test_grouped_names_with_slice_type(self):
        assert self._params("assertEqual(t *testing.T, got, want []byte)") == [
            ("t", "*testing.T"), ("got", "[]byte"), ("want", "[]byte"),
        ]

    def test_named_array(self):
        assert self._params("check(xs [3]int, n int)") == [("xs", "[3]int"), ("n", "int")]

    def test_generic_slice_and_func_params(self):
        params = self._params("Map[T any](xs []T, f func(T) T)")
        assert [name for name, _ in params] == ["xs", "f"]
        assert params[0][1] == "[]T"

    def test_map_and_variadic(self):
        params = self._params("build(m map[string][]int, opts ...Option)")
        assert [name for name, _ in params] == ["m", "opts"]

    def test_unnamed_generic_instance(self):
        assert self._params("f(List[int])") == [(None, "List[int]")]

    def test_unnamed_generic_instances(self):
        assert self._params("f(List[int], Set[string])") == [
            (None, "List[int]"), (None, "Set[string]"),
        ]


class TestParseErrors:
    def test_missing_package_clause(self):
        with pytest.raises(GoSyntaxError, match="expected 'package'"):
            parse_source("func F() {}\n")

    def test_blank_package_name(self):
        with pytest.raises(GoSyntaxError, match="invalid package name"):
            parse_source("package _\n")

    def test_unclosed_body(self):
        with pytest.raises(GoSyntaxError, match="unclosed") as exc_info:
            parse_source("package p\n\nfunc f() {\n", "x_test.go")
        assert (exc_info.value.line, exc_info.value.col) == (3, 10)

    def test_mismatched_bracket(self):
        with pytest.raises(GoSyntaxError, match="unexpected '\\]'"):
            parse_source("package p\nfunc f() { x(] }\n")

    def test_missing_comma_before_newline(self):
        with pytest.raises(GoSyntaxError, match="unexpected newline in parameter list"):
            parse_source("package p\nfunc f(\n\ta int\n) {}\n")

    def test_statement_outside_function(self):
        with pytest.raises(GoSyntaxError, match="non-declaration statement"):
            parse_source("package p\nx := 1\n")

    def test_missing_function_name(self):
        with pytest.raises(GoSyntaxError, match="expected function name"):
            parse_source("package p\nfunc () {}\n")

    def test_junk_after_declaration(self):
        with pytest.raises(GoSyntaxError, match="after top level declaration"):
            parse_source("package p\nfunc f() {} func g() {}\n")

    def test_mixed_named_and_unnamed(self):
        with pytest.raises(GoSyntaxError, match="mixed named and unnamed"):
            parse_source("package p\nfunc f(a int, string) {}\n")


class TestParseFile:
    def test_reads_and_parses(self, tmp_path):
        path = tmp_path / "a_test.go"
        path.write_text("package a\n\nfunc TestX(t *testing.T) {}\n")
        gf = parse_file(path)
        assert gf.path == str(path)
        assert gf.funcs[0].name == "TestX"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceReadError, match="Could not read"):
            parse_file(tmp_path / "missing.go")

    def test_invalid_utf8_preserved(self, tmp_path):
        path = tmp_path / "b.go"
        path.write_bytes(b"package b\n// \xff\n")
        source = read_go_source(path)
        assert source.encode("utf-8", "surrogateescape") == b"package b\n// \xff\n"
