"""Test error messages, position accuracy, and context snippets."""

import pytest

from islet.errors import (
    Diagnostic,
    EvaluationError,
    IsletError,
    Severity,
    SynthesisError,
    format_source_context,
)
from islet.expr import evaluate
from islet.tokens import Position, Span


def span(line, col, end_line, end_col):
    return Span(Position(line, col, 0), Position(end_line, end_col, 0))


class TestFormatSourceContext:
    def test_layout(self):
        text = format_source_context("error[x]", "bad thing", span(1, 5, 1, 8), "abc def ghi")
        assert text == (
            "error[x]: bad thing\n"
            "  --> input.islet:1:5\n"
            "  |\n"
            "1 | abc def ghi\n"
            "  |     ^^^"
        )

    def test_custom_filename(self):
        text = format_source_context("error", "m", span(1, 1, 1, 2), "x", "pages/a.islet")
        assert "--> pages/a.islet:1:1" in text

    def test_second_line(self):
        text = format_source_context("error", "m", span(2, 1, 2, 2), "one\ntwo\n")
        assert "2 | two" in text

    def test_zero_width_gets_one_caret(self):
        text = format_source_context("error", "m", span(1, 3, 1, 3), "abcdef")
        assert text.endswith("|   ^")

    def test_multiline_span_underlines_to_end_of_line(self):
        text = format_source_context("error", "m", span(1, 3, 2, 1), "abcdef\nxyz")
        assert text.endswith("|   ^^^^")

    def test_wide_gutter(self):
        source = "\n" * 11 + "<div>"
        text = format_source_context("error", "m", span(12, 1, 12, 6), source)
        assert "12 | <div>" in text
        assert "   --> input.islet:12:1" in text

    def test_line_out_of_range(self):
        text = format_source_context("error", "m", span(5, 1, 5, 2), "x")
        assert "5 | \n" in text


class TestDiagnostic:
    def test_is_error(self):
        diag = Diagnostic("unclosed-tag", "m", span(1, 1, 1, 2), Severity.ERROR)
        assert diag.is_error

    def test_warning_is_not_error(self):
        diag = Diagnostic("unmatched-closing-tag", "m", span(1, 1, 1, 2), Severity.WARNING)
        assert not diag.is_error

    def test_format_label(self):
        diag = Diagnostic("mismatched-tag", "expected </b>", span(1, 1, 1, 2), Severity.ERROR)
        assert diag.format("x").startswith("error[mismatched-tag]: expected </b>\n")

    def test_from_parser(self, parse_source):
        source = "<ul>\n  <li>a</ul>"
        (diag,) = parse_source(source).errors
        assert diag.code == "mismatched-tag"
        assert diag.span.start.line == 2
        assert "<li>" in diag.format(source)


class TestExceptions:
    def test_hierarchy(self):
        assert issubclass(EvaluationError, IsletError)
        assert issubclass(SynthesisError, IsletError)

    def test_evaluation_error_message(self):
        err = EvaluationError("unknown name", "a + b")
        assert str(err) == "unknown name in 'a + b'"
        assert err.message == "unknown name"
        assert err.expression == "a + b"

    def test_evaluation_error_without_expression(self):
        assert str(EvaluationError("boom")) == "boom"

    def test_synthesis_error_message(self):
        err = SynthesisError("boom", "page.islet")
        assert str(err) == "page.islet: boom"
        assert err.filename == "page.islet"

    def test_evaluator_raises_evaluation_error(self):
        with pytest.raises(EvaluationError):
            evaluate("a.b", {"a": None})
