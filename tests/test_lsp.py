"""Tests for the LSP server: diagnostics published for islet documents."""

from __future__ import annotations

import pytest
from lsprotocol.types import (
    DiagnosticSeverity,
    PublishDiagnosticsParams,
    TextDocumentItem,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer
from pygls.workspace import Workspace

from islet.errors import Diagnostic, Severity
from islet.lsp import _validate, collect_diagnostics, to_lsp
from islet.tokens import Position, Span

URI = "file:///page.islet"


@pytest.fixture
def publish():
    """Return a helper that opens source in a workspace, validates it, and
    returns the one PublishDiagnosticsParams the server sent."""
    server = LanguageServer("test", "v0", text_document_sync_kind=TextDocumentSyncKind.Full)
    workspace = Workspace(None)
    server.protocol._workspace = workspace
    sent: list[PublishDiagnosticsParams] = []
    server.text_document_publish_diagnostics = sent.append

    def _publish(source: str) -> PublishDiagnosticsParams:
        workspace.put_text_document(
            TextDocumentItem(uri=URI, language_id="islet", version=0, text=source)
        )
        _validate(server, URI)
        (params,) = sent
        sent.clear()
        return params

    return _publish


def make_diag(start, end, severity=Severity.ERROR) -> Diagnostic:
    span = Span(Position(start[0], start[1], 0), Position(end[0], end[1], 0))
    return Diagnostic("unclosed-tag", "m", span, severity)


class TestPublishedErrors:
    def test_unclosed_tag(self, publish) -> None:
        params = publish("<div>\n<p>x</p>")
        assert params.uri == URI
        (diag,) = params.diagnostics
        assert diag.severity == DiagnosticSeverity.Error
        assert diag.code == "unclosed-tag"
        assert "<div>" in diag.message
        assert diag.source == "islet"
        assert (diag.range.start.line, diag.range.start.character) == (0, 0)

    def test_unclosed_expression(self, publish) -> None:
        codes = [d.code for d in publish("<p>{a + b</p>").diagnostics]
        assert "unclosed-expression" in codes


class TestPublishedWarnings:
    def test_stray_closing_tag(self, publish) -> None:
        (diag,) = publish("text</p>").diagnostics
        assert diag.severity == DiagnosticSeverity.Warning
        assert diag.code == "unmatched-closing-tag"

    def test_duplicate_directive(self, publish) -> None:
        (diag,) = publish("<Counter client:load client:idle />").diagnostics
        assert diag.severity == DiagnosticSeverity.Warning
        assert diag.code == "duplicate-directive"


class TestCleanDocuments:
    def test_nothing_published_for_valid_page(self, publish) -> None:
        source = "---\nconst title = 'Hi'\n---\n<h1>{title}</h1>\n<Counter client:load />\n"
        assert publish(source).diagnostics == []

    def test_collect_diagnostics_clean(self) -> None:
        assert collect_diagnostics("<p>ok</p>") == []

    def test_republish_clears(self, publish) -> None:
        assert publish("<div>").diagnostics
        assert publish("<div></div>").diagnostics == []


class TestToLsp:
    def test_second_line_offsets(self, publish) -> None:
        (diag,) = publish("<p>fine</p>\ntext</b>").diagnostics
        # 1-based line 2 column 5
        assert (diag.range.start.line, diag.range.start.character) == (1, 4)

    def test_range(self) -> None:
        rng = to_lsp(make_diag((2, 3), (2, 8))).range
        assert (rng.start.line, rng.start.character) == (1, 2)
        assert (rng.end.line, rng.end.character) == (1, 7)

    def test_zero_width_span(self) -> None:
        rng = to_lsp(make_diag((1, 4), (1, 4))).range
        assert (rng.end.line, rng.end.character) == (0, 4)

    def test_multiline_span(self) -> None:
        rng = to_lsp(make_diag((1, 1), (3, 2))).range
        assert (rng.end.line, rng.end.character) == (2, 1)

    def test_severity_mapping(self) -> None:
        warning = make_diag((1, 1), (1, 2), Severity.WARNING)
        assert to_lsp(warning).severity == DiagnosticSeverity.Warning
        assert to_lsp(make_diag((1, 1), (1, 2))).severity == DiagnosticSeverity.Error
