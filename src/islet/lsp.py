"""Minimal LSP server for islet templates — diagnostics only."""

from __future__ import annotations

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer

from islet import __version__
from islet.errors import Diagnostic as IsletDiagnostic
from islet.errors import Severity
from islet.parser import parse

server = LanguageServer(
    "islet-lsp", __version__, text_document_sync_kind=TextDocumentSyncKind.Full
)

_SEVERITIES = {
    Severity.ERROR: DiagnosticSeverity.Error,
    Severity.WARNING: DiagnosticSeverity.Warning,
}


def to_lsp(diag: IsletDiagnostic) -> Diagnostic:
    """Convert a parser diagnostic to its LSP form (0-based positions)."""
    start = diag.span.start
    end = diag.span.end
    end_col = end.column - 1
    if (end.line, end.column) <= (start.line, start.column):
        end_col = start.column
    return Diagnostic(
        range=Range(
            start=Position(line=start.line - 1, character=start.column - 1),
            end=Position(line=max(end.line, start.line) - 1, character=end_col),
        ),
        message=diag.message,
        severity=_SEVERITIES[diag.severity],
        code=diag.code,
        source="islet",
    )


def collect_diagnostics(source: str) -> list[Diagnostic]:
    return [to_lsp(d) for d in parse(source).diagnostics]


def _validate(ls: LanguageServer, uri: str) -> None:
    """Parse the document and publish its diagnostics."""
    doc = ls.workspace.get_text_document(uri)
    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=collect_diagnostics(doc.source))
    )


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: LanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


def main() -> None:
    server.start_io()
