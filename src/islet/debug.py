"""--debug AST dump to stderr."""

from __future__ import annotations

import sys
from typing import TextIO

from islet.ast import Fragment
from islet.serialize import to_json


def dump_ast(tree: Fragment, *, file: TextIO = sys.stderr, spans: bool = False) -> None:
    """Print the tree as indented JSON to *file*."""
    file.write(to_json(tree, indent=2, spans=spans))
    file.write("\n")
