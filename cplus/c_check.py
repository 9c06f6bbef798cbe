"""
Syntax verification of generated C with tree-sitter-c.

Generated headers and sources are parsed before they are written; a tree with
ERROR or MISSING nodes means the generator produced something a C compiler
would reject.  Problems come back as ``CSyntaxProblem`` records so the caller
can turn them into verification diagnostics.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Union

import tree_sitter_c as tsc
from tree_sitter import Language, Node, Parser

logger = logging.getLogger(__name__)

C_LANGUAGE = Language(tsc.language())
_parser = Parser(C_LANGUAGE)


@dataclass
class CSyntaxProblem:
    line: int           # 1-indexed
    column: int         # 1-indexed
    kind: str           # "error" or "missing"
    text: str

    def describe(self) -> str:
        if self.kind == "missing":
            return f"{self.line}:{self.column}: missing '{self.text}'"
        return f"{self.line}:{self.column}: cannot parse '{self.text}'"


def _walk_all(node: Node) -> Iterator[Node]:
    """Yield all descendant nodes (cursor walk, no recursion)."""
    cursor = node.walk()
    visited = False
    while True:
        if not visited:
            yield cursor.node
        if not visited and cursor.goto_first_child():
            visited = False
            continue
        if cursor.goto_next_sibling():
            visited = False
            continue
        if cursor.goto_parent():
            visited = True
            continue
        break


def _as_bytes(code: Union[str, bytes]) -> bytes:
    return code.encode("utf-8") if isinstance(code, str) else bytes(code)


def parse_c(code: Union[str, bytes]):
    return _parser.parse(_as_bytes(code))


def check_c(code: Union[str, bytes], limit: int = 20) -> List[CSyntaxProblem]:
    """Return syntax problems in ``code`` (empty when it parses cleanly)."""
    source = _as_bytes(code)
    tree = _parser.parse(source)
    if not tree.root_node.has_error:
        return []

    problems: List[CSyntaxProblem] = []
    for node in _walk_all(tree.root_node):
        if node.is_missing:
            kind = "missing"
            text = node.type
        elif node.type == "ERROR":
            kind = "error"
            text = source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")
            text = " ".join(text.split())[:60]
        else:
            continue
        row, col = node.start_point
        problems.append(CSyntaxProblem(row + 1, col + 1, kind, text))
        if len(problems) >= limit:
            break
    logger.debug("tree-sitter found %d problem(s)", len(problems))
    return problems


def declared_functions(code: Union[str, bytes]) -> List[str]:
    """Names of all functions declared or defined in ``code``, in order."""
    source = _as_bytes(code)
    tree = _parser.parse(source)
    names = []
    for node in _walk_all(tree.root_node):
        if node.type != "function_declarator":
            continue
        ident = node.child_by_field_name("declarator")
        if ident is not None and ident.type == "identifier":
            names.append(source[ident.start_byte:ident.end_byte].decode("utf-8"))
    return names


def struct_fields(code: Union[str, bytes], struct_name: str) -> List[str]:
    """Field declarations (as written) of ``struct struct_name { ... }`` in ``code``."""
    source = _as_bytes(code)
    tree = _parser.parse(source)
    for node in _walk_all(tree.root_node):
        if node.type != "struct_specifier":
            continue
        name = node.child_by_field_name("name")
        body = node.child_by_field_name("body")
        if name is None or body is None:
            continue
        if source[name.start_byte:name.end_byte].decode("utf-8") != struct_name:
            continue
        return [
            source[c.start_byte:c.end_byte].decode("utf-8")
            for c in body.named_children
            if c.type == "field_declaration"
        ]
    return []
