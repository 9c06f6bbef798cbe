"""
Human-readable outline of a Cplus parse tree.

    Program
      Class Motor
        Section public
          Method start
            Return Type: void
          Method set_speed
            Return Type: void
            Params
              Param:
                Type: int
                Name: rpm
        Section private
          Field enabled
            Type: bool

When the tree holds no interface or class at all the raw tree is dumped
instead, so the structure can still be inspected.
"""

from typing import List, Optional

from cplus.query import (
    collect_leaf_text,
    find_identifier_excluding_type,
    first_child,
)
from cplus.tree import NodeKind, ParseNode

INDENT = "  "


class _Printer:
    def __init__(self):
        self.lines: List[str] = []

    def put(self, level: int, text: str) -> None:
        self.lines.append(f"{INDENT * level}{text}")

    # ── types & params ──

    def type_(self, node: Optional[ParseNode], level: int) -> None:
        if node is None:
            return
        self.put(level, f"Type: {collect_leaf_text(node) or '<unknown>'}")

    def param(self, node: ParseNode, level: int) -> None:
        self.put(level, "Param:")
        if node.is_a(NodeKind.ELLIPSIS):
            self.put(level + 1, "Type: ...")
            return
        if node.is_a(NodeKind.TYPE):
            self.type_(node, level + 1)
            return
        self.type_(first_child(node, NodeKind.TYPE), level + 1)
        name = find_identifier_excluding_type(first_child(node, NodeKind.DECLARATOR))
        if name is not None:
            self.put(level + 1, f"Name: {name.contents}")

    def params(self, node: Optional[ParseNode], level: int) -> None:
        if node is None:
            return
        found = []
        stack = list(reversed(node.children))
        while stack:
            current = stack.pop()
            if current.is_a(NodeKind.PARAM) or current.is_a(NodeKind.ELLIPSIS):
                found.append(current)
            else:
                stack.extend(reversed(current.children))
        if not found:
            return
        self.put(level, "Params")
        for p in found:
            self.param(p, level + 1)

    # ── members ──

    def method(self, node: ParseNode, level: int) -> None:
        name = first_child(node, NodeKind.METHOD_NAME)
        if name is None:
            name = find_identifier_excluding_type(node, prefer_rightmost=True)
        self.put(level, f"Method {name.contents if name is not None else '<anon>'}")
        ret = first_child(node, NodeKind.TYPE)
        if ret is not None:
            self.put(level + 1, f"Return Type: {collect_leaf_text(ret) or '<unknown>'}")
        self.params(first_child(node, NodeKind.PARAMS), level + 1)

    def field(self, node: ParseNode, level: int) -> None:
        ftype = first_child(node, NodeKind.TYPE)
        declarators = [c for c in node.children if c.is_a(NodeKind.DECLARATOR)] or [node]
        for decl in declarators:
            ident = find_identifier_excluding_type(decl, prefer_rightmost=decl is node)
            self.put(level, f"Field {ident.contents if ident is not None else '<anon>'}")
            self.type_(ftype, level + 1)

    def member(self, node: ParseNode, level: int) -> None:
        if node.is_a(NodeKind.METHOD_DECL):
            self.method(node, level)
        elif node.is_a(NodeKind.FIELD_DECL):
            self.field(node, level)

    def section(self, node: ParseNode, level: int) -> None:
        label = None
        for n in node.walk():
            if n.is_a(NodeKind.ACCESS_KW):
                label = n
                break
        self.put(level, f"Section {label.contents if label is not None else '<access>'}")
        for child in node.children:
            if child.is_a(NodeKind.MEMBER):
                self.member(child, level + 1)

    # ── declarations ──

    def _name(self, decl: ParseNode, head_kind: NodeKind) -> str:
        ident = first_child(first_child(decl, head_kind), NodeKind.IDENTIFIER)
        return ident.contents if ident is not None else "<anon>"

    def interface(self, node: ParseNode, level: int) -> None:
        self.put(level, f"Interface {self._name(node, NodeKind.INTERFACE_HEAD)}")
        body = first_child(node, NodeKind.INTERFACE_BODY)
        for child in body.children if body is not None else []:
            if child.is_a(NodeKind.METHOD_DECL):
                self.method(child, level + 1)

    def class_(self, node: ParseNode, level: int) -> None:
        self.put(level, f"Class {self._name(node, NodeKind.CLASS_HEAD)}")
        body = first_child(node, NodeKind.CLASS_BODY)
        for child in body.children if body is not None else []:
            if child.is_a(NodeKind.SECTION):
                self.section(child, level + 1)
            elif child.is_a(NodeKind.MEMBER):
                self.member(child, level + 1)


def dump_tree(node: ParseNode, level: int = 0) -> str:
    """Raw tree: one node per line, leaves as ``tag:line:col 'text'``."""
    lines = []
    stack = [(node, level)]
    while stack:
        current, depth = stack.pop()
        if current.is_leaf:
            lines.append(f"{INDENT * depth}{current.tag}:{current.line}:{current.column} '{current.contents}'")
        else:
            lines.append(f"{INDENT * depth}{current.tag}")
            stack.extend((c, depth + 1) for c in reversed(current.children))
    return "\n".join(lines) + "\n"


def print_program(root: ParseNode) -> str:
    printer = _Printer()
    printer.put(0, "Program")
    printed_any = False
    for child in root.children:
        if child.is_a(NodeKind.INTERFACE_DECL):
            printer.interface(child, 1)
            printed_any = True
        elif child.is_a(NodeKind.CLASS_DECL):
            printer.class_(child, 1)
            printed_any = True
    if not printed_any:
        return dump_tree(root)
    return "\n".join(printer.lines) + "\n"
