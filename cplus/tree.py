"""
Parse tree produced by the Cplus grammar.

A node's ``tag`` is the path of rule names that produced it, joined with
``|``.  When a rule yields exactly one child the rule node is folded into that
child and the rule name is prefixed to the child's tag, so a method name leaf
is tagged ``method_name|identifier|regex``.  Consumers that only care about
the general rule keep working when the grammar grows intermediate rules.

Alongside the textual tag every node carries ``kinds``: the closed set of
``NodeKind`` values named in its path.  Code that walks the tree matches on
kinds, not on tag substrings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterator, List, Tuple


class NodeKind(str, Enum):
    """Grammar rules the tree consumers care about."""
    PROGRAM = "program"
    BOM = "bom"
    TRANSLATION_UNIT = "translation_unit"
    TOP_ITEM = "top_item"
    PP_LINE = "pp_line"
    IDENTIFIER = "identifier"

    INTERFACE_DECL = "interface_decl"
    INTERFACE_HEAD = "interface_head"
    INTERFACE_BODY = "interface_body"
    CLASS_DECL = "class_decl"
    CLASS_HEAD = "class_head"
    CLASS_BODY = "class_body"
    GENERIC_PARAMS = "generic_params"
    GENERIC_PARAM = "generic_param"
    INHERIT_BASE = "inherit_base"
    IMPLEMENTS_LIST = "implements_list"
    ALIAS_NAME = "alias_name"

    SECTION = "section"
    ACCESS_LABEL = "access_label"
    ACCESS_KW = "access_kw"
    KW_STATIC = "kw_static"
    MEMBER = "member"
    METHOD_DECL = "method_decl"
    METHOD_NAME = "method_name"
    FIELD_DECL = "field_decl"

    TYPE = "type"
    TYPE_SPEC = "type_spec"
    NAMED_REF = "named_ref"
    TAGGED_REF = "tagged_ref"
    POINTER = "pointer"
    DECLARATOR = "declarator"
    ARRAY_SUFFIX = "array_suffix"
    PARAMS = "params"
    PARAM_LIST = "param_list"
    PARAM = "param"
    ELLIPSIS = "ellipsis"

    FUNCTION_DEF = "function_def"
    DECLARATION = "declaration"
    COMPOUND_STMT = "compound_stmt"


_KIND_BY_NAME = {k.value: k for k in NodeKind}

LITERAL_LEAF = "string"
REGEX_LEAF = "regex"


def kinds_of(tag: str) -> FrozenSet[NodeKind]:
    return frozenset(_KIND_BY_NAME[p] for p in tag.split("|") if p in _KIND_BY_NAME)


@dataclass
class ParseNode:
    tag: str
    contents: str = ""
    children: List["ParseNode"] = field(default_factory=list)
    start: int = 0
    end: int = 0
    line: int = 1
    column: int = 1
    kinds: FrozenSet[NodeKind] = field(default=frozenset(), compare=False, repr=False)

    def __post_init__(self):
        if not self.kinds:
            self.kinds = kinds_of(self.tag)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def path(self) -> Tuple[str, ...]:
        return tuple(self.tag.split("|"))

    @property
    def kind(self):
        """Outermost ``NodeKind`` in the path, or None for anonymous nodes."""
        for name in self.path:
            kind = _KIND_BY_NAME.get(name)
            if kind is not None:
                return kind
        return None

    def is_a(self, kind: NodeKind) -> bool:
        return kind in self.kinds

    def folded(self, rule: str) -> "ParseNode":
        """Return this node re-tagged as produced by ``rule`` (single-child fold)."""
        return ParseNode(
            tag=f"{rule}|{self.tag}",
            contents=self.contents,
            children=self.children,
            start=self.start,
            end=self.end,
            line=self.line,
            column=self.column,
        )

    def walk(self) -> Iterator["ParseNode"]:
        """Pre-order traversal including this node."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def leaves(self) -> Iterator["ParseNode"]:
        for node in self.walk():
            if node.is_leaf:
                yield node

    def source_text(self, source: str) -> str:
        """Exact source slice this node spans."""
        return source[self.start:self.end]

    def structure(self) -> tuple:
        """Hashable structural summary used to compare trees."""
        return (self.tag, self.contents, self.start, self.end,
                tuple(c.structure() for c in self.children))
