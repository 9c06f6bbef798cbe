"""
Read-only helpers over ``ParseNode`` trees.

``tag`` arguments are either a plain string (substring match on the node's
tag path, kept for ad-hoc queries) or a ``NodeKind`` (membership in the
node's kinds).  Everything inside the package uses ``NodeKind``.
"""

import re
from typing import Iterator, List, Optional, Union

from cplus.tree import NodeKind, ParseNode

Tag = Union[str, NodeKind]


def has_tag(node: ParseNode, tag: Tag) -> bool:
    if isinstance(tag, NodeKind):
        return tag in node.kinds
    return tag in node.tag


def find_first_descendant(node: Optional[ParseNode], tag: Tag) -> Optional[ParseNode]:
    """Pre-order search (``node`` included); does not descend past a match."""
    if node is None:
        return None
    stack = [node]
    while stack:
        current = stack.pop()
        if has_tag(current, tag):
            return current
        stack.extend(reversed(current.children))
    return None


def _outermost(node: ParseNode, tag: Tag) -> Iterator[ParseNode]:
    stack = [node]
    while stack:
        current = stack.pop()
        if has_tag(current, tag):
            yield current
            continue
        stack.extend(reversed(current.children))


def find_all(node: Optional[ParseNode], tag: Tag) -> List[ParseNode]:
    """Every outermost match below (and including) ``node``, in document order."""
    if node is None:
        return []
    return list(_outermost(node, tag))


def first_child(node: Optional[ParseNode], tag: Tag) -> Optional[ParseNode]:
    if node is None:
        return None
    for child in node.children:
        if has_tag(child, tag):
            return child
    return None


def collect_leaf_text(node: Optional[ParseNode]) -> str:
    """
    Leaf text of ``node`` in document order.

    A single space separates two leaves when the source had anything
    (whitespace or a comment) between them; runs of whitespace collapse.
    ``const char *`` stays ``const char *`` and ``a[3]`` stays ``a[3]``.
    """
    if node is None:
        return ""
    parts: List[str] = []
    prev_end = None
    for leaf in node.leaves():
        if not leaf.contents:
            continue
        if prev_end is not None and leaf.start > prev_end:
            parts.append(" ")
        parts.append(leaf.contents)
        prev_end = leaf.end
    return re.sub(r"\s+", " ", "".join(parts)).strip()


def find_identifier_excluding_type(node: Optional[ParseNode], prefer_rightmost: bool = False) -> Optional[ParseNode]:
    """
    Identifier under ``node`` that is not part of a type subtree.

    With ``prefer_rightmost`` the last such identifier in document order is
    returned, otherwise the first.
    """
    if node is None:
        return None
    found: List[ParseNode] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current is not node and current.is_a(NodeKind.TYPE):
            continue
        if current.is_a(NodeKind.IDENTIFIER):
            if not prefer_rightmost:
                return current
            found.append(current)
            continue
        stack.extend(reversed(current.children))
    return found[-1] if found else None
