"""
Tree lowering: parse tree → IR ``Module``.

Interfaces and classes are located by node kind.  Anything missing where the
grammar would normally put it (a name, a return type) is replaced with a
placeholder and reported as a shape diagnostic; lowering never stops early.
"""

import logging
import re
from typing import List, Optional, Set

from cplus.config import SelfPolicy
from cplus.diagnostics import SHAPE, DiagnosticSink
from cplus.ir import Access, Class, Field, Interface, Method, Module, Param
from cplus.query import (
    collect_leaf_text,
    find_all,
    find_first_descendant,
    find_identifier_excluding_type,
    first_child,
)
from cplus.tree import NodeKind, ParseNode

logger = logging.getLogger(__name__)

ANON = "<anon>"
UNKNOWN = "<unknown>"


def is_self_type(type_text: str, owner: str, owner_is_interface: bool = False) -> bool:
    """True when ``type_text`` names a pointer to ``owner`` (or its ``_ref``)."""
    t = re.sub(r"\s+", " ", type_text).strip()
    name = re.escape(owner)
    if re.fullmatch(rf"{name}_ref", t):
        return True
    if re.fullmatch(rf"(?:const )?(?:(?:class|struct|interface) )?{name}(?: ?<[^>]*>)? ?\*", t):
        return True
    return owner_is_interface and re.fullmatch(r"(?:const )?void ?\*", t) is not None


def drop_self(params: List[Param], owner: str, policy: SelfPolicy,
              owner_is_interface: bool = False) -> List[Param]:
    """Remove the explicitly written receiver parameter according to ``policy``."""
    if policy == SelfPolicy.NAME:
        return [p for p in params if p.name != "self"]
    for i, p in enumerate(params):
        if is_self_type(p.type, owner, owner_is_interface):
            return params[:i] + params[i + 1:]
        break
    return params


class TreeLowering:
    """Lower one parse tree; diagnostics go to ``sink``."""

    def __init__(self, sink: Optional[DiagnosticSink] = None, self_policy: SelfPolicy = SelfPolicy.NAME):
        self.sink = sink if sink is not None else DiagnosticSink()
        self.self_policy = self_policy

    def _shape(self, node: ParseNode, message: str) -> None:
        self.sink.warn(SHAPE, message, node.line, node.column)

    # ────────────────────────────────────────────────────────────────
    #  Module
    # ────────────────────────────────────────────────────────────────

    def lower(self, root: ParseNode, input_name: str = "<input>") -> Module:
        module = Module(input_name=input_name)
        seen: Set[str] = set()

        decls = [n for n in root.walk()
                 if n.is_a(NodeKind.INTERFACE_DECL) or n.is_a(NodeKind.CLASS_DECL)]
        for node in decls:
            if node.is_a(NodeKind.INTERFACE_DECL):
                item = self.lower_interface(node)
                bucket = module.interfaces
            else:
                item = self.lower_class(node)
                bucket = module.classes
            if item.name in seen and item.name != ANON:
                self._shape(node, f"duplicate declaration of '{item.name}' ignored")
                continue
            seen.add(item.name)
            bucket.append(item)

        logger.info(
            "Lowered %s: %d interfaces, %d classes",
            input_name, len(module.interfaces), len(module.classes),
        )
        return module

    # ────────────────────────────────────────────────────────────────
    #  Declarations
    # ────────────────────────────────────────────────────────────────

    def _head_name(self, head: Optional[ParseNode], decl: ParseNode, what: str) -> str:
        ident = first_child(head, NodeKind.IDENTIFIER)
        if ident is None:
            self._shape(decl, f"{what} without a name")
            return ANON
        return ident.contents

    @staticmethod
    def _type_params(head: Optional[ParseNode]) -> List[str]:
        generic = first_child(head, NodeKind.GENERIC_PARAMS)
        out = []
        for gp in find_all(generic, NodeKind.GENERIC_PARAM):
            ident = find_first_descendant(gp, NodeKind.IDENTIFIER)
            if ident is not None:
                out.append(ident.contents)
        return out

    @staticmethod
    def _alias(decl: ParseNode) -> Optional[str]:
        alias = first_child(decl, NodeKind.ALIAS_NAME)
        return alias.contents if alias is not None else None

    def lower_interface(self, node: ParseNode) -> Interface:
        head = first_child(node, NodeKind.INTERFACE_HEAD)
        name = self._head_name(head, node, "interface")
        body = first_child(node, NodeKind.INTERFACE_BODY)
        if body is None:
            self._shape(node, f"interface '{name}' has no body")
        methods = []
        for m in find_all(body, NodeKind.METHOD_DECL):
            method = self.lower_method(m, name, owner_is_interface=True)
            method.access = Access.PUBLIC
            methods.append(method)
        return Interface(
            name=name,
            type_params=self._type_params(head),
            alias=self._alias(node),
            methods=methods,
        )

    def lower_class(self, node: ParseNode) -> Class:
        head = first_child(node, NodeKind.CLASS_HEAD)
        name = self._head_name(head, node, "class")
        cls = Class(name=name, type_params=self._type_params(head), alias=self._alias(node))

        base = first_child(head, NodeKind.INHERIT_BASE)
        if base is not None:
            cls.base = collect_leaf_text(find_first_descendant(base, NodeKind.NAMED_REF)) or None
        impl = first_child(head, NodeKind.IMPLEMENTS_LIST)
        cls.implemented_interfaces = [
            collect_leaf_text(ref) for ref in find_all(impl, NodeKind.NAMED_REF)
        ]

        body = first_child(node, NodeKind.CLASS_BODY)
        if body is None:
            self._shape(node, f"class '{name}' has no body")
            return cls

        for child in body.children:
            if child.is_a(NodeKind.SECTION):
                label = find_first_descendant(child, NodeKind.ACCESS_KW)
                access = Access(label.contents) if label is not None else Access.PRIVATE
                for member in child.children:
                    if member.is_a(NodeKind.MEMBER):
                        self._lower_member(member, cls, access)
            elif child.is_a(NodeKind.MEMBER):
                self._lower_member(child, cls, Access.PRIVATE)
        return cls

    def _lower_member(self, node: ParseNode, cls: Class, access: Access) -> None:
        inline = first_child(node, NodeKind.ACCESS_KW)
        if inline is not None:
            access = Access(inline.contents)
        if node.is_a(NodeKind.METHOD_DECL):
            method = self.lower_method(node, cls.name)
            method.access = access
            cls.methods.append(method)
        elif node.is_a(NodeKind.FIELD_DECL):
            cls.fields.extend(self.lower_fields(node, access))
        else:
            self._shape(node, f"unrecognized member in class '{cls.name}'")

    # ────────────────────────────────────────────────────────────────
    #  Members
    # ────────────────────────────────────────────────────────────────

    def _type_text(self, node: ParseNode, owner: ParseNode, what: str) -> str:
        type_node = first_child(node, NodeKind.TYPE)
        if type_node is None:
            self._shape(owner, f"{what} without a type")
            return UNKNOWN
        return collect_leaf_text(type_node)

    def lower_method(self, node: ParseNode, owner: str, owner_is_interface: bool = False) -> Method:
        name_node = first_child(node, NodeKind.METHOD_NAME)
        if name_node is None:
            self._shape(node, f"method in '{owner}' without a name")
            name = ANON
        else:
            name = name_node.contents
        return_type = self._type_text(node, node, f"method '{owner}.{name}'")
        params = self.lower_params(first_child(node, NodeKind.PARAMS))
        params = drop_self(params, owner, self.self_policy, owner_is_interface)
        return Method(
            return_type=return_type,
            name=name,
            params=params,
            is_static=first_child(node, NodeKind.KW_STATIC) is not None,
        )

    def lower_params(self, node: Optional[ParseNode]) -> List[Param]:
        if node is None:
            return []
        params = []
        # Outermost entries only; parameter lists nested in a function-pointer
        # declarator stay part of that declarator's text.
        stack = list(reversed(node.children))
        while stack:
            current = stack.pop()
            if current.is_a(NodeKind.ELLIPSIS):
                params.append(Param(type="..."))
            elif current.is_a(NodeKind.PARAM):
                params.append(self.lower_param(current))
            else:
                stack.extend(reversed(current.children))
        if len(params) == 1 and params[0].type == "void" and not params[0].name:
            return []
        return params

    def lower_param(self, node: ParseNode) -> Param:
        if node.is_a(NodeKind.TYPE):
            return Param(type=collect_leaf_text(node))
        type_text = self._type_text(node, node, "parameter")
        declarator = first_child(node, NodeKind.DECLARATOR)
        ident = find_identifier_excluding_type(declarator)
        return Param(
            type=type_text,
            name=ident.contents if ident is not None else "",
            declarator=collect_leaf_text(declarator),
        )

    def lower_fields(self, node: ParseNode, access: Access) -> List[Field]:
        type_text = self._type_text(node, node, "field")
        type_node = first_child(node, NodeKind.TYPE)
        # ``int *a, *b``: the pointer written after the base type binds to the
        # first declarator only.
        base_type = type_text
        if type_node is not None and not type_node.is_leaf:
            base = ParseNode(
                tag=NodeKind.TYPE.value,
                children=[c for c in type_node.children if not c.is_a(NodeKind.POINTER)],
            )
            base_type = collect_leaf_text(base) or type_text
        is_static = first_child(node, NodeKind.KW_STATIC) is not None
        fields = []
        for decl in node.children:
            if not decl.is_a(NodeKind.DECLARATOR):
                continue
            if fields:
                type_text = base_type
            ident = find_identifier_excluding_type(decl)
            if ident is None:
                self._shape(decl, "field declarator without a name")
                name = ANON
            else:
                name = ident.contents
            fields.append(Field(
                type=type_text,
                name=name,
                access=access,
                declarator=collect_leaf_text(decl),
                is_static=is_static,
            ))
        return fields


def lower_tree(root: ParseNode, input_name: str = "<input>",
               self_policy: SelfPolicy = SelfPolicy.NAME,
               sink: Optional[DiagnosticSink] = None) -> Module:
    return TreeLowering(sink, self_policy).lower(root, input_name)
