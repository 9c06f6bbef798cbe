"""
C code generation.

Two emission modes share the rendering helpers in this module:

  • Artifact mode (``emit_module``): IR ``Module`` → ``Name.h`` per interface
    (vtable struct) and ``Name.gen.h`` / ``Name.gen.c`` per class (struct with
    metadata pointer, renamed prototypes, stub bodies, lifecycle hooks).
  • Translation-unit mode (``emit_translation_unit``): parse tree → one C
    text stream.  Classes become structs plus renamed prototypes taking a
    ``Name_ref self``; everything else is echoed from the source, and
    function definitions are checked against the ``Class_method`` naming
    convention.

Generated artifacts can be verified with tree-sitter-c before they are
handed back; a class emits both of its files or neither.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from cplus import c_check
from cplus.config import SelfPolicy
from cplus.diagnostics import CONVENTION, SHAPE, VERIFICATION, Diagnostic, DiagnosticSink
from cplus.grammar import c_identifier
from cplus.ir import Access, Class, Interface, Method, Module, Param
from cplus.lowering import TreeLowering
from cplus.query import collect_leaf_text, find_first_descendant, find_identifier_excluding_type, first_child
from cplus.tree import NodeKind, ParseNode

logger = logging.getLogger(__name__)

INDENT = "    "


# ═══════════════════════════════════════════════════════════════════════
#  Rendering helpers
# ═══════════════════════════════════════════════════════════════════════

def normalize_type(type_text: str) -> str:
    """``char*`` / ``char  *`` → ``char *``; whitespace runs collapse."""
    t = re.sub(r"\s+", " ", type_text).strip()
    return re.sub(r"\s*(\*+)", r" \1", t).strip()


def declare(type_text: str, declarator: str) -> str:
    """Join a type and a declarator: ``declare("Foo*", "x")`` → ``Foo *x``."""
    t = normalize_type(type_text)
    if not declarator:
        return t
    if t.endswith("*"):
        return f"{t}{declarator}"
    return f"{t} {declarator}"


def render_param(param: Param) -> str:
    if param.type == "...":
        return "..."
    return declare(param.type, param.decl())


def render_params(params: List[Param], receiver: Optional[str] = None) -> str:
    parts = [receiver] if receiver else []
    parts.extend(render_param(p) for p in params)
    return ", ".join(parts) if parts else "void"


def guard_macro(filename: str) -> str:
    """``Motor.gen.h`` → ``MOTOR_GEN_H``."""
    guard = "".join(ch.upper() if ch.isalnum() else "_" for ch in filename)
    if not guard or guard[0].isdigit():
        guard = "_" + guard
    return guard


def banner(filename: str, name: str, input_name: str) -> str:
    return (
        "/*\n"
        f"\tFILE: {filename}\n"
        f"\tDESCRIPTION: public definitions of {name}\n"
        f"\tGENERATED FROM: {input_name}\n"
        "*/\n"
    )


def is_void(type_text: str) -> bool:
    return normalize_type(type_text) == "void"


def _bare_name(type_text: str) -> str:
    """``Base<int>`` → ``Base``."""
    m = re.match(r"\s*(?:class\s+|struct\s+)?([A-Za-z_][A-Za-z0-9_]*)", type_text)
    return m.group(1) if m else c_identifier(type_text)


def _rename_declarator(declarator: str, name: str, new_name: str) -> str:
    return re.sub(rf"\b{re.escape(name)}\b", new_name, declarator, count=1)


def method_symbol(cls_name: str, method: Method) -> str:
    return f"{cls_name}_{method.name}"


def method_prototype(cls_name: str, method: Method, receiver_type: Optional[str] = None) -> str:
    """``ret Class_m(Class *self, params)`` (no receiver for static methods)."""
    receiver = None
    if not method.is_static:
        receiver = receiver_type or f"{cls_name} *self"
    signature = f"{method_symbol(cls_name, method)}({render_params(method.params, receiver)})"
    return declare(method.return_type, signature)


def vtable_entry(method: Method) -> str:
    signature = f"(*{method.name})({render_params(method.params, 'void *self')})"
    return declare(method.return_type, signature)


def vtable_typedef(itf: Interface) -> str:
    lines = [f"typedef struct {itf.name}_vtable {{"]
    for m in itf.methods:
        lines.append(f"{INDENT}{vtable_entry(m)};")
    lines.append(f"}} {itf.name}_vtable;")
    return "\n".join(lines) + "\n"


# ═══════════════════════════════════════════════════════════════════════
#  Artifact mode
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class EmitResult:
    files: Dict[str, str] = field(default_factory=dict)
    groups: List[List[str]] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def render_interface_header(itf: Interface, input_name: str = "<input>") -> str:
    filename = f"{itf.name}.h"
    guard = guard_macro(filename)
    out = [
        banner(filename, itf.name, input_name),
        "\n",
        f"#ifndef {guard}\n",
        f"#define {guard}\n",
        "\n\n",
        "#include <stdbool.h>\n",
        "\n",
    ]
    if itf.type_params:
        out.append(f"/* generic parameters: {', '.join(itf.type_params)} */\n")
    out.append(vtable_typedef(itf))
    out.append(f"\n#endif /* {guard} */\n")
    return "".join(out)


def render_class_header(cls: Class, input_name: str = "<input>") -> str:
    filename = f"{cls.name}.gen.h"
    guard = guard_macro(filename)
    out = [
        banner(filename, cls.name, input_name),
        "\n",
        f"#ifndef {guard}\n",
        f"#define {guard}\n",
        "\n\n",
        "#include <stdbool.h>\n",
        "\n",
        "#include <stdlib.h>\n",
        "\n",
    ]

    includes = []
    if cls.base:
        includes.append(f'#include "{_bare_name(cls.base)}.gen.h"\n')
    for itf in cls.implemented_interfaces:
        includes.append(f'#include "{_bare_name(itf)}.h"\n')
    if includes:
        out.extend(includes)
        out.append("\n")

    if cls.type_params:
        out.append(f"/* generic parameters: {', '.join(cls.type_params)} */\n")
    out.append(f"typedef struct {cls.name} {{\n")
    out.append(f"{INDENT}const struct {cls.name}__meta_s *meta;\n")
    for f in cls.fields:
        if not f.is_static:
            out.append(f"{INDENT}{declare(f.type, f.decl())};\n")
    out.append(f"}} {cls.name};\n\n")

    statics = [f for f in cls.fields if f.is_static]
    for f in statics:
        decl = _rename_declarator(f.decl(), f.name, f"{cls.name}_{f.name}")
        out.append(f"extern {declare(f.type, decl)};\n")
    if statics:
        out.append("\n")

    for m in cls.methods:
        out.append(f"{method_prototype(cls.name, m)};\n")
    out.append(f"void {cls.name}__sys_init(void);\n")
    out.append(f"void {cls.name}__sys_deinit(void);\n")
    out.append(f"\n#endif /* {guard} */\n")
    return "".join(out)


def _stub_body(method: Method) -> List[str]:
    lines = [f"{INDENT}/* TODO: generated body */\n"]
    if is_void(method.return_type):
        lines.append(f"{INDENT}return;\n")
    else:
        lines.append(f"{INDENT}{declare(method.return_type, 'result')} = {{0}};\n")
        lines.append(f"{INDENT}return result;\n")
    return lines


def _vtable_instance(cls: Class, itf: Interface, sink: DiagnosticSink) -> Optional[str]:
    if not itf.methods:
        return None
    var = f"{cls.name}__{itf.name}_vtable"
    lines = [f"static const {itf.name}_vtable {var} = {{\n"]
    for im in itf.methods:
        cm = cls.method(im.name)
        if cm is None or cm.is_static:
            sink.warn(SHAPE, f"class '{cls.name}' does not implement '{itf.name}.{im.name}'")
            lines.append(f"{INDENT}.{im.name} = NULL,\n")
            continue
        cast = declare(im.return_type, f"(*)({render_params(im.params, 'void *self')})")
        lines.append(f"{INDENT}.{im.name} = ({cast}){method_symbol(cls.name, cm)},\n")
    lines.append("};\n")
    return "".join(lines)


def render_class_source(cls: Class, module: Module, sink: Optional[DiagnosticSink] = None) -> str:
    sink = sink if sink is not None else DiagnosticSink(module.input_name)
    filename = f"{cls.name}.gen.c"
    out = [
        banner(filename, cls.name, module.input_name),
        "\n",
        "#include <stdio.h>\n",
        "#include <stdlib.h>\n",
        "\n",
        f'#include "{cls.name}.gen.h"\n',
        "\n",
        f"struct {cls.name}__meta_s {{\n",
        f"{INDENT}const char *name;\n",
        f"{INDENT}size_t size;\n",
        "};\n",
        "\n",
        f'static const struct {cls.name}__meta_s {cls.name}__meta = {{ "{cls.name}", sizeof({cls.name}) }};\n',
        "\n",
    ]

    statics = [f for f in cls.fields if f.is_static]
    for f in statics:
        decl = _rename_declarator(f.decl(), f.name, f"{cls.name}_{f.name}")
        out.append(f"{declare(f.type, decl)};\n")
    if statics:
        out.append("\n")

    vtables = []
    for itf_name in cls.implemented_interfaces:
        itf = module.interface(_bare_name(itf_name))
        if itf is None:
            logger.debug("Interface %s of %s is not declared in %s", itf_name, cls.name, module.input_name)
            continue
        instance = _vtable_instance(cls, itf, sink)
        if instance is not None:
            vtables.append(f"{cls.name}__{itf.name}_vtable")
            out.append(instance)
            out.append("\n")

    for m in cls.methods:
        out.append(f"{method_prototype(cls.name, m)}\n")
        out.append("{\n")
        out.extend(_stub_body(m))
        out.append("}\n\n")

    touched = "".join(f" (void){v};" for v in vtables)
    out.append(f"void {cls.name}__sys_init(void) {{\n")
    out.append(f"{INDENT}(void){cls.name}__meta;{touched} /* TODO: set up vtables and meta */\n")
    out.append("}\n\n")
    out.append(f"void {cls.name}__sys_deinit(void) {{\n")
    out.append(f"{INDENT}/* TODO: tear down */\n")
    out.append("}\n")
    return "".join(out)


def _verify(files: Dict[str, str], sink: DiagnosticSink) -> bool:
    ok = True
    for filename, content in files.items():
        for problem in c_check.check_c(content):
            ok = False
            sink.warn(VERIFICATION, f"generated {filename}: {problem.describe()}")
    return ok


def emit_module(module: Module, verify: bool = True, skip_invalid: bool = False,
                sink: Optional[DiagnosticSink] = None) -> EmitResult:
    """
    Render every artifact of ``module``.

    Files come back in declaration order: interfaces first, then each class
    as its header followed by its source.  ``groups`` lists the files of
    each declaration, which are written together or not at all.  With
    ``verify`` each artifact is parsed by tree-sitter-c; ``skip_invalid``
    drops the artifacts of any declaration that fails.
    """
    sink = sink if sink is not None else DiagnosticSink(module.input_name)
    first_diag = len(sink.items)
    result = EmitResult()

    def _accept(name: str, files: Dict[str, str]) -> None:
        if verify and not _verify(files, sink) and skip_invalid:
            logger.warning("Skipping artifacts of %s: generated C does not parse", name)
            result.skipped.append(name)
            return
        result.files.update(files)
        result.groups.append(list(files))

    for itf in module.interfaces:
        _accept(itf.name, {f"{itf.name}.h": render_interface_header(itf, module.input_name)})

    for cls in module.classes:
        _accept(cls.name, {
            f"{cls.name}.gen.h": render_class_header(cls, module.input_name),
            f"{cls.name}.gen.c": render_class_source(cls, module, sink),
        })

    result.diagnostics = sink.items[first_diag:]
    logger.info("Rendered %d artifact(s) for %s", len(result.files), module.input_name)
    return result


# ═══════════════════════════════════════════════════════════════════════
#  Translation-unit mode
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class UnitResult:
    text: str
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass
class EmitContext:
    """State of one translation-unit emission (method registry, output)."""
    source: str
    sink: DiagnosticSink
    self_policy: SelfPolicy = SelfPolicy.NAME
    methods: Dict[str, List[str]] = field(default_factory=dict)
    out: List[str] = field(default_factory=list)

    def register(self, cls_name: str, method_name: str) -> None:
        self.methods.setdefault(cls_name, []).append(method_name)

    def emit(self, text: str) -> None:
        self.out.append(text if text.endswith("\n") else text + "\n")


def _member_nodes(body: ParseNode):
    for child in body.children:
        if child.is_a(NodeKind.SECTION):
            for member in child.children:
                if member.is_a(NodeKind.MEMBER):
                    yield member
        elif child.is_a(NodeKind.MEMBER):
            yield child


def _strip_modifiers(member: ParseNode) -> str:
    kept = [c for c in member.children
            if not c.is_a(NodeKind.ACCESS_KW) and not c.is_a(NodeKind.KW_STATIC)]
    return collect_leaf_text(ParseNode(tag=member.tag, children=kept))


def emit_class_unit(ctx: EmitContext, node: ParseNode, lowering: TreeLowering) -> None:
    head = first_child(node, NodeKind.CLASS_HEAD)
    ident = first_child(head, NodeKind.IDENTIFIER)
    name = ident.contents if ident is not None else "Anon"
    body = first_child(node, NodeKind.CLASS_BODY)
    if body is None:
        ctx.sink.warn(SHAPE, f"class '{name}' has no complete body; skipped", node.line, node.column)
        return

    fields: List[str] = []
    statics: List[str] = []
    prototypes: List[str] = []
    for member in _member_nodes(body):
        if member.is_a(NodeKind.METHOD_DECL):
            method = lowering.lower_method(member, name)
            ctx.register(name, method.name)
            prototypes.append(method_prototype(name, method, receiver_type=f"{name}_ref self") + ";")
        elif member.is_a(NodeKind.FIELD_DECL):
            if first_child(member, NodeKind.KW_STATIC) is not None:
                for f in lowering.lower_fields(member, Access.PRIVATE):
                    decl = _rename_declarator(f.decl(), f.name, f"{name}_{f.name}")
                    statics.append(f"extern {declare(f.type, decl)};")
            else:
                fields.append(_strip_modifiers(member))

    ctx.emit(f"typedef struct {name} {name};")
    ctx.emit(f"typedef {name} {name}_ref[1];")
    ctx.emit(f"struct {name} {{")
    for text in fields:
        ctx.emit(f"{INDENT}{text}")
    ctx.emit("};")
    for text in statics + prototypes:
        ctx.emit(text)


def check_function_convention(ctx: EmitContext, node: ParseNode, lowering: TreeLowering) -> None:
    """Warn when a ``Foo_ref`` first parameter does not match a ``Foo_`` prefix."""
    declarator = first_child(node, NodeKind.DECLARATOR)
    ident = find_identifier_excluding_type(declarator)
    if ident is None:
        return
    fname = ident.contents
    params = lowering.lower_params(find_first_descendant(declarator, NodeKind.PARAMS))
    if not params:
        return
    first_type = normalize_type(params[0].type).split(" ")[-1]
    if not first_type.endswith("_ref") or len(first_type) <= 4:
        return
    cls_name = first_type[:-4]
    prefix = f"{cls_name}_"
    if not fname.startswith(prefix) or len(fname) == len(prefix):
        ctx.sink.warn(
            CONVENTION,
            f"function '{fname}' has first parameter of type '{cls_name}_ref'; "
            f"did you mean '{cls_name}_{fname}(...)'?",
            ident.line, ident.column,
        )
        return
    known = ctx.methods.get(cls_name)
    method = fname[len(prefix):]
    if known is not None and method not in known:
        ctx.sink.warn(
            CONVENTION,
            f"function '{fname}' does not match any method declared in class '{cls_name}'",
            ident.line, ident.column,
        )


def emit_translation_unit(root: ParseNode, source: str, input_name: str = "<input>",
                          self_policy: SelfPolicy = SelfPolicy.NAME,
                          sink: Optional[DiagnosticSink] = None) -> UnitResult:
    sink = sink if sink is not None else DiagnosticSink(input_name)
    first_diag = len(sink.items)
    ctx = EmitContext(source=source, sink=sink, self_policy=self_policy)
    lowering = TreeLowering(sink, self_policy)

    for item in root.children:
        if item.is_a(NodeKind.BOM):
            continue
        if item.is_a(NodeKind.CLASS_DECL):
            emit_class_unit(ctx, item, lowering)
        elif item.is_a(NodeKind.INTERFACE_DECL):
            ctx.emit(vtable_typedef(lowering.lower_interface(item)))
        else:
            if item.is_a(NodeKind.FUNCTION_DEF):
                check_function_convention(ctx, item, lowering)
            ctx.emit(item.source_text(source))

    logger.info("Transformed %s: %d top-level item(s)", input_name, len(root.children))
    return UnitResult(text="".join(ctx.out), diagnostics=sink.items[first_diag:])
