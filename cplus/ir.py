"""
Intermediate representation of a Cplus module.

Module → Interfaces / Classes → Methods / Fields → Params.  Every value is a
plain string, independent of the parse tree it was lowered from, so a Module
outlives its tree and compares by value.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class Access(str, Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"


class Param(BaseModel):
    type: str
    name: str = ""
    declarator: str = ""

    def decl(self) -> str:
        """Declarator as written, falling back to the bare name."""
        return self.declarator or self.name


class Method(BaseModel):
    return_type: str
    name: str
    params: List[Param] = []
    access: Access = Access.PUBLIC
    is_static: bool = False


class Field(BaseModel):
    type: str
    name: str
    access: Access = Access.PRIVATE
    declarator: str = ""
    is_static: bool = False

    def decl(self) -> str:
        return self.declarator or self.name


class Interface(BaseModel):
    name: str
    type_params: List[str] = []
    alias: Optional[str] = None
    methods: List[Method] = []


class Class(BaseModel):
    name: str
    type_params: List[str] = []
    alias: Optional[str] = None
    base: Optional[str] = None
    implemented_interfaces: List[str] = []
    fields: List[Field] = []
    methods: List[Method] = []

    def method(self, name: str) -> Optional[Method]:
        for m in self.methods:
            if m.name == name:
                return m
        return None


class Module(BaseModel):
    interfaces: List[Interface] = []
    classes: List[Class] = []
    input_name: str = "<input>"

    def interface(self, name: str) -> Optional[Interface]:
        for itf in self.interfaces:
            if itf.name == name:
                return itf
        return None

    def class_(self, name: str) -> Optional[Class]:
        for cls in self.classes:
            if cls.name == name:
                return cls
        return None

    def is_empty(self) -> bool:
        return not self.interfaces and not self.classes


# ────────────────────────────────────────────────────────────────
#  Listing
# ────────────────────────────────────────────────────────────────

def _generic_suffix(type_params: List[str]) -> str:
    return "<" + ", ".join(type_params) + ">" if type_params else ""


def _param_list(params: List[Param]) -> str:
    return ", ".join(" ".join(p for p in (prm.type, prm.decl()) if p) for prm in params)


def _method_line(method: Method) -> str:
    prefix = "static " if method.is_static else ""
    return f"{prefix}{method.return_type} {method.name}({_param_list(method.params)});"


def format_module(module: Module) -> str:
    """Render ``module`` as a Cplus-like listing (access grouped per class)."""
    out: List[str] = []
    for itf in module.interfaces:
        out.append(f"interface {itf.name}{_generic_suffix(itf.type_params)} {{")
        for m in itf.methods:
            out.append(f"    {_method_line(m)}")
        out.append("};")
        out.append("")

    for cls in module.classes:
        head = f"class {cls.name}{_generic_suffix(cls.type_params)}"
        if cls.base:
            head += f" extends {cls.base}"
        if cls.implemented_interfaces:
            head += " implements " + ", ".join(cls.implemented_interfaces)
        out.append(head + " {")
        for access in Access:
            lines = []
            for f in cls.fields:
                if f.access == access:
                    prefix = "static " if f.is_static else ""
                    lines.append(f"    {prefix}{f.type} {f.decl()};")
            for m in cls.methods:
                if m.access == access:
                    lines.append(f"    {_method_line(m)}")
            if lines:
                out.append(f"{access.value}:")
                out.extend(lines)
        out.append("};")
        out.append("")

    return "\n".join(out).rstrip("\n") + ("\n" if out else "")
