"""
Flat-text reducer: builds the IR straight from normalized source text.

This path never looks at the parse tree.  The source is normalized (BOM,
comments and preprocessor lines removed, line structure kept), reassembled
into logical statements ending in ``;``, ``{`` or ``}`` at parenthesis depth
zero, and then read by a small state machine that recognizes interface and
class heads and classifies body members line by line.

Lines that cannot be classified are skipped with a WARNING (lenient mode) or
raise ``ReductionError`` (strict mode).
"""

import logging
import re
from typing import List, Optional, Tuple

from cplus.config import SelfPolicy
from cplus.diagnostics import EXTRACTION, SHAPE, DiagnosticSink
from cplus.errors import ReductionError
from cplus.ir import Access, Class, Field, Interface, Method, Module, Param
from cplus.lowering import drop_self

logger = logging.getLogger(__name__)

_IDENT = r"[A-Za-z_][A-Za-z0-9_]*"

_INTERFACE_HEAD = re.compile(
    rf"^(?P<alias_kw>typedef\s+)?interface\s+(?P<name>{_IDENT})\s*(?P<generic><[^{{]*>)?\s*\{{$"
)
_CLASS_HEAD = re.compile(
    rf"^(?P<alias_kw>typedef\s+)?class\s+(?P<name>{_IDENT})\s*(?P<generic><[^{{]*?>)?"
    rf"(?:\s*extends\s+(?P<base>{_IDENT}(?:\s*<[^{{]*?>)?))?"
    rf"(?:\s*implements\s+(?P<impl>[^{{]+?))?\s*\{{$"
)
_ACCESS_LABEL = re.compile(r"^(public|protected|private)\s*:(?!:)\s*")
_INLINE_ACCESS = re.compile(r"^(public|protected|private)\b\s*")
_STATIC = re.compile(r"^static\b\s*")
_ALIAS_TAIL = re.compile(rf"^(?P<alias>{_IDENT})?\s*;$")
_METHOD = re.compile(
    rf"^(?P<ret>.*?\S)\s*\b(?P<name>{_IDENT})\s*\((?P<params>.*)\)$", re.DOTALL
)
_ARRAY_SUFFIXES = re.compile(r"(?:\s*\[[^\]]*\])+$")
_TRAILING_IDENT = re.compile(rf"({_IDENT})$")

_TYPE_WORDS = frozenset(
    "void char short int long float double signed unsigned bool _Bool "
    "const volatile struct union enum class interface".split()
)
_TAG_OR_QUALIFIER = frozenset("const volatile struct union enum class interface".split())


# ═══════════════════════════════════════════════════════════════════════
#  Normalization
# ═══════════════════════════════════════════════════════════════════════

def strip_comments(text: str) -> str:
    """Blank out comments, keeping newlines and string/char literals intact."""
    out: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in "\"'":
            j = i + 1
            while j < n and text[j] != ch and text[j] != "\n":
                j += 2 if text[j] == "\\" else 1
            j = min(j + 1, n)
            out.append(text[i:j])
            i = j
        elif text.startswith("//", i):
            j = text.find("\n", i)
            j = n if j < 0 else j
            out.append(" " * (j - i))
            i = j
        elif text.startswith("/*", i):
            j = text.find("*/", i + 2)
            j = n if j < 0 else j + 2
            out.append(re.sub(r"[^\n]", " ", text[i:j]))
            i = j
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def drop_preprocessor_lines(text: str) -> str:
    lines = text.split("\n")
    out = []
    continued = False
    for line in lines:
        if continued or line.lstrip().startswith("#"):
            continued = line.rstrip().endswith("\\")
            out.append("")
        else:
            out.append(line)
    return "\n".join(out)


def normalize_source(text: str) -> str:
    if text.startswith("\ufeff"):
        text = text[1:]
    return drop_preprocessor_lines(strip_comments(text))


def logical_lines(text: str) -> List[Tuple[int, str]]:
    """
    Split normalized text into ``(line, statement)`` pairs.

    A statement ends at ``;``, ``{`` or ``}`` outside parentheses; the
    terminator is kept and whitespace runs collapse to one space.
    """
    out: List[Tuple[int, str]] = []
    buf: List[str] = []
    start_line = 1
    line = 1
    depth = 0
    for ch in text:
        if ch == "\n":
            line += 1
        if not buf:
            if ch.isspace():
                continue
            start_line = line
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        buf.append(ch)
        if depth == 0 and ch in ";{}":
            stmt = re.sub(r"\s+", " ", "".join(buf)).strip()
            out.append((start_line, stmt))
            buf = []
    tail = re.sub(r"\s+", " ", "".join(buf)).strip()
    if tail:
        out.append((start_line, tail))
    return out


# ═══════════════════════════════════════════════════════════════════════
#  Declarators
# ═══════════════════════════════════════════════════════════════════════

def split_top_level(text: str, sep: str = ",") -> List[str]:
    """Split on ``sep`` outside ``()``, ``<>`` and ``[]``."""
    parts = []
    depth = 0
    buf: List[str] = []
    for ch in text:
        if ch in "(<[":
            depth += 1
        elif ch in ")>]":
            depth = max(depth - 1, 0)
        if ch == sep and depth == 0:
            parts.append("".join(buf).strip())
            buf = []
        else:
            buf.append(ch)
    last = "".join(buf).strip()
    if last or parts:
        parts.append(last)
    return parts


def split_declaration(text: str) -> Tuple[str, str, str]:
    """
    ``"const char *argv[]"`` → ``("const char *", "argv", "argv[]")``.

    Returns ``(type, name, declarator)``; name and declarator are empty when
    the text is a type alone (an unnamed parameter).
    """
    text = text.strip()
    paren = text.find("(")
    if paren > 0:
        # function-pointer declarator: "void (*cb)(int)"
        m = re.search(_IDENT, text[paren:])
        name = m.group(0) if m else ""
        return text[:paren].strip(), name, text[paren:].strip()

    core = _ARRAY_SUFFIXES.sub("", text)
    m = _TRAILING_IDENT.search(core)
    if m is None:
        return text, "", ""
    name = m.group(1)
    before = core[:m.start()].strip()
    words = re.findall(_IDENT, before)
    if name in _TYPE_WORDS or not before or (
        "*" not in before and all(w in _TAG_OR_QUALIFIER for w in words)
    ):
        return text, "", ""
    return before, name, text[m.start():].strip()


def _declarator_name(declarator: str) -> str:
    m = re.search(_IDENT, declarator.lstrip("*& \t"))
    if declarator.lstrip().startswith("("):
        m = re.search(_IDENT, declarator)
    return m.group(0) if m else ""


# ═══════════════════════════════════════════════════════════════════════
#  Reducer
# ═══════════════════════════════════════════════════════════════════════

class TextReducer:
    def __init__(self, strict: bool = False, self_policy: SelfPolicy = SelfPolicy.NAME,
                 sink: Optional[DiagnosticSink] = None):
        self.strict = strict
        self.self_policy = self_policy
        self.sink = sink if sink is not None else DiagnosticSink()

    def _miss(self, line: int, text: str, why: str) -> None:
        if self.strict:
            raise ReductionError(self.sink.input_name, line, text)
        self.sink.warn(EXTRACTION, f"skipped '{text}': {why}", line)

    # ────────────────────────────────────────────────────────────────
    #  Members
    # ────────────────────────────────────────────────────────────────

    def parse_params(self, text: str, owner: str, owner_is_interface: bool = False) -> List[Param]:
        text = text.strip()
        if not text or text == "void":
            return []
        params = []
        for part in split_top_level(text):
            if part == "...":
                params.append(Param(type="..."))
                continue
            ptype, name, declarator = split_declaration(part)
            params.append(Param(type=ptype, name=name, declarator=declarator))
        return drop_self(params, owner, self.self_policy, owner_is_interface)

    def parse_method(self, text: str, owner: str, owner_is_interface: bool = False) -> Optional[Method]:
        m = _METHOD.match(text)
        if m is None:
            return None
        return Method(
            return_type=m.group("ret").strip(),
            name=m.group("name"),
            params=self.parse_params(m.group("params"), owner, owner_is_interface),
        )

    def parse_fields(self, text: str) -> List[Field]:
        parts = split_top_level(text)
        if not parts or not parts[0]:
            return []
        ftype, name, declarator = split_declaration(parts[0])
        if not name:
            return []
        fields = [Field(type=ftype, name=name, declarator=declarator)]
        base_type = ftype.rstrip("* \t") or ftype
        for extra in parts[1:]:
            extra_name = _declarator_name(extra)
            if not extra_name:
                return []
            fields.append(Field(type=base_type, name=extra_name, declarator=extra))
        return fields

    def _member(self, line: int, stmt: str, owner, access: Access) -> None:
        text = stmt[:-1].strip()
        m = _INLINE_ACCESS.match(text)
        if m:
            access = Access(m.group(1))
            text = text[m.end():]
        is_static = False
        m = _STATIC.match(text)
        if m:
            is_static = True
            text = text[m.end():]

        is_interface = isinstance(owner, Interface)
        method = self.parse_method(text, owner.name, is_interface)
        if method is not None:
            method.access = Access.PUBLIC if is_interface else access
            method.is_static = is_static
            owner.methods.append(method)
            logger.debug("%s: method %s.%s", line, owner.name, method.name)
            return
        if is_interface:
            self._miss(line, stmt, "interfaces declare methods only")
            return
        fields = self.parse_fields(text)
        if not fields:
            self._miss(line, stmt, "not a method or field declaration")
            return
        for f in fields:
            f.access = access
            f.is_static = is_static
            logger.debug("%s: field %s.%s", line, owner.name, f.name)
        owner.fields.extend(fields)

    # ────────────────────────────────────────────────────────────────
    #  Driver
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def _type_params(generic: Optional[str]) -> List[str]:
        if not generic:
            return []
        inner = generic.strip()[1:-1]
        out = []
        for part in split_top_level(inner):
            words = re.findall(_IDENT, part)
            if words:
                out.append(words[-1])
        return out

    def reduce(self, text: str, input_name: Optional[str] = None) -> Module:
        if input_name is not None:
            self.sink.input_name = input_name
        module = Module(input_name=self.sink.input_name)
        seen = set()

        owner = None          # Interface or Class being filled
        access = Access.PRIVATE
        skip_depth = 0        # braces of a block we are not interested in
        pending_alias = None  # declaration just closed, may take a typedef name

        for line, stmt in logical_lines(normalize_source(text)):
            if skip_depth:
                skip_depth += stmt.count("{") - stmt.count("}")
                continue

            if pending_alias is not None:
                item, wants_alias = pending_alias
                pending_alias = None
                m = _ALIAS_TAIL.match(stmt)
                if m:
                    if wants_alias and m.group("alias"):
                        item.alias = m.group("alias")
                    continue

            if owner is None:
                if not stmt.endswith("{"):
                    continue
                mi = _INTERFACE_HEAD.match(stmt)
                mc = _CLASS_HEAD.match(stmt) if mi is None else None
                if mi is not None:
                    owner = Interface(name=mi.group("name"), type_params=self._type_params(mi.group("generic")))
                    wants_alias = bool(mi.group("alias_kw"))
                elif mc is not None:
                    owner = Class(name=mc.group("name"), type_params=self._type_params(mc.group("generic")))
                    if mc.group("base"):
                        owner.base = re.sub(r"\s+", "", mc.group("base"))
                    if mc.group("impl"):
                        owner.implemented_interfaces = [
                            re.sub(r"\s+", "", p) for p in split_top_level(mc.group("impl")) if p
                        ]
                    wants_alias = bool(mc.group("alias_kw"))
                else:
                    skip_depth = 1
                    continue
                access = Access.PRIVATE
                logger.debug("%s: entering %s", line, owner.name)
                continue

            # inside an interface or class body
            while True:
                m = _ACCESS_LABEL.match(stmt)
                if not m:
                    break
                access = Access(m.group(1))
                stmt = stmt[m.end():]

            if stmt == "}":
                if owner.name in seen:
                    self.sink.warn(SHAPE, f"duplicate declaration of '{owner.name}' ignored", line)
                else:
                    seen.add(owner.name)
                    bucket = module.interfaces if isinstance(owner, Interface) else module.classes
                    bucket.append(owner)
                pending_alias = (owner, wants_alias)
                owner = None
                continue

            if stmt.endswith("{"):
                self._miss(line, stmt, "nested blocks are not supported in member lists")
                skip_depth = 1
                continue
            if stmt.endswith(";"):
                self._member(line, stmt, owner, access)
            elif stmt:
                self._miss(line, stmt, "unterminated member")

        if owner is not None:
            self._miss(0, owner.name, "declaration body is not closed")

        logger.info(
            "Reduced %s: %d interfaces, %d classes",
            module.input_name, len(module.interfaces), len(module.classes),
        )
        return module


def reduce_source(text: str, strict: bool = False, self_policy: SelfPolicy = SelfPolicy.NAME,
                  input_name: str = "<input>", sink: Optional[DiagnosticSink] = None) -> Module:
    if sink is None:
        sink = DiagnosticSink(input_name)
    return TextReducer(strict, self_policy, sink).reduce(text, input_name)
