"""
Cplus grammar and the Lark parser that runs it.

The grammar is Lark rule text (``CPLUS_GRAMMAR``).  It is compiled once into
an Earley parser over a basic lexer:

  • keywords and operators are string terminals; the lexer retypes an
    identifier that spells a keyword, so ``classify`` stays an identifier
  • ``WS`` covers whitespace and comments and is ignored between tokens
  • where two alternatives of one rule match the same span, the first
    listed wins (a member that reads as a method is a method)

Lark's tree is converted into ``ParseNode`` objects: a rule with a single
child is folded into that child (see ``cplus.tree``), empty rules vanish and
tokens become leaves tagged ``string`` or ``regex`` after their terminal.

Parse failures are mapped onto ``CplusSyntaxError`` with the position of the
offending token and readable descriptions of the tokens that would have been
accepted there.
"""

import logging
import re
from functools import lru_cache
from typing import Dict, Iterable, List, Tuple

from lark import Lark, Token, Tree
from lark.exceptions import LarkError, UnexpectedCharacters, UnexpectedEOF, UnexpectedInput
from lark.lexer import PatternStr

from cplus.errors import CplusSyntaxError, GrammarError
from cplus.tree import LITERAL_LEAF, REGEX_LEAF, ParseNode

logger = logging.getLogger(__name__)

DEFAULT_START_RULE = "translation_unit"

# ═══════════════════════════════════════════════════════════════════════
#  Grammar text
# ═══════════════════════════════════════════════════════════════════════

CPLUS_GRAMMAR = r'''
// ── lexical ──────────────────────────────────────────────────────────
WS               : /(?:\s|\/\/[^\n]*|\/\*(?:[^*]|\*+[^*\/])*\*+\/)+/
BOM              : /\ufeff/
IDENTIFIER       : /[A-Za-z_][A-Za-z0-9_]*/
NUMBER           : /(?:0[xX][0-9a-fA-F]+|(?:[0-9]+\.[0-9]*|\.[0-9]+|[0-9]+)(?:[eE][+-]?[0-9]+)?)[uUlLfF]*/
STRING_LITERAL   : /"(?:\\.|[^"\\\n])*"/
CHAR_LITERAL     : /'(?:\\.|[^'\\\n])*'/
PP_LINE          : /#[^\n]*(?:\\\n[^\n]*)*/

bom              : BOM
identifier       : IDENTIFIER
number           : NUMBER
string_literal   : STRING_LITERAL
char_literal     : CHAR_LITERAL
pp_line          : PP_LINE

// ── types ────────────────────────────────────────────────────────────
qualifier        : "const" | "volatile"
storage          : "static" | "extern" | "register" | "inline" | "auto"
builtin          : "void" | "char" | "short" | "int" | "long" | "float" | "double"
                 | "signed" | "unsigned" | "bool" | "_Bool"
tag_kw           : "struct" | "union" | "enum" | "class" | "interface"
generic_args     : "<" type ( "," type )* ">"
named_ref        : identifier generic_args?
tagged_ref       : tag_kw identifier generic_args?
record_kw        : "struct" | "union"
record_field     : type declarator ( "," ( declarator | ptr_declarator ) )* ";"
record_body      : "{" record_field* "}"
composite        : record_kw identifier? record_body
enumerator       : identifier ( "=" cond_expr )?
enum_spec        : "enum" identifier? "{" enumerator ( "," enumerator )* ","? "}"
type_spec        : builtin+ | composite | enum_spec | tagged_ref | named_ref
pointer          : "*" qualifier*
type             : qualifier* type_spec qualifier* pointer*

// ── declarators ──────────────────────────────────────────────────────
// Pointers right after a type belong to the type; later declarators in a
// comma list and parenthesized ones carry their own.
array_suffix     : "[" expr? "]"
ellipsis         : "..."
param            : type declarator?
param_list       : param ( "," param )* ( "," ellipsis )? | ellipsis
params           : "(" param_list? ")"
direct_decl      : identifier | "(" ( declarator | ptr_declarator ) ")"
declarator       : direct_decl ( array_suffix | params )*
ptr_declarator   : pointer+ direct_decl ( array_suffix | params )* -> declarator

// ── expressions ──────────────────────────────────────────────────────
// ">>" is lexed as two ">" so nested generic argument lists close.
args             : assign_expr ( "," assign_expr )*
primary          : identifier | number | string_literal+ | char_literal | "(" expr ")"
postfix_op       : "[" expr "]" | "(" args? ")" | ( "->" | "." ) identifier | "++" | "--"
postfix_expr     : primary postfix_op*
unary_expr       : ( "++" | "--" ) unary_expr
                 | ( "-" | "+" | "!" | "~" | "*" | "&" ) cast_expr
                 | "sizeof" "(" type ")"
                 | "sizeof" unary_expr
                 | postfix_expr
cast_expr        : "(" type ")" cast_expr | unary_expr
mul_expr         : cast_expr ( ( "*" | "/" | "%" ) cast_expr )*
add_expr         : mul_expr ( ( "+" | "-" ) mul_expr )*
shift_op         : "<<" | ">" ">"
shift_expr       : add_expr ( shift_op add_expr )*
rel_expr         : shift_expr ( ( "<" | ">" | "<=" | ">=" ) shift_expr )*
eq_expr          : rel_expr ( ( "==" | "!=" ) rel_expr )*
band_expr        : eq_expr ( "&" eq_expr )*
bxor_expr        : band_expr ( "^" band_expr )*
bor_expr         : bxor_expr ( "|" bxor_expr )*
land_expr        : bor_expr ( "&&" bor_expr )*
lor_expr         : land_expr ( "||" land_expr )*
cond_expr        : lor_expr ( "?" expr ":" cond_expr )?
assign_op        : "=" | "*=" | "/=" | "%=" | "+=" | "-=" | "<<=" | ">" ">="
                 | "&=" | "^=" | "|="
assign_expr      : unary_expr assign_op assign_expr | cond_expr
expr             : assign_expr ( "," assign_expr )*

// ── statements ───────────────────────────────────────────────────────
compound_stmt    : "{" block_item* "}"
block_item       : pp_line | declaration | statement
if_stmt          : "if" "(" expr ")" statement ( "else" statement )?
while_stmt       : "while" "(" expr ")" statement
do_stmt          : "do" statement "while" "(" expr ")" ";"
for_stmt         : "for" "(" ( declaration | expr? ";" ) expr? ";" expr? ")" statement
switch_stmt      : "switch" "(" expr ")" statement
labeled_stmt     : "case" cond_expr ":" statement
                 | "default" ":" statement
                 | identifier ":" statement
return_stmt      : "return" expr? ";"
jump_stmt        : ( "break" | "continue" ) ";" | "goto" identifier ";"
expr_stmt        : expr? ";"
statement        : compound_stmt | if_stmt | while_stmt | do_stmt | for_stmt
                 | switch_stmt | labeled_stmt | return_stmt | jump_stmt | expr_stmt

// ── C declarations ───────────────────────────────────────────────────
init_list        : "{" ( initializer ( "," initializer )* ","? )? "}"
initializer      : init_list | assign_expr
init_decl        : declarator ( "=" initializer )?
ptr_init_decl    : ptr_declarator ( "=" initializer )? -> init_decl
alias_kw         : "typedef"
declaration      : alias_kw? storage* type ( init_decl ( "," ( init_decl | ptr_init_decl ) )* )? ";"
function_def     : storage* type declarator compound_stmt

// ── Cplus declarations ───────────────────────────────────────────────
access_kw        : "public" | "protected" | "private"
access_label     : access_kw ":"
kw_static        : "static"
method_name      : identifier
method_decl      : access_kw? kw_static? type method_name params ";"
field_decl       : access_kw? kw_static? type declarator ( "," ( declarator | ptr_declarator ) )* ";"
member           : method_decl | field_decl
section          : access_label member*
class_body       : "{" member* section* "}"
generic_param    : "typename"? identifier
generic_params   : "<" generic_param ( "," generic_param )* ">"
alias_name       : identifier
inherit_base     : "extends" named_ref
implements_list  : "implements" named_ref ( "," named_ref )*
interface_head   : "interface" identifier generic_params?
interface_method : type method_name params ";" -> method_decl
interface_body   : "{" interface_method* "}"
interface_decl   : alias_kw? interface_head interface_body alias_name? ";"
class_head       : "class" identifier generic_params? inherit_base? implements_list?
class_decl       : alias_kw? class_head class_body alias_name? ";"

// ── start rules ──────────────────────────────────────────────────────
top_item         : pp_line | interface_decl | class_decl | function_def | declaration
program          : bom? ( interface_decl | class_decl )+
translation_unit : bom? top_item*
'''

_RULE_DEF_RE = re.compile(r"^[ \t]*[?!]?([a-z_][a-z0-9_]*)(?:\.-?\d+)?[ \t]*:", re.M)
_END_TERMINAL = "$END"


def _rule_names(text: str) -> List[str]:
    names: List[str] = []
    for m in _RULE_DEF_RE.finditer(text):
        if m.group(1) not in names:
            names.append(m.group(1))
    return names


def _position(text: str, offset: int) -> Tuple[int, int]:
    line = text.count("\n", 0, offset) + 1
    return line, offset - (text.rfind("\n", 0, offset) + 1) + 1


def _found_at(text: str, offset: int) -> str:
    if offset >= len(text):
        return "end of input"
    return repr(text[offset:offset + 12].split("\n")[0] or text[offset])


def _fold(rule: str, nodes: List[ParseNode]) -> List[ParseNode]:
    if not nodes:
        return []
    if len(nodes) == 1:
        return [nodes[0].folded(rule)]
    first = nodes[0]
    return [ParseNode(rule, "", nodes, first.start, nodes[-1].end, first.line, first.column)]


# ═══════════════════════════════════════════════════════════════════════
#  Grammar
# ═══════════════════════════════════════════════════════════════════════

class Grammar:
    """
    A compiled rule set.  ``text`` keeps the rule text verbatim.

    Unless the grammar is whitespace sensitive it must define the terminal
    named by ``ws_terminal``, which is ignored between tokens.
    """

    def __init__(self, text: str, whitespace_sensitive: bool = False, ws_terminal: str = "WS"):
        self.text = text
        self.whitespace_sensitive = whitespace_sensitive
        self._rules = _rule_names(text)
        if not self._rules:
            raise GrammarError("grammar defines no rules")

        source = text
        if not whitespace_sensitive:
            if not re.search(r"^[ \t]*%s(?:\.-?\d+)?[ \t]*:" % re.escape(ws_terminal), text, re.M):
                raise GrammarError(f"whitespace terminal '{ws_terminal}' is not defined")
            source = f"{text}\n%ignore {ws_terminal}\n"

        try:
            self._lark = Lark(
                source,
                parser="earley",
                lexer="basic",
                ambiguity="resolve",
                keep_all_tokens=True,
                maybe_placeholders=False,
                start=self._rules,
            )
        except LarkError as e:
            raise GrammarError(f"invalid grammar: {e}") from e

        self._literal_terminals = frozenset(
            t.name for t in self._lark.terminals if isinstance(t.pattern, PatternStr)
        )
        logger.debug("Compiled grammar with %d rules", len(self._rules))

    @property
    def rule_names(self) -> List[str]:
        return list(self._rules)

    def describe_terminal(self, name: str) -> str:
        """Readable form of a terminal: ``";"`` for literals, the lowercase name otherwise."""
        if name == _END_TERMINAL:
            return "end of input"
        try:
            pattern = self._lark.get_terminal(name).pattern
        except KeyError:
            return name
        if isinstance(pattern, PatternStr):
            return '"%s"' % pattern.value
        return name.lower()

    def parse(self, source: str, start_rule: str = DEFAULT_START_RULE,
              input_name: str = "<input>") -> ParseNode:
        """Parse ``source`` from ``start_rule``; raises ``CplusSyntaxError``."""
        if start_rule not in self._rules:
            raise GrammarError(f"unknown start rule '{start_rule}'")

        try:
            tree = self._lark.parse(source, start=start_rule)
            return self._build(tree, start_rule)
        except UnexpectedInput as e:
            raise self._syntax_error(e, source, input_name) from None
        except RecursionError:
            raise CplusSyntaxError(
                input_name, 1, 1, 0, (), _found_at(source, 0),
                reason="input nests too deeply for the parser",
            ) from None

    def _syntax_error(self, e: UnexpectedInput, source: str, input_name: str) -> CplusSyntaxError:
        if isinstance(e, UnexpectedEOF):
            offset = len(source)
            line, column = _position(source, offset)
            expected: Iterable[str] = e.expected
        elif isinstance(e, UnexpectedCharacters):
            offset, line, column = e.pos_in_stream, e.line, e.column
            expected = ()
        else:
            token = e.token
            offset, line, column = token.start_pos, token.line, token.column
            expected = e.expected
        return CplusSyntaxError(
            input_name, line, column, offset,
            {self.describe_terminal(name) for name in expected},
            _found_at(source, offset),
        )

    def _leaf(self, token: Token) -> ParseNode:
        kind = LITERAL_LEAF if token.type in self._literal_terminals else REGEX_LEAF
        return ParseNode(tag=kind, contents=str(token), start=token.start_pos,
                         end=token.end_pos, line=token.line, column=token.column)

    def _build(self, tree: Tree, start_rule: str) -> ParseNode:
        built: Dict[int, List[ParseNode]] = {}
        stack = [(tree, False)]
        while stack:
            sub, ready = stack.pop()
            if not ready:
                stack.append((sub, True))
                stack.extend((c, False) for c in sub.children if isinstance(c, Tree))
                continue
            nodes: List[ParseNode] = []
            for child in sub.children:
                if isinstance(child, Tree):
                    nodes.extend(built[id(child)])
                else:
                    nodes.append(self._leaf(child))
            if sub is tree:
                break
            built[id(sub)] = _fold(str(sub.data), nodes)

        if nodes:
            first = nodes[0]
            return ParseNode(start_rule, "", nodes, first.start, nodes[-1].end, first.line, first.column)
        return ParseNode(start_rule, "", [], 0, 0, 1, 1)


@lru_cache(maxsize=None)
def cplus_grammar() -> Grammar:
    """The compiled Cplus grammar (compiled once per process)."""
    return Grammar(CPLUS_GRAMMAR)


def grammar_text() -> str:
    """The Cplus grammar exactly as written."""
    return CPLUS_GRAMMAR


def parse(source: str, start_rule: str = DEFAULT_START_RULE, input_name: str = "<input>") -> ParseNode:
    root = cplus_grammar().parse(source, start_rule=start_rule, input_name=input_name)
    logger.info("Parsed %s: %d top-level items", input_name, len(root.children))
    return root


_C_RESERVED = frozenset(
    "auto break case char const continue default do double else enum extern float for "
    "goto if inline int long register restrict return short signed sizeof static struct "
    "switch typedef union unsigned void volatile while _Bool".split()
)


def c_identifier(name: str) -> str:
    """Map an arbitrary name onto a valid C identifier."""
    ident = re.sub(r"[^A-Za-z0-9_]", "_", name)
    if not ident:
        return "_"
    if ident[0].isdigit() or ident in _C_RESERVED:
        ident = "_" + ident
    return ident
