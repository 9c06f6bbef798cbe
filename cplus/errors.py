"""
Exception types raised by the Cplus translator.

Fatal conditions are exceptions; everything recoverable is reported as a
``Diagnostic`` (see ``cplus.diagnostics``) and generation continues.
"""

from typing import Iterable, Optional, Tuple


class CplusError(Exception):
    """Base class for all translator errors."""


class SourceReadError(CplusError):
    """The input file could not be read (missing, unreadable, binary)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: cannot read source: {reason}")
        self.path = path
        self.reason = reason


class GrammarError(CplusError):
    """Malformed grammar text, or a reference to an unknown rule."""


class ReductionError(CplusError):
    """Raised by the flat-text reducer in strict mode for an unparseable line."""

    def __init__(self, input_name: str, line: int, text: str):
        super().__init__(f"{input_name}:{line}: cannot classify member line: {text!r}")
        self.input_name = input_name
        self.line = line
        self.text = text


class CplusSyntaxError(CplusError):
    """
    The input does not reduce to the start rule.

    Carries the farthest position the parser reached and the set of token
    descriptions that would have allowed it to continue there.
    """

    def __init__(
        self,
        input_name: str,
        line: int,
        column: int,
        offset: int,
        expected: Iterable[str],
        found: str,
        reason: Optional[str] = None,
    ):
        self.input_name = input_name
        self.line = line
        self.column = column
        self.offset = offset
        self.expected: Tuple[str, ...] = tuple(sorted(set(expected)))
        self.found = found
        self.reason = reason
        super().__init__(self.format())

    def format(self) -> str:
        where = f"{self.input_name}:{self.line}:{self.column}"
        if self.reason:
            return f"{where}: error: {self.reason}"
        if not self.expected:
            return f"{where}: error: unexpected {self.found}"
        if len(self.expected) == 1:
            wanted = self.expected[0]
        else:
            wanted = "one of " + ", ".join(self.expected)
        return f"{where}: error: expected {wanted} at {self.found}"
