"""
Non-fatal diagnostics: shape mismatches, convention warnings, reducer misses
and verification failures of generated C.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Iterable, List, Optional, TextIO

logger = logging.getLogger(__name__)

SHAPE = "shape"
CONVENTION = "convention"
EXTRACTION = "extraction"
VERIFICATION = "verification"


@dataclass
class Diagnostic:
    """A warning attached to a source position (line 0 when unknown)."""
    category: str
    message: str
    input_name: str = "<input>"
    line: int = 0
    column: int = 0
    severity: str = "warning"

    def format(self) -> str:
        if self.line:
            where = f"{self.input_name}:{self.line}:{self.column}"
        else:
            where = self.input_name
        return f"{where}: {self.severity}: {self.message} [{self.category}]"


class DiagnosticSink:
    """Collects diagnostics for one run and logs each one as it arrives."""

    def __init__(self, input_name: str = "<input>"):
        self.input_name = input_name
        self.items: List[Diagnostic] = []

    def warn(self, category: str, message: str, line: int = 0, column: int = 0) -> Diagnostic:
        diag = Diagnostic(category, message, self.input_name, line, column)
        self.items.append(diag)
        logger.warning("%s", diag.format())
        return diag

    def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
        self.items.extend(diagnostics)

    def by_category(self, category: str) -> List[Diagnostic]:
        return [d for d in self.items if d.category == category]

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


def print_diagnostics(diagnostics: Iterable[Diagnostic], stream: Optional[TextIO] = None) -> int:
    """Write diagnostics to ``stream`` (stderr by default); returns the count."""
    out = stream if stream is not None else sys.stderr
    count = 0
    for diag in diagnostics:
        out.write(diag.format() + "\n")
        count += 1
    out.flush()
    return count
