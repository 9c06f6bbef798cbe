import io
import logging
from typing import Dict, List, Optional, Tuple

from pcpp import Action, OutputDirective, Preprocessor

from cplus.errors import CplusError

logger = logging.getLogger(__name__)


class _QuietPreprocessor(Preprocessor):
    """A pcpp Preprocessor that keeps unresolved includes and stays off stderr.

    Cplus sources include C headers the translator never needs to see, so
    ``#include`` lines pcpp cannot resolve are passed through unchanged and
    pcpp's own error chatter goes to ``logging`` at DEBUG level.
    """

    def on_include_not_found(self, is_malformed, is_system_include, curdir, includepath):
        logger.debug("pcpp: include not found: %s (system=%s)", includepath, is_system_include)
        raise OutputDirective(Action.IgnoreAndPassThrough)

    def on_error(self, file, line, msg):
        logger.debug("pcpp: %s:%s: %s", file, line, msg)


class PreprocessorEngine:
    """
    Macro expansion in front of the Cplus parser, using 'pcpp'.

    Expands object- and function-like macros and resolves conditional
    blocks (#if/#ifdef) with the configured defines, so a class body whose
    members come from a macro parses like hand-written code.  No #line
    directives are emitted; the Cplus grammar accepts plain preprocessor
    lines only.
    """

    def __init__(self, defines: Optional[Dict[str, str]] = None, include_dirs: Optional[List[str]] = None):
        self.defines: Dict[str, str] = dict(defines or {})
        self.include_dirs: List[str] = list(include_dirs or [])
        self._macros: Dict[str, Dict[str, str]] = {}

    def add_define(self, name: str, value: str = "1"):
        """Add a global macro definition (e.g. -DDEBUG=1)."""
        self.defines[name] = value

    def preprocess(self, text: str, source_name: str = "<input>") -> str:
        """Return ``text`` with macros expanded; raises ``CplusError`` if pcpp fails."""
        pp = _QuietPreprocessor()
        pp.line_directive = None
        for d in self.include_dirs:
            pp.add_path(d)
        for k, v in self.defines.items():
            pp.define(f"{k} {v}")

        output_buffer = io.StringIO()
        try:
            pp.parse(text, source=source_name)
            pp.write(output_buffer)
        except Exception as e:
            logger.error("Preprocessing failed for %s: %s", source_name, e)
            raise CplusError(f"{source_name}: preprocessing failed: {e}") from e

        self._macros[source_name] = _macro_table(pp)
        expanded = output_buffer.getvalue()
        logger.info("Preprocessed %s (%d -> %d chars)", source_name, len(text), len(expanded))
        return expanded

    def get_defined_macros(self, source_name: str) -> Dict[str, str]:
        """Macros defined after preprocessing ``source_name`` (name -> body)."""
        return self._macros.get(source_name, {})


def _macro_table(pp: Preprocessor) -> Dict[str, str]:
    table = {}
    for k, v in pp.macros.items():
        value = getattr(v, "value", None)
        if isinstance(value, list):
            table[k] = "".join(tok.value for tok in value)
        elif value is not None:
            table[k] = str(value)
        else:
            table[k] = ""
    return table


def preprocess_source(text: str, source_name: str = "<input>",
                      defines: Optional[Dict[str, str]] = None,
                      include_dirs: Optional[List[str]] = None) -> Tuple[str, Dict[str, str]]:
    engine = PreprocessorEngine(defines, include_dirs)
    expanded = engine.preprocess(text, source_name)
    return expanded, engine.get_defined_macros(source_name)
