"""
Translator facade: source file → (preprocess) → Module → C artifacts.

This is the single entry point used by the MCP server and by tests that
exercise the whole pipeline.  Fatal problems are raised as ``CplusError``
subclasses; everything else comes back as diagnostics on the result.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from cplus.builders import make_builder
from cplus.codegen import UnitResult, emit_module, emit_translation_unit
from cplus.config import TranslatorConfig
from cplus.diagnostics import Diagnostic, DiagnosticSink
from cplus.errors import SourceReadError
from cplus.grammar import parse
from cplus.ir import Module
from cplus.preprocessor import PreprocessorEngine
from cplus.pretty import dump_tree, print_program
from cplus.tree import ParseNode
from cplus.writer import ArtifactWriter

logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 8192


def read_source(path: str) -> str:
    """Read a UTF-8 source file; BOM dropped, binary files rejected."""
    if not os.path.isfile(path):
        logger.error("Source file not found: %s", path)
        raise SourceReadError(path, "no such file")
    try:
        with open(path, "rb") as fb:
            data = fb.read()
    except OSError as e:
        logger.error("Error reading %s: %s", path, e)
        raise SourceReadError(path, e.strerror or str(e)) from e
    if b"\x00" in data[:BINARY_SNIFF_BYTES]:
        logger.error("Refusing binary file: %s", path)
        raise SourceReadError(path, "binary file")
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        logger.error("Cannot decode %s as UTF-8: %s", path, e)
        raise SourceReadError(path, f"not valid UTF-8 (byte {e.start})") from e
    if text.startswith("\ufeff"):
        text = text[1:]
    return text


@dataclass
class TranslationResult:
    input_name: str
    module: Module
    files: Dict[str, str] = field(default_factory=dict)
    groups: List[List[str]] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    written: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)


class Translator:
    def __init__(self, config: Optional[TranslatorConfig] = None):
        self.config = config or TranslatorConfig()
        self.preprocessor: Optional[PreprocessorEngine] = None
        if self.config.preprocess:
            self.preprocessor = PreprocessorEngine(self.config.defines, self.config.include_dirs)

    # ────────────────────────────────────────────────────────────────
    #  Front end
    # ────────────────────────────────────────────────────────────────

    def prepare(self, text: str, input_name: str = "<input>") -> str:
        if self.preprocessor is None:
            return text
        return self.preprocessor.preprocess(text, input_name)

    def parse_source(self, text: str, input_name: str = "<input>",
                     start_rule: Optional[str] = None) -> ParseNode:
        return parse(self.prepare(text, input_name), start_rule or self.config.start_rule, input_name)

    def build_module(self, text: str, input_name: str = "<input>",
                     sink: Optional[DiagnosticSink] = None) -> Module:
        builder = make_builder(self.config)
        return builder.build(self.prepare(text, input_name), input_name, sink)

    # ────────────────────────────────────────────────────────────────
    #  Artifact mode
    # ────────────────────────────────────────────────────────────────

    def translate_source(self, text: str, input_name: str = "<input>") -> TranslationResult:
        """Build the module and render its artifacts (nothing is written)."""
        sink = DiagnosticSink(input_name)
        module = self.build_module(text, input_name, sink)
        emitted = emit_module(
            module,
            verify=self.config.verify_c,
            skip_invalid=self.config.skip_invalid_c,
            sink=sink,
        )
        return TranslationResult(
            input_name=input_name,
            module=module,
            files=emitted.files,
            groups=emitted.groups,
            diagnostics=list(sink.items),
            skipped=emitted.skipped,
        )

    def translate_file(self, path: str) -> TranslationResult:
        """Translate ``path`` and write its artifacts to ``config.output_dir``."""
        result = self.translate_source(read_source(path), path)
        report = ArtifactWriter(self.config.output_dir).write_all(
            result.files, dry_run=self.config.dry_run, groups=result.groups,
        )
        result.written = [] if report.dry_run else report.written
        result.failed = report.failed
        for failed, reason in report.failed.items():
            logger.error("Artifact %s was not written: %s", failed, reason)
        return result

    # ────────────────────────────────────────────────────────────────
    #  Translation-unit mode
    # ────────────────────────────────────────────────────────────────

    def transform_source(self, text: str, input_name: str = "<input>") -> UnitResult:
        prepared = self.prepare(text, input_name)
        root = parse(prepared, "translation_unit", input_name)
        return emit_translation_unit(root, prepared, input_name, self.config.self_policy)

    def transform_file(self, path: str) -> UnitResult:
        return self.transform_source(read_source(path), path)

    # ────────────────────────────────────────────────────────────────
    #  Inspection
    # ────────────────────────────────────────────────────────────────

    def pretty(self, text: str, input_name: str = "<input>") -> str:
        return print_program(self.parse_source(text, input_name))

    def dump(self, text: str, input_name: str = "<input>") -> str:
        return dump_tree(self.parse_source(text, input_name))
