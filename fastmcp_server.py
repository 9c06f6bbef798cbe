"""
Cplus Translator: MCP Server

Exposes the Cplus → C translator over the Model Context Protocol:

  1. configure: set output dir, builder, self policy, preprocessing, ...
  2. print_grammar: the Cplus grammar text
  3. parse_file: outline of the interfaces/classes in a file
  4. dump_parse_tree: raw parse tree
  5. show_module: IR listing of a file plus diagnostics
  6. translate_file: generate Name.h / Name.gen.h / Name.gen.c artifacts
  7. transform_file: translation-unit mode (one C stream + warnings)
  8. check_c_file: tree-sitter syntax check of a C file
"""

from mcp.server.fastmcp import FastMCP
import logging
import os
import sys
from typing import Optional

# Ensure the cplus package is importable
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from cplus.c_check import check_c
from cplus.config import TranslatorConfig
from cplus.diagnostics import DiagnosticSink
from cplus.errors import CplusError, SourceReadError
from cplus.grammar import grammar_text
from cplus.ir import format_module
from cplus.translator import Translator, read_source

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════
#  Server Setup
# ═══════════════════════════════════════════════════════════════════════

mcp = FastMCP("Cplus Translator")

config = TranslatorConfig()
translator = Translator(config)


def _split_list(value: str):
    return [v.strip() for v in value.split(",") if v.strip()]


def _parse_defines(value: str) -> dict:
    defines = {}
    for define in _split_list(value):
        if "=" in define:
            name, val = define.split("=", 1)
            defines[name.strip()] = val.strip()
        else:
            defines[define] = "1"
    return defines


def _format_diagnostics(diagnostics) -> str:
    diagnostics = list(diagnostics)
    if not diagnostics:
        return "No diagnostics.\n"
    out = f"### Diagnostics ({len(diagnostics)})\n\n"
    for d in diagnostics:
        out += f"- `{d.format()}`\n"
    return out


# ═══════════════════════════════════════════════════════════════════════
#  Tool 1: Configure
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def configure(
    config_file: str = "",
    output_dir: str = "",
    builder: str = "",
    start_rule: str = "",
    self_policy: str = "",
    strict_reducer: Optional[bool] = None,
    preprocess: Optional[bool] = None,
    defines: str = "",
    include_dirs: str = "",
    verify_c: Optional[bool] = None,
    skip_invalid_c: Optional[bool] = None,
    dry_run: Optional[bool] = None,
) -> str:
    """
    Configure the translator.  Empty arguments keep their current value.

    Args:
        config_file:    Optional JSON file with any of the settings below;
                        loaded first, then the explicit arguments are applied.
        output_dir:     Directory the generated artifacts are written to.
        builder:        "tree" (grammar + lowering) or "text" (flat-text reducer).
        start_rule:     "translation_unit" (default) or "program".
        self_policy:    "name" (drop parameters named self) or "type" (drop a
                        first parameter typed as a pointer to the class).
        strict_reducer: Raise instead of skipping unclassifiable member lines.
        preprocess:     Expand macros with pcpp before parsing.
        defines:        Comma-separated NAME=VALUE or NAME macro definitions.
        include_dirs:   Comma-separated include directories for pcpp.
        verify_c:       Parse generated C with tree-sitter and report problems.
        skip_invalid_c: Drop the artifacts of declarations whose C fails to parse.
        dry_run:        Render artifacts without writing them.
    """
    global config, translator

    try:
        base = TranslatorConfig.from_file(config_file) if config_file.strip() else config
        config = base.updated(
            output_dir=output_dir or None,
            builder=builder or None,
            start_rule=start_rule or None,
            self_policy=self_policy or None,
            strict_reducer=strict_reducer,
            preprocess=preprocess,
            defines=_parse_defines(defines) if defines.strip() else None,
            include_dirs=_split_list(include_dirs) if include_dirs.strip() else None,
            verify_c=verify_c,
            skip_invalid_c=skip_invalid_c,
            dry_run=dry_run,
        )
        translator = Translator(config)
    except CplusError as e:
        return f"Error: {e}"

    out = "## Translator configuration\n\n| Setting | Value |\n|---|---|\n"
    for key, value in config.model_dump(mode="json").items():
        out += f"| {key} | `{value}` |\n"
    return out


# ═══════════════════════════════════════════════════════════════════════
#  Tool 2: Grammar
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def print_grammar() -> str:
    """Returns the Cplus grammar exactly as the parser uses it."""
    return f"```\n{grammar_text().strip()}\n```\n"


# ═══════════════════════════════════════════════════════════════════════
#  Tools 3-5: Inspection
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def parse_file(file_path: str) -> str:
    """
    Parses a Cplus file and returns an outline of its interfaces and classes
    (sections, methods with return types and parameters, fields with types).
    """
    try:
        outline = translator.pretty(read_source(file_path), file_path)
    except CplusError as e:
        return f"Error: {e}"
    return f"## Outline of `{file_path}`\n\n```\n{outline}```\n"


@mcp.tool()
def dump_parse_tree(file_path: str) -> str:
    """Parses a Cplus file and returns the raw parse tree (one node per line)."""
    try:
        dump = translator.dump(read_source(file_path), file_path)
    except CplusError as e:
        return f"Error: {e}"
    return f"```\n{dump}```\n"


@mcp.tool()
def show_module(file_path: str) -> str:
    """
    Builds the intermediate representation of a Cplus file with the configured
    builder and returns it as a listing, followed by any diagnostics.
    """
    sink = DiagnosticSink(file_path)
    try:
        module = translator.build_module(read_source(file_path), file_path, sink)
    except CplusError as e:
        return f"Error: {e}"
    out = (
        f"## Module `{file_path}` "
        f"({len(module.interfaces)} interfaces, {len(module.classes)} classes)\n\n"
    )
    out += f"```c\n{format_module(module)}```\n\n"
    out += _format_diagnostics(sink)
    return out


# ═══════════════════════════════════════════════════════════════════════
#  Tool 6: Translate (artifact mode)
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def translate_file(file_path: str, dry_run: bool = False) -> str:
    """
    Translates a Cplus file into C artifacts: Name.h per interface and
    Name.gen.h / Name.gen.c per class, written to the configured output
    directory (nothing is written in dry-run mode).

    Args:
        file_path: Path to the Cplus source.
        dry_run:   Render and verify, but do not write any file.
    """
    worker = translator
    if dry_run and not config.dry_run:
        worker = Translator(config.updated(dry_run=True))
    try:
        result = worker.translate_file(file_path)
    except CplusError as e:
        return f"Error: {e}"

    mode = "[Dry Run] " if worker.config.dry_run else ""
    out = f"## {mode}Translated `{file_path}`\n\n"
    out += "| Artifact | Lines | Written |\n|---|---|---|\n"
    written = {os.path.basename(p) for p in result.written}
    for name, content in result.files.items():
        out += f"| {name} | {content.count(chr(10))} | {'yes' if name in written else 'no'} |\n"
    if result.skipped:
        out += f"\n**Skipped (generated C did not parse):** {', '.join(result.skipped)}\n"
    out += "\n" + _format_diagnostics(result.diagnostics)
    return out


# ═══════════════════════════════════════════════════════════════════════
#  Tool 7: Transform (translation-unit mode)
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def transform_file(file_path: str) -> str:
    """
    Rewrites a whole Cplus translation unit as C: classes become structs with
    renamed prototypes, interfaces become vtable typedefs, and all other C is
    passed through unchanged.  Functions whose first parameter is a
    `Class_ref` but whose name lacks the `Class_` prefix are reported.
    """
    try:
        result = translator.transform_file(file_path)
    except CplusError as e:
        return f"Error: {e}"
    return f"```c\n{result.text}```\n\n" + _format_diagnostics(result.diagnostics)


# ═══════════════════════════════════════════════════════════════════════
#  Tool 8: C syntax check
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def check_c_file(file_path: str) -> str:
    """Parses a C file with tree-sitter-c and lists syntax problems, if any."""
    try:
        code = read_source(file_path)
    except SourceReadError as e:
        return f"Error: {e}"
    problems = check_c(code)
    if not problems:
        return f"✅ `{file_path}` parses cleanly."
    out = f"❌ `{file_path}`: {len(problems)} syntax problem(s)\n\n"
    for p in problems:
        out += f"- {p.describe()}\n"
    return out


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        if hasattr(mcp, "_tool_manager") and hasattr(mcp._tool_manager, "_tools"):
            tools = mcp._tool_manager._tools.keys()
            logger.info("Cplus Translator starting with %d tools: %s", len(tools), list(tools))
    except Exception as e:
        logger.debug("Cannot inspect tools: %s", e)

    mcp.run()
