"""
Module builders: the two ways of turning Cplus source into an IR ``Module``.

``TreeModuleBuilder`` parses with the grammar and lowers the tree;
``TextModuleBuilder`` runs the flat-text reducer.  Both report non-fatal
problems into the same ``DiagnosticSink`` and feed one code generator.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from cplus.config import BuilderKind, SelfPolicy, TranslatorConfig
from cplus.diagnostics import DiagnosticSink
from cplus.grammar import parse
from cplus.ir import Module
from cplus.lowering import lower_tree
from cplus.reducer import reduce_source

logger = logging.getLogger(__name__)


class ModuleBuilder(ABC):
    def __init__(self, self_policy: SelfPolicy = SelfPolicy.NAME):
        self.self_policy = self_policy

    @abstractmethod
    def build(self, text: str, input_name: str = "<input>",
              sink: Optional[DiagnosticSink] = None) -> Module:
        """Produce a Module from Cplus source text."""


class TreeModuleBuilder(ModuleBuilder):
    def __init__(self, self_policy: SelfPolicy = SelfPolicy.NAME, start_rule: str = "translation_unit"):
        super().__init__(self_policy)
        self.start_rule = start_rule

    def build(self, text, input_name="<input>", sink=None):
        root = parse(text, start_rule=self.start_rule, input_name=input_name)
        return lower_tree(root, input_name, self.self_policy, sink if sink is not None else DiagnosticSink(input_name))


class TextModuleBuilder(ModuleBuilder):
    def __init__(self, self_policy: SelfPolicy = SelfPolicy.NAME, strict: bool = False):
        super().__init__(self_policy)
        self.strict = strict

    def build(self, text, input_name="<input>", sink=None):
        return reduce_source(
            text,
            strict=self.strict,
            self_policy=self.self_policy,
            input_name=input_name,
            sink=sink if sink is not None else DiagnosticSink(input_name),
        )


def make_builder(config: TranslatorConfig) -> ModuleBuilder:
    if config.builder == BuilderKind.TEXT:
        logger.debug("Using flat-text reducer (strict=%s)", config.strict_reducer)
        return TextModuleBuilder(config.self_policy, strict=config.strict_reducer)
    return TreeModuleBuilder(config.self_policy, start_rule=config.start_rule)
