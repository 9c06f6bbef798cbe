"""
Translator configuration.

A ``TranslatorConfig`` can be built in code, loaded from a JSON file or
updated field by field through the MCP ``configure`` tool.  Unknown keys in a
config file are ignored (and logged) so files stay forward compatible.
"""

import json
import logging
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ValidationError

from cplus.errors import CplusError

logger = logging.getLogger(__name__)


class BuilderKind(str, Enum):
    TREE = "tree"
    TEXT = "text"


class SelfPolicy(str, Enum):
    """How an explicitly written receiver parameter is recognized."""
    NAME = "name"    # any parameter named ``self``
    TYPE = "type"    # first parameter typed as a pointer to the owner


class TranslatorConfig(BaseModel):
    output_dir: str = "."
    start_rule: str = "translation_unit"
    builder: BuilderKind = BuilderKind.TREE
    strict_reducer: bool = False
    self_policy: SelfPolicy = SelfPolicy.NAME
    preprocess: bool = False
    defines: Dict[str, str] = {}
    include_dirs: List[str] = []
    verify_c: bool = True
    skip_invalid_c: bool = False
    dry_run: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "TranslatorConfig":
        known = set(cls.model_fields)
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            logger.info("Ignoring unknown config keys: %s", ", ".join(unknown))
        try:
            return cls(**{k: v for k, v in data.items() if k in known})
        except ValidationError as e:
            raise CplusError(f"invalid configuration: {e}") from e

    @classmethod
    def from_file(cls, path: str) -> "TranslatorConfig":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise CplusError(f"config file not found: {path}") from e
        except json.JSONDecodeError as e:
            raise CplusError(f"invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise CplusError(f"{path}: expected a JSON object")
        logger.info("Loaded configuration from %s", path)
        return cls.from_dict(data)

    def updated(self, **changes) -> "TranslatorConfig":
        """Copy with ``changes`` applied and validated."""
        merged = self.model_dump()
        merged.update({k: v for k, v in changes.items() if v is not None})
        return self.from_dict(merged)
