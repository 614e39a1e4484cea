"""Loading specifications and scoring templates from text, files and the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from .errors import SpecLoadError, TemplateError

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_VERSION = "3.2.3"

DEFAULT_TEMPLATE: dict = {
    "openapi": "3.0.3",
    "info": {"title": "Contract Grader default template", "version": DEFAULT_TEMPLATE_VERSION},
    "paths": {},
}


def normalize_keys(value: Any, _memo: Optional[dict] = None) -> Any:
    """Copy a parsed YAML tree with every mapping key turned into a string.

    YAML reads ``200:`` as an integer key; OpenAPI means the string ``"200"``.
    Shared and cyclic nodes (anchors and aliases) stay shared in the copy.
    """
    memo = {} if _memo is None else _memo
    if isinstance(value, dict):
        if id(value) in memo:
            return memo[id(value)]
        out: dict = {}
        memo[id(value)] = out
        for k, v in value.items():
            out[str(k)] = normalize_keys(v, memo)
        return out
    if isinstance(value, list):
        if id(value) in memo:
            return memo[id(value)]
        out_list: list = []
        memo[id(value)] = out_list
        out_list.extend(normalize_keys(v, memo) for v in value)
        return out_list
    return value


def parse_spec_text(text: str, source: str = "<inline>") -> Any:
    """Parse YAML (or JSON, a YAML subset) into a plain tree with string keys.

    Raises:
        SpecLoadError: If the text is not valid YAML.
    """
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Could not parse specification {source}: {e}") from e
    if not isinstance(parsed, dict):
        logger.debug("Specification %s root is %s, not a mapping", source, type(parsed).__name__)
    return normalize_keys(parsed)


def read_text_file(path: str | os.PathLike, error_cls: type = SpecLoadError) -> str:
    p = Path(path).expanduser()
    try:
        return p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise error_cls(f"Could not read {p}: {e}") from e


def read_spec_file(path: str | os.PathLike) -> str:
    return read_text_file(path, SpecLoadError)


# ─── Scoring templates ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ScoringTemplate:
    """The scoring template in effect for a grading call.

    Attributes:
        document: Parsed template, hashed into ``templateHash``.
        version: ``info.version`` of the template.
        domain: Optional ``x-domain`` default business domain.
        ruleset: Optional ``x-ruleset`` section, folded into ``rulesetHash``.
        source: File path, or ``builtin`` for the default template.
    """

    document: Any
    version: str = DEFAULT_TEMPLATE_VERSION
    domain: Optional[str] = None
    ruleset: Any = None
    source: str = "builtin"


def template_from_document(document: Any, source: str) -> ScoringTemplate:
    doc = document if isinstance(document, dict) else {}
    info = doc.get("info") if isinstance(doc.get("info"), dict) else {}
    version = info.get("version")
    domain = doc.get("x-domain")
    return ScoringTemplate(
        document=document,
        version=str(version) if version is not None else DEFAULT_TEMPLATE_VERSION,
        domain=domain if isinstance(domain, str) and domain.strip() else None,
        ruleset=doc.get("x-ruleset"),
        source=source,
    )


def load_template(path: Optional[str] = None) -> ScoringTemplate:
    """Load the template at ``path``, else ``GRADER_TEMPLATE_PATH``, else the built-in one.

    Raises:
        TemplateError: If the template file cannot be read or parsed.
    """
    path = path or os.environ.get("GRADER_TEMPLATE_PATH")
    if not path:
        return template_from_document(DEFAULT_TEMPLATE, "builtin")

    text = read_text_file(path, TemplateError)
    try:
        document = normalize_keys(yaml.safe_load(text))
    except yaml.YAMLError as e:
        raise TemplateError(f"Could not parse template {path}: {e}") from e
    logger.debug("Loaded scoring template from %s", path)
    return template_from_document(document, str(path))
