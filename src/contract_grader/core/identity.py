"""Content identity: canonical hashes, API/run identifiers and grade metadata.

Hashes are taken over canonical JSON (sorted keys, no insignificant whitespace),
so the same document serialized as YAML or JSON, or with keys reordered, hashes
identically. They form the cache key "this input, this template, this ruleset".
"""

from __future__ import annotations

import hashlib
import json
import re
import secrets
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from .. import __version__
from .checkpoints import list_checkpoints
from .compliance import describe_tables
from .models import Metadata
from .registry import RuleRegistry
from .scoring import SCORING_ENGINE
from .weights import WeightResolver

API_URN_PREFIX = "urn:contract-grader:api:"
RUN_ID_PREFIX = "run_"

# Fixed for the life of the process; reported by version() and on every grade.
INSTANCE_ID = str(uuid.uuid4())
INSTANCE_START_TIME = datetime.now(timezone.utc).isoformat()

_API_ID_PATTERN = re.compile(r"^[a-z][a-z0-9]*_\d{13}_[0-9a-f]{16}$")


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_text(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def spec_hash(document: Any, raw_text: Optional[str] = None) -> str:
    """Hash of the parsed document's canonical form.

    A document with a reference cycle (YAML anchors can build one) has no
    canonical JSON form; its raw text is hashed instead, line endings normalized.
    """
    try:
        return sha256_hex(canonical_json(document))
    except (ValueError, RecursionError):
        return sha256_hex(normalize_text(raw_text or ""))


def template_hash(template_document: Any) -> str:
    return sha256_hex(canonical_json(template_document))


def ruleset_hash(
    registry: RuleRegistry,
    resolver: Optional[WeightResolver] = None,
    template_ruleset: Any = None,
) -> str:
    """Hash of everything that decides a score besides the document itself."""
    resolver = resolver or WeightResolver()
    payload = {
        "engine": SCORING_ENGINE,
        "rules": registry.describe(),
        "checkpoints": list_checkpoints(),
        "weights": resolver.describe(),
        "compliance": describe_tables(),
        "ruleset": template_ruleset,
    }
    return sha256_hex(canonical_json(payload))


def preimage_hash(spec_text: str) -> str:
    """Hash of the exact bytes a patch applies to."""
    return sha256_hex(spec_text)


# ─── Identifiers ──────────────────────────────────────────────────────────────


def _normalize_title(title: str) -> str:
    return " ".join(title.lower().split()) or "untitled"


def derive_api_id(document: Any) -> str:
    """``x-api-id`` from the document root or ``info``, else a URN derived from the title."""
    if isinstance(document, dict):
        info = document.get("info") if isinstance(document.get("info"), dict) else {}
        for candidate in (document.get("x-api-id"), info.get("x-api-id")):
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
        title = info.get("title")
    else:
        title = None
    title = title if isinstance(title, str) else ""
    return API_URN_PREFIX + sha256_hex(_normalize_title(title))[:12]


def new_run_id() -> str:
    return RUN_ID_PREFIX + uuid.uuid4().hex[:12]


def generate_api_id(prefix: str = "api") -> str:
    """A fresh id of the form ``{prefix}_{epoch ms}_{16 hex}`` for tagging a document."""
    prefix = re.sub(r"[^a-z0-9]", "", prefix.lower()) or "api"
    if not prefix[0].isalpha():
        prefix = "api" + prefix
    return f"{prefix}_{int(time.time() * 1000):013d}_{secrets.token_hex(8)}"


def validate_api_id(api_id: str) -> bool:
    return bool(_API_ID_PATTERN.match(api_id or ""))


# ─── Metadata ─────────────────────────────────────────────────────────────────


def tool_versions() -> dict[str, str]:
    return {"grader": __version__}


def build_metadata(
    spec_digest: str,
    template_digest: str,
    ruleset_digest: str,
    template_version: str,
    domain: str,
) -> Metadata:
    return Metadata(
        spec_hash=spec_digest,
        template_hash=template_digest,
        ruleset_hash=ruleset_digest,
        template_version=template_version,
        tool_versions=tool_versions(),
        scoring_engine=SCORING_ENGINE,
        instance_id=INSTANCE_ID,
        instance_start_time=INSTANCE_START_TIME,
        graded_at=datetime.now(timezone.utc).isoformat(),
        domain=domain,
    )
