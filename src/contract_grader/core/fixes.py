"""Fix suggestions for findings, expressed as JSON Patch or unified-diff patches.

Every patch carries the sha256 of the exact specification text it was computed
against (``preimageHash``), so a client can refuse to apply it to a different
revision.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Iterable, Optional

from .checkpoints import get_checkpoint
from .identity import preimage_hash
from .models import FixItem, Finding, Patch
from .registry import RuleRegistry
from .rules.naming import NAMESPACE_PREFIX
from .rules.pagination import AFTER_KEY_REF, BEFORE_KEY_REF, LIMIT_REF, OFFSET_PARAMS
from .rules.security import BRANCH_HEADER_REF, ORG_HEADER_REF

PROBLEM_SCHEMA_REF = "#/components/schemas/ProblemDetails"

_SEGMENT = re.compile(r"\.([^.\[\]]+)|\['((?:[^'\\]|\\.)*)'\]|\[(\d+)\]")


def json_path_to_pointer(json_path: str) -> str:
    """Convert ``$.paths['/x'].get.parameters`` into ``/paths/~1x/get/parameters``."""
    if not json_path or json_path == "$":
        return ""
    body = json_path[1:] if json_path.startswith("$") else json_path
    parts = []
    for m in _SEGMENT.finditer(body):
        part = next(g for g in m.groups() if g is not None)
        parts.append(part.replace("~", "~0").replace("/", "~1"))
    return "".join("/" + p for p in parts)


def _lookup(raw: Any, pointer: str) -> Any:
    node = raw
    for part in pointer.split("/")[1:]:
        key = part.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict):
            node = node.get(key)
        elif isinstance(node, list) and key.isdigit() and int(key) < len(node):
            node = node[int(key)]
        else:
            return None
    return node


def _json_patch(ops: list[dict], pre: str) -> Patch:
    return Patch(type="json-patch", preimage_hash=pre, body=json.dumps(ops))


def _add_to_mapping(raw: Any, container: str, key: str, value: Any) -> list[dict]:
    """Ops that add ``key`` under the mapping at ``container``, creating the mapping if absent."""
    escaped = key.replace("~", "~0").replace("/", "~1")
    if isinstance(_lookup(raw, container), dict):
        return [{"op": "add", "path": f"{container}/{escaped}", "value": value}]
    return [{"op": "add", "path": container, "value": {key: value}}]


def _add_params(raw: Any, params_pointer: str, refs: Iterable[str]) -> list[dict]:
    values = [{"$ref": ref} for ref in refs]
    if isinstance(_lookup(raw, params_pointer), list):
        return [{"op": "add", "path": f"{params_pointer}/-", "value": v} for v in values]
    return [{"op": "add", "path": params_pointer, "value": values}]


def _param_refs_block(refs: Iterable[str]) -> str:
    return "parameters:\n" + "\n".join(f"  - $ref: '{ref}'" for ref in refs)


# ─── Per-finding builders ─────────────────────────────────────────────────────


def _fix_namespace(f: Finding, raw: Any, pre: str) -> FixItem:
    m = re.match(r"^\$\.paths\['(.*)'\]$", f.json_path)
    old = m.group(1) if m else "/resource"
    new = NAMESPACE_PREFIX.rstrip("/") + (old if old.startswith("/") else "/" + old)
    return FixItem(
        rule_id=f.rule_id, severity=f.severity, json_path=f.json_path,
        description=f"Move {old} under {NAMESPACE_PREFIX}",
        suggested=f"Rename path {old} to {new}",
        patch=Patch(
            type="unified-diff",
            preimage_hash=pre,
            body=f"--- a/spec.yaml\n+++ b/spec.yaml\n@@\n-  {old}:\n+  {new}:\n",
        ),
        rationale="All endpoints must live under /api/v2 to match the versioning policy",
    )


def _header_ref_fixer(ref: str, label: str, rationale: str) -> Callable[[Finding, Any, str], FixItem]:
    def build(f: Finding, raw: Any, pre: str) -> FixItem:
        pointer = json_path_to_pointer(f.json_path)
        return FixItem(
            rule_id=f.rule_id, severity=f.severity, json_path=f.json_path,
            description=f"Add {label} ref to operation parameters",
            suggested=_param_refs_block([ref]),
            patch=_json_patch(_add_params(raw, pointer, [ref]), pre),
            rationale=rationale,
        )
    return build


def _fix_keyset(f: Finding, raw: Any, pre: str) -> FixItem:
    refs = (AFTER_KEY_REF, BEFORE_KEY_REF, LIMIT_REF)
    pointer = json_path_to_pointer(f.json_path)
    existing = _lookup(raw, pointer)
    present = {p.get("$ref") for p in existing if isinstance(p, dict)} if isinstance(existing, list) else set()
    missing = [r for r in refs if r not in present] or list(refs)
    return FixItem(
        rule_id=f.rule_id, severity=f.severity, json_path=f.json_path,
        description="Add AfterKey, BeforeKey, Limit parameter refs to list endpoints",
        suggested=_param_refs_block(refs),
        patch=_json_patch(_add_params(raw, pointer, missing), pre),
        rationale="Key-set pagination ensures deterministic, cursor-based pagination (no offsets)",
    )


def _fix_offset(f: Finding, raw: Any, pre: str) -> FixItem:
    pointer = json_path_to_pointer(f.json_path)
    params = _lookup(raw, pointer)
    offending = []
    if isinstance(params, list):
        for i, p in enumerate(params):
            if isinstance(p, dict) and p.get("in") == "query" and p.get("name") in OFFSET_PARAMS:
                offending.append((i, p["name"]))
    ops = [{"op": "remove", "path": f"{pointer}/{i}"} for i, _ in reversed(offending)]
    names = ", ".join(name for _, name in offending) or ", ".join(OFFSET_PARAMS)
    if ops:
        patch = _json_patch(ops, pre)
    else:
        removed = "".join(f"-  - name: {n}\n-    in: query\n" for n in OFFSET_PARAMS[:2])
        patch = Patch(
            type="unified-diff",
            preimage_hash=pre,
            body=f"--- a/spec.yaml\n+++ b/spec.yaml\n@@\n{removed}+  # replaced with key-set parameters (AfterKey/BeforeKey/Limit)\n",
        )
    return FixItem(
        rule_id=f.rule_id, severity=f.severity, json_path=f.json_path,
        description="Remove offset/page fields and migrate to key-set params",
        suggested=f"Delete query parameters: {names}",
        patch=patch,
        rationale="Offset pagination is disallowed; key-set cursors stay stable under concurrent writes",
    )


def _fix_problem_json(f: Finding, raw: Any, pre: str) -> FixItem:
    pointer = json_path_to_pointer(f.json_path)
    media = {"schema": {"$ref": PROBLEM_SCHEMA_REF}}
    return FixItem(
        rule_id=f.rule_id, severity=f.severity, json_path=f.json_path,
        description="Declare application/problem+json for the error response",
        suggested=f"content:\n  application/problem+json:\n    schema:\n      $ref: '{PROBLEM_SCHEMA_REF}'",
        patch=_json_patch(_add_to_mapping(raw, pointer, "application/problem+json", media), pre),
        rationale="RFC 9457 problem details give clients one machine-readable error shape",
    )


def _header_fixer(header: str, description: str, rationale: str, risk: str = "low") -> Callable[[Finding, Any, str], FixItem]:
    def build(f: Finding, raw: Any, pre: str) -> FixItem:
        pointer = json_path_to_pointer(f.json_path)
        value = {"description": description, "schema": {"type": "string"}}
        return FixItem(
            rule_id=f.rule_id, severity=f.severity, json_path=f.json_path,
            description=f"Add {header} response header",
            suggested=f"headers:\n  {header}:\n    description: {description}\n    schema:\n      type: string",
            patch=_json_patch(_add_to_mapping(raw, pointer, header, value), pre),
            rationale=rationale,
            risk=risk,
        )
    return build


FIXERS: dict[str, Callable[[Finding, Any, str], FixItem]] = {
    "NAME-NAMESPACE": _fix_namespace,
    "SEC-ORG-HDR": _header_ref_fixer(
        ORG_HEADER_REF, "OrganizationHeader", "Row-level tenant isolation requires org context on every request"
    ),
    "SEC-BRANCH-HDR": _header_ref_fixer(
        BRANCH_HEADER_REF, "BranchHeader", "Branch context is required for multi-location isolation"
    ),
    "PAG-KEYSET": _fix_keyset,
    "PAG-OFFSET": _fix_offset,
    "ERR-PROBLEMJSON": _fix_problem_json,
    "HTTP-ETAG": _header_fixer(
        "ETag", "Entity tag of the returned representation",
        "Validators let clients revalidate with If-None-Match and receive 304",
    ),
    "ASYNC-202-LOCATION": _header_fixer(
        "Location", "URL of the job status resource",
        "Clients poll the job resource named by Location until the work completes", "medium",
    ),
    "HTTP-202-LOCATION": _header_fixer(
        "Location", "URL of the job status resource",
        "Clients poll the job resource named by Location until the work completes", "medium",
    ),
}


def fix_available(rule_id: str) -> bool:
    return rule_id in FIXERS


def suggest_fixes(findings: Iterable[Finding], spec_text: str, raw: Any) -> list[FixItem]:
    """One fix item per finding that has a known remedy, in finding order.

    Args:
        findings: Findings of a grading run over ``raw``.
        spec_text: The exact text ``raw`` was parsed from; hashed into each patch.
        raw: The parsed document, used to compute patch targets.
    """
    pre = preimage_hash(spec_text)
    fixes = []
    seen: set[tuple[str, str]] = set()
    for f in findings:
        builder = FIXERS.get(f.rule_id)
        if builder is None or (f.rule_id, f.json_path) in seen:
            continue
        seen.add((f.rule_id, f.json_path))
        fixes.append(builder(f, raw, pre))
    return fixes


def explain_rule(rule_id: str, registry: RuleRegistry) -> Optional[dict]:
    """Everything known about a finding or checkpoint id, or None when it is unknown."""
    entry = registry.finding_catalog().get(rule_id)
    checkpoint = get_checkpoint(rule_id)
    owner = registry.get(rule_id)
    if entry is None and checkpoint is None and owner is None:
        return None

    explanation = {
        "ruleId": rule_id,
        "description": None,
        "category": None,
        "severity": None,
        "weight": None,
        "autoFail": False,
        "critical": False,
        "isCheckpoint": checkpoint is not None,
        "fixAvailable": fix_available(rule_id),
    }
    if owner is not None:
        explanation.update(description=owner.description, category=owner.category, maxPoints=owner.max_points)
    if entry is not None:
        explanation.update(
            description=entry["description"],
            category=entry["category"],
            severity=entry["severity"],
            critical=entry["critical"],
            rule=entry["rule"],
        )
    if checkpoint is not None:
        explanation.update(
            description=checkpoint.description,
            category=checkpoint.category,
            weight=checkpoint.weight,
            autoFail=checkpoint.auto_fail,
        )
    return explanation
