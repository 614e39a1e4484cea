"""Checkpoints: the externally listable scoring units.

A checkpoint passes when no finding carries its id. ``ENV-RESPONSE`` is the
exception: it is keyed by category and fails on any error-level envelope
finding.
"""

from __future__ import annotations

from typing import Iterable

from .models import Checkpoint, CheckpointDefinition, Finding, Severity

CHECKPOINTS: tuple[CheckpointDefinition, ...] = (
    CheckpointDefinition(id="NAME-NAMESPACE", category="naming", weight=4, auto_fail=True,
                         description="All paths start with /api/v2/<domain>"),
    CheckpointDefinition(id="SEC-ORG-HDR", category="security", weight=4, auto_fail=True,
                         description="X-Organization-ID header present on all operations"),
    CheckpointDefinition(id="SEC-BRANCH-HDR", category="security", weight=3,
                         description="X-Branch-ID header present on all operations"),
    CheckpointDefinition(id="SEC-OAUTH2", category="security", weight=2,
                         description="OAuth2 scheme present"),
    CheckpointDefinition(id="PAG-KEYSET", category="pagination", weight=5, auto_fail=True,
                         description="Key-set pagination (AfterKey/BeforeKey/Limit)"),
    CheckpointDefinition(id="PAG-OFFSET", category="pagination", weight=3, auto_fail=True,
                         description="No offset/page/page_size/pageNumber"),
    CheckpointDefinition(id="HTTP-ETAG", category="http", weight=2,
                         description="ETag on cacheable responses"),
    CheckpointDefinition(id="HTTP-304", category="http", weight=2,
                         description="304 for conditional GET"),
    CheckpointDefinition(id="ERR-PROBLEMJSON", category="responses", weight=3,
                         description="application/problem+json errors"),
    CheckpointDefinition(id="ENV-RESPONSE", category="envelope", weight=4,
                         description="ResponseEnvelope on all 2xx"),
)

_CATEGORY_KEYED = frozenset({"ENV-RESPONSE"})


def get_checkpoint(checkpoint_id: str) -> CheckpointDefinition | None:
    for cp in CHECKPOINTS:
        if cp.id == checkpoint_id:
            return cp
    return None


def is_violated(definition: CheckpointDefinition, findings: Iterable[Finding]) -> bool:
    if definition.id in _CATEGORY_KEYED:
        return any(f.category == definition.category and f.severity == Severity.ERROR for f in findings)
    return any(f.rule_id == definition.id for f in findings)


def score_checkpoints(findings: Iterable[Finding]) -> list[Checkpoint]:
    """Score every checkpoint against one run's findings, in table order."""
    findings = list(findings)
    return [
        Checkpoint(
            checkpoint_id=cp.id,
            category=cp.category,
            max_points=cp.weight,
            scored_points=0.0 if is_violated(cp, findings) else cp.weight,
        )
        for cp in CHECKPOINTS
    ]


def violated_auto_fail(findings: Iterable[Finding]) -> list[CheckpointDefinition]:
    findings = list(findings)
    return [cp for cp in CHECKPOINTS if cp.auto_fail and is_violated(cp, findings)]


def list_checkpoints() -> list[dict]:
    return [cp.to_json_dict() for cp in CHECKPOINTS]
