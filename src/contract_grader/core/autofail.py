"""Auto-fail evaluator: the pass/fail gate that sits beside the numeric score."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .checkpoints import violated_auto_fail
from .compliance import mandatory_rules
from .models import CheckpointDefinition, ComplianceRule, Finding, Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutoFailDecision:
    """Outcome of the gate. ``triggered`` is derived, so it cannot disagree with ``reasons``."""

    reasons: tuple[str, ...] = ()
    violated_checkpoints: tuple[str, ...] = ()
    violated_compliance: tuple[str, ...] = ()

    @property
    def triggered(self) -> bool:
        return bool(self.reasons)


def _dedupe(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(i for i in items if i))


def checkpoint_violation_reason(checkpoint: CheckpointDefinition) -> str:
    return f"Checkpoint {checkpoint.id} failed: {checkpoint.description}"


def compliance_violation_reason(rule: ComplianceRule) -> str:
    return f"{rule.compliance} {rule.rule_id}: {rule.requirement}"


class AutoFailEvaluator:
    """Collects auto-fail reasons from three sources, in order.

    1. Reasons emitted by the rule units themselves.
    2. Violated checkpoints flagged ``auto_fail``.
    3. Blocking mandatory compliance rules of the domain whose ``checks`` ids
       appear among the error-level findings.
    """

    def __init__(self, compliance_rules: Optional[Iterable[ComplianceRule]] = None):
        self._override = list(compliance_rules) if compliance_rules is not None else None

    def _rules_for(self, domain: Optional[str]) -> list[ComplianceRule]:
        if self._override is not None:
            return self._override
        return mandatory_rules(domain)

    def evaluate(
        self,
        findings: Iterable[Finding],
        rule_reasons: Iterable[str] = (),
        domain: Optional[str] = None,
    ) -> AutoFailDecision:
        findings = list(findings)
        error_ids = {f.rule_id for f in findings if f.severity == Severity.ERROR}

        checkpoints = violated_auto_fail(findings)
        compliance = [
            rule for rule in self._rules_for(domain)
            if rule.is_blocking and error_ids.intersection(rule.checks)
        ]

        reasons = _dedupe([
            *rule_reasons,
            *(checkpoint_violation_reason(cp) for cp in checkpoints),
            *(compliance_violation_reason(rule) for rule in compliance),
        ])
        if reasons:
            logger.info("Auto-fail triggered (%d reasons) for domain %s", len(reasons), domain or "general")
        return AutoFailDecision(
            reasons=tuple(reasons),
            violated_checkpoints=tuple(cp.id for cp in checkpoints),
            violated_compliance=tuple(rule.rule_id for rule in compliance),
        )
