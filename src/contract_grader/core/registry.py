"""Rule registry: the named, category-grouped set of rule units.

The registry invokes every registered rule exactly once per grading call and
collects their results. Rules share nothing but the immutable parsed document,
so ``evaluate_concurrently`` fans them out to worker threads and joins on all
of them before returning. Result order always follows registration order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .models import Finding, RuleResult, ScoreContribution, Severity
from .rules import BUILTIN_RULES, Rule
from .spec_node import OpenAPIDocument

logger = logging.getLogger(__name__)

RULE_CRASH_ID = "RULE-CRASH"


@dataclass(frozen=True)
class RuleOutcome:
    """One rule's result, tagged with the rule that produced it."""

    rule_id: str
    category: str
    result: RuleResult

    @property
    def contribution(self) -> Optional[ScoreContribution]:
        return self.result.contribution


@dataclass
class RegistryRun:
    """Flattened output of running every rule over one document."""

    outcomes: list[RuleOutcome] = field(default_factory=list)

    @property
    def findings(self) -> list[Finding]:
        return [f for o in self.outcomes for f in o.result.findings]

    @property
    def auto_fail_reasons(self) -> list[str]:
        return [r for o in self.outcomes for r in o.result.auto_fail_reasons]

    def contributions_by_category(self) -> dict[str, list[tuple[str, ScoreContribution]]]:
        grouped: dict[str, list[tuple[str, ScoreContribution]]] = {}
        for o in self.outcomes:
            if o.contribution is not None:
                grouped.setdefault(o.contribution.category, []).append((o.rule_id, o.contribution))
        return grouped


class RuleRegistry:
    """Holds rule units keyed by id and grouped by category."""

    def __init__(self, rules: Iterable[Rule] = ()):
        self._rules: dict[str, Rule] = {}
        for rule in rules:
            self.register(rule)

    def register(self, rule: Rule) -> None:
        if rule.rule_id in self._rules:
            raise ValueError(f"Rule {rule.rule_id} is already registered")
        self._rules[rule.rule_id] = rule

    def unregister(self, rule_id: str) -> None:
        self._rules.pop(rule_id, None)

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self._rules.values())

    def rules(self) -> list[Rule]:
        return list(self._rules.values())

    def by_category(self) -> dict[str, list[Rule]]:
        grouped: dict[str, list[Rule]] = {}
        for rule in self._rules.values():
            grouped.setdefault(rule.category, []).append(rule)
        return grouped

    def category_maxima(self) -> dict[str, float]:
        maxima: dict[str, float] = {}
        for rule in self._rules.values():
            if rule.scores:
                maxima[rule.category] = maxima.get(rule.category, 0.0) + rule.max_points
        return maxima

    def critical_finding_ids(self) -> frozenset[str]:
        ids: set[str] = set()
        for rule in self._rules.values():
            ids.update(rule.critical_findings)
        return frozenset(ids)

    def finding_catalog(self) -> dict[str, dict]:
        """Finding id -> description, severity, category and owning rule."""
        catalog = {}
        for rule in self._rules.values():
            for finding_id, (severity, message) in rule.catalog.items():
                catalog.setdefault(finding_id, {
                    "ruleId": finding_id,
                    "severity": severity.value,
                    "description": message,
                    "category": "responses" if finding_id == "ERR-PROBLEMJSON" else rule.category,
                    "rule": rule.rule_id,
                    "critical": finding_id in rule.critical_findings,
                })
        return catalog

    def describe(self) -> list[dict]:
        return [rule.describe() for rule in self._rules.values()]

    # ─── Evaluation ───────────────────────────────────────────────────────────

    def evaluate(self, doc: OpenAPIDocument) -> RegistryRun:
        return RegistryRun([_run_rule(rule, doc) for rule in self._rules.values()])

    async def evaluate_concurrently(self, doc: OpenAPIDocument) -> RegistryRun:
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(_run_rule, rule, doc) for rule in self._rules.values())
        )
        return RegistryRun(list(outcomes))


def _run_rule(rule: Rule, doc: OpenAPIDocument) -> RuleOutcome:
    """Run one rule, turning an unexpected crash into a finding instead of aborting the grade."""
    try:
        result = rule.check(doc)
    except Exception as exc:
        logger.exception("Rule %s raised while checking document", rule.rule_id)
        result = RuleResult(
            findings=[Finding(
                rule_id=RULE_CRASH_ID,
                severity=Severity.ERROR,
                json_path="$",
                message=f"Rule {rule.rule_id} failed: {type(exc).__name__}: {exc}",
                category=rule.category,
            )],
            contribution=ScoreContribution(category=rule.category, add=0, max=rule.max_points) if rule.scores else None,
        )
    return RuleOutcome(rule_id=rule.rule_id, category=rule.category, result=result)


def default_registry() -> RuleRegistry:
    """A registry holding every built-in rule unit."""
    return RuleRegistry(rule_cls() for rule_cls in BUILTIN_RULES)
