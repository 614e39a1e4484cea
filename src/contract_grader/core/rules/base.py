"""The rule contract every check implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar, Iterable, Mapping, Optional

from ..models import Finding, RuleResult, ScoreContribution, Severity
from ..spec_node import OpenAPIDocument, SpecNode


class Rule(ABC):
    """A pluggable check over a parsed document.

    Subclasses set the class attributes and implement ``check``. ``check`` must
    not raise on missing or mistyped structure: absence is a valid input that
    yields the rule's baseline score.

    Attributes:
        rule_id: Stable identifier, also the key used by domain weight tables.
        category: Score category the contribution lands in.
        max_points: Category budget owned by this rule (0 for findings-only rules).
        no_paths_baseline: Points awarded when the document has no ``paths``.
        critical_findings: Finding ids counted as critical issues when they are errors.
        catalog: Finding id -> (severity, description) for every finding the rule emits.
    """

    rule_id: ClassVar[str]
    category: ClassVar[str]
    description: ClassVar[str] = ""
    max_points: ClassVar[float] = 0.0
    no_paths_baseline: ClassVar[Optional[float]] = None
    critical_findings: ClassVar[frozenset[str]] = frozenset()
    catalog: ClassVar[Mapping[str, tuple[Severity, str]]] = {}

    @abstractmethod
    def check(self, doc: OpenAPIDocument) -> RuleResult:
        ...

    @property
    def scores(self) -> bool:
        return self.max_points > 0

    def finding(
        self,
        rule_id: str,
        json_path: str,
        message: Optional[str] = None,
        severity: Optional[Severity] = None,
        category: Optional[str] = None,
    ) -> Finding:
        """Build a finding, defaulting severity and message from the catalog."""
        default_severity, default_message = self.catalog.get(rule_id, (Severity.INFO, rule_id))
        return Finding(
            rule_id=rule_id,
            severity=severity or default_severity,
            json_path=json_path,
            message=message or default_message,
            category=category or self.category,
        )

    def result(
        self,
        findings: Iterable[Finding],
        add: Optional[float] = None,
        auto_fail_reasons: Iterable[str] = (),
    ) -> RuleResult:
        contribution = None
        if self.scores:
            points = min(self.max_points, max(0.0, float(add or 0.0)))
            contribution = ScoreContribution(category=self.category, add=points, max=self.max_points)
        return RuleResult(
            findings=list(findings),
            contribution=contribution,
            auto_fail_reasons=list(auto_fail_reasons),
        )

    def baseline(self) -> RuleResult:
        """Result for a document without ``paths``."""
        return self.result([], self.no_paths_baseline)

    def describe(self) -> dict:
        return {
            "ruleId": self.rule_id,
            "category": self.category,
            "maxPoints": self.max_points,
            "noPathsBaseline": self.no_paths_baseline,
            "critical": sorted(self.critical_findings),
            "findings": {k: [sev.value, msg] for k, (sev, msg) in sorted(self.catalog.items())},
        }


def json_content(response: SpecNode) -> SpecNode:
    return response.get("content").get("application/json")


def status_int(code: str) -> Optional[int]:
    try:
        return int(code)
    except ValueError:
        return None


def response_path(op_path: str, code: str) -> str:
    return f"{op_path}.responses['{code}']"
