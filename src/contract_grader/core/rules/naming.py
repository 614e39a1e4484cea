"""Path namespace convention."""

from __future__ import annotations

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument
from .base import Rule

NAMESPACE_PREFIX = "/api/v2/"
NAMESPACE_REASON = "Missing /api/v2 namespace on one or more paths"


class NamingRule(Rule):
    rule_id = "NAME-PATHS"
    category = "naming"
    description = "Every path lives under the versioned /api/v2/<domain> namespace"
    max_points = 10.0
    no_paths_baseline = 10.0
    critical_findings = frozenset({"NAME-NAMESPACE"})
    catalog = {
        "NAME-NAMESPACE": (Severity.ERROR, "All paths must start with /api/v2/<domain>"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        if not doc.has_paths:
            return self.baseline()

        findings = [
            self.finding("NAME-NAMESPACE", f"$.paths['{path}']")
            for path in doc.path_keys()
            if not path.startswith(NAMESPACE_PREFIX)
        ]
        if not findings:
            return self.result([], 10)
        return self.result(findings, 6, [NAMESPACE_REASON])
