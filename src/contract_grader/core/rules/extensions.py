"""Vendor extension (``x-*``) usage."""

from __future__ import annotations

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument
from .base import Rule

HOUSE_PREFIX = "x-platform"
KNOWN_EXTENSIONS = (
    HOUSE_PREFIX,
    "x-api-id",
    "x-critical",
    "x-deprecated",
    "x-example",
    "x-internal",
    "x-beta",
    "x-stable",
)
DEPRECATION_EXTENSIONS = frozenset({"x-deprecated", "x-deprecation-date"})
EXCESSIVE_THRESHOLD = 50
UNKNOWN_THRESHOLD = 10


class ExtensionsRule(Rule):
    rule_id = "EXT-VENDOR"
    category = "extensions"
    description = "Vendor extensions are purposeful, house-prefixed and not excessive"
    max_points = 15.0
    catalog = {
        "EXT-NONE": (Severity.INFO, "No vendor extensions found"),
        "EXT-DEPRECATION": (Severity.INFO, "Deprecation extensions found (good practice)"),
        "EXT-EXCESSIVE": (Severity.WARN, "Excessive use of extensions"),
        "EXT-UNKNOWN": (Severity.INFO, "Many unknown vendor extensions"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        count = 0
        found: dict[str, None] = {}
        for _, key, _ in doc.walk():
            if key.startswith("x-"):
                count += 1
                found.setdefault(key)

        if not count:
            return self.result([self.finding("EXT-NONE", "$")], 12)

        findings = []
        score = 15.0 if any(k == HOUSE_PREFIX or k.startswith(HOUSE_PREFIX + "-") for k in found) else 14.0

        if DEPRECATION_EXTENSIONS.intersection(found):
            findings.append(self.finding("EXT-DEPRECATION", "$"))

        if count > EXCESSIVE_THRESHOLD:
            findings.append(self.finding("EXT-EXCESSIVE", "$", f"Excessive use of extensions ({count} found)"))
            score -= 2

        unknown = sorted(k for k in found if not k.startswith(KNOWN_EXTENSIONS))
        if len(unknown) > UNKNOWN_THRESHOLD:
            findings.append(self.finding(
                "EXT-UNKNOWN", "$", f"Many unknown vendor extensions: {', '.join(unknown[:3])}..."
            ))
            score -= 1

        return self.result(findings, score)
