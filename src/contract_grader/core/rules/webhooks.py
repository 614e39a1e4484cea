"""Webhook callbacks: signatures, event types and delivery retry."""

from __future__ import annotations

from ..models import RuleResult, Severity
from ..spec_node import HTTP_METHODS, OpenAPIDocument, SpecNode
from .base import Rule

SIGNATURE_HEADERS = ("X-Webhook-Signature", "X-Hub-Signature", "X-Signature")
EVENT_HEADERS = ("X-Event-Type", "X-Webhook-Event", "X-GitHub-Event")
_WEBHOOK_SEGMENTS = ("/webhook", "/hook", "/callback")


def _header_names(op: SpecNode) -> set[str]:
    names = set()
    for param in op.get("parameters"):
        param = param.resolve()
        if param.get("in").text() == "header":
            names.add(param.get("name").text().lower())
    return names


class WebhooksRule(Rule):
    rule_id = "WEBHOOK-CALLBACKS"
    category = "webhooks"
    description = "Webhook callbacks are signed, typed and retried"
    max_points = 6.0
    no_paths_baseline = 6.0
    catalog = {
        "WEBHOOK-MISSING": (Severity.INFO, "No webhook support detected"),
        "WEBHOOK-NO-SIGNATURE": (Severity.ERROR, "Webhook callbacks lack signature validation"),
        "WEBHOOK-NO-EVENTS": (Severity.WARN, "Webhook callbacks lack event type headers"),
        "WEBHOOK-NO-RETRY": (Severity.INFO, "No webhook retry mechanism detected"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        if not doc.has_paths:
            return self.baseline()

        has_callbacks = signed = typed = retried = False
        webhook_endpoints = 0

        for op in doc.operations():
            callbacks = op.node.get("callbacks")
            if callbacks.is_mapping:
                has_callbacks = True
                webhook_endpoints += 1
                for _, callback in callbacks.items():
                    for _, expression in callback.resolve().items():
                        for method in HTTP_METHODS:
                            names = _header_names(expression.get(method))
                            signed = signed or any(h.lower() in names for h in SIGNATURE_HEADERS)
                            typed = typed or any(h.lower() in names for h in EVENT_HEADERS)

            if any(seg in op.path for seg in _WEBHOOK_SEGMENTS):
                webhook_endpoints += 1
                codes = op.response_codes()
                if "202" in codes or "503" in codes:
                    retried = True

        if not has_callbacks and not webhook_endpoints:
            return self.result([self.finding("WEBHOOK-MISSING", "$.paths")], self.max_points)

        findings = []
        score = self.max_points
        if has_callbacks and not signed:
            findings.append(self.finding("WEBHOOK-NO-SIGNATURE", "$.paths"))
            score -= 3
        if has_callbacks and not typed:
            findings.append(self.finding("WEBHOOK-NO-EVENTS", "$.paths"))
            score -= 1
        if not retried:
            findings.append(self.finding("WEBHOOK-NO-RETRY", "$.paths"))
            score -= 1
        return self.result(findings, score)
