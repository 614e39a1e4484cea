"""Internationalization: language negotiation and localized errors."""

from __future__ import annotations

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument
from .base import Rule, json_content


class I18nRule(Rule):
    rule_id = "I18N-LANGUAGE"
    category = "i18n"
    description = "Operations negotiate language and errors carry a locale"
    max_points = 6.0
    no_paths_baseline = 6.0
    catalog = {
        "I18N-ACCEPT-LANG": (Severity.WARN, "No Accept-Language header support found"),
        "I18N-CONTENT-LANG": (Severity.WARN, "No Content-Language response headers found"),
        "I18N-LOCALIZATION": (Severity.INFO, "No localized content or error messages found"),
        "I18N-COVERAGE": (Severity.INFO, "Too few endpoints have i18n support"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        if not doc.has_paths:
            return self.baseline()

        accept_language = content_language = localized_errors = False
        total = with_i18n = 0

        for op in doc.operations():
            total += 1
            supported = False

            if op.has_param("Accept-Language", "header"):
                accept_language = supported = True

            for code in op.response_codes():
                response = op.response(code)
                if response.get("headers").has_ci("Content-Language"):
                    content_language = supported = True
                if code.startswith(("4", "5")):
                    for media in (json_content(response), response.get("content").get("application/problem+json")):
                        props = media.get("schema").resolve().get("properties")
                        if "locale" in props or "language" in props:
                            localized_errors = supported = True

            if supported:
                with_i18n += 1

        findings = []
        score = self.max_points
        if not accept_language:
            findings.append(self.finding("I18N-ACCEPT-LANG", "$.paths"))
            score -= 2
        if not content_language:
            findings.append(self.finding("I18N-CONTENT-LANG", "$.paths"))
            score -= 2
        if not localized_errors:
            findings.append(self.finding("I18N-LOCALIZATION", "$.paths"))
            score -= 1
        if total and with_i18n < total / 2:
            findings.append(self.finding(
                "I18N-COVERAGE", "$.paths", f"Only {with_i18n}/{total} endpoints have i18n support"
            ))
            score -= 1
        return self.result(findings, score)
