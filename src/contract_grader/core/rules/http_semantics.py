"""Header-level HTTP semantics: validators, conditional GET, problem+json, rate limits."""

from __future__ import annotations

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument
from .base import Rule, response_path, status_int

RATE_LIMIT_HEADERS = ("X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset")
RATE_LIMITED_STATUSES = frozenset({200, 201, 202, 204, 429})
CACHEABLE_METHODS = frozenset({"get", "head"})


class HttpSemanticsRule(Rule):
    rule_id = "HTTP-SEMANTICS"
    category = "http"
    description = "ETag validators, 304 support, problem+json errors and rate-limit headers"
    critical_findings = frozenset({"HTTP-202-LOCATION"})
    catalog = {
        "HTTP-ETAG": (Severity.WARN, "Missing ETag header on cacheable response"),
        "HTTP-304": (Severity.WARN, "Missing 304 Not Modified for conditional GET"),
        "ERR-PROBLEMJSON": (Severity.ERROR, "Errors must use application/problem+json"),
        "HTTP-RATE-LIMIT": (Severity.WARN, "Missing rate limit header"),
        "HTTP-202-LOCATION": (Severity.ERROR, "202 Accepted must include Location header pointing to job status"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        findings = []

        for op in doc.operations():
            codes = op.response_codes()

            for code in codes:
                status = status_int(code)
                if status is None:
                    continue
                response = op.response(code)
                headers = response.get("headers")
                headers_path = f"{response_path(op.json_path, code)}.headers"

                if op.method in CACHEABLE_METHODS and 200 <= status < 300 and not headers.has_ci("ETag"):
                    findings.append(self.finding("HTTP-ETAG", headers_path))

                if status >= 400 and "application/problem+json" not in response.get("content"):
                    findings.append(self.finding(
                        "ERR-PROBLEMJSON",
                        f"{response_path(op.json_path, code)}.content",
                        category="responses",
                    ))

                if status in RATE_LIMITED_STATUSES:
                    for header in RATE_LIMIT_HEADERS:
                        if not headers.has_ci(header):
                            findings.append(self.finding(
                                "HTTP-RATE-LIMIT", headers_path, f"Missing {header} header on {code} response"
                            ))

            if op.method == "get" and "304" not in codes:
                findings.append(self.finding("HTTP-304", f"{op.json_path}.responses"))

            if "202" in codes and not op.response("202").get("headers").has_ci("Location"):
                findings.append(self.finding("HTTP-202-LOCATION", f"{response_path(op.json_path, '202')}.headers"))

        return self.result(findings)
