"""HTTP caching headers on cacheable operations."""

from __future__ import annotations

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument
from .base import Rule, response_path

CACHE_HEADERS = ("Cache-Control", "ETag", "Last-Modified")
CONDITIONAL_HEADERS = ("If-None-Match", "If-Modified-Since")
UNCACHEABLE_METHODS = frozenset({"post", "put", "delete", "patch"})
_CACHE_EXEMPT_SEGMENTS = ("/auth", "/login")


class CachingRule(Rule):
    rule_id = "CACHE-HEADERS"
    category = "caching"
    description = "Cacheable reads advertise validators; writes are never cacheable"
    max_points = 10.0
    no_paths_baseline = 8.0
    catalog = {
        "CACHE-HEADERS-MISSING": (Severity.WARN, "GET endpoint should include cache headers (Cache-Control, ETag, or Last-Modified)"),
        "CACHE-NON-GET": (Severity.WARN, "Write operations should not be cached"),
        "CACHE-COVERAGE": (Severity.INFO, "Too few cacheable endpoints have cache headers"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        if not doc.has_paths:
            return self.baseline()

        findings = []
        score = self.max_points
        cacheable = with_caching = 0
        seen_cache_control = seen_etag = seen_304 = False

        for op in doc.operations():
            if op.method in ("get", "head"):
                cacheable += 1
                if "304" in op.response_codes():
                    seen_304 = True

                ok = op.response("200")
                if not ok:
                    continue
                headers = ok.get("headers")
                present = [h for h in CACHE_HEADERS if headers.has_ci(h)]
                seen_cache_control = seen_cache_control or "Cache-Control" in present
                seen_etag = seen_etag or "ETag" in present
                if present:
                    with_caching += 1
                elif not any(seg in op.path for seg in _CACHE_EXEMPT_SEGMENTS):
                    findings.append(self.finding("CACHE-HEADERS-MISSING", f"{response_path(op.json_path, '200')}.headers"))
                    score -= 0.5

            elif op.method in UNCACHEABLE_METHODS:
                for code in op.response_codes():
                    cache_control = op.response(code).get("headers").get_ci("Cache-Control").resolve()
                    default = cache_control.get("schema").get("default").text()
                    if default and "no-cache" not in default and "no-store" not in default:
                        findings.append(self.finding(
                            "CACHE-NON-GET",
                            f"{response_path(op.json_path, code)}.headers['Cache-Control']",
                            f"{op.method.upper()} operations should not be cached",
                        ))
                        score -= 0.5

        if cacheable:
            ratio = with_caching / cacheable
            if ratio < 0.5:
                findings.append(self.finding(
                    "CACHE-COVERAGE",
                    "$.paths",
                    f"Only {round(ratio * 100)}% of cacheable endpoints have cache headers",
                ))
                score -= (1 - ratio) * 2

        if seen_cache_control and seen_etag and seen_304:
            score += 1

        return self.result(findings, round(score, 2))
