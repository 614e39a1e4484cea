"""Asynchronous job patterns: 202 Accepted, Location, Retry-After, job resources."""

from __future__ import annotations

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument
from .base import Rule, json_content, response_path

LOCATION_REASON = "Missing Location header on 202 Accepted responses"
_JOB_RESOURCE_MARKERS = ("/jobs/{", "/job/{", "/export", "/process")
_JOB_SEGMENTS = ("/jobs/", "/job/")


class AsyncRule(Rule):
    """Async contracts: every 202 points at a pollable job resource.

    APIs without any asynchronous surface score the baseline; the full budget is
    reachable only by documenting a complete job lifecycle.
    """

    rule_id = "ASYNC-JOBS"
    category = "async"
    description = "202 Accepted responses point to a pollable job resource"
    max_points = 8.0
    no_paths_baseline = 7.0
    critical_findings = frozenset({"ASYNC-202-LOCATION"})
    catalog = {
        "ASYNC-202-LOCATION": (Severity.ERROR, "202 Accepted response must include Location header"),
        "ASYNC-202-RETRY": (Severity.WARN, "202 Accepted response should include Retry-After header"),
        "ASYNC-JOB-SCHEMA": (Severity.WARN, "Job status endpoint should include status and progress fields"),
        "ASYNC-LIFECYCLE": (Severity.WARN, "Async API should include job status, cancel, and list endpoints"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        if not doc.has_paths:
            return self.baseline()

        findings = []
        score = self.max_points
        has_202 = False
        missing_location = False
        has_job_resource = any(
            marker in path for path in doc.path_keys() for marker in _JOB_RESOURCE_MARKERS
        )

        for op in doc.operations():
            if "202" in op.response_codes():
                has_202 = True
                accepted = op.response("202")
                headers = accepted.get("headers")
                headers_path = f"{response_path(op.json_path, '202')}.headers"
                if not headers.has_ci("Location"):
                    missing_location = True
                    findings.append(self.finding("ASYNC-202-LOCATION", headers_path))
                    score -= 2
                if headers and not headers.has_ci("Retry-After"):
                    findings.append(self.finding("ASYNC-202-RETRY", headers_path))
                    score -= 0.5

            if any(seg in op.path for seg in _JOB_SEGMENTS) and "200" in op.response_codes():
                props = json_content(op.response("200")).get("schema").resolve().get("properties")
                if props and not ("status" in props and "progress" in props):
                    findings.append(self.finding(
                        "ASYNC-JOB-SCHEMA",
                        f"{response_path(op.json_path, '200')}.content['application/json'].schema",
                    ))
                    score -= 0.5

        if not has_202 and not has_job_resource:
            return self.baseline()

        if has_202 and not has_job_resource:
            findings.append(self.finding("ASYNC-LIFECYCLE", "$.paths"))
            score -= 1

        reasons = [LOCATION_REASON] if missing_location else []
        return self.result(findings, round(max(0.0, score), 2), reasons)
