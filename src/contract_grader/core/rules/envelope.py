"""Response envelope structure (``success`` + ``data``)."""

from __future__ import annotations

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument, Operation
from .base import Rule, json_content, response_path

CRITICAL_ENVELOPE_REASON = "Missing response envelope structure on critical endpoints"
_JOB_SEGMENTS = ("/jobs/", "/job/")
_UNWRAPPED_SEGMENTS = ("/jobs", "/export")
_METADATA_KEYS = ("pagination", "next_key", "organization_id")


def is_critical(op: Operation) -> bool:
    """Operations marked ``x-critical: true`` (or their path item), or under a /critical path."""
    return (
        op.node.get("x-critical").value is True
        or op.path_item.get("x-critical").value is True
        or "critical" in op.path
    )


class EnvelopeRule(Rule):
    rule_id = "ENV-RESPONSE"
    category = "envelope"
    description = "Success responses wrap their payload in a success/data envelope"
    max_points = 10.0
    no_paths_baseline = 9.0
    critical_findings = frozenset({"ENV-NO-ENVELOPE"})
    catalog = {
        "ENV-SUCCESS-REQUIRED": (Severity.WARN, "Success field should be required in envelope"),
        "ENV-DATA-REQUIRED": (Severity.WARN, "Data field should be required in envelope"),
        "ENV-SUCCESS-MISSING": (Severity.ERROR, "Response envelope must include success field"),
        "ENV-DATA-MISSING": (Severity.ERROR, "Response envelope must include data field"),
        "ENV-NO-ENVELOPE": (Severity.ERROR, "Response should use envelope pattern instead of direct array"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        if not doc.has_paths:
            return self.baseline()

        findings = []
        score = self.max_points
        success_responses = proper = 0
        critical_missing = False

        for op in doc.operations():
            for code in op.response_codes():
                if not code.startswith("2") or code in ("202", "204"):
                    continue
                response = op.response(code)
                if not response.get("content"):
                    continue
                success_responses += 1
                media = json_content(response)
                if "schema" not in media:
                    continue
                schema = media.get("schema").resolve()
                schema_path = f"{response_path(op.json_path, code)}.content['application/json'].schema"
                props = schema.get("properties")

                if any(seg in op.path for seg in _JOB_SEGMENTS) and "status" in props:
                    continue

                kind = schema.get("type").text()
                if kind == "array":
                    if is_critical(op):
                        critical_missing = True
                    findings.append(self.finding("ENV-NO-ENVELOPE", schema_path))
                    score -= 1
                    continue
                if kind != "object":
                    continue

                has_success, has_data = "success" in props, "data" in props
                if has_success and has_data:
                    proper += 1
                    required = [r.text() for r in schema.get("required")]
                    if "success" not in required:
                        findings.append(self.finding("ENV-SUCCESS-REQUIRED", schema_path))
                        score -= 0.25
                    if "data" not in required:
                        findings.append(self.finding("ENV-DATA-REQUIRED", schema_path))
                        score -= 0.25
                    meta = props.get("meta").resolve().get("properties")
                    if any(key in meta for key in _METADATA_KEYS):
                        score = min(self.max_points, score + 0.1)
                    continue

                if not has_success and not has_data and any(seg in op.path for seg in _UNWRAPPED_SEGMENTS):
                    continue
                if not has_success:
                    findings.append(self.finding("ENV-SUCCESS-MISSING", schema_path))
                    score -= 0.5
                if not has_data:
                    findings.append(self.finding("ENV-DATA-MISSING", schema_path))
                    score -= 0.5

        if success_responses:
            ratio = proper / success_responses
            if ratio < 0.5:
                score -= (1 - ratio) * 2

        reasons = []
        if critical_missing:
            reasons.append(CRITICAL_ENVELOPE_REASON)
            score = min(5.0, score)

        return self.result(findings, round(max(0.0, score), 2), reasons)
