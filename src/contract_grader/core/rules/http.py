"""HTTP method and status code semantics."""

from __future__ import annotations

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument
from .base import Rule, json_content, response_path

NO_RESPONSES_REASON = "Operation with no responses"

_TEXT_TOLERATED = {"text/plain"}


class HttpRule(Rule):
    rule_id = "HTTP-METHODS"
    category = "http"
    description = "Methods, status codes and response shapes follow REST conventions"
    max_points = 12.0
    no_paths_baseline = 0.0
    critical_findings = frozenset({"HTTP-NO-RESPONSES"})
    catalog = {
        "HTTP-GET-BODY": (Severity.ERROR, "GET operation should not have request body"),
        "HTTP-POST-STATUS": (Severity.WARN, "POST operation should return 201 for successful creation"),
        "HTTP-DELETE-STATUS": (Severity.WARN, "DELETE operation should return 204 (No Content) or 202 (Accepted)"),
        "HTTP-NO-RESPONSES": (Severity.ERROR, "Operation must define responses"),
        "HTTP-SUCCESS-REQUIRED": (Severity.ERROR, "Operation must define at least one 2xx success response"),
        "HTTP-404-MISSING": (Severity.WARN, "Resource-specific GET operation should define 404 response"),
        "HTTP-ERROR-SCHEMA": (Severity.WARN, "Error response should have content schema"),
        "HTTP-COLLECTION-SCHEMA": (Severity.WARN, "Collection endpoint should return array schema"),
        "HTTP-RESOURCE-SCHEMA": (Severity.WARN, "Resource endpoint should return object schema"),
        "HTTP-INVALID-SCHEMA": (Severity.ERROR, "Response schema is invalid or missing"),
        "HTTP-CONTENT-TYPE-HEADER": (Severity.INFO, "Consider defining Content-Type header parameter"),
        "HTTP-CONTENT-MISMATCH": (Severity.INFO, "Request and response content types should align"),
        "HTTP-CONTENT-TYPE": (Severity.WARN, "Inconsistent content types across API operations"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        if not doc.has_paths or not doc.paths.keys():
            return self.baseline()

        findings = []
        reasons = []
        score = self.max_points
        total_ops = ops_with_success = ops_with_proper_method = 0
        content_types: set[str] = set()
        plain_text_gets: list[str] = []

        for op in doc.operations():
            total_ops += 1
            responses = op.responses
            codes = op.response_codes()

            if op.method == "get":
                if op.node.get("requestBody"):
                    findings.append(self.finding("HTTP-GET-BODY", f"{op.json_path}.requestBody"))
                    score -= 1
                else:
                    ops_with_proper_method += 1
            elif op.method == "post":
                if "201" not in codes and "200" in codes:
                    findings.append(self.finding("HTTP-POST-STATUS", f"{op.json_path}.responses"))
                    score -= 0.5
                else:
                    ops_with_proper_method += 1
            elif op.method == "delete":
                if "200" in codes and "204" not in codes and "202" not in codes:
                    findings.append(self.finding("HTTP-DELETE-STATUS", f"{op.json_path}.responses"))
                    score -= 0.5
                else:
                    ops_with_proper_method += 1
            else:
                ops_with_proper_method += 1

            if not codes:
                findings.append(self.finding("HTTP-NO-RESPONSES", op.json_path))
                score -= 2
                reasons.append(NO_RESPONSES_REASON)
                continue

            if any(code.startswith("2") for code in codes):
                ops_with_success += 1
            else:
                findings.append(self.finding("HTTP-SUCCESS-REQUIRED", f"{op.json_path}.responses"))
                score -= 1

            if op.method == "get" and "{" in op.path and "}" in op.path and "404" not in codes:
                findings.append(self.finding("HTTP-404-MISSING", f"{op.json_path}.responses"))
                score -= 0.25

            for code in codes:
                response = op.response(code)
                if code.startswith(("4", "5")) and not response.get("content"):
                    findings.append(self.finding("HTTP-ERROR-SCHEMA", response_path(op.json_path, code)))
                    score -= 0.25
                content = response.get("content")
                content_types.update(content.keys())
                if op.method == "get" and "text/plain" in content and "export" not in op.path:
                    plain_text_gets.append(op.json_path)

            ok = op.response("200")
            media = json_content(ok)
            if "schema" in media:
                schema = media.get("schema").resolve()
                schema_path = f"{response_path(op.json_path, '200')}.content"
                is_collection = op.path.endswith("s") and "{" not in op.path
                is_resource = "{" in op.path and "}" in op.path
                if not schema.is_mapping:
                    findings.append(self.finding("HTTP-INVALID-SCHEMA", f"{schema_path}['application/json'].schema"))
                    score -= 1
                elif is_collection and schema.get("type").text() not in ("array", "") and not _is_envelope(schema):
                    findings.append(self.finding("HTTP-COLLECTION-SCHEMA", schema_path))
                    score -= 0.5
                elif is_resource and schema.get("type").text() == "array":
                    findings.append(self.finding("HTTP-RESOURCE-SCHEMA", schema_path))
                    score -= 0.5

            if op.method == "post" and not op.has_param("Content-Type", "header"):
                findings.append(self.finding("HTTP-CONTENT-TYPE-HEADER", f"{op.json_path}.parameters"))

            request_types = set(op.node.get("requestBody").resolve().get("content").keys())
            created_types = set(op.response("201").get("content").keys())
            if request_types and created_types and not request_types & created_types:
                findings.append(self.finding("HTTP-CONTENT-MISMATCH", op.json_path))

        has_others = any("json" not in ct and ct not in _TEXT_TOLERATED for ct in content_types)
        if "application/json" in content_types and has_others and len(content_types) > 2 and plain_text_gets:
            findings.append(self.finding("HTTP-CONTENT-TYPE", f"{plain_text_gets[0]}.responses['200'].content"))
            score -= 0.5

        if total_ops:
            success_ratio = ops_with_success / total_ops
            method_ratio = ops_with_proper_method / total_ops
            if success_ratio < 0.8:
                score -= (1 - success_ratio) * 2
            if method_ratio < 0.8:
                score -= (1 - method_ratio) * 2

        return self.result(findings, round(max(0.0, score), 2), _dedupe(reasons))


def _is_envelope(schema) -> bool:
    """An object wrapping a list in ``data`` is an acceptable collection response."""
    props = schema.get("properties")
    return "data" in props and "success" in props


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))
