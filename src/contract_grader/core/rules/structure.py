"""Document-level structure: OpenAPI version, info block, servers, reusable components."""

from __future__ import annotations

import re

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument
from .base import Rule, response_path

REQUIRED_OPENAPI_VERSION = "3.0.3"
VERSION_REASON = f"OpenAPI version not {REQUIRED_OPENAPI_VERSION}"

_SEMVER = re.compile(r"^\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.-]+)?$")


class StructureRule(Rule):
    """Findings-only checks on the document skeleton. Owns no score."""

    rule_id = "OAS-STRUCTURE"
    category = "structure"
    description = "OpenAPI version, contact, semantic version, HTTPS servers and reusable components"
    critical_findings = frozenset({"OAS-VERSION", "SERVER-HTTPS"})
    catalog = {
        "OAS-VERSION": (Severity.ERROR, f"OpenAPI version must be {REQUIRED_OPENAPI_VERSION}"),
        "INFO-CONTACT": (Severity.WARN, "Missing contact email"),
        "INFO-VERSION": (Severity.WARN, "Version should follow semantic versioning"),
        "SERVER-HTTPS": (Severity.ERROR, "Server URLs must use https"),
        "HTTP-401-AUTH": (Severity.WARN, "401 response must include WWW-Authenticate header"),
        "HTTP-429-RETRY": (Severity.WARN, "429 response should include Retry-After header"),
        "HTTP-503-RETRY": (Severity.WARN, "503 response should include Retry-After header"),
        "COMP-SCHEMAS": (Severity.INFO, "No reusable schemas defined"),
        "COMP-PARAMS": (Severity.INFO, "No reusable parameters defined"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        findings = []
        reasons = []

        if doc.root.get("openapi").text() != REQUIRED_OPENAPI_VERSION:
            findings.append(self.finding("OAS-VERSION", "$.openapi"))
            reasons.append(VERSION_REASON)

        if not doc.info.get("contact").get("email").text():
            findings.append(self.finding("INFO-CONTACT", "$.info.contact"))
        if not _SEMVER.match(doc.info.get("version").text()):
            findings.append(self.finding("INFO-VERSION", "$.info.version"))

        for i, server in enumerate(doc.root.get("servers")):
            if server.get("url").text().startswith("http://"):
                findings.append(self.finding("SERVER-HTTPS", f"$.servers[{i}].url"))

        for op in doc.operations():
            codes = op.response_codes()
            if "401" in codes and not op.response("401").get("headers").has_ci("WWW-Authenticate"):
                findings.append(self.finding("HTTP-401-AUTH", f"{response_path(op.json_path, '401')}.headers"))
            for code in ("429", "503"):
                if code in codes and not op.response(code).get("headers").has_ci("Retry-After"):
                    findings.append(self.finding(f"HTTP-{code}-RETRY", f"{response_path(op.json_path, code)}.headers"))

        if not doc.components.get("schemas"):
            findings.append(self.finding("COMP-SCHEMAS", "$.components.schemas"))
        if not doc.components.get("parameters"):
            findings.append(self.finding("COMP-PARAMS", "$.components.parameters"))

        return self.result(findings, auto_fail_reasons=reasons)
