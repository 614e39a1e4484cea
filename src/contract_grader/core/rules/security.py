"""Tenancy headers and security scheme checks."""

from __future__ import annotations

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument
from .base import Rule

ORG_HEADER_REF = "#/components/parameters/OrganizationHeader"
BRANCH_HEADER_REF = "#/components/parameters/BranchHeader"
ORG_HEADER_REASON = "Missing X-Organization-ID on one or more operations"

# Points for each satisfied cluster; sums to the category budget.
_POINTS = {"org": 4, "branch": 3, "oauth": 4, "apikey": 2, "bearer": 2}


class SecurityRule(Rule):
    rule_id = "SEC-TENANCY"
    category = "security"
    description = "Tenant isolation headers on every operation and sound security schemes"
    max_points = 15.0
    critical_findings = frozenset({"SEC-ORG-HDR", "SEC-OAUTH2"})
    catalog = {
        "SEC-ORG-HDR": (Severity.ERROR, "Missing X-Organization-ID (OrganizationHeader) on operation"),
        "SEC-BRANCH-HDR": (Severity.ERROR, "Missing X-Branch-ID (BranchHeader) on operation"),
        "SEC-OAUTH2": (Severity.ERROR, "OAuth2 security scheme missing (OAuth2)"),
        "SEC-APIKEY": (Severity.WARN, "ApiKeyAuth must be in header"),
        "SEC-BEARER": (Severity.WARN, "BearerAuth must be type http"),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        findings = []
        ok = dict.fromkeys(_POINTS, True)

        for op in doc.operations():
            params_path = f"{op.json_path}.parameters"
            if not (op.has_param_ref(ORG_HEADER_REF) or op.has_param("X-Organization-ID", "header")):
                ok["org"] = False
                findings.append(self.finding("SEC-ORG-HDR", params_path))
            if not (op.has_param_ref(BRANCH_HEADER_REF) or op.has_param("X-Branch-ID", "header")):
                ok["branch"] = False
                findings.append(self.finding("SEC-BRANCH-HDR", params_path))

        schemes = doc.components.get("securitySchemes")
        if not schemes.get("OAuth2"):
            ok["oauth"] = False
            findings.append(self.finding("SEC-OAUTH2", "$.components.securitySchemes"))

        api_key = schemes.get("ApiKeyAuth").resolve()
        if api_key and api_key.get("in").text() != "header":
            ok["apikey"] = False
            findings.append(self.finding("SEC-APIKEY", "$.components.securitySchemes.ApiKeyAuth"))

        bearer = schemes.get("BearerAuth").resolve()
        if bearer and bearer.get("type").text() != "http":
            ok["bearer"] = False
            findings.append(self.finding("SEC-BEARER", "$.components.securitySchemes.BearerAuth"))

        add = sum(points for key, points in _POINTS.items() if ok[key])
        reasons = [] if ok["org"] else [ORG_HEADER_REASON]
        return self.result(findings, add, reasons)
