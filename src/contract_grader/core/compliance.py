"""Compliance regimes, domain requirements and requirement mapping.

Static tables: each regime lists its requirements; each requirement names the
finding ids (``checks``) whose error-level presence shows the contract breaches
it. Domains map to regimes and to their own mandatory/recommended rule ids.
"""

from __future__ import annotations

import json
import re
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

from .models import ComplianceRule, ComplianceSeverity, ConditionalRules, MappedRequirements
from .spec_node import OpenAPIDocument
from .weights import normalize_domain

_CRIT = ComplianceSeverity.CRITICAL
_HIGH = ComplianceSeverity.HIGH
_MED = ComplianceSeverity.MEDIUM

_ACCESS_CHECKS = ["SEC-OAUTH2", "SEC-ORG-HDR"]
_AUTH_CHECKS = ["SEC-OAUTH2"]
_TRANSPORT_CHECKS = ["SERVER-HTTPS"]


def _rule(rule_id, compliance, requirement, severity, auto_fail, evidence, checks=()) -> ComplianceRule:
    return ComplianceRule(
        rule_id=rule_id,
        compliance=compliance,
        requirement=requirement,
        severity=severity,
        auto_fail=auto_fail,
        evidence=list(evidence),
        checks=list(checks),
    )


COMPLIANCE_DESCRIPTIONS: Mapping[str, str] = MappingProxyType({
    "PCI-DSS": "Payment Card Industry Data Security Standard",
    "HIPAA": "Health Insurance Portability and Accountability Act",
    "GDPR": "General Data Protection Regulation",
    "FedRAMP": "Federal Risk and Authorization Management Program",
    "SOX": "Sarbanes-Oxley Act",
    "FERPA": "Family Educational Rights and Privacy Act",
    "ISO-27001": "Information Security Management System",
    "CCPA": "California Consumer Privacy Act",
})

COMPLIANCE_RULES: Mapping[str, tuple[ComplianceRule, ...]] = MappingProxyType({
    "PCI-DSS": (
        _rule("SEC-PCI-001", "PCI-DSS", "Encrypt transmission of cardholder data", _CRIT, True,
              ["TLS 1.2+", "HTTPS only", "No sensitive data in URLs"], _TRANSPORT_CHECKS),
        _rule("SEC-PCI-002", "PCI-DSS", "Strong access control measures", _CRIT, True,
              ["Authentication required", "Role-based access", "MFA for admin"], _ACCESS_CHECKS),
        _rule("SEC-PCI-003", "PCI-DSS", "Mask card numbers in responses", _CRIT, True,
              ["Only last 4 digits visible", "No full PAN storage"]),
        _rule("AUDIT-PCI-001", "PCI-DSS", "Log all access to cardholder data", _HIGH, False,
              ["Audit endpoints", "Immutable logs", "Access tracking"]),
        _rule("SEC-PCI-004", "PCI-DSS", "Regular security testing", _HIGH, False,
              ["Vulnerability scanning", "Penetration testing"]),
    ),
    "HIPAA": (
        _rule("SEC-HIPAA-001", "HIPAA", "Encrypt PHI at rest and in transit", _CRIT, True,
              ["AES-256 encryption", "TLS 1.2+", "Encrypted storage"], _TRANSPORT_CHECKS),
        _rule("SEC-HIPAA-002", "HIPAA", "Unique user identification", _CRIT, True,
              ["Individual user accounts", "No shared credentials"], _AUTH_CHECKS),
        _rule("AUDIT-HIPAA-001", "HIPAA", "Audit logs for PHI access", _CRIT, True,
              ["Complete audit trail", "PHI access logging", "6-year retention"]),
        _rule("SEC-HIPAA-003", "HIPAA", "Access control and authorization", _CRIT, True,
              ["Role-based access", "Minimum necessary access"], _ACCESS_CHECKS),
        _rule("SEC-HIPAA-004", "HIPAA", "Data integrity controls", _HIGH, False,
              ["Data validation", "Integrity checksums", "Version control"]),
    ),
    "GDPR": (
        _rule("PRIVACY-GDPR-001", "GDPR", "Consent management", _CRIT, True,
              ["Explicit consent", "Consent withdrawal", "Consent records"]),
        _rule("PRIVACY-GDPR-002", "GDPR", "Right to erasure (forget)", _CRIT, True,
              ["Data deletion endpoints", "Complete erasure", "Deletion confirmation"]),
        _rule("PRIVACY-GDPR-003", "GDPR", "Data portability", _HIGH, False,
              ["Data export endpoints", "Machine-readable format", "Complete data"]),
        _rule("SEC-GDPR-001", "GDPR", "Data protection by design", _HIGH, False,
              ["Encryption", "Pseudonymization", "Access controls"], _AUTH_CHECKS + _TRANSPORT_CHECKS),
        _rule("PRIVACY-GDPR-004", "GDPR", "Privacy notice and transparency", _MED, False,
              ["Clear privacy policy", "Data usage disclosure", "Contact information"]),
    ),
    "FedRAMP": (
        _rule("SEC-FEDRAMP-001", "FedRAMP", "FIPS 140-2 validated cryptography", _CRIT, True,
              ["FIPS-validated modules", "Approved algorithms"], _TRANSPORT_CHECKS),
        _rule("SEC-FEDRAMP-002", "FedRAMP", "Continuous monitoring", _CRIT, True,
              ["Real-time monitoring", "Security metrics", "Incident response"]),
        _rule("AUDIT-FEDRAMP-001", "FedRAMP", "Comprehensive audit logging", _CRIT, True,
              ["All system events", "User activities", "Security events"]),
        _rule("SEC-FEDRAMP-003", "FedRAMP", "Multi-factor authentication", _CRIT, True,
              ["MFA for all users", "PIV/CAC support", "Strong authentication"], _AUTH_CHECKS),
    ),
    "SOX": (
        _rule("AUDIT-SOX-001", "SOX", "Financial data audit trail", _CRIT, True,
              ["Complete audit logs", "Immutable records", "7-year retention"]),
        _rule("SEC-SOX-001", "SOX", "Access controls for financial data", _CRIT, True,
              ["Role-based access", "Segregation of duties", "Access reviews"], _ACCESS_CHECKS),
        _rule("SEC-SOX-002", "SOX", "Data integrity controls", _HIGH, False,
              ["Change tracking", "Version control", "Approval workflows"]),
    ),
    "FERPA": (
        _rule("PRIVACY-FERPA-001", "FERPA", "Protect student education records", _CRIT, True,
              ["Access controls", "Encryption", "Need-to-know basis"], _AUTH_CHECKS + _TRANSPORT_CHECKS),
        _rule("PRIVACY-FERPA-002", "FERPA", "Parent/student access rights", _HIGH, False,
              ["Record access endpoints", "Consent management", "Access logs"]),
        _rule("AUDIT-FERPA-001", "FERPA", "Disclosure tracking", _HIGH, False,
              ["Disclosure logs", "Recipient tracking", "Purpose documentation"]),
    ),
    "ISO-27001": (
        _rule("SEC-ISO-001", "ISO-27001", "Risk assessment and treatment", _HIGH, False,
              ["Risk register", "Threat modeling", "Mitigation controls"]),
        _rule("SEC-ISO-002", "ISO-27001", "Access control policy", _HIGH, False,
              ["Access policies", "User management", "Privilege controls"], _AUTH_CHECKS),
        _rule("SEC-ISO-003", "ISO-27001", "Cryptography controls", _HIGH, False,
              ["Encryption standards", "Key management", "Crypto policies"], _TRANSPORT_CHECKS),
        _rule("AUDIT-ISO-001", "ISO-27001", "Logging and monitoring", _MED, False,
              ["Security monitoring", "Event logging", "Log reviews"]),
    ),
    "CCPA": (
        _rule("PRIVACY-CCPA-001", "CCPA", "Consumer data access rights", _HIGH, False,
              ["Data access endpoints", "Identity verification", "Response timeline"]),
        _rule("PRIVACY-CCPA-002", "CCPA", "Right to delete personal information", _HIGH, False,
              ["Deletion endpoints", "Verification process", "Confirmation"]),
        _rule("PRIVACY-CCPA-003", "CCPA", "Opt-out of sale", _HIGH, False,
              ["Opt-out mechanism", "Do Not Sell option", "Preference management"]),
    ),
})

# Regimes that apply to each domain. Names without a COMPLIANCE_RULES entry
# are reported but carry no machine-checkable requirements.
DOMAIN_COMPLIANCE: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "finance": ("PCI-DSS", "SOX", "Basel-III", "MiFID-II", "Dodd-Frank", "GDPR"),
    "healthcare": ("HIPAA", "HITECH", "FDA-21-CFR", "GDPR", "HL7"),
    "government": ("FedRAMP", "FISMA", "NIST-800-53", "StateRAMP", "CJIS"),
    "education": ("FERPA", "COPPA", "GDPR", "Accessibility-508"),
    "ecommerce": ("PCI-DSS", "GDPR", "CCPA", "Consumer-Protection"),
    "telecommunications": ("CPNI", "TCPA", "E911", "Net-Neutrality"),
    "energy": ("NERC-CIP", "ISO-50001", "EPA-Regulations"),
    "automotive": ("ISO-26262", "UNECE", "NHTSA"),
    "logistics": ("C-TPAT", "IATA", "IMO", "Customs-Regulations"),
    "manufacturing": ("ISO-9001", "ISO-14001", "OSHA"),
    "media": ("COPPA", "DMCA", "GDPR", "Content-Ratings"),
    "travel": ("IATA", "PCI-DSS", "GDPR", "DOT-Regulations"),
    "realestate": ("Fair-Housing", "RESPA", "Truth-in-Lending"),
    "agriculture": ("FDA", "USDA", "EPA", "Organic-Certification"),
    "general": ("GDPR", "CCPA"),
})

DOMAIN_RULES: Mapping[str, Mapping[str, tuple[str, ...]]] = MappingProxyType({
    "finance": {"mandatory": ("SEC-001", "SEC-002", "AUTH-001", "AUDIT-001"), "recommended": ("RATE-001", "CACHE-001", "MONITOR-001")},
    "healthcare": {"mandatory": ("SEC-001", "PRIVACY-001", "AUDIT-001", "AUTH-001"), "recommended": ("CONSENT-001", "INTEGRITY-001")},
    "government": {"mandatory": ("SEC-001", "AUTH-001", "AUDIT-001", "ACCESS-001"), "recommended": ("TRANSPARENCY-001", "ACCOUNTABILITY-001")},
    "ecommerce": {"mandatory": ("SEC-001", "PAYMENT-001", "CART-001"), "recommended": ("PERF-001", "SCALE-001", "UX-001")},
    "education": {"mandatory": ("PRIVACY-001", "ACCESS-001", "AUTH-001"), "recommended": ("ACCESSIBILITY-001", "CONTENT-001")},
    "telecommunications": {"mandatory": ("SEC-001", "PRIVACY-001", "RELIABILITY-001"), "recommended": ("PERF-001", "SCALE-001")},
    "logistics": {"mandatory": ("TRACKING-001", "RELIABILITY-001"), "recommended": ("PERF-001", "INTEGRATION-001")},
    "manufacturing": {"mandatory": ("QUALITY-001", "TRACKING-001"), "recommended": ("EFFICIENCY-001", "SAFETY-001")},
    "media": {"mandatory": ("CONTENT-001", "COPYRIGHT-001"), "recommended": ("CDN-001", "STREAMING-001")},
    "travel": {"mandatory": ("BOOKING-001", "PAYMENT-001"), "recommended": ("AVAILABILITY-001", "PRICING-001")},
    "realestate": {"mandatory": ("LISTING-001", "FAIRHOUSING-001"), "recommended": ("SEARCH-001", "MEDIA-001")},
    "automotive": {"mandatory": ("SAFETY-001", "VIN-001"), "recommended": ("DIAGNOSTIC-001", "RECALL-001")},
    "energy": {"mandatory": ("RELIABILITY-001", "SAFETY-001"), "recommended": ("EFFICIENCY-001", "MONITORING-001")},
    "agriculture": {"mandatory": ("TRACKING-001", "QUALITY-001"), "recommended": ("SUSTAINABILITY-001", "COMPLIANCE-001")},
    "general": {"mandatory": ("SEC-001", "AUTH-001"), "recommended": ("DOC-001", "TEST-001")},
})

_CONDITIONAL = {
    "restricted": ConditionalRules(condition="Restricted data handling", rules=[
        _rule("SEC-RESTRICTED-001", "Data Classification", "Enhanced encryption for restricted data", _CRIT, True,
              ["AES-256", "Key rotation", "HSM usage"], _TRANSPORT_CHECKS),
    ]),
    "critical": ConditionalRules(condition="Critical business function", rules=[
        _rule("RELIABILITY-CRITICAL-001", "Business Continuity", "99.99% uptime SLA", _HIGH, False,
              ["HA deployment", "Disaster recovery", "Failover"]),
    ]),
    "global": ConditionalRules(condition="Global operations", rules=[
        _rule("GLOBAL-001", "International", "Multi-region compliance", _HIGH, False,
              ["Data residency", "Regional compliance", "Localization"]),
    ]),
}


def compliance_for_domain(domain: Optional[str]) -> tuple[str, ...]:
    return DOMAIN_COMPLIANCE.get(normalize_domain(domain), ())


def map_requirements(
    domain: Optional[str],
    compliance: Optional[Sequence[str]] = None,
    data_classification: Optional[str] = None,
    criticality: Optional[str] = None,
    geographic_scope: Optional[str] = None,
) -> MappedRequirements:
    """Bucket the applicable compliance rules for a domain.

    Blocking rules (auto-fail or critical) are mandatory; the rest are
    recommended. The domain's own rule ids are appended to each bucket, and
    context-dependent rules land in the conditional bucket.
    """
    key = normalize_domain(domain)
    regimes = compliance if compliance is not None else compliance_for_domain(key)
    mandatory: list[ComplianceRule] = []
    recommended: list[ComplianceRule] = []

    for regime in regimes:
        for rule in COMPLIANCE_RULES.get(regime, ()):
            (mandatory if rule.is_blocking else recommended).append(rule)

    domain_rules = DOMAIN_RULES.get(key)
    if domain_rules:
        for rule_id in domain_rules["mandatory"]:
            if all(r.rule_id != rule_id for r in mandatory):
                mandatory.append(_rule(rule_id, key, f"Domain-specific requirement for {key}", _HIGH, False, []))
        for rule_id in domain_rules["recommended"]:
            if all(r.rule_id != rule_id for r in recommended):
                recommended.append(_rule(rule_id, key, f"Recommended for {key}", _MED, False, []))

    conditional = []
    if data_classification == "restricted":
        conditional.append(_CONDITIONAL["restricted"])
    if criticality == "critical":
        conditional.append(_CONDITIONAL["critical"])
    if geographic_scope == "global":
        conditional.append(_CONDITIONAL["global"])

    critical_count = sum(1 for r in mandatory if r.severity == _CRIT)
    return MappedRequirements(
        domain=key,
        mandatory_rules=mandatory,
        recommended_rules=recommended,
        conditional_rules=conditional,
        total_rules=len(mandatory) + len(recommended),
        compliance_score=_compliance_score(len(mandatory), len(recommended), critical_count),
    )


def _compliance_score(mandatory: int, recommended: int, critical: int) -> int:
    """Critical 40%, mandatory 40%, recommended 20% (20 points per recommended rule)."""
    score = (
        (100 if critical else 0) * 0.4
        + (100 if mandatory else 0) * 0.4
        + min(recommended * 20, 100) * 0.2
    )
    return int(score + 0.5)


def mandatory_rules(domain: Optional[str]) -> list[ComplianceRule]:
    return map_requirements(domain).mandatory_rules


def _has_evidence(doc: OpenAPIDocument, haystack: str, rule: ComplianceRule) -> bool:
    if rule.evidence:
        return any(e.lower() in haystack for e in rule.evidence)
    paths = doc.path_keys()
    if rule.rule_id.startswith("SEC-"):
        return bool(doc.components.get("securitySchemes"))
    if rule.rule_id.startswith("AUDIT-"):
        return any(re.search(r"audit|log|history", p) for p in paths)
    if rule.rule_id.startswith("PRIVACY-"):
        return any(re.search(r"privacy|consent|data", p) for p in paths)
    return False


def validate_compliance(raw: Any, mapped: MappedRequirements) -> dict:
    """Heuristic evidence search over the document text.

    Advisory only: the auto-fail gate relies on each rule's ``checks``, not on
    evidence keywords.
    """
    doc = OpenAPIDocument(raw)
    try:
        haystack = json.dumps(raw, default=str).lower()
    except ValueError:
        haystack = ""

    violations, warnings, passed = [], [], []
    for rule in mapped.mandatory_rules:
        if _has_evidence(doc, haystack, rule):
            passed.append(rule.rule_id)
        elif rule.is_blocking:
            violations.append(rule.rule_id)
        else:
            warnings.append(rule.rule_id)
    for rule in mapped.recommended_rules:
        (passed if _has_evidence(doc, haystack, rule) else warnings).append(rule.rule_id)

    return {
        "compliant": not violations,
        "violations": violations,
        "warnings": warnings,
        "passed": passed,
    }


def describe_tables() -> dict:
    """Canonical view of the static compliance tables, for ruleset hashing."""
    return {
        "rules": {k: [r.to_json_dict() for r in v] for k, v in sorted(COMPLIANCE_RULES.items())},
        "domains": {k: list(v) for k, v in sorted(DOMAIN_COMPLIANCE.items())},
        "domainRules": {k: {b: list(ids) for b, ids in v.items()} for k, v in sorted(DOMAIN_RULES.items())},
    }
