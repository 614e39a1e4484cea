"""Key-set pagination on list endpoints."""

from __future__ import annotations

import re

from ..models import RuleResult, Severity
from ..spec_node import OpenAPIDocument
from .base import Rule

AFTER_KEY_REF = "#/components/parameters/AfterKey"
BEFORE_KEY_REF = "#/components/parameters/BeforeKey"
LIMIT_REF = "#/components/parameters/Limit"
SORT_REF = "#/components/parameters/Sort"

OFFSET_PARAMS = ("offset", "page", "page_size", "pageNumber")
KEYSET_PARAMS = ("after_key", "before_key", "limit", "sort")
PAGINATION_REASON = "Offset/page pagination detected or missing key-set params"

_TRAILING_PARAM = re.compile(r"\{[^}]+\}$")


def is_list_endpoint(path: str) -> bool:
    """A collection path: it does not end in a path parameter placeholder."""
    return not _TRAILING_PARAM.search(path)


class PaginationRule(Rule):
    rule_id = "PAG-KEYSET"
    category = "pagination"
    description = "List endpoints page with key-set cursors, never offsets"
    max_points = 8.0
    no_paths_baseline = 8.0
    critical_findings = frozenset({"PAG-OFFSET", "PAG-KEYSET"})
    catalog = {
        "PAG-OFFSET": (Severity.ERROR, "Offset/page pagination detected; key-set pagination (after_key/before_key) is required."),
        "PAG-KEYSET": (Severity.ERROR, "Missing key-set pagination parameters (AfterKey/BeforeKey/Limit)."),
        "PAG-SORT": (Severity.WARN, "Missing Sort parameter reference."),
        "PAG-FILTER": (Severity.INFO, "List endpoint exposes no filter query parameters."),
    }

    def check(self, doc: OpenAPIDocument) -> RuleResult:
        if not doc.has_paths:
            return self.baseline()

        findings = []
        keyset_ok = filters_ok = sort_ok = True

        for op in doc.operations():
            if op.method != "get" or not is_list_endpoint(op.path):
                continue
            params_path = f"{op.json_path}.parameters"
            query = op.query_param_names()

            if any(name in OFFSET_PARAMS for name in query):
                keyset_ok = False
                findings.append(self.finding("PAG-OFFSET", params_path))

            if not all(op.has_param_ref(ref) for ref in (AFTER_KEY_REF, BEFORE_KEY_REF, LIMIT_REF)):
                keyset_ok = False
                findings.append(self.finding("PAG-KEYSET", params_path))

            if not op.has_param_ref(SORT_REF):
                sort_ok = False
                findings.append(self.finding("PAG-SORT", params_path))

            filters = [n for n in query if n not in OFFSET_PARAMS and n not in KEYSET_PARAMS]
            has_filter_ref = any((p.ref or "").rsplit("/", 1)[-1].startswith("Filter") for p in op.parameters())
            if not filters and not has_filter_ref:
                filters_ok = False
                findings.append(self.finding("PAG-FILTER", params_path))

        add = (5 if keyset_ok else 0) + (2 if filters_ok else 0) + (1 if sort_ok else 0)
        reasons = [] if keyset_ok else [PAGINATION_REASON]
        return self.result(findings, add, reasons)
