"""Domain weight tables and the weight resolver.

Each business domain scales rule contributions through a table of exact rule
ids and ``PREFIX-*`` wildcard patterns. Lookup order: exact id, then the
longest matching wildcard prefix, then 1.0. Tables are read-only module state,
safe to share across concurrent gradings.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 1.0
DEFAULT_DOMAIN = "general"


def _freeze(tables: dict[str, dict[str, float]]) -> Mapping[str, Mapping[str, float]]:
    return MappingProxyType({domain: MappingProxyType(dict(t)) for domain, t in tables.items()})


DOMAIN_WEIGHTS: Mapping[str, Mapping[str, float]] = _freeze({
    "finance": {"SEC-*": 2.0, "AUDIT-*": 1.5, "AUTH-*": 1.5},
    "healthcare": {"PRIVACY-*": 2.0, "SEC-*": 2.0, "AUDIT-*": 1.8},
    "government": {"SEC-*": 1.8, "AUDIT-*": 1.8, "ACCESS-*": 1.5},
    "ecommerce": {"PAYMENT-*": 2.0, "SEC-*": 1.5, "PERF-*": 1.3},
    "education": {"PRIVACY-*": 1.8, "ACCESS-*": 1.5, "ACCESSIBILITY-*": 1.3},
    "telecommunications": {"RELIABILITY-*": 1.8, "PERF-*": 1.5, "SCALE-*": 1.5},
    "logistics": {"TRACKING-*": 1.5, "RELIABILITY-*": 1.5, "INTEGRATION-*": 1.3},
    "manufacturing": {"QUALITY-*": 1.5, "SAFETY-*": 1.8, "EFFICIENCY-*": 1.3},
    "media": {"CONTENT-*": 1.3, "COPYRIGHT-*": 1.5, "STREAMING-*": 1.3},
    "travel": {"BOOKING-*": 1.5, "PAYMENT-*": 1.5, "AVAILABILITY-*": 1.3},
    "realestate": {"FAIRHOUSING-*": 2.0, "LISTING-*": 1.3, "SEARCH-*": 1.2},
    "automotive": {"SAFETY-*": 2.0, "VIN-*": 1.3, "RECALL-*": 1.5},
    "energy": {"SAFETY-*": 1.8, "RELIABILITY-*": 1.8, "MONITORING-*": 1.3},
    "agriculture": {"QUALITY-*": 1.5, "TRACKING-*": 1.3, "SUSTAINABILITY-*": 1.2},
    "general": {},
})

KNOWN_DOMAINS = tuple(DOMAIN_WEIGHTS)


def normalize_domain(domain: Optional[str]) -> str:
    return (domain or DEFAULT_DOMAIN).strip().lower() or DEFAULT_DOMAIN


class WeightResolver:
    """Maps (rule id, domain) to a weight multiplier.

    Unknown domains are a configuration error that must not fail grading:
    they log a warning once and resolve every weight to 1.0.
    """

    def __init__(self, tables: Mapping[str, Mapping[str, float]] = DOMAIN_WEIGHTS):
        self._tables = tables
        self._warned: set[str] = set()

    def is_known(self, domain: Optional[str]) -> bool:
        return normalize_domain(domain) in self._tables

    def table(self, domain: Optional[str]) -> Mapping[str, float]:
        key = normalize_domain(domain)
        table = self._tables.get(key)
        if table is None:
            if key not in self._warned:
                self._warned.add(key)
                logger.warning("Unknown domain %r; using default weight %.1f for every rule", key, DEFAULT_WEIGHT)
            return MappingProxyType({})
        return table

    def resolve(self, rule_id: str, domain: Optional[str]) -> float:
        table = self.table(domain)
        if rule_id in table:
            return table[rule_id]

        best_pattern = None
        for pattern in table:
            if not pattern.endswith("*"):
                continue
            prefix = pattern[:-1]
            if rule_id.startswith(prefix) and (best_pattern is None or len(prefix) > len(best_pattern) - 1):
                best_pattern = pattern
        if best_pattern is not None:
            return table[best_pattern]
        return DEFAULT_WEIGHT

    def describe(self) -> dict[str, dict[str, float]]:
        return {domain: dict(table) for domain, table in sorted(self._tables.items())}
