"""Scoring aggregator: weighted category totals, composite score and letter grade.

Pure functions of (rule results, weights). Nothing here reads the clock or any
global mutable state, so identical inputs always produce an identical
``GradeResult``.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

from .models import CategoryScore, Finding, GradeResult, ScoreContribution, Severity
from .registry import RegistryRun
from .weights import WeightResolver

logger = logging.getLogger(__name__)

SCORING_ENGINE = "weighted-category-v1"

# (minimum total, letter), best first.
LETTER_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (97, "A+"),
    (93, "A"),
    (90, "A-"),
    (87, "B+"),
    (83, "B"),
    (80, "B-"),
    (70, "C"),
    (60, "D"),
    (0, "F"),
)

# Worst to best, so a higher index is a better letter.
LETTER_ORDER: tuple[str, ...] = tuple(letter for _, letter in reversed(LETTER_THRESHOLDS))


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves away from zero for positive values (``round`` uses banker's rounding)."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def letter_grade(total: float) -> str:
    for minimum, letter in LETTER_THRESHOLDS:
        if total >= minimum:
            return letter
    return "F"


def letter_rank(total_or_letter) -> int:
    """Position of a letter (or of the letter for a total) in ``LETTER_ORDER``."""
    letter = total_or_letter if isinstance(total_or_letter, str) else letter_grade(total_or_letter)
    return LETTER_ORDER.index(letter)


def aggregate_categories(
    contributions: dict[str, list[tuple[str, ScoreContribution]]],
    resolver: WeightResolver,
    domain: Optional[str],
) -> dict[str, CategoryScore]:
    """Sum weighted contributions per category and clamp each into ``[0, max]``.

    Args:
        contributions: Category -> (rule id, raw contribution) pairs.
        resolver: Weight resolver used to scale each contribution by its rule id.
        domain: Business domain selecting the weight table.

    Returns:
        Category -> CategoryScore, in first-seen category order.
    """
    per_category = {}
    for category, items in contributions.items():
        maximum = sum(c.max for _, c in items)
        raw = sum(c.add * resolver.resolve(rule_id, domain) for rule_id, c in items)
        earned = round(min(max(raw, 0.0), maximum), 2)
        per_category[category] = CategoryScore(
            category=category,
            earned=earned,
            max=maximum,
            percentage=round(earned / maximum, 4) if maximum else 1.0,
        )
    return per_category


def composite_total(per_category: dict[str, CategoryScore]) -> int:
    total = round_half_up(sum(c.earned for c in per_category.values()))
    return int(min(max(total, 0), 100))


def count_critical(findings: Iterable[Finding], critical_ids: Iterable[str]) -> int:
    critical = set(critical_ids)
    return sum(1 for f in findings if f.severity == Severity.ERROR and f.rule_id in critical)


def compute_grade(
    run: RegistryRun,
    resolver: WeightResolver,
    domain: Optional[str],
    critical_ids: Iterable[str],
    auto_fail_reasons: Iterable[str] = (),
) -> GradeResult:
    """Build the grade for one run.

    The auto-fail gate is carried alongside the score; it never changes the
    total or the letter.
    """
    per_category = aggregate_categories(run.contributions_by_category(), resolver, domain)
    total = composite_total(per_category)
    reasons = list(auto_fail_reasons)
    grade = GradeResult(
        total=total,
        letter=letter_grade(total),
        compliance_pct=total / 100,
        auto_fail_triggered=bool(reasons),
        critical_issues=count_critical(run.findings, critical_ids),
        per_category=per_category,
        auto_fail_reasons=reasons,
    )
    logger.debug("Graded total=%d letter=%s auto_fail=%s", grade.total, grade.letter, grade.auto_fail_triggered)
    return grade
