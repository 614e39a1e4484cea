"""Trend classification and recurring-violation counts over a run history."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Mapping, Sequence

from .models import RunRecord, TrendDirection, ViolationCount

# Relative slope (per run, as a fraction of the mean total) below which a series is stable.
STABLE_THRESHOLD = 0.01


def slope(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index."""
    n = len(values)
    if n < 2:
        return 0.0
    mean_x = (n - 1) / 2
    mean_y = sum(values) / n
    num = sum((i - mean_x) * (y - mean_y) for i, y in enumerate(values))
    den = sum((i - mean_x) ** 2 for i in range(n))
    return num / den if den else 0.0


def classify_trend(totals_oldest_first: Sequence[float]) -> TrendDirection:
    values = list(totals_oldest_first)
    if len(values) < 2:
        return TrendDirection.STABLE
    mean = sum(values) / len(values)
    s = slope(values)
    relative = s / mean if mean else s
    if abs(relative) < STABLE_THRESHOLD:
        return TrendDirection.STABLE
    return TrendDirection.IMPROVING if relative > 0 else TrendDirection.DEGRADING


def trend_for_runs(runs_newest_first: Iterable[RunRecord]) -> TrendDirection:
    return classify_trend([r.total_score for r in reversed(list(runs_newest_first))])


def top_recurring_violations(
    findings_by_run: Mapping[str, Iterable[str]],
    limit: int = 10,
) -> list[ViolationCount]:
    """Rule ids ranked by the number of runs they appear in, ties by rule id.

    Args:
        findings_by_run: Run id -> rule ids of that run's findings (repeats allowed).
        limit: Maximum number of entries returned.
    """
    runs: Counter[str] = Counter()
    occurrences: Counter[str] = Counter()
    for rule_ids in findings_by_run.values():
        ids = list(rule_ids)
        occurrences.update(ids)
        runs.update(set(ids))
    ranked = sorted(runs, key=lambda rule_id: (-runs[rule_id], rule_id))
    return [
        ViolationCount(rule_id=rule_id, runs=runs[rule_id], occurrences=occurrences[rule_id])
        for rule_id in ranked[: max(limit, 0)]
    ]
