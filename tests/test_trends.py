"""Tests for trend classification and recurring violations."""

from datetime import datetime

import pytest

from contract_grader.core.models import RunRecord, TrendDirection
from contract_grader.core.trends import classify_trend, slope, top_recurring_violations, trend_for_runs


def _run(run_id: str, total: int) -> RunRecord:
    return RunRecord(
        run_id=run_id, api_id="api", graded_at=datetime(2026, 1, 1), total_score=total,
        letter_grade="F", compliance_pct=total / 100, auto_fail=False, critical_issues=0,
        findings_count=0, template_version="3.2.3",
    )


class TestTrend:
    def test_slope(self):
        assert slope([1, 2, 3]) == pytest.approx(1.0)
        assert slope([5]) == 0.0

    @pytest.mark.parametrize("totals,expected", [
        ([60, 70, 80], TrendDirection.IMPROVING),
        ([90, 80, 70], TrendDirection.DEGRADING),
        ([80, 80, 80], TrendDirection.STABLE),
        ([80, 80, 81], TrendDirection.STABLE),
        ([75], TrendDirection.STABLE),
        ([], TrendDirection.STABLE),
        ([0, 0], TrendDirection.STABLE),
    ])
    def test_classify(self, totals, expected):
        assert classify_trend(totals) == expected

    def test_runs_are_newest_first(self):
        runs = [_run("c", 90), _run("b", 80), _run("a", 70)]
        assert trend_for_runs(runs) == TrendDirection.IMPROVING


class TestTopViolations:
    def test_ranked_by_runs_then_id(self):
        counts = top_recurring_violations({
            "r1": ["PAG-OFFSET", "PAG-OFFSET", "SEC-ORG-HDR"],
            "r2": ["SEC-ORG-HDR", "NAME-NAMESPACE"],
            "r3": ["NAME-NAMESPACE", "SEC-ORG-HDR"],
        })
        assert [(c.rule_id, c.runs, c.occurrences) for c in counts] == [
            ("SEC-ORG-HDR", 3, 3),
            ("NAME-NAMESPACE", 2, 2),
            ("PAG-OFFSET", 1, 2),
        ]

    def test_limit(self):
        counts = top_recurring_violations({"r1": ["B", "A", "C"]}, limit=2)
        assert [c.rule_id for c in counts] == ["A", "B"]
        assert top_recurring_violations({"r1": ["A"]}, limit=0) == []
