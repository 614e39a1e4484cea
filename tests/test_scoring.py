"""Tests for category aggregation, composite total and letter grades."""

import pytest
from pydantic import ValidationError

from contract_grader.core.models import CategoryScore, GradeResult, ScoreContribution
from contract_grader.core.scoring import (
    LETTER_ORDER,
    aggregate_categories,
    composite_total,
    letter_grade,
    letter_rank,
    round_half_up,
)
from contract_grader.core.weights import WeightResolver


def _contrib(category: str, add: float, maximum: float) -> ScoreContribution:
    return ScoreContribution(category=category, add=add, max=maximum)


class TestLetterGrade:
    @pytest.mark.parametrize("total,letter", [
        (100, "A+"), (97, "A+"), (96, "A"), (93, "A"), (92, "A-"), (90, "A-"),
        (89, "B+"), (87, "B+"), (86, "B"), (83, "B"), (82, "B-"), (80, "B-"),
        (79, "C"), (70, "C"), (69, "D"), (60, "D"), (59, "F"), (0, "F"),
    ])
    def test_thresholds(self, total, letter):
        assert letter_grade(total) == letter

    def test_letters_are_monotonic_in_total(self):
        ranks = [letter_rank(t) for t in range(0, 101)]
        assert ranks == sorted(ranks)
        assert LETTER_ORDER[0] == "F" and LETTER_ORDER[-1] == "A+"

    def test_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(89.5) == 90
        assert round_half_up(89.49) == 89


class TestAggregate:
    def test_weights_scale_and_clamp(self):
        per = aggregate_categories(
            {"security": [("SEC-TENANCY", _contrib("security", 11, 15))]},
            WeightResolver(),
            "finance",
        )
        assert per["security"].earned == 15
        assert per["security"].percentage == 1.0

    def test_zero_max_category_is_full(self):
        per = aggregate_categories({"x": [("X", _contrib("x", 0, 0))]}, WeightResolver(), None)
        assert per["x"].percentage == 1.0
        assert per["x"].earned == 0

    def test_multiple_rules_share_category(self):
        per = aggregate_categories(
            {"http": [("A", _contrib("http", 3, 6)), ("B", _contrib("http", 2.5, 6))]},
            WeightResolver(),
            "general",
        )
        assert per["http"].earned == 5.5
        assert per["http"].max == 12
        assert per["http"].percentage == pytest.approx(0.4583)

    def test_earned_never_exceeds_max(self):
        with pytest.raises(ValidationError):
            CategoryScore(category="naming", earned=11, max=10, percentage=1.0)

    def test_composite_total_bounds(self):
        per = {
            "a": CategoryScore(category="a", earned=60.4, max=70, percentage=0.86),
            "b": CategoryScore(category="b", earned=29.2, max=30, percentage=0.97),
        }
        assert composite_total(per) == 90
        assert composite_total({}) == 0


class TestGradeResult:
    def test_gate_must_match_reasons(self):
        with pytest.raises(ValidationError):
            GradeResult(total=50, letter="F", compliance_pct=0.5, auto_fail_triggered=True, critical_issues=0)

    def test_camel_case_wire_format(self):
        grade = GradeResult(
            total=90, letter="A-", compliance_pct=0.9, auto_fail_triggered=False, critical_issues=0,
        )
        data = grade.to_json_dict()
        assert data["autoFailTriggered"] is False
        assert data["compliancePct"] == 0.9
        assert data["perCategory"] == {}
        assert data["autoFailReasons"] == []
