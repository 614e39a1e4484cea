"""Tests for grade comparison and structural diffs."""

import pytest

from contract_grader.core.comparison import (
    category_deltas,
    compare_grades,
    diff_documents,
    recommendation,
    score_improvement,
)
from contract_grader.core.loader import parse_spec_text
from contract_grader.core.models import CategoryScore, ChangeImpact, GradeResult
from contract_grader.core.pipeline import Grader


def _grade(total: int, categories: dict[str, tuple[float, float]]) -> GradeResult:
    return GradeResult(
        total=total,
        letter="F",
        compliance_pct=total / 100,
        auto_fail_triggered=False,
        critical_issues=0,
        per_category={
            name: CategoryScore(category=name, earned=earned, max=maximum, percentage=earned / maximum if maximum else 1.0)
            for name, (earned, maximum) in categories.items()
        },
    )


class TestCategoryDeltas:
    def test_percent_change_uses_baseline_max(self):
        baseline = _grade(60, {"naming": (6, 10)})
        candidate = _grade(64, {"naming": (10, 10)})
        (delta,) = category_deltas(baseline, candidate)
        assert delta.delta == 4
        assert delta.percent_change == 40.0

    def test_category_missing_on_one_side(self):
        baseline = _grade(0, {})
        candidate = _grade(8, {"pagination": (8, 8)})
        (delta,) = category_deltas(baseline, candidate)
        assert delta.baseline_earned == 0
        assert delta.percent_change == 100.0

    def test_zero_budget_both_sides(self):
        (delta,) = category_deltas(_grade(0, {"x": (0, 0)}), _grade(0, {"x": (0, 0)}))
        assert delta.percent_change == 0.0

    def test_sorted_by_magnitude(self):
        baseline = _grade(10, {"a": (5, 10), "b": (5, 10), "c": (5, 10)})
        candidate = _grade(10, {"a": (6, 10), "b": (1, 10), "c": (5, 10)})
        assert [d.category for d in category_deltas(baseline, candidate)] == ["b", "a", "c"]


class TestCompareGrades:
    @pytest.mark.asyncio
    async def test_swapping_negates_deltas(self, no_namespace_spec, compliant_spec):
        grader = Grader()
        before = (await grader.grade_document(no_namespace_spec)).report
        after = (await grader.grade_document(compliant_spec)).report

        forward = compare_grades(before.grade, after.grade, before.findings, after.findings)
        backward = compare_grades(after.grade, before.grade, after.findings, before.findings)

        assert forward.total_delta == -backward.total_delta
        for d in forward.category_deltas:
            assert backward.delta_for(d.category) == -d.delta
        assert forward.resolved_findings == backward.new_findings
        assert "NAME-NAMESPACE" in forward.resolved_findings
        assert forward.delta_for("naming") == 4

    def test_insights(self):
        baseline = _grade(60, {"naming": (6, 10)})
        candidate = _grade(64, {"naming": (10, 10)})
        insights = compare_grades(baseline, candidate).insights
        assert insights[0] == "Total score improved by 4 points (60 -> 64)"
        assert any(i.startswith("Category naming improved by 4 points") for i in insights)

    def test_unchanged(self):
        grade = _grade(50, {"naming": (5, 10)})
        result = compare_grades(grade, grade)
        assert result.insights == ["Total score unchanged at 50"]
        assert result.total_delta == 0


BASE = """\
openapi: 3.0.3
info: {title: Pets, version: 1.0.0}
paths:
  /api/v2/pets:
    get:
      parameters:
        - {name: tag, in: query, required: true}
      responses: {'200': {description: OK}}
  /api/v2/owners:
    get:
      responses: {'200': {description: OK}}
components:
  schemas:
    Pet:
      type: object
      required: [id]
  securitySchemes:
    OAuth2: {type: oauth2}
"""


class TestDiffDocuments:
    def test_identical(self):
        raw = parse_spec_text(BASE)
        diff = diff_documents(raw, raw)
        assert diff.change_impact == ChangeImpact.NONE
        assert not diff.has_breaking_changes

    def test_added_endpoint_is_minor(self):
        candidate = BASE.replace(
            "components:",
            "  /api/v2/vets:\n    get:\n      responses: {'200': {description: OK}}\ncomponents:",
        )
        diff = diff_documents(parse_spec_text(BASE), parse_spec_text(candidate))
        assert diff.endpoints_added == ["/api/v2/vets GET"]
        assert diff.change_impact == ChangeImpact.MINOR

    def test_removed_endpoint_is_breaking(self):
        candidate = BASE.replace(
            "  /api/v2/owners:\n    get:\n      responses: {'200': {description: OK}}\n", ""
        )
        diff = diff_documents(parse_spec_text(BASE), parse_spec_text(candidate))
        assert diff.endpoints_removed == ["/api/v2/owners GET"]
        assert [c.type for c in diff.breaking_changes] == ["endpoint_removed"]
        assert diff.change_impact == ChangeImpact.MAJOR

    def test_parameter_and_schema_changes(self):
        candidate = (
            BASE.replace("{name: tag, in: query, required: true}", "{name: owner, in: query, required: true}")
            .replace("required: [id]", "required: [id, name]")
            .replace("OAuth2: {type: oauth2}", "ApiKey: {type: apiKey, in: header, name: key}")
            .replace("version: 1.0.0", "version: 1.1.0")
        )
        diff = diff_documents(parse_spec_text(BASE), parse_spec_text(candidate))
        types = sorted(c.type for c in diff.breaking_changes)
        assert types == ["auth_changed", "parameter_removed", "parameter_required", "schema_incompatible"]
        assert diff.endpoints_modified == ["/api/v2/pets GET"]
        assert diff.schemas_modified == ["Pet"]
        assert diff.baseline_version == "1.0.0"
        assert diff.candidate_version == "1.1.0"

    def test_garbage_documents(self):
        diff = diff_documents(None, ["x"])
        assert diff.change_impact == ChangeImpact.NONE
        assert diff.baseline_version == "0.0.0"


class TestImprovement:
    def test_score_improvement(self):
        assert score_improvement(50, 60) == 20.0
        assert score_improvement(80, 60) == -25.0
        assert score_improvement(0, 50) == 0.0

    def test_recommendation(self):
        raw = parse_spec_text(BASE)
        diff = diff_documents(raw, raw)
        assert recommendation(15.0, diff).startswith("Excellent improvement (+15.0%)")
        assert recommendation(0.0, diff) == ""
        assert "Quality regression detected" in recommendation(-10.0, diff)
