"""Comparison engine: grade deltas between two runs and structural diffs between two documents.

Percent change uses the baseline category maximum as its denominator. When the
baseline has no budget for a category the candidate maximum is used, and when
neither does the percent change is 0.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from .identity import canonical_json
from .models import (
    BreakingChange,
    CategoryDelta,
    CategoryScore,
    ChangeImpact,
    Finding,
    GradeComparison,
    GradeResult,
    SpecDiff,
)
from .spec_node import OpenAPIDocument, SpecNode

# Categories whose delta is at most this large (in points) are reported as unchanged.
NOISE_THRESHOLD = 0.01


def _delta(category: str, baseline: Optional[CategoryScore], candidate: Optional[CategoryScore]) -> CategoryDelta:
    b_earned = baseline.earned if baseline else 0.0
    c_earned = candidate.earned if candidate else 0.0
    b_max = baseline.max if baseline else 0.0
    c_max = candidate.max if candidate else 0.0
    delta = round(c_earned - b_earned, 2)
    denominator = b_max or c_max
    percent = round(delta / denominator * 100, 2) if denominator else 0.0
    return CategoryDelta(
        category=category,
        baseline_earned=b_earned,
        candidate_earned=c_earned,
        baseline_max=b_max,
        candidate_max=c_max,
        delta=delta,
        percent_change=percent,
    )


def category_deltas(baseline: GradeResult, candidate: GradeResult) -> list[CategoryDelta]:
    """One delta per category present in either grade, largest movement first."""
    categories = set(baseline.per_category) | set(candidate.per_category)
    deltas = [
        _delta(c, baseline.per_category.get(c), candidate.per_category.get(c))
        for c in categories
    ]
    deltas.sort(key=lambda d: (-abs(d.delta), d.category))
    return deltas


def _insights(baseline: GradeResult, candidate: GradeResult, deltas: list[CategoryDelta]) -> list[str]:
    insights = []
    total_delta = candidate.total - baseline.total
    if total_delta > 0:
        insights.append(f"Total score improved by {total_delta} points ({baseline.total} -> {candidate.total})")
    elif total_delta < 0:
        insights.append(f"Total score regressed by {-total_delta} points ({baseline.total} -> {candidate.total})")
    else:
        insights.append(f"Total score unchanged at {candidate.total}")

    if baseline.letter != candidate.letter:
        insights.append(f"Letter grade changed from {baseline.letter} to {candidate.letter}")

    if candidate.auto_fail_triggered and not baseline.auto_fail_triggered:
        insights.append("Candidate now triggers auto-fail: " + "; ".join(candidate.auto_fail_reasons))
    elif baseline.auto_fail_triggered and not candidate.auto_fail_triggered:
        insights.append("Candidate clears every auto-fail condition")

    for d in deltas:
        if abs(d.delta) <= NOISE_THRESHOLD:
            continue
        direction = "improved" if d.delta > 0 else "regressed"
        insights.append(f"Category {d.category} {direction} by {abs(d.delta):g} points ({d.percent_change:+.1f}%)")
    return insights


def compare_grades(
    baseline: GradeResult,
    candidate: GradeResult,
    baseline_findings: Iterable[Finding] = (),
    candidate_findings: Iterable[Finding] = (),
) -> GradeComparison:
    """Per-category deltas and insights, candidate minus baseline.

    Swapping the arguments negates every category delta.
    """
    deltas = category_deltas(baseline, candidate)
    before = {f.rule_id for f in baseline_findings}
    after = {f.rule_id for f in candidate_findings}
    return GradeComparison(
        baseline_total=baseline.total,
        candidate_total=candidate.total,
        total_delta=candidate.total - baseline.total,
        baseline_letter=baseline.letter,
        candidate_letter=candidate.letter,
        category_deltas=deltas,
        insights=_insights(baseline, candidate, deltas),
        new_findings=sorted(after - before),
        resolved_findings=sorted(before - after),
    )


# ─── Structural diff ──────────────────────────────────────────────────────────


def _endpoints(doc: OpenAPIDocument) -> dict[str, SpecNode]:
    return {f"{op.path} {op.method.upper()}": op.node for op in doc.operations()}


def _same(a: SpecNode, b: SpecNode) -> bool:
    try:
        return canonical_json(a.value) == canonical_json(b.value)
    except (ValueError, RecursionError):
        return a.value is b.value


def _params(doc: OpenAPIDocument, endpoint: str) -> dict[tuple[str, str], bool]:
    """(name, in) -> required, for one endpoint's declared parameters."""
    path, method = endpoint.rsplit(" ", 1)
    params = {}
    for op in doc.operations():
        if op.path == path and op.method == method.lower():
            for param in op.parameters():
                resolved = param.resolve()
                name = resolved.get("name").text()
                if name:
                    params[(name, resolved.get("in").text())] = resolved.get("required").value is True
    return params


def _breaking_changes(
    baseline: OpenAPIDocument,
    candidate: OpenAPIDocument,
    removed: list[str],
    modified: list[str],
    schemas_modified: list[str],
) -> list[BreakingChange]:
    changes = [
        BreakingChange(
            type="endpoint_removed",
            path=endpoint,
            description=f"Endpoint {endpoint} was removed",
            severity="high",
            migration_hint="Clients using this endpoint will need to be updated",
        )
        for endpoint in removed
    ]

    for endpoint in modified:
        before = _params(baseline, endpoint)
        after = _params(candidate, endpoint)
        for (name, location), required in sorted(before.items()):
            if required and (name, location) not in after:
                changes.append(BreakingChange(
                    type="parameter_removed",
                    path=endpoint,
                    description=f"Required parameter '{name}' removed from {endpoint}",
                    severity="high",
                    migration_hint=f"Remove '{name}' from client requests",
                ))
        for (name, location), required in sorted(after.items()):
            if required and not before.get((name, location), False):
                changes.append(BreakingChange(
                    type="parameter_required",
                    path=endpoint,
                    description=f"Parameter '{name}' ({location}) is now required on {endpoint}",
                    severity="medium",
                    migration_hint=f"Send '{name}' on every request to {endpoint}",
                ))

    base_schemas = baseline.components.get("schemas")
    cand_schemas = candidate.components.get("schemas")
    for name in schemas_modified:
        before_required = base_schemas.get(name).resolve().get("required")
        after_required = cand_schemas.get(name).resolve().get("required")
        if not (before_required.is_list and after_required.is_list):
            continue
        known = {f.text() for f in before_required}
        for field in after_required:
            if field.text() and field.text() not in known:
                changes.append(BreakingChange(
                    type="schema_incompatible",
                    path=f"#/components/schemas/{name}",
                    description=f"Schema '{name}' has new required field '{field.text()}'",
                    severity="medium",
                    migration_hint=f"Add '{field.text()}' to requests using {name}",
                ))

    base_auth = baseline.components.get("securitySchemes")
    cand_auth = candidate.components.get("securitySchemes")
    if base_auth.is_mapping and cand_auth.is_mapping:
        for scheme in base_auth.keys():
            if scheme not in cand_auth:
                changes.append(BreakingChange(
                    type="auth_changed",
                    description=f"Authentication scheme '{scheme}' was removed",
                    severity="high",
                    migration_hint="Update authentication implementation",
                ))
    return changes


def change_impact(diff: SpecDiff) -> ChangeImpact:
    if diff.breaking_changes:
        return ChangeImpact.MAJOR
    if diff.endpoints_added or diff.schemas_added:
        return ChangeImpact.MINOR
    if diff.endpoints_modified or diff.schemas_modified:
        return ChangeImpact.PATCH
    return ChangeImpact.NONE


def diff_documents(baseline_raw: Any, candidate_raw: Any) -> SpecDiff:
    """Endpoint and schema differences between two parsed documents."""
    baseline = OpenAPIDocument(baseline_raw)
    candidate = OpenAPIDocument(candidate_raw)

    before = _endpoints(baseline)
    after = _endpoints(candidate)
    added = sorted(set(after) - set(before))
    removed = sorted(set(before) - set(after))
    modified = sorted(e for e in set(before) & set(after) if not _same(before[e], after[e]))

    base_schemas = baseline.components.get("schemas")
    cand_schemas = candidate.components.get("schemas")
    schema_names_before = set(base_schemas.keys())
    schema_names_after = set(cand_schemas.keys())
    schemas_modified = sorted(
        n for n in schema_names_before & schema_names_after
        if not _same(base_schemas.get(n), cand_schemas.get(n))
    )

    diff = SpecDiff(
        baseline_version=baseline.info.get("version").text("0.0.0"),
        candidate_version=candidate.info.get("version").text("0.0.0"),
        endpoints_added=added,
        endpoints_removed=removed,
        endpoints_modified=modified,
        schemas_added=sorted(schema_names_after - schema_names_before),
        schemas_removed=sorted(schema_names_before - schema_names_after),
        schemas_modified=schemas_modified,
        breaking_changes=_breaking_changes(baseline, candidate, removed, modified, schemas_modified),
    )
    return diff.model_copy(update={"change_impact": change_impact(diff)})


def score_improvement(baseline_total: int, candidate_total: int) -> float:
    """Relative change of the total, in percent of the baseline total."""
    if baseline_total <= 0:
        return 0.0
    return round((candidate_total - baseline_total) / baseline_total * 100, 1)


def recommendation(improvement: float, diff: SpecDiff) -> str:
    parts = []
    if diff.breaking_changes:
        parts.append(
            f"This version introduces {len(diff.breaking_changes)} breaking change(s). "
            "Consider a major version bump and provide a migration guide."
        )
    if improvement > 10:
        parts.append(f"Excellent improvement (+{improvement:.1f}%). This version significantly enhances API quality.")
    elif improvement > 0:
        parts.append(f"Good progress (+{improvement:.1f}%). Continue iterating on quality improvements.")
    elif improvement < -5:
        parts.append(
            f"Quality regression detected ({improvement:.1f}%). "
            "Review changes to ensure they don't compromise API quality."
        )

    bump = {
        ChangeImpact.MAJOR: "Recommend major version bump (X.0.0)",
        ChangeImpact.MINOR: "Recommend minor version bump (x.Y.0)",
        ChangeImpact.PATCH: "Recommend patch version bump (x.y.Z)",
    }.get(diff.change_impact)
    if bump:
        parts.append(bump)
    return " ".join(parts)
