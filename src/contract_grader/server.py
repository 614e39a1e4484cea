"""Contract Grader MCP Server.

FastMCP server exposing the grading pipeline, run history and comparison tools.
Run: contract-grader-mcp
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from . import __version__
from .core import fixes
from .core.checkpoints import list_checkpoints as checkpoint_table
from .core.comparison import compare_grades, diff_documents, recommendation, score_improvement
from .core.compliance import map_requirements, validate_compliance
from .core.domain import detect_domain
from .core.errors import GraderError
from .core.identity import INSTANCE_ID, INSTANCE_START_TIME, generate_api_id as new_api_id, template_hash
from .core.loader import load_template, parse_spec_text
from .core.models import GradeResult
from .core.pipeline import GradedDocument, get_grader, run_with_timeout
from .core.scoring import SCORING_ENGINE
from .db import close_db, init_db
from .history import get_api_history as api_history
from .recorder import grade_and_record as record_grade
from .store import count_runs, get_report, parse_timestamp
from .store import top_violations as stored_top_violations

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=False)
FETCHING = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=True)
RECORDING = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=False, openWorldHint=True)


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Configure logging and initialize the run store."""
    level = os.environ.get("GRADER_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    await init_db()
    try:
        yield
    finally:
        await close_db()


mcp = FastMCP(
    "Contract Grader",
    instructions="Grade OpenAPI contracts against a weighted ruleset: category scores, letter grade, auto-fail gate, fix suggestions, run history and version comparison.",
    lifespan=lifespan,
)


def _log_progress(stage: str, percent: int, note: str) -> None:
    logger.debug("[%3d%%] %s: %s", percent, stage, note)


def _grade_summary(grade: GradeResult, findings: int) -> str:
    summary = f"Score {grade.total}/100 ({grade.letter}), {findings} findings, {grade.critical_issues} critical."
    if grade.auto_fail_triggered:
        summary += " AUTO-FAIL: " + "; ".join(grade.auto_fail_reasons)
    return summary


def _graded_payload(graded: GradedDocument) -> dict:
    payload = graded.report.to_json_dict()
    if graded.detection is not None:
        payload["domainDetection"] = graded.detection.to_json_dict()
    payload["summary"] = _grade_summary(graded.report.grade, len(graded.report.findings))
    return payload


# ─── Tool 1: Version ─────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def version() -> dict:
    """Server version, scoring engine, process instance and the active ruleset/template identity."""
    grader = get_grader()
    template = load_template()
    ruleset = grader.ruleset_hash(template)
    return {
        "serverVersion": __version__,
        "scoringEngine": SCORING_ENGINE,
        "instanceId": INSTANCE_ID,
        "instanceStartTime": INSTANCE_START_TIME,
        "rulesetHash": ruleset,
        "templateVersion": template.version,
        "templateHash": template_hash(template.document),
        "summary": f"Contract Grader {__version__} ({SCORING_ENGINE}), ruleset {ruleset[:12]}.",
    }


# ─── Tool 2: Checkpoints ─────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def list_checkpoints() -> dict:
    """The named scoring checkpoints: id, category, weight, auto-fail flag and description."""
    checkpoints = checkpoint_table()
    auto_fail = [c["id"] for c in checkpoints if c["autoFail"]]
    return {
        "checkpoints": checkpoints,
        "total_weight": sum(c["weight"] for c in checkpoints),
        "summary": f"{len(checkpoints)} checkpoints; auto-fail on {', '.join(auto_fail)}.",
    }


# ─── Tool 3: Grade a file or URL ─────────────────────────────────────────────


@mcp.tool(annotations=FETCHING)
async def grade_contract(path: str, template_path: Optional[str] = None, domain: Optional[str] = None) -> dict:
    """Grade an OpenAPI document from a file path or http(s) URL.

    Args:
        path: Filesystem path or http(s):// URL of a YAML or JSON OpenAPI document.
        template_path: Optional scoring template file. Defaults to GRADER_TEMPLATE_PATH or the built-in template.
        domain: Business domain for weighting (e.g. 'finance', 'healthcare'), or 'auto' to detect it.
    """
    grader = get_grader()
    graded = await run_with_timeout(grader.grade_source(path, template_path, domain, _log_progress))
    return _graded_payload(graded)


# ─── Tool 4: Grade inline content ────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def grade_inline(content: str, template_path: Optional[str] = None, domain: Optional[str] = None) -> dict:
    """Grade an OpenAPI document passed as YAML or JSON text.

    Args:
        content: The OpenAPI document text.
        template_path: Optional scoring template file.
        domain: Business domain for weighting, or 'auto' to detect it.
    """
    grader = get_grader()
    graded = await run_with_timeout(
        grader.grade_document(content, load_template(template_path), domain, _log_progress)
    )
    return _graded_payload(graded)


# ─── Tool 5: Grade and record (Stateful) ─────────────────────────────────────


@mcp.tool(annotations=RECORDING)
async def grade_and_record(
    path: str,
    template_path: Optional[str] = None,
    domain: Optional[str] = None,
    reuse_existing: bool = False,
) -> dict:
    """Grade a file or URL and record the run in history.

    Args:
        path: Filesystem path or http(s):// URL of the OpenAPI document.
        template_path: Optional scoring template file.
        domain: Business domain for weighting, or 'auto' to detect it.
        reuse_existing: Return an earlier run with identical content, template and ruleset instead of regrading.
    """
    result = await record_grade(path, template_path, domain, _log_progress, reuse_existing)
    grade = GradeResult.model_validate(result["grade"])
    note = " (reused)" if result.get("cached") else ""
    result["summary"] = f"Run {result['runId']}{note} for {result['apiId']}. " + _grade_summary(grade, len(result["findings"]))
    return result


# ─── Tool 6: Compare two versions ────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def compare_api_versions(
    baseline_content: str,
    candidate_content: str,
    domain: Optional[str] = None,
) -> dict:
    """Compare two versions of an API: category score deltas, endpoint/schema diff and breaking changes.

    Args:
        baseline_content: The earlier OpenAPI document (YAML or JSON).
        candidate_content: The newer OpenAPI document (YAML or JSON).
        domain: Business domain for weighting both gradings.
    """
    grader = get_grader()
    template = load_template()
    baseline, candidate = await run_with_timeout(asyncio.gather(
        grader.grade_document(baseline_content, template, domain, source="baseline"),
        grader.grade_document(candidate_content, template, domain, source="candidate"),
    ))
    comparison = compare_grades(
        baseline.report.grade, candidate.report.grade, baseline.report.findings, candidate.report.findings,
    )
    diff = diff_documents(baseline.raw, candidate.raw)
    improvement = score_improvement(comparison.baseline_total, comparison.candidate_total)
    advice = recommendation(improvement, diff)

    summary = (
        f"{diff.baseline_version} -> {diff.candidate_version}: score {comparison.baseline_total} -> "
        f"{comparison.candidate_total} ({comparison.total_delta:+d}), impact {diff.change_impact.value}"
    )
    if diff.breaking_changes:
        summary += f", {len(diff.breaking_changes)} breaking change(s)"
    return {
        "comparison": comparison.to_json_dict(),
        "diff": diff.to_json_dict(),
        "hasBreakingChanges": diff.has_breaking_changes,
        "scoreImprovement": improvement,
        "recommendation": advice,
        "summary": summary + ".",
    }


# ─── Tool 7: Compare two recorded runs (Stateful) ────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def compare_runs(baseline_run_id: str, candidate_run_id: str) -> dict:
    """Compare two recorded runs category by category.

    Args:
        baseline_run_id: Run id of the earlier grading.
        candidate_run_id: Run id of the later grading.
    """
    baseline = await get_report(baseline_run_id)
    candidate = await get_report(candidate_run_id)
    missing = [rid for rid, r in ((baseline_run_id, baseline), (candidate_run_id, candidate)) if r is None]
    if missing:
        raise GraderError(f"Unknown run id(s): {', '.join(missing)}")

    comparison = compare_grades(baseline.grade, candidate.grade, baseline.findings, candidate.findings)
    return {
        "baselineRunId": baseline_run_id,
        "candidateRunId": candidate_run_id,
        "comparison": comparison.to_json_dict(),
        "summary": "; ".join(comparison.insights[:3]) + ".",
    }


# ─── Tool 8: History (Stateful) ──────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def get_api_history(api_id: str, limit: int = 20, since: Optional[str] = None) -> dict:
    """Recorded runs for one API, most recent first, with score trend and recurring violations.

    Args:
        api_id: API identity (x-api-id, or the urn returned by grade_and_record).
        limit: Maximum runs to return. Default 20.
        since: Optional ISO-8601 timestamp; only runs graded at or after it.
    """
    since_dt = None
    if since:
        try:
            since_dt = parse_timestamp(since)
        except ValueError as e:
            raise GraderError(f"Invalid since timestamp {since!r}: expected ISO-8601") from e
    return await api_history(api_id, limit=limit, since=since_dt)


# ─── Tool 9: Top violations (Stateful) ───────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def top_violations(limit: int = 10, api_id: Optional[str] = None) -> dict:
    """Most frequent finding rule ids across recorded runs.

    Args:
        limit: Maximum rule ids to return. Default 10.
        api_id: Restrict to the runs of one API.
    """
    violations = await stored_top_violations(limit=limit, api_id=api_id)
    total_runs = await count_runs(api_id)
    scope = f"for {api_id}" if api_id else "across all APIs"
    if violations:
        summary = (
            f"Top violations {scope} over {total_runs} run(s): "
            + ", ".join(f"{v.rule_id} ({v.runs} runs)" for v in violations[:5]) + "."
        )
    else:
        summary = f"No recorded findings {scope}."
    return {
        "violations": [v.to_json_dict() for v in violations],
        "total_runs": total_runs,
        "summary": summary,
    }


# ─── Tool 10: Explain ────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def explain_finding(rule_id: str) -> dict:
    """Explain a finding or checkpoint id: what it checks, severity, weight, auto-fail and fix availability.

    Args:
        rule_id: Finding or checkpoint id, e.g. 'NAME-NAMESPACE' or 'PAG-OFFSET'.
    """
    explanation = fixes.explain_rule(rule_id, get_grader().registry)
    if explanation is None:
        return {"ruleId": rule_id, "found": False, "summary": f"Unknown rule id {rule_id}."}
    flags = [f for f, on in (("auto-fail", explanation["autoFail"]), ("critical", explanation["critical"])) if on]
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return {
        **explanation,
        "found": True,
        "summary": f"{rule_id} ({explanation['category']}): {explanation['description']}{suffix}",
    }


# ─── Tool 11: Suggest fixes ──────────────────────────────────────────────────


@mcp.tool(annotations=FETCHING)
async def suggest_fixes(path: Optional[str] = None, content: Optional[str] = None, domain: Optional[str] = None) -> dict:
    """Grade a document and propose patches for the findings that have known fixes.

    Args:
        path: Filesystem path or http(s):// URL of the document.
        content: Document text, used when no path is given.
        domain: Business domain for weighting, or 'auto'.
    """
    if not path and content is None:
        raise GraderError("Provide either path or content")
    grader = get_grader()
    if path:
        graded = await run_with_timeout(grader.grade_source(path, domain=domain))
    else:
        graded = await run_with_timeout(grader.grade_document(content, domain=domain))

    items = fixes.suggest_fixes(graded.report.findings, graded.text, graded.raw)
    return {
        "fixes": [i.to_json_dict() for i in items],
        "total_fixes": len(items),
        "summary": f"{len(items)} fix(es) for {len(graded.report.findings)} findings ({graded.report.grade.total}/100).",
    }


# ─── Tool 12: Domain detection ───────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def detect_api_domain(
    content: str,
    data_classification: Optional[str] = None,
    criticality: Optional[str] = None,
    geographic_scope: Optional[str] = None,
) -> dict:
    """Detect the business domain of an OpenAPI document and the compliance regimes that apply.

    Args:
        content: The OpenAPI document text.
        data_classification: Optional data sensitivity, e.g. 'restricted'.
        criticality: Optional business criticality, e.g. 'critical'.
        geographic_scope: Optional deployment scope, e.g. 'global'.
    """
    raw = parse_spec_text(content)
    detection = detect_domain(raw)
    mapped = map_requirements(
        detection.domain,
        data_classification=data_classification,
        criticality=criticality,
        geographic_scope=geographic_scope,
    )
    validation = validate_compliance(raw, mapped)
    regimes = ", ".join(detection.compliance_requirements) or "none"
    return {
        **detection.to_json_dict(),
        "requirements": mapped.to_json_dict(),
        "validation": validation,
        "summary": (
            f"{detection.domain} (confidence {detection.confidence:.2f}); compliance: {regimes}; "
            f"{len(validation['violations'])} blocking gap(s), {len(validation['warnings'])} warning(s)."
        ),
    }


# ─── Tool 13: API id ─────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def generate_api_id(prefix: str = "api") -> dict:
    """Generate a fresh x-api-id value to tag a document so its history survives title changes.

    Args:
        prefix: Lowercase alphanumeric prefix. Default 'api'.
    """
    api_id = new_api_id(prefix)
    return {
        "apiId": api_id,
        "summary": f"Add `x-api-id: {api_id}` under info to track this API across renames.",
    }


def main():
    """Entry point for the CLI command."""
    mcp.run()


if __name__ == "__main__":
    main()
