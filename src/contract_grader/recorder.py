"""Grade-and-record: run the pipeline, then persist the run in one transaction."""

from __future__ import annotations

import logging
from typing import Optional

from .core.identity import new_run_id, spec_hash, template_hash
from .core.loader import ScoringTemplate, load_template, parse_spec_text
from .core.pipeline import Grader, GradedDocument, ProgressCallback, get_grader, notify, run_with_timeout
from .store import find_run_by_content, get_report, insert_run

logger = logging.getLogger(__name__)


async def _find_cached(
    grader: Grader, graded_text: str, template: ScoringTemplate, domain: Optional[str],
) -> Optional[dict]:
    """An earlier run with identical content, template, ruleset and domain, if one exists."""
    raw = parse_spec_text(graded_text)
    resolved_domain, _ = grader.resolve_domain(domain, template, raw)
    existing = await find_run_by_content(
        spec_hash(raw, graded_text),
        template_hash(template.document),
        grader.ruleset_hash(template),
        resolved_domain,
    )
    if existing is None:
        return None
    report = await get_report(existing.run_id)
    if report is None:
        return None
    logger.info("Reusing run %s for identical content", existing.run_id)
    return {**report.to_json_dict(), "runId": existing.run_id, "apiId": existing.api_id, "cached": True}


async def _grade_and_record(
    grader: Grader,
    source: str,
    template_path: Optional[str],
    domain: Optional[str],
    progress: Optional[ProgressCallback],
    reuse_existing: bool,
) -> dict:
    template = load_template(template_path)
    text = await grader.load_source(source, progress)

    if reuse_existing:
        cached = await _find_cached(grader, text, template, domain)
        if cached is not None:
            await notify(progress, "done", 100, "Reused an identical earlier run")
            return cached

    graded: GradedDocument = await grader.grade_document(
        text, template, domain, progress, source=source,
    )
    run_id = new_run_id()
    await notify(progress, "persist", 95, f"Recording run {run_id}")
    await insert_run(graded.report, run_id)
    await notify(progress, "done", 100, "Run recorded")
    return {**graded.report.to_json_dict(), "runId": run_id, "apiId": graded.report.api_id, "cached": False}


async def grade_and_record(
    source: str,
    template_path: Optional[str] = None,
    domain: Optional[str] = None,
    progress: Optional[ProgressCallback] = None,
    reuse_existing: bool = False,
    timeout: Optional[float] = None,
    grader: Optional[Grader] = None,
) -> dict:
    """Grade a file or URL and persist the run.

    Grading and persistence share one deadline. If it expires the whole call is
    cancelled; the run is written in a single transaction, so a cancelled call
    records nothing.

    Raises:
        GradingTimeout: The deadline elapsed.
        StoreError: The run could not be recorded.
    """
    return await run_with_timeout(
        _grade_and_record(grader or get_grader(), source, template_path, domain, progress, reuse_existing),
        timeout,
    )
