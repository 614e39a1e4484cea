"""History tracker: run history, trend and recurring violations for one API. Read-only."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from .core.models import TrendDirection
from .core.trends import top_recurring_violations, trend_for_runs
from .store import DEFAULT_HISTORY_LIMIT, get_findings_for_runs, get_history

logger = logging.getLogger(__name__)

TOP_VIOLATIONS = 5


async def get_api_history(
    api_id: str,
    limit: int = DEFAULT_HISTORY_LIMIT,
    since: Optional[datetime] = None,
    top: int = TOP_VIOLATIONS,
) -> dict:
    """Runs most recent first, with the score trend and the most frequent violations in the window."""
    rows = await get_history(api_id, limit=limit, since=since)
    findings = await get_findings_for_runs(r.run_id for r in rows)
    trend = trend_for_runs(rows)
    violations = top_recurring_violations(findings, limit=top)
    logger.debug("History for %s: %d runs, trend %s", api_id, len(rows), trend.value)

    return {
        "apiId": api_id,
        "rows": [r.to_json_dict() for r in rows],
        "trend": trend.value,
        "topViolations": [v.to_json_dict() for v in violations],
        "summary": _history_summary(api_id, rows, trend, violations),
    }


def _history_summary(api_id: str, rows: list, trend: TrendDirection, violations: list) -> str:
    if not rows:
        return f"No recorded runs for {api_id}."
    latest = rows[0]
    summary = (
        f"{len(rows)} run(s) for {api_id}. Latest: {latest.total_score} ({latest.letter_grade})"
        f"{', auto-fail' if latest.auto_fail else ''}. Trend: {trend.value}."
    )
    if violations:
        summary += " Most frequent: " + ", ".join(f"{v.rule_id} ({v.runs} runs)" for v in violations[:3]) + "."
    return summary
