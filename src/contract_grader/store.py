"""Run store: persistence and queries for recorded gradings.

Every public coroutine wraps SQLAlchemy failures in ``StoreError`` so tools can
report them as error results. A run and everything hanging off it is written in
a single transaction; a failed or cancelled write leaves nothing behind.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .core.errors import StoreError
from .core.models import GradeReport, RunRecord, ViolationCount
from .db import get_session_factory
from .sqlmodels import ApiRecord, CheckpointScoreRecord, FindingRecord, GradingRun

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into naive UTC."""
    return to_naive_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))


@asynccontextmanager
async def _session(operation: str) -> AsyncIterator[AsyncSession]:
    session_factory = get_session_factory()
    try:
        async with session_factory() as session:
            yield session
    except SQLAlchemyError as e:
        logger.error("Store operation %s failed: %s", operation, e)
        raise StoreError(f"Run store {operation} failed: {e}") from e


def _to_record(row: GradingRun) -> RunRecord:
    return RunRecord(
        run_id=row.run_id,
        api_id=row.api_id,
        graded_at=row.graded_at,
        total_score=row.total_score,
        letter_grade=row.letter_grade,
        compliance_pct=row.compliance_pct,
        auto_fail=row.auto_fail,
        critical_issues=row.critical_issues,
        findings_count=row.findings_count,
        template_version=row.template_version,
        spec_hash=row.spec_hash,
        template_hash=row.template_hash,
        ruleset_hash=row.ruleset_hash,
        domain=row.domain,
    )


async def insert_run(report: GradeReport, run_id: str) -> RunRecord:
    """Persist one graded report (api upsert, run, findings, checkpoints) atomically."""
    graded_at = parse_timestamp(report.metadata.graded_at)
    grade = report.grade

    async with _session("insert_run") as session:
        api = await session.get(ApiRecord, report.api_id)
        if api is None:
            session.add(ApiRecord(
                api_id=report.api_id,
                title=report.title,
                domain=report.metadata.domain,
                first_seen=graded_at,
                last_seen=graded_at,
            ))
        else:
            api.title = report.title or api.title
            api.domain = report.metadata.domain
            api.last_seen = max(api.last_seen, graded_at)

        run = GradingRun(
            run_id=run_id,
            api_id=report.api_id,
            graded_at=graded_at,
            total_score=grade.total,
            letter_grade=grade.letter,
            compliance_pct=grade.compliance_pct,
            auto_fail=grade.auto_fail_triggered,
            critical_issues=grade.critical_issues,
            findings_count=len(report.findings),
            template_version=report.metadata.template_version,
            spec_hash=report.metadata.spec_hash,
            template_hash=report.metadata.template_hash,
            ruleset_hash=report.metadata.ruleset_hash,
            domain=report.metadata.domain,
            json_report=json.dumps(report.to_json_dict()),
        )
        session.add(run)
        # The run row must exist before rows that reference it.
        await session.flush()

        session.add_all(
            FindingRecord(
                run_id=run_id,
                rule_id=f.rule_id,
                severity=f.severity.value,
                json_path=f.json_path,
                message=f.message,
                category=f.category,
            )
            for f in report.findings
        )
        session.add_all(
            CheckpointScoreRecord(
                run_id=run_id,
                checkpoint_id=cp.checkpoint_id,
                category=cp.category,
                max_points=cp.max_points,
                scored_points=cp.scored_points,
            )
            for cp in report.checkpoints
        )
        await session.commit()
        record = _to_record(run)

    logger.info("Recorded run %s for %s (%d findings)", run_id, report.api_id, len(report.findings))
    return record


async def get_history(
    api_id: str,
    limit: int = DEFAULT_HISTORY_LIMIT,
    since: Optional[datetime] = None,
) -> list[RunRecord]:
    """Runs of one API, most recent first."""
    async with _session("get_history") as session:
        query = select(GradingRun).where(GradingRun.api_id == api_id)
        if since is not None:
            query = query.where(GradingRun.graded_at >= to_naive_utc(since))
        query = query.order_by(desc(GradingRun.graded_at), desc(GradingRun.run_id)).limit(max(limit, 0))
        result = await session.execute(query)
        rows = result.scalars().all()
    return [_to_record(r) for r in rows]


async def get_run(run_id: str) -> Optional[RunRecord]:
    async with _session("get_run") as session:
        row = await session.get(GradingRun, run_id)
    return _to_record(row) if row else None


async def get_report(run_id: str) -> Optional[GradeReport]:
    """The full report stored with a run."""
    async with _session("get_report") as session:
        row = await session.get(GradingRun, run_id)
    if row is None or not row.json_report:
        return None
    return GradeReport.model_validate(json.loads(row.json_report))


async def find_run_by_content(
    spec_hash: str,
    template_hash: str,
    ruleset_hash: str,
    domain: str,
) -> Optional[RunRecord]:
    """Most recent run graded from exactly this content, template and ruleset in ``domain``.

    The content hashes do not cover the domain, so it is matched separately.
    """
    async with _session("find_run_by_content") as session:
        result = await session.execute(
            select(GradingRun)
            .where(
                GradingRun.spec_hash == spec_hash,
                GradingRun.template_hash == template_hash,
                GradingRun.ruleset_hash == ruleset_hash,
                GradingRun.domain == domain,
            )
            .order_by(desc(GradingRun.graded_at), desc(GradingRun.run_id))
            .limit(1)
        )
        row = result.scalars().first()
    return _to_record(row) if row else None


async def get_findings_for_runs(run_ids: Iterable[str]) -> dict[str, list[str]]:
    """Run id -> rule ids of its findings. Runs without findings map to an empty list."""
    ids = list(run_ids)
    findings: dict[str, list[str]] = {run_id: [] for run_id in ids}
    if not ids:
        return findings
    async with _session("get_findings_for_runs") as session:
        result = await session.execute(
            select(FindingRecord.run_id, FindingRecord.rule_id)
            .where(FindingRecord.run_id.in_(ids))
            .order_by(FindingRecord.id)
        )
        for run_id, rule_id in result:
            findings[run_id].append(rule_id)
    return findings


async def top_violations(limit: int = 10, api_id: Optional[str] = None) -> list[ViolationCount]:
    """Rule ids across all stored runs by number of runs they occur in, ties by rule id."""
    runs = func.count(func.distinct(FindingRecord.run_id)).label("runs")
    occurrences = func.count(FindingRecord.id).label("occurrences")
    query = select(FindingRecord.rule_id, runs, occurrences)
    if api_id:
        query = query.join(GradingRun, GradingRun.run_id == FindingRecord.run_id).where(GradingRun.api_id == api_id)
    query = query.group_by(FindingRecord.rule_id).order_by(desc(runs), FindingRecord.rule_id).limit(max(limit, 0))

    async with _session("top_violations") as session:
        result = await session.execute(query)
        rows = result.all()
    return [ViolationCount(rule_id=r.rule_id, runs=r.runs, occurrences=r.occurrences) for r in rows]


async def count_runs(api_id: Optional[str] = None) -> int:
    query = select(func.count(GradingRun.run_id))
    if api_id:
        query = query.where(GradingRun.api_id == api_id)
    async with _session("count_runs") as session:
        result = await session.execute(query)
        return int(result.scalar_one())
