"""Tests for the run store, history tracker and grade-and-record."""

import asyncio
from datetime import datetime

import pytest
import pytest_asyncio

from contract_grader.core.errors import GradingTimeout, SpecLoadError, StoreError
from contract_grader.core.models import TrendDirection
from contract_grader.core.pipeline import Grader
from contract_grader.db import close_db
from contract_grader.history import get_api_history
from contract_grader.recorder import grade_and_record
from contract_grader.store import (
    count_runs,
    find_run_by_content,
    get_findings_for_runs,
    get_history,
    get_report,
    get_run,
    insert_run,
    parse_timestamp,
    top_violations,
)


async def _graded_report(text: str, graded_at: str):
    report = (await Grader().grade_document(text)).report
    return report.model_copy(update={"metadata": report.metadata.model_copy(update={"graded_at": graded_at})})


class TestTimestamps:
    def test_parse_utc_suffix(self):
        assert parse_timestamp("2026-03-01T10:00:00Z") == datetime(2026, 3, 1, 10, 0, 0)

    def test_parse_offset_converts_to_utc(self):
        assert parse_timestamp("2026-03-01T12:00:00+02:00") == datetime(2026, 3, 1, 10, 0, 0)

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")


class TestStore:
    @pytest.mark.asyncio
    async def test_insert_and_read_back(self, store, no_namespace_spec):
        report = await _graded_report(no_namespace_spec, "2026-03-01T10:00:00+00:00")
        record = await insert_run(report, "run_000000000001")

        assert record.total_score == report.grade.total
        assert record.findings_count == len(report.findings)
        assert record.auto_fail is True

        fetched = await get_run("run_000000000001")
        assert fetched.spec_hash == report.metadata.spec_hash
        assert fetched.graded_at == datetime(2026, 3, 1, 10, 0, 0)

        stored = await get_report("run_000000000001")
        assert stored.to_json_dict() == report.to_json_dict()

    @pytest.mark.asyncio
    async def test_unknown_run(self, store):
        assert await get_run("run_missing") is None
        assert await get_report("run_missing") is None

    @pytest.mark.asyncio
    async def test_history_most_recent_first(self, store, no_namespace_spec):
        for i, day in enumerate((1, 3, 2)):
            report = await _graded_report(no_namespace_spec, f"2026-03-0{day}T10:00:00+00:00")
            await insert_run(report, f"run_00000000000{i}")

        api_id = report.api_id
        history = await get_history(api_id)
        assert [r.graded_at.day for r in history] == [3, 2, 1]

        limited = await get_history(api_id, limit=2)
        assert len(limited) == 2

        since = await get_history(api_id, since=parse_timestamp("2026-03-02T00:00:00Z"))
        assert [r.graded_at.day for r in since] == [3, 2]

        assert await get_history("urn:contract-grader:api:nothing") == []
        assert await count_runs(api_id) == 3
        assert await count_runs() == 3

    @pytest.mark.asyncio
    async def test_find_by_content(self, store, compliant_spec):
        report = await _graded_report(compliant_spec, "2026-03-01T10:00:00+00:00")
        await insert_run(report, "run_aaaaaaaaaaaa")
        meta = report.metadata
        found = await find_run_by_content(meta.spec_hash, meta.template_hash, meta.ruleset_hash, "general")
        assert found.run_id == "run_aaaaaaaaaaaa"
        assert await find_run_by_content("other", meta.template_hash, meta.ruleset_hash, "general") is None
        assert await find_run_by_content(meta.spec_hash, meta.template_hash, meta.ruleset_hash, "finance") is None

    @pytest.mark.asyncio
    async def test_findings_and_top_violations(self, store, no_namespace_spec, offset_spec):
        a = await _graded_report(no_namespace_spec, "2026-03-01T10:00:00+00:00")
        b = await _graded_report(offset_spec, "2026-03-02T10:00:00+00:00")
        await insert_run(a, "run_a")
        await insert_run(b, "run_b")

        findings = await get_findings_for_runs(["run_a", "run_b", "run_none"])
        assert findings["run_none"] == []
        assert findings["run_a"].count("NAME-NAMESPACE") == 2
        assert "PAG-OFFSET" in findings["run_b"]

        top = await top_violations(limit=50)
        by_id = {v.rule_id: v for v in top}
        assert by_id["NAME-NAMESPACE"].runs == 1
        assert by_id["NAME-NAMESPACE"].occurrences == 2
        assert by_id["SEC-OAUTH2"].runs == 2
        assert top[0].runs == 2

        scoped = await top_violations(limit=50, api_id=b.api_id)
        assert "NAME-NAMESPACE" not in {v.rule_id for v in scoped}


@pytest_asyncio.fixture
async def unmigrated_store(tmp_path, monkeypatch):
    """A database file with no tables."""
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    await close_db()
    yield tmp_path
    await close_db()


class TestStoreErrors:
    @pytest.mark.asyncio
    async def test_missing_schema(self, unmigrated_store):
        with pytest.raises(StoreError, match="get_history"):
            await get_history("urn:contract-grader:api:x")
        with pytest.raises(StoreError):
            await count_runs()

    @pytest.mark.asyncio
    async def test_duplicate_run_id_leaves_first_run_intact(self, store, no_namespace_spec, offset_spec):
        first = await _graded_report(no_namespace_spec, "2026-03-01T10:00:00+00:00")
        second = await _graded_report(offset_spec, "2026-03-02T10:00:00+00:00")
        await insert_run(first, "run_dup")

        with pytest.raises(StoreError, match="insert_run"):
            await insert_run(second, "run_dup")

        assert await count_runs() == 1
        findings = await get_findings_for_runs(["run_dup"])
        assert findings["run_dup"] == [f.rule_id for f in first.findings]
        assert (await get_report("run_dup")).to_json_dict() == first.to_json_dict()

    @pytest.mark.asyncio
    async def test_failed_finding_write_rolls_back_run(self, store, no_namespace_spec):
        report = await _graded_report(no_namespace_spec, "2026-03-01T10:00:00+00:00")
        # model_copy skips validation, so the NOT NULL column rejects the row.
        broken = report.findings[0].model_copy(update={"message": None})
        report = report.model_copy(update={"findings": [broken, *report.findings[1:]]})

        with pytest.raises(StoreError):
            await insert_run(report, "run_broken")

        assert await get_run("run_broken") is None
        assert await count_runs() == 0
        assert await get_findings_for_runs(["run_broken"]) == {"run_broken": []}
        assert await top_violations() == []


class TestHistory:
    @pytest.mark.asyncio
    async def test_trend_and_top_violations(self, store, offset_spec, compliant_spec):
        worse = await _graded_report(offset_spec.replace("title: Orders", "title: Widget Service"), "2026-03-01T10:00:00+00:00")
        better = await _graded_report(compliant_spec, "2026-03-02T10:00:00+00:00")
        assert worse.api_id == better.api_id
        await insert_run(worse, "run_worse")
        await insert_run(better, "run_better")

        history = await get_api_history(better.api_id)
        assert [row["runId"] for row in history["rows"]] == ["run_better", "run_worse"]
        assert history["trend"] == TrendDirection.IMPROVING.value
        assert history["topViolations"]
        assert history["summary"].startswith("2 run(s)")

    @pytest.mark.asyncio
    async def test_empty_history(self, store):
        history = await get_api_history("urn:contract-grader:api:none")
        assert history["rows"] == []
        assert history["trend"] == "stable"
        assert history["summary"] == "No recorded runs for urn:contract-grader:api:none."


class TestGradeAndRecord:
    @pytest.mark.asyncio
    async def test_records_run(self, store, tmp_path, compliant_spec):
        path = tmp_path / "widgets.yaml"
        path.write_text(compliant_spec)
        stages = []

        result = await grade_and_record(str(path), progress=lambda s, p, n: stages.append((s, p)))

        assert result["cached"] is False
        assert result["runId"].startswith("run_")
        assert stages[0] == ("fetch", 0)
        assert ("persist", 95) in stages
        assert stages[-1] == ("done", 100)
        assert (await get_run(result["runId"])).api_id == result["apiId"]

    @pytest.mark.asyncio
    async def test_reuse_existing(self, store, tmp_path, compliant_spec):
        path = tmp_path / "widgets.yaml"
        path.write_text(compliant_spec)

        first = await grade_and_record(str(path))
        second = await grade_and_record(str(path), reuse_existing=True)
        third = await grade_and_record(str(path))

        assert second["cached"] is True
        assert second["runId"] == first["runId"]
        assert second["grade"] == first["grade"]
        assert third["runId"] != first["runId"]
        assert await count_runs(first["apiId"]) == 2

    @pytest.mark.asyncio
    async def test_reuse_respects_domain(self, store, tmp_path, no_paths_spec):
        path = tmp_path / "empty.yaml"
        path.write_text(no_paths_spec)

        first = await grade_and_record(str(path), domain="general")
        other = await grade_and_record(str(path), domain="finance", reuse_existing=True)
        assert other["cached"] is False
        assert other["runId"] != first["runId"]

    @pytest.mark.asyncio
    async def test_reuse_finds_older_run_in_same_domain(self, store, tmp_path, no_paths_spec):
        path = tmp_path / "empty.yaml"
        path.write_text(no_paths_spec)

        finance = await grade_and_record(str(path), domain="finance")
        general = await grade_and_record(str(path), domain="general")
        replay = await grade_and_record(str(path), domain="finance", reuse_existing=True)

        assert replay["cached"] is True
        assert replay["runId"] == finance["runId"]
        assert replay["runId"] != general["runId"]
        assert replay["grade"] == finance["grade"]
        assert await count_runs() == 2

    @pytest.mark.asyncio
    async def test_unreadable_file(self, store, tmp_path):
        with pytest.raises(SpecLoadError):
            await grade_and_record(str(tmp_path / "missing.yaml"))
        assert await count_runs() == 0

    @pytest.mark.asyncio
    async def test_timeout_records_nothing(self, store, tmp_path, compliant_spec):
        path = tmp_path / "widgets.yaml"
        path.write_text(compliant_spec)

        async def stall(stage, percent, note):
            if stage == "rule-run":
                await asyncio.sleep(5)

        with pytest.raises(GradingTimeout):
            await grade_and_record(str(path), progress=stall, timeout=0.05)
        assert await count_runs() == 0
