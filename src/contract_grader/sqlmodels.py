"""SQLAlchemy models for the grading history store.

One ``run`` row per recorded grading call, never updated after insert. Findings
and checkpoint scores hang off the run; ``api`` tracks each contract identity.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite stores datetimes without an offset)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class ApiRecord(Base):
    """A graded API contract identity."""

    __tablename__ = "api"

    api_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    title: Mapped[str] = mapped_column(String(500), default="")
    domain: Mapped[str | None] = mapped_column(String(50), nullable=True)
    first_seen: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    last_seen: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class GradingRun(Base):
    """One recorded grading invocation."""

    __tablename__ = "run"

    run_id: Mapped[str] = mapped_column(String(40), primary_key=True)
    api_id: Mapped[str] = mapped_column(String(200), ForeignKey("api.api_id"), nullable=False)
    graded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False)
    letter_grade: Mapped[str] = mapped_column(String(4), nullable=False)
    compliance_pct: Mapped[float] = mapped_column(Float, nullable=False)
    auto_fail: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    critical_issues: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    findings_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    template_version: Mapped[str] = mapped_column(String(50), nullable=False)
    spec_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    template_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ruleset_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    domain: Mapped[str | None] = mapped_column(String(50), nullable=True)
    json_report: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_run_api_graded", "api_id", "graded_at"),
        Index("ix_run_content", "spec_hash", "template_hash", "ruleset_hash"),
    )


class FindingRecord(Base):
    """A finding of a recorded run."""

    __tablename__ = "finding"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(String(40), ForeignKey("run.run_id", ondelete="CASCADE"), nullable=False)
    rule_id: Mapped[str] = mapped_column(String(100), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    json_path: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        Index("ix_finding_run", "run_id"),
        Index("ix_finding_rule", "rule_id"),
    )


class CheckpointScoreRecord(Base):
    """A checkpoint outcome of a recorded run."""

    __tablename__ = "checkpoint_score"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(String(40), ForeignKey("run.run_id", ondelete="CASCADE"), nullable=False)
    checkpoint_id: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    max_points: Mapped[float] = mapped_column(Float, nullable=False)
    scored_points: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        Index("ix_checkpoint_run", "run_id"),
    )
