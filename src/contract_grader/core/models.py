"""Pydantic data models for the shared grading objects.

Every model serializes with camelCase aliases (``ruleId``, ``jsonPath``,
``autoFailTriggered``) so tool results match the wire contract, while Python
code uses snake_case attributes. Results are frozen once built.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class GraderModel(BaseModel):
    """Base model: camelCase on the wire, immutable after construction."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Severity(str, Enum):
    """Finding severity, most severe first."""

    ERROR = "error"
    WARN = "warn"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARN: 1, Severity.INFO: 2}


class ComplianceSeverity(str, Enum):
    """Severity tiers used by compliance regimes."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TrendDirection(str, Enum):
    """Direction of a score series over a history window."""

    IMPROVING = "improving"
    DEGRADING = "degrading"
    STABLE = "stable"


class ChangeImpact(str, Enum):
    """Semantic-version impact of the differences between two documents."""

    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    NONE = "none"


# ─── Rule output ──────────────────────────────────────────────────────────────


class Finding(GraderModel):
    """A single rule violation or observation at a location in the document."""

    rule_id: str
    severity: Severity
    json_path: str
    message: str
    category: str

    @property
    def sort_key(self) -> tuple:
        return (self.severity.rank, self.category, self.rule_id, self.json_path)


class ScoreContribution(GraderModel):
    """Raw points a rule adds to its category, before domain weighting."""

    category: str
    add: float = Field(ge=0.0)
    max: float = Field(ge=0.0)


class RuleResult(GraderModel):
    """What one rule unit returns for one document.

    ``contribution`` is None for findings-only rules, which report problems
    without owning any share of the score.
    """

    findings: list[Finding] = Field(default_factory=list)
    contribution: Optional[ScoreContribution] = None
    auto_fail_reasons: list[str] = Field(default_factory=list)


# ─── Scores ───────────────────────────────────────────────────────────────────


class CategoryScore(GraderModel):
    """Weighted points earned in one category."""

    category: str
    earned: float = Field(ge=0.0)
    max: float = Field(ge=0.0)
    percentage: float = Field(ge=0.0, le=1.0, description="earned / max, 1.0 when max is 0")

    @model_validator(mode="after")
    def _earned_within_max(self) -> "CategoryScore":
        if self.earned > self.max:
            raise ValueError(f"earned {self.earned} exceeds max {self.max} for {self.category}")
        return self


class CheckpointDefinition(GraderModel):
    """A named, externally listable scoring unit."""

    id: str
    category: str
    weight: float
    auto_fail: bool = False
    description: str


class Checkpoint(GraderModel):
    """A checkpoint's outcome for one grading run."""

    checkpoint_id: str
    category: str
    max_points: float
    scored_points: float


class GradeResult(GraderModel):
    """The score card for one grading invocation."""

    total: int = Field(ge=0, le=100)
    letter: str
    compliance_pct: float = Field(ge=0.0, le=1.0)
    auto_fail_triggered: bool
    critical_issues: int = Field(ge=0)
    per_category: dict[str, CategoryScore] = Field(default_factory=dict)
    auto_fail_reasons: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _gate_matches_reasons(self) -> "GradeResult":
        if self.auto_fail_triggered != bool(self.auto_fail_reasons):
            raise ValueError("autoFailTriggered must be true exactly when autoFailReasons is non-empty")
        return self


class Metadata(GraderModel):
    """Reproducibility data attached to every grade."""

    spec_hash: str
    template_hash: str
    ruleset_hash: str
    template_version: str
    tool_versions: dict[str, str]
    scoring_engine: str
    instance_id: str
    instance_start_time: str
    graded_at: str
    domain: str = "general"


class GradeReport(GraderModel):
    """Everything a grading call returns: grade, findings, checkpoints, metadata."""

    grade: GradeResult
    findings: list[Finding]
    checkpoints: list[Checkpoint]
    metadata: Metadata
    api_id: str
    title: str = ""


# ─── Compliance ───────────────────────────────────────────────────────────────


class ComplianceRule(GraderModel):
    """A requirement of a compliance regime and the findings that evidence a breach."""

    rule_id: str
    compliance: str
    requirement: str
    severity: ComplianceSeverity
    auto_fail: bool = False
    evidence: list[str] = Field(default_factory=list)
    checks: list[str] = Field(default_factory=list, description="Finding rule ids that violate this requirement")

    @property
    def is_blocking(self) -> bool:
        return self.auto_fail or self.severity == ComplianceSeverity.CRITICAL


class ConditionalRules(GraderModel):
    condition: str
    rules: list[ComplianceRule]


class MappedRequirements(GraderModel):
    """Compliance rules bucketed for a business domain."""

    domain: str
    mandatory_rules: list[ComplianceRule] = Field(default_factory=list)
    recommended_rules: list[ComplianceRule] = Field(default_factory=list)
    conditional_rules: list[ConditionalRules] = Field(default_factory=list)
    total_rules: int = 0
    compliance_score: int = 0


class DomainDetection(GraderModel):
    """Result of guessing which business vertical a document belongs to."""

    domain: str
    confidence: float = Field(ge=0.0, le=1.0)
    indicators: list[str] = Field(default_factory=list)
    secondary_domains: list[dict] = Field(default_factory=list)
    compliance_requirements: list[str] = Field(default_factory=list)


# ─── Persistence boundary ─────────────────────────────────────────────────────


class RunRecord(GraderModel):
    """One persisted grading invocation (denormalized grade summary)."""

    run_id: str
    api_id: str
    graded_at: datetime
    total_score: int
    letter_grade: str
    compliance_pct: float
    auto_fail: bool
    critical_issues: int
    findings_count: int
    template_version: str
    spec_hash: Optional[str] = None
    template_hash: Optional[str] = None
    ruleset_hash: Optional[str] = None
    domain: Optional[str] = None


class ViolationCount(GraderModel):
    """How often a finding rule id recurred over a set of runs."""

    rule_id: str
    runs: int
    occurrences: int


# ─── Comparison ───────────────────────────────────────────────────────────────


class CategoryDelta(GraderModel):
    category: str
    baseline_earned: float
    candidate_earned: float
    baseline_max: float
    candidate_max: float
    delta: float
    percent_change: float


class GradeComparison(GraderModel):
    """Per-category differences between a baseline and a candidate grade."""

    baseline_total: int
    candidate_total: int
    total_delta: int
    baseline_letter: str
    candidate_letter: str
    category_deltas: list[CategoryDelta]
    insights: list[str]
    new_findings: list[str] = Field(default_factory=list)
    resolved_findings: list[str] = Field(default_factory=list)

    def delta_for(self, category: str) -> Optional[float]:
        for d in self.category_deltas:
            if d.category == category:
                return d.delta
        return None


class BreakingChange(GraderModel):
    type: str
    path: Optional[str] = None
    description: str
    severity: str
    migration_hint: Optional[str] = None


class SpecDiff(GraderModel):
    """Structural differences between two versions of the same API."""

    baseline_version: str
    candidate_version: str
    endpoints_added: list[str] = Field(default_factory=list)
    endpoints_removed: list[str] = Field(default_factory=list)
    endpoints_modified: list[str] = Field(default_factory=list)
    schemas_added: list[str] = Field(default_factory=list)
    schemas_removed: list[str] = Field(default_factory=list)
    schemas_modified: list[str] = Field(default_factory=list)
    breaking_changes: list[BreakingChange] = Field(default_factory=list)
    change_impact: ChangeImpact = ChangeImpact.NONE

    @property
    def has_breaking_changes(self) -> bool:
        return bool(self.breaking_changes)


# ─── Fixes ────────────────────────────────────────────────────────────────────


class Patch(GraderModel):
    type: str = Field(description="json-patch or unified-diff")
    preimage_hash: str
    body: str


class FixItem(GraderModel):
    """A suggested change that would clear a finding."""

    rule_id: str
    severity: Severity
    json_path: str
    description: str
    suggested: str
    patch: Patch
    rationale: str
    risk: str = "low"
