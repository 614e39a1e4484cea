"""The grading pipeline: load → rule-run → aggregate → identity.

The only I/O happens before rule evaluation (reading a file or fetching a URL).
Rules fan out to worker threads and the aggregator waits for all of them.
Progress callbacks are a side channel; a failing callback is logged and
ignored.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .autofail import AutoFailEvaluator
from .checkpoints import CHECKPOINTS, score_checkpoints
from .clients.spec_fetch import fetch_spec_text, is_url
from .domain import detect_domain
from .errors import GradingTimeout
from .identity import build_metadata, derive_api_id, ruleset_hash, spec_hash, template_hash
from .loader import ScoringTemplate, load_template, parse_spec_text, read_spec_file
from .models import DomainDetection, GradeReport
from .registry import RuleRegistry, default_registry
from .scoring import compute_grade
from .spec_node import OpenAPIDocument
from .weights import DEFAULT_DOMAIN, WeightResolver, normalize_domain

logger = logging.getLogger(__name__)

AUTO_DOMAIN = "auto"

ProgressCallback = Callable[[str, int, str], Any]

T = TypeVar("T")


@dataclass(frozen=True)
class GradedDocument:
    """A grade report together with the inputs it was computed from."""

    report: GradeReport
    raw: Any
    text: str
    template: ScoringTemplate
    source: str
    detection: Optional[DomainDetection] = None


async def notify(progress: Optional[ProgressCallback], stage: str, percent: int, note: str = "") -> None:
    """Invoke a progress callback (sync or async). Never raises."""
    if progress is None:
        return
    try:
        result = progress(stage, percent, note)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.warning("Progress callback failed at stage %s", stage, exc_info=True)


def grading_timeout(explicit: Optional[float] = None) -> Optional[float]:
    if explicit is not None:
        return explicit if explicit > 0 else None
    value = os.environ.get("GRADER_TIMEOUT")
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        logger.warning("Ignoring invalid GRADER_TIMEOUT=%r", value)
        return None
    return seconds if seconds > 0 else None


async def run_with_timeout(awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """Await with the caller's deadline; on expiry the work is cancelled and discarded."""
    seconds = grading_timeout(timeout)
    if seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise GradingTimeout(f"Grading did not finish within {seconds:g}s; nothing was recorded") from e


class Grader:
    """Runs the rule registry over documents and assembles grade reports.

    Args:
        registry: Rule units to run (default: every built-in rule).
        resolver: Domain weight resolver.
        evaluator: Auto-fail gate.
    """

    def __init__(
        self,
        registry: Optional[RuleRegistry] = None,
        resolver: Optional[WeightResolver] = None,
        evaluator: Optional[AutoFailEvaluator] = None,
    ):
        self.registry = registry or default_registry()
        self.resolver = resolver or WeightResolver()
        self.evaluator = evaluator or AutoFailEvaluator()

    def critical_ids(self) -> frozenset[str]:
        return self.registry.critical_finding_ids() | {cp.id for cp in CHECKPOINTS if cp.auto_fail}

    def ruleset_hash(self, template: Optional[ScoringTemplate] = None) -> str:
        return ruleset_hash(self.registry, self.resolver, template.ruleset if template else None)

    def resolve_domain(
        self,
        requested: Optional[str],
        template: ScoringTemplate,
        raw: Any,
    ) -> tuple[str, Optional[DomainDetection]]:
        """Argument, then template ``x-domain``, then ``GRADER_DOMAIN``, then ``general``.

        ``auto`` at any level runs domain detection on the document.
        """
        choice = requested or template.domain or os.environ.get("GRADER_DOMAIN") or DEFAULT_DOMAIN
        if normalize_domain(choice) == AUTO_DOMAIN:
            detection = detect_domain(raw)
            logger.info("Detected domain %s (confidence %.2f)", detection.domain, detection.confidence)
            return detection.domain, detection
        return normalize_domain(choice), None

    async def grade_document(
        self,
        text: str,
        template: Optional[ScoringTemplate] = None,
        domain: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
        concurrent: bool = True,
        source: str = "<inline>",
    ) -> GradedDocument:
        """Grade specification text.

        Args:
            text: YAML or JSON specification.
            template: Scoring template (default: built-in or ``GRADER_TEMPLATE_PATH``).
            domain: Business domain for weighting, or ``auto``.
            progress: Optional ``(stage, percent, note)`` callback.
            concurrent: Run rules on worker threads.
            source: Label used in log and error messages.

        Raises:
            SpecLoadError: If the text does not parse.
        """
        template = template or load_template()
        raw = parse_spec_text(text, source)
        doc = OpenAPIDocument(raw)
        resolved_domain, detection = self.resolve_domain(domain, template, raw)

        await notify(progress, "rule-run", 20, f"Running {len(self.registry)} rules")
        if concurrent:
            run = await self.registry.evaluate_concurrently(doc)
        else:
            run = self.registry.evaluate(doc)

        await notify(progress, "aggregate", 70, "Aggregating category scores")
        decision = self.evaluator.evaluate(run.findings, run.auto_fail_reasons, resolved_domain)
        grade = compute_grade(run, self.resolver, resolved_domain, self.critical_ids(), decision.reasons)
        findings = sorted(run.findings, key=lambda f: f.sort_key)

        await notify(progress, "identity", 90, "Computing content identity")
        metadata = build_metadata(
            spec_digest=spec_hash(raw, text),
            template_digest=template_hash(template.document),
            ruleset_digest=self.ruleset_hash(template),
            template_version=template.version,
            domain=resolved_domain,
        )
        report = GradeReport(
            grade=grade,
            findings=findings,
            checkpoints=score_checkpoints(findings),
            metadata=metadata,
            api_id=derive_api_id(raw),
            title=doc.info.get("title").text(),
        )
        logger.info(
            "Graded %s: %d (%s), %d findings, auto_fail=%s",
            source, grade.total, grade.letter, len(findings), grade.auto_fail_triggered,
        )
        return GradedDocument(
            report=report, raw=raw, text=text, template=template, source=source, detection=detection,
        )

    async def load_source(self, source: str, progress: Optional[ProgressCallback] = None) -> str:
        """Read a file path or fetch an ``http(s)://`` URL."""
        await notify(progress, "fetch", 0, f"Loading {source}")
        if is_url(source):
            return await fetch_spec_text(source)
        return await asyncio.to_thread(read_spec_file, source)

    async def grade_source(
        self,
        source: str,
        template_path: Optional[str] = None,
        domain: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> GradedDocument:
        template = load_template(template_path)
        text = await self.load_source(source, progress)
        graded = await self.grade_document(text, template, domain, progress, source=source)
        await notify(progress, "done", 100, "Grading complete")
        return graded


_default_grader: Optional[Grader] = None


def get_grader() -> Grader:
    """Process-wide grader over the built-in rules."""
    global _default_grader
    if _default_grader is None:
        _default_grader = Grader()
    return _default_grader
