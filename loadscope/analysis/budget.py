"""Performance budgets — flag metrics that exceed a configured budget."""

from __future__ import annotations

import logging
from collections import Counter

from loadscope.analysis.scoring import MIB
from loadscope.models.config import BudgetViolation, PerformanceBudget
from loadscope.models.score import PerformanceScore, WebVitals
from loadscope.models.session import SessionAggregate
from loadscope.models.types import BudgetSeverity

logger = logging.getLogger(__name__)


def severity_over(ratio: float) -> BudgetSeverity:
    """Severity for a metric at ``ratio`` times its budget."""
    if ratio > 1.5:
        return BudgetSeverity.CRITICAL
    if ratio > 1.1:
        return BudgetSeverity.WARNING
    return BudgetSeverity.MINOR


def severity_under(shortfall: float) -> BudgetSeverity:
    """Severity for a score that falls ``shortfall`` (fraction) below its minimum."""
    if shortfall > 0.3:
        return BudgetSeverity.CRITICAL
    if shortfall > 0.1:
        return BudgetSeverity.WARNING
    return BudgetSeverity.MINOR


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    return f"{seconds:.2f} s"


def format_size(size: int) -> str:
    return f"{size / MIB:.2f} MB"


def check_budget(
    aggregate: SessionAggregate,
    score: PerformanceScore | None,
    web_vitals: WebVitals | None,
    budget: PerformanceBudget,
) -> list[BudgetViolation]:
    """Compare one session against ``budget``. Disabled budgets never report."""
    if not budget.enabled:
        return []

    violations: list[BudgetViolation] = []
    load_time = aggregate.total_duration_ms / 1000

    if load_time > budget.max_load_time:
        violations.append(
            BudgetViolation(
                metric="Load Time",
                actual=format_duration(load_time),
                budget=format_duration(budget.max_load_time),
                severity=severity_over(load_time / budget.max_load_time),
                recommendation="Optimize render-blocking resources and reduce server response time.",
            )
        )

    if aggregate.total_bytes > budget.max_size:
        violations.append(
            BudgetViolation(
                metric="Total Size",
                actual=format_size(aggregate.total_bytes),
                budget=format_size(budget.max_size),
                severity=severity_over(aggregate.total_bytes / budget.max_size),
                recommendation="Optimize images, enable compression, and remove unused resources.",
            )
        )

    if aggregate.resource_count > budget.max_requests:
        violations.append(
            BudgetViolation(
                metric="Request Count",
                actual=f"{aggregate.resource_count} requests",
                budget=f"{budget.max_requests} requests",
                severity=severity_over(aggregate.resource_count / budget.max_requests),
                recommendation="Bundle JavaScript/CSS files and use image sprites or lazy loading.",
            )
        )

    if score is not None and score.overall < budget.min_score:
        violations.append(
            BudgetViolation(
                metric="Performance Score",
                actual=str(score.overall),
                budget=f">= {budget.min_score}",
                severity=severity_under((budget.min_score - score.overall) / budget.min_score),
                recommendation="Review individual category scores and follow recommendations.",
            )
        )

    if web_vitals is not None:
        if web_vitals.lcp.raw_value > budget.max_lcp:
            violations.append(
                BudgetViolation(
                    metric="LCP (Largest Contentful Paint)",
                    actual=web_vitals.lcp.value,
                    budget=format_duration(budget.max_lcp / 1000),
                    severity=severity_over(web_vitals.lcp.raw_value / budget.max_lcp),
                    recommendation="Optimize largest image or text block. Use CDN and image optimization.",
                )
            )
        if web_vitals.cls.raw_value > budget.max_cls:
            violations.append(
                BudgetViolation(
                    metric="CLS (Cumulative Layout Shift)",
                    actual=web_vitals.cls.value,
                    budget=f"<= {budget.max_cls:.2f}",
                    severity=severity_over(web_vitals.cls.raw_value / budget.max_cls),
                    recommendation="Reserve space for ads/images. Avoid inserting content above viewport.",
                )
            )
        if web_vitals.fid.raw_value > budget.max_fid:
            violations.append(
                BudgetViolation(
                    metric="FID (First Input Delay)",
                    actual=web_vitals.fid.value,
                    budget=format_duration(budget.max_fid / 1000),
                    severity=severity_over(web_vitals.fid.raw_value / budget.max_fid),
                    recommendation="Reduce JavaScript execution time. Break up long tasks.",
                )
            )

    if violations:
        logger.info("%d budget violation(s) for %s", len(violations), aggregate.url or "session")
    return violations


def summarize_violations(violations: list[BudgetViolation]) -> str:
    if not violations:
        return "All budgets met"

    counts = Counter(v.severity for v in violations)
    parts = []
    if counts[BudgetSeverity.CRITICAL]:
        parts.append(f"{counts[BudgetSeverity.CRITICAL]} critical")
    if counts[BudgetSeverity.WARNING]:
        parts.append(f"{counts[BudgetSeverity.WARNING]} warnings")
    if counts[BudgetSeverity.MINOR]:
        parts.append(f"{counts[BudgetSeverity.MINOR]} minor")
    return ", ".join(parts)
