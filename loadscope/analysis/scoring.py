"""Performance scoring — weighted 0-100 page score from a session aggregate.

Four categories are scored independently with piecewise policies, then
combined once at the end:

    overall = round(0.30·load_time + 0.20·resource_count
                    + 0.20·total_size + 0.30·user_experience)
"""

from __future__ import annotations

import logging

from loadscope.models.score import PerformanceScore, ScoreCategory, WebVitals
from loadscope.models.session import SessionAggregate
from loadscope.models.types import Rating

logger = logging.getLogger(__name__)

MIB = 1_048_576

# Weights in percent; integer so the weighted sum is exact
WEIGHTS: dict[str, int] = {
    "load_time": 30,
    "resource_count": 20,
    "total_size": 20,
    "user_experience": 30,
}

RECOMMENDATIONS: dict[str, list[str]] = {
    "load_time": [
        "Excellent load time! Users will barely notice the wait.",
        "Good load time. Consider optimizing for mobile users.",
        "Load time could be improved. Look for blocking resources.",
        "Slow load time. Critical resources may be blocking render.",
    ],
    "resource_count": [
        "Excellent! Low resource count improves load performance.",
        "Good resource count. Consider combining similar resources.",
        "Many resources. Consider bundling JS/CSS and using image sprites.",
        "Too many resources. Implement aggressive bundling and lazy loading.",
    ],
    "total_size": [
        "Excellent! Small page size loads quickly on all connections.",
        "Good size. Consider image optimization and compression.",
        "Page is heavy. Optimize images, use WebP, enable gzip/brotli.",
        "Page is too large. Implement lazy loading and modern image formats.",
    ],
}

UX_NOT_MEASURED = "Web Vitals data not available yet."
UX_ALL_GOOD = "All Core Web Vitals are good!"
UX_METRIC_ADVICE = {
    "lcp": "Improve LCP: optimize images and server response",
    "cls": "Fix CLS: reserve space for dynamic content",
    "fid": "Reduce FID: minimize JavaScript execution",
}


def load_time_category(duration_s: float) -> ScoreCategory:
    advice = RECOMMENDATIONS["load_time"]
    if duration_s < 1.0:
        score, rating, tier = 100, Rating.GOOD, 0
    elif duration_s < 2.5:
        score, rating, tier = max(70, 100 - int((duration_s - 1.0) * 20)), Rating.GOOD, 1
    elif duration_s < 4.0:
        score, rating, tier = max(40, 70 - int((duration_s - 2.5) * 20)), Rating.NEEDS_IMPROVEMENT, 2
    else:
        score, rating, tier = max(0, 40 - int((duration_s - 4.0) * 10)), Rating.POOR, 3

    return ScoreCategory(
        score=score,
        value=f"{int(duration_s * 1000)} ms",
        rating=rating,
        recommendation=advice[tier],
    )


def resource_count_category(count: int) -> ScoreCategory:
    advice = RECOMMENDATIONS["resource_count"]
    if count < 30:
        score, rating, tier = 100, Rating.GOOD, 0
    elif count < 50:
        score, rating, tier = max(70, 100 - (count - 30)), Rating.GOOD, 1
    elif count < 100:
        score, rating, tier = max(40, 70 - (count - 50) // 2), Rating.NEEDS_IMPROVEMENT, 2
    else:
        score, rating, tier = max(0, 40 - (count - 100) // 5), Rating.POOR, 3

    return ScoreCategory(
        score=score,
        value=f"{count} requests",
        rating=rating,
        recommendation=advice[tier],
    )


def total_size_category(size: int) -> ScoreCategory:
    advice = RECOMMENDATIONS["total_size"]
    mb = size / MIB
    if size < MIB:
        score, rating, tier = 100, Rating.GOOD, 0
    elif size < 3 * MIB:
        score, rating, tier = max(70, int(100 - (mb - 1) * 15)), Rating.GOOD, 1
    elif size < 5 * MIB:
        score, rating, tier = max(40, int(70 - (mb - 3) * 15)), Rating.NEEDS_IMPROVEMENT, 2
    else:
        score, rating, tier = max(0, int(40 - (mb - 5) * 8)), Rating.POOR, 3

    return ScoreCategory(
        score=score,
        value=f"{mb:.2f} MB",
        rating=rating,
        recommendation=advice[tier],
    )


def user_experience_category(vitals: WebVitals | None) -> ScoreCategory:
    if vitals is None:
        return ScoreCategory(
            score=50,
            value="Not measured",
            rating=Rating.NEEDS_IMPROVEMENT,
            recommendation=UX_NOT_MEASURED,
        )

    metrics = {"lcp": vitals.lcp, "cls": vitals.cls, "fid": vitals.fid}
    average = sum(m.score for m in metrics.values()) // 3

    if average >= 75:
        rating = Rating.GOOD
    elif average >= 50:
        rating = Rating.NEEDS_IMPROVEMENT
    else:
        rating = Rating.POOR

    advice = [UX_METRIC_ADVICE[name] for name, m in metrics.items() if m.rating != Rating.GOOD]
    return ScoreCategory(
        score=average,
        value=f"LCP: {vitals.lcp.value}, CLS: {vitals.cls.value}, FID: {vitals.fid.value}",
        rating=rating,
        recommendation=". ".join(advice) if advice else UX_ALL_GOOD,
    )


def weighted_overall(categories: dict[str, ScoreCategory]) -> int:
    """Weighted sum of category scores, rounded half-up once."""
    weighted = sum(WEIGHTS[name] * categories[name].score for name in WEIGHTS)
    return (weighted + 50) // 100


def score(aggregate: SessionAggregate, web_vitals: WebVitals | None = None) -> PerformanceScore:
    """Score a session. Falls back to the aggregate's own vitals when none are given."""
    vitals = web_vitals if web_vitals is not None else aggregate.web_vitals
    categories = {
        "load_time": load_time_category(aggregate.total_duration_ms / 1000),
        "resource_count": resource_count_category(aggregate.resource_count),
        "total_size": total_size_category(aggregate.total_bytes),
        "user_experience": user_experience_category(vitals),
    }
    overall = weighted_overall(categories)

    logger.debug(
        "Scored %s: overall=%d (%s)",
        aggregate.url or "session",
        overall,
        ", ".join(f"{k}={v.score}" for k, v in categories.items()),
    )
    return PerformanceScore(overall=overall, **categories)
