"""LCP, CLS and FID scored against their thresholds."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from loadscope.models.score import WebVitalMetric, WebVitals
from loadscope.models.session import utcnow
from loadscope.models.types import Rating

logger = logging.getLogger(__name__)


def lcp_metric(value: float) -> WebVitalMetric:
    """Largest Contentful Paint (ms): good < 2500, needs improvement < 4000."""
    if value < 2500:
        rating, score = Rating.GOOD, max(75, 100 - int(value / 100))
    elif value < 4000:
        rating, score = Rating.NEEDS_IMPROVEMENT, max(50, 75 - int((value - 2500) / 60))
    else:
        rating, score = Rating.POOR, max(0, 50 - int((value - 4000) / 200))

    display = f"{value:.0f} ms" if value < 1000 else f"{value / 1000:.2f} s"
    return WebVitalMetric(value=display, raw_value=value, score=score, rating=rating)


def cls_metric(value: float) -> WebVitalMetric:
    """Cumulative Layout Shift: good < 0.1, needs improvement < 0.25."""
    if value < 0.1:
        rating, score = Rating.GOOD, max(75, 100 - int(value * 250))
    elif value < 0.25:
        rating, score = Rating.NEEDS_IMPROVEMENT, max(50, 75 - int((value - 0.1) * 167))
    else:
        rating, score = Rating.POOR, max(0, 50 - int((value - 0.25) * 100))

    return WebVitalMetric(value=f"{value:.3f}", raw_value=value, score=score, rating=rating)


def fid_metric(value: float) -> WebVitalMetric:
    """First Input Delay (ms): good < 100, needs improvement < 300."""
    if value < 100:
        rating, score = Rating.GOOD, max(75, 100 - int(value / 4))
    elif value < 300:
        rating, score = Rating.NEEDS_IMPROVEMENT, max(50, 75 - int((value - 100) / 8))
    else:
        rating, score = Rating.POOR, max(0, 50 - int((value - 300) / 20))

    return WebVitalMetric(value=f"{value:.0f} ms", raw_value=value, score=score, rating=rating)


def build_web_vitals(
    lcp: float, cls: float, fid: float, captured_at: datetime | None = None
) -> WebVitals:
    return WebVitals(
        lcp=lcp_metric(lcp),
        cls=cls_metric(cls),
        fid=fid_metric(fid),
        captured_at=captured_at or utcnow(),
    )


def web_vitals_from_payload(payload: dict[str, Any]) -> WebVitals | None:
    """Build WebVitals from the page script's ``{lcp, cls, fid}`` message.

    Returns None when any metric is missing or not numeric.
    """
    values: list[float] = []
    for key in ("lcp", "cls", "fid"):
        raw = payload.get(key)
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            logger.debug("Web vitals payload missing numeric '%s'", key)
            return None
        values.append(float(raw))
    return build_web_vitals(*values)
