"""Scoring models — user-experience metrics and performance score snapshots."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from loadscope.models.types import Rating


class WebVitalMetric(BaseModel):
    value: str
    raw_value: float
    score: int = Field(ge=0, le=100)
    rating: Rating


class WebVitals(BaseModel):
    """Largest paint, layout stability and input delay, scored per metric."""

    lcp: WebVitalMetric
    cls: WebVitalMetric
    fid: WebVitalMetric
    captured_at: datetime


class ScoreCategory(BaseModel):
    score: int = Field(ge=0, le=100)
    value: str
    rating: Rating
    recommendation: str


class PerformanceScore(BaseModel):
    """Weighted 0-100 page score with per-category diagnostics."""

    overall: int = Field(ge=0, le=100)
    load_time: ScoreCategory
    resource_count: ScoreCategory
    total_size: ScoreCategory
    user_experience: ScoreCategory

    @property
    def rating(self) -> Rating:
        if self.overall >= 75:
            return Rating.GOOD
        if self.overall >= 50:
            return Rating.NEEDS_IMPROVEMENT
        return Rating.POOR

    def categories(self) -> dict[str, ScoreCategory]:
        return {
            "load_time": self.load_time,
            "resource_count": self.resource_count,
            "total_size": self.total_size,
            "user_experience": self.user_experience,
        }
