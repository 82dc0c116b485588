"""Result of a trend analysis, as returned by the external text-generation service."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TrendPrediction(BaseModel):
    metric: str = ""
    forecast: str = ""
    trend: str = "Stable"
    confidence: str = "Low"


class TrendAnomaly(BaseModel):
    metric: str = ""
    deviation: str = ""
    date: datetime
    possible_causes: list[str] = Field(alias="possibleCauses", default_factory=list)

    model_config = {"populate_by_name": True}


class TrendPattern(BaseModel):
    description: str = ""
    frequency: str = ""
    impact: str = ""


class TrendAnalysisResult(BaseModel):
    """Opaque narrative about a URL's history. Only its shape is validated."""

    summary: str = ""
    predictions: list[TrendPrediction] = Field(default_factory=list)
    anomalies: list[TrendAnomaly] = Field(default_factory=list)
    patterns: list[TrendPattern] = Field(default_factory=list)
    recommendation: str = ""
