"""Configuration models for retention, attribution, budgets and trend analysis."""

from __future__ import annotations

from pydantic import BaseModel, Field

from loadscope.models.types import BudgetSeverity


class RetentionConfig(BaseModel):
    """Bounds on stored history: age cap first, then count cap."""

    max_sessions: int = Field(default=1000, ge=1)
    max_age_days: int = Field(default=90, ge=1)


class ImpactThresholds(BaseModel):
    """Cut points, in percent of session bytes or duration, for impact tiers."""

    critical: float = 50.0
    high: float = 30.0


class PerformanceBudget(BaseModel):
    """Upper bounds a page load is expected to stay within."""

    max_load_time: float = Field(default=3.0, gt=0)  # seconds
    max_size: int = Field(default=3_145_728, gt=0)  # bytes
    max_requests: int = Field(default=50, gt=0)
    min_score: int = Field(default=75, ge=0, le=100)
    max_lcp: float = Field(default=2500, gt=0)  # ms
    max_cls: float = Field(default=0.1, gt=0)
    max_fid: float = Field(default=100, gt=0)  # ms
    enabled: bool = True

    @classmethod
    def desktop_standard(cls) -> PerformanceBudget:
        return cls()

    @classmethod
    def mobile_fast(cls) -> PerformanceBudget:
        return cls(
            max_load_time=2.0,
            max_size=1_572_864,
            max_requests=30,
            min_score=85,
            max_lcp=2000,
            max_cls=0.05,
            max_fid=80,
        )

    @classmethod
    def pwa(cls) -> PerformanceBudget:
        return cls(
            max_load_time=1.5,
            max_size=1_048_576,
            max_requests=25,
            min_score=90,
            max_lcp=1800,
            max_cls=0.05,
            max_fid=50,
        )

    @classmethod
    def preset(cls, name: str) -> PerformanceBudget:
        presets = {
            "desktop": cls.desktop_standard,
            "desktop_standard": cls.desktop_standard,
            "mobile": cls.mobile_fast,
            "mobile_fast": cls.mobile_fast,
            "pwa": cls.pwa,
        }
        factory = presets.get(name.lower())
        if factory is None:
            raise ValueError(f"Unknown budget preset: {name}. Available: {sorted(presets)}")
        return factory()


class BudgetViolation(BaseModel):
    metric: str
    actual: str
    budget: str
    severity: BudgetSeverity
    recommendation: str


class TrendModelConfig(BaseModel):
    """Model used by the trend-analysis service."""

    id: str = "openai/gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 800
    min_sessions: int = 5
