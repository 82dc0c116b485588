"""Optimization suggestions derived from a session's resources."""

from __future__ import annotations

from pydantic import BaseModel, Field

from loadscope.models.types import Difficulty, ResourceType, SuggestionCategory, SuggestionImpact


class AffectedResource(BaseModel):
    """A resource (or, for connection advice, a domain) a suggestion applies to."""

    url: str
    size: int = 0
    resource_type: ResourceType = ResourceType.OTHER
    duration_ms: float = 0.0
    issue: str = ""


class OptimizationSuggestion(BaseModel):
    title: str
    description: str
    impact: SuggestionImpact
    difficulty: Difficulty
    category: SuggestionCategory
    affected_resources: list[AffectedResource] = Field(default_factory=list)
    estimated_savings: str = ""
    current_state: str = ""
    target_state: str = ""
