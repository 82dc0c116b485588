"""Shared Pydantic models used across all loadscope modules."""

from loadscope.models.types import (
    AggregatorEvent,
    BudgetSeverity,
    Difficulty,
    HttpMethod,
    ImpactTier,
    ProviderCategory,
    Rating,
    ResourceType,
    SuggestionCategory,
    SuggestionImpact,
)

__all__ = [
    "AggregatorEvent",
    "BudgetSeverity",
    "Difficulty",
    "HttpMethod",
    "ImpactTier",
    "ProviderCategory",
    "Rating",
    "ResourceType",
    "SuggestionCategory",
    "SuggestionImpact",
]
