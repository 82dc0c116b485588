"""Enums shared across the capture, analysis and storage layers."""

from __future__ import annotations

from enum import Enum


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    OPTIONS = "OPTIONS"
    HEAD = "HEAD"


class ResourceType(str, Enum):
    DOCUMENT = "document"
    STYLESHEET = "stylesheet"
    SCRIPT = "script"
    IMAGE = "image"
    FONT = "font"
    XHR = "xhr"
    FETCH = "fetch"
    WEBSOCKET = "websocket"
    MEDIA = "media"
    OTHER = "other"


class Rating(str, Enum):
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs_improvement"
    POOR = "poor"


class ImpactTier(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    LOW = "low"


class ProviderCategory(str, Enum):
    ANALYTICS = "analytics"
    ADVERTISING = "advertising"
    SOCIAL_MEDIA = "social_media"
    CDN = "cdn"
    FONTS = "fonts"
    MAPS = "maps"
    VIDEO = "video"
    TAG_MANAGEMENT = "tag_management"
    PAYMENTS = "payments"
    OTHER = "other"


class BudgetSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    MINOR = "minor"


class SuggestionImpact(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SuggestionCategory(str, Enum):
    COMPRESSION = "compression"
    IMAGES = "images"
    CACHING = "caching"
    RENDER_BLOCKING = "render_blocking"
    JAVASCRIPT = "javascript"
    CSS = "css"
    FONTS = "fonts"
    THIRD_PARTY = "third_party"


class AggregatorEvent(str, Enum):
    SESSION_STARTED = "session_started"
    RESOURCES_ADDED = "resources_added"
    CLEARED = "cleared"
    FILTER_CHANGED = "filter_changed"
    WEB_VITALS_UPDATED = "web_vitals_updated"
    LOADING_CHANGED = "loading_changed"
