"""Session models — the live aggregate and its persisted snapshot/index forms."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, model_validator

from loadscope.models.resource import ResourceFilter, ResourceRecord
from loadscope.models.score import PerformanceScore, WebVitals
from loadscope.models.types import Rating


def utcnow() -> datetime:
    return datetime.now(UTC)


def domain_of(url: str) -> str:
    """Host of ``url``; the URL itself when it has no host."""
    return urlparse(url).hostname or url


class SessionAggregate(BaseModel):
    """One page-load attempt. Totals are maintained by the aggregator."""

    url: str = ""
    started_at: datetime | None = None
    resources: list[ResourceRecord] = Field(default_factory=list)
    loading: bool = False
    filter: ResourceFilter = Field(default_factory=ResourceFilter)
    web_vitals: WebVitals | None = None
    resource_count: int = 0
    total_bytes: int = 0
    total_duration_ms: float = 0.0

    @property
    def domains(self) -> set[str]:
        return {r.domain for r in self.resources}

    @property
    def urls(self) -> set[str]:
        return {r.url for r in self.resources}


class PersistentSession(BaseModel):
    """Immutable snapshot of a completed session."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    url: str
    domain: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    tags: list[str] = Field(default_factory=list)
    notes: str = ""
    started_at: datetime | None = None
    resources: list[ResourceRecord] = Field(default_factory=list)
    web_vitals: WebVitals | None = None
    score: PerformanceScore | None = None
    total_bytes: int = 0
    total_duration_ms: float = 0.0
    request_count: int = 0
    third_party_count: int = 0

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _fill_domain(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("domain") and data.get("url"):
            data = {**data, "domain": domain_of(data["url"])}
        return data

    @classmethod
    def from_aggregate(
        cls,
        aggregate: SessionAggregate,
        score: PerformanceScore | None = None,
        tags: list[str] | None = None,
        notes: str = "",
        third_party_count: int = 0,
        timestamp: datetime | None = None,
    ) -> PersistentSession:
        return cls(
            url=aggregate.url,
            timestamp=timestamp or utcnow(),
            tags=list(tags or []),
            notes=notes,
            started_at=aggregate.started_at,
            resources=list(aggregate.resources),
            web_vitals=aggregate.web_vitals,
            score=score,
            total_bytes=aggregate.total_bytes,
            total_duration_ms=aggregate.total_duration_ms,
            request_count=aggregate.resource_count,
            third_party_count=third_party_count,
        )

    @property
    def overall_score(self) -> int | None:
        return self.score.overall if self.score else None

    @property
    def performance_rating(self) -> Rating | None:
        return self.score.rating if self.score else None


class SessionMetadata(BaseModel):
    """Index projection of a session; loaded without touching the body."""

    id: str
    url: str
    domain: str
    timestamp: datetime
    tags: list[str] = Field(default_factory=list)
    score: int | None = None
    load_time_ms: float = 0.0
    total_size: int = 0
    request_count: int = 0

    @classmethod
    def from_session(cls, session: PersistentSession) -> SessionMetadata:
        return cls(
            id=session.id,
            url=session.url,
            domain=session.domain,
            timestamp=session.timestamp,
            tags=list(session.tags),
            score=session.overall_score,
            load_time_ms=session.total_duration_ms,
            total_size=session.total_bytes,
            request_count=session.request_count,
        )


class SessionIndex(BaseModel):
    """All session metadata, newest first."""

    sessions: list[SessionMetadata] = Field(default_factory=list)

    def add(self, metadata: SessionMetadata) -> None:
        self.sessions = [m for m in self.sessions if m.id != metadata.id]
        self.sessions.append(metadata)
        self.sessions.sort(key=lambda m: m.timestamp, reverse=True)

    def remove(self, session_id: str) -> bool:
        before = len(self.sessions)
        self.sessions = [m for m in self.sessions if m.id != session_id]
        return len(self.sessions) != before

    def get(self, session_id: str) -> SessionMetadata | None:
        for metadata in self.sessions:
            if metadata.id == session_id:
                return metadata
        return None

    def ids(self) -> set[str]:
        return {m.id for m in self.sessions}
