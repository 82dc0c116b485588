"""Resource-level models — raw timing samples, phases, records, filters."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from loadscope.models.types import HttpMethod, ResourceType


class RawTimingSample(BaseModel):
    """One entry of a Resource Timing batch as delivered by the page.

    Marks are milliseconds relative to the session's time origin.
    """

    url: str = Field(min_length=1)
    start_time: float = Field(alias="startTime", default=0.0)
    duration: float = 0.0
    initiator_type: str = Field(alias="initiatorType", default="other")
    transfer_size: int = Field(alias="transferSize", default=0)
    fetch_start: float = Field(alias="fetchStart", default=0.0)
    domain_lookup_start: float = Field(alias="domainLookupStart", default=0.0)
    domain_lookup_end: float = Field(alias="domainLookupEnd", default=0.0)
    connect_start: float = Field(alias="connectStart", default=0.0)
    connect_end: float = Field(alias="connectEnd", default=0.0)
    secure_connection_start: float = Field(alias="secureConnectionStart", default=0.0)
    request_start: float = Field(alias="requestStart", default=0.0)
    response_start: float = Field(alias="responseStart", default=0.0)
    response_end: float = Field(alias="responseEnd", default=0.0)

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator(
        "start_time",
        "duration",
        "transfer_size",
        "fetch_start",
        "domain_lookup_start",
        "domain_lookup_end",
        "connect_start",
        "connect_end",
        "secure_connection_start",
        "request_start",
        "response_start",
        "response_end",
        mode="before",
    )
    @classmethod
    def _null_mark_is_zero(cls, value: Any) -> Any:
        # The page script reports missing marks as null or 0 interchangeably
        return 0 if value is None else value

    @field_validator("initiator_type", mode="before")
    @classmethod
    def _default_initiator(cls, value: Any) -> Any:
        return value or "other"


class TimingPhases(BaseModel):
    """HAR-style phase breakdown in milliseconds. Every phase is >= 0."""

    blocked: float = Field(default=0.0, ge=0)
    dns: float = Field(default=0.0, ge=0)
    connect: float = Field(default=0.0, ge=0)
    ssl: float = Field(default=0.0, ge=0)
    wait: float = Field(default=0.0, ge=0)
    receive: float = Field(default=0.0, ge=0)

    model_config = {"frozen": True}

    @property
    def total(self) -> float:
        return self.blocked + self.dns + self.connect + self.ssl + self.wait + self.receive


def _new_id() -> str:
    return uuid.uuid4().hex


class ResourceRecord(BaseModel):
    """One observed network fetch. Immutable once created."""

    id: str = Field(default_factory=_new_id)
    url: str
    method: HttpMethod = HttpMethod.GET
    status_code: int = 200
    mime_type: str | None = None
    resource_type: ResourceType = ResourceType.OTHER
    start_time: datetime
    timings: TimingPhases = Field(default_factory=TimingPhases)
    request_size: int = 0
    response_size: int = 0
    request_headers: dict[str, str] = Field(default_factory=dict)
    response_headers: dict[str, str] = Field(default_factory=dict)
    request_body: str | None = None
    response_body: str | None = None

    model_config = {"frozen": True}

    @property
    def duration_ms(self) -> float:
        return self.timings.total

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(milliseconds=self.duration_ms)

    @property
    def domain(self) -> str:
        return urlparse(self.url).hostname or ""


class ResourceFilter(BaseModel):
    """View filter over a session's resources.

    Empty ``types`` means every type, empty ``domains`` means no domain
    restriction. Search text is a case-insensitive URL substring.
    """

    search_text: str = ""
    types: set[ResourceType] = Field(default_factory=set)
    domains: set[str] = Field(default_factory=set)
    min_size: int = 0
    max_size: int | None = None
    min_duration_ms: float = 0.0
    max_duration_ms: float | None = None

    def matches(self, resource: ResourceRecord) -> bool:
        if self.types and resource.resource_type not in self.types:
            return False
        if self.domains and resource.domain not in self.domains:
            return False
        if resource.response_size < self.min_size:
            return False
        if self.max_size is not None and resource.response_size > self.max_size:
            return False
        if resource.duration_ms < self.min_duration_ms:
            return False
        if self.max_duration_ms is not None and resource.duration_ms > self.max_duration_ms:
            return False
        if self.search_text:
            return self.search_text.lower() in resource.url.lower()
        return True
