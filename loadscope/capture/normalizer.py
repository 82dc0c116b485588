"""Timing normalization — turns raw Resource Timing samples into ResourceRecords."""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from pydantic import ValidationError

from loadscope.models.resource import RawTimingSample, ResourceRecord, TimingPhases
from loadscope.models.session import utcnow
from loadscope.models.types import HttpMethod, ResourceType

if TYPE_CHECKING:
    from loadscope.capture.aggregator import SessionAggregator

logger = logging.getLogger(__name__)

# URLs that never touch the network and carry no meaningful timing
NON_NETWORK_SCHEMES = ("data:", "blob:", "about:", "javascript:")

INITIATOR_TYPES: dict[str, ResourceType] = {
    "navigation": ResourceType.DOCUMENT,
    "link": ResourceType.DOCUMENT,
    "script": ResourceType.SCRIPT,
    "css": ResourceType.STYLESHEET,
    "img": ResourceType.IMAGE,
    "image": ResourceType.IMAGE,
    "xmlhttprequest": ResourceType.XHR,
    "fetch": ResourceType.XHR,
    "beacon": ResourceType.XHR,
    "video": ResourceType.MEDIA,
    "audio": ResourceType.MEDIA,
}

EXTENSION_TYPES: dict[str, ResourceType] = {
    "js": ResourceType.SCRIPT,
    "mjs": ResourceType.SCRIPT,
    "css": ResourceType.STYLESHEET,
    "png": ResourceType.IMAGE,
    "jpg": ResourceType.IMAGE,
    "jpeg": ResourceType.IMAGE,
    "gif": ResourceType.IMAGE,
    "webp": ResourceType.IMAGE,
    "svg": ResourceType.IMAGE,
    "avif": ResourceType.IMAGE,
    "ico": ResourceType.IMAGE,
    "woff": ResourceType.FONT,
    "woff2": ResourceType.FONT,
    "ttf": ResourceType.FONT,
    "otf": ResourceType.FONT,
    "eot": ResourceType.FONT,
    "mp4": ResourceType.MEDIA,
    "webm": ResourceType.MEDIA,
    "mp3": ResourceType.MEDIA,
    "ogg": ResourceType.MEDIA,
    "wav": ResourceType.MEDIA,
}


def is_network_url(url: str) -> bool:
    return not url.lower().startswith(NON_NETWORK_SCHEMES)


def infer_resource_type(initiator: str, url: str) -> ResourceType:
    """Initiator tag first, then the URL path's extension, then OTHER."""
    by_initiator = INITIATOR_TYPES.get(initiator.lower())
    if by_initiator is not None:
        return by_initiator

    path = urlparse(url).path.lower()
    last_segment = path.rsplit("/", 1)[-1]
    if "." in last_segment:
        extension = last_segment.rsplit(".", 1)[-1]
        return EXTENSION_TYPES.get(extension, ResourceType.OTHER)
    return ResourceType.OTHER


def compute_phases(sample: RawTimingSample) -> TimingPhases:
    """Phase durations from consecutive marks, each clamped to >= 0."""
    ssl = 0.0
    if sample.secure_connection_start > 0:
        ssl = sample.connect_end - sample.secure_connection_start

    return TimingPhases(
        blocked=max(0.0, sample.domain_lookup_start - sample.fetch_start),
        dns=max(0.0, sample.domain_lookup_end - sample.domain_lookup_start),
        connect=max(0.0, sample.connect_end - sample.connect_start),
        ssl=max(0.0, ssl),
        wait=max(0.0, sample.response_start - sample.request_start),
        receive=max(0.0, sample.response_end - sample.response_start),
    )


class TimingNormalizer:
    """Builds ResourceRecords from raw browser timing batches.

    Pure: no I/O, and the same batch against the same known-URL set always
    yields the same records (ids aside).
    """

    def normalize(
        self,
        batch: Iterable[dict[str, Any]],
        time_origin: datetime,
        known_urls: Collection[str] = (),
    ) -> list[ResourceRecord]:
        seen = set(known_urls)
        records: list[ResourceRecord] = []

        for raw in batch:
            sample = self._parse(raw)
            if sample is None:
                continue
            if not is_network_url(sample.url):
                continue
            if sample.url in seen:
                continue

            seen.add(sample.url)
            records.append(self._to_record(sample, time_origin))

        return records

    def ingest(
        self, batch: Iterable[dict[str, Any]], aggregator: SessionAggregator
    ) -> list[ResourceRecord]:
        """Normalize a batch against the aggregator's session and append it."""
        aggregate = aggregator.aggregate
        origin = aggregate.started_at or utcnow()
        records = self.normalize(batch, origin, aggregate.urls)
        if records:
            aggregator.append(records)
        return records

    @staticmethod
    def _parse(raw: Any) -> RawTimingSample | None:
        if not isinstance(raw, dict):
            logger.debug("Dropping non-object timing sample: %r", raw)
            return None
        try:
            return RawTimingSample.model_validate(raw)
        except ValidationError as e:
            logger.debug("Dropping malformed timing sample: %s", e.errors()[0]["msg"])
            return None

    @staticmethod
    def _to_record(sample: RawTimingSample, time_origin: datetime) -> ResourceRecord:
        # Resource Timing cannot observe method or status; assume a successful GET
        return ResourceRecord(
            url=sample.url,
            method=HttpMethod.GET,
            status_code=200,
            resource_type=infer_resource_type(sample.initiator_type, sample.url),
            start_time=time_origin + timedelta(milliseconds=max(0.0, sample.start_time)),
            timings=compute_phases(sample),
            response_size=max(0, sample.transfer_size),
        )
