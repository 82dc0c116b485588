"""HAR export — renders a session aggregate as a W3C HAR 1.2 document."""

from __future__ import annotations

import logging
from datetime import datetime
from http import HTTPStatus
from pathlib import Path
from urllib.parse import parse_qsl, urlparse

import orjson

from loadscope.models.har import (
    HARContent,
    HAREntry,
    HARFile,
    HARLog,
    HARNameValue,
    HARPage,
    HARPageTimings,
    HARPostData,
    HARRequest,
    HARResponse,
    HARTiming,
)
from loadscope.models.resource import ResourceRecord
from loadscope.models.session import SessionAggregate, utcnow

logger = logging.getLogger(__name__)

PAGE_ID = "page_1"


def _iso(ts: datetime) -> str:
    return ts.isoformat(timespec="milliseconds")


def _status_text(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""


def _entry(resource: ResourceRecord) -> HAREntry:
    query_string = [
        HARNameValue(name=k, value=v)
        for k, v in parse_qsl(urlparse(resource.url).query, keep_blank_values=True)
    ]

    post_data = None
    if resource.request_body:
        post_data = HARPostData(
            mimeType=resource.request_headers.get("Content-Type", ""),
            text=resource.request_body,
        )

    request = HARRequest(
        method=resource.method.value,
        url=resource.url,
        headers=[HARNameValue(name=k, value=v) for k, v in resource.request_headers.items()],
        queryString=query_string,
        postData=post_data,
        bodySize=resource.request_size,
    )

    response = HARResponse(
        status=resource.status_code,
        statusText=_status_text(resource.status_code),
        headers=[HARNameValue(name=k, value=v) for k, v in resource.response_headers.items()],
        content=HARContent(
            size=resource.response_size,
            mimeType=resource.mime_type or "application/octet-stream",
            text=resource.response_body,
        ),
        bodySize=resource.response_size,
    )

    phases = resource.timings
    return HAREntry(
        pageref=PAGE_ID,
        startedDateTime=_iso(resource.start_time),
        time=resource.duration_ms,
        request=request,
        response=response,
        timings=HARTiming(
            blocked=phases.blocked,
            dns=phases.dns,
            connect=phases.connect,
            ssl=phases.ssl,
            send=0,
            wait=phases.wait,
            receive=phases.receive,
        ),
    )


def build_har(aggregate: SessionAggregate, title: str = "") -> HARFile:
    """Build the complete HAR file for one session."""
    started = aggregate.started_at or utcnow()
    page = HARPage(
        startedDateTime=_iso(started),
        id=PAGE_ID,
        title=title or aggregate.url,
        pageTimings=HARPageTimings(
            onContentLoad=aggregate.total_duration_ms,
            onLoad=aggregate.total_duration_ms,
        ),
    )
    return HARFile(
        log=HARLog(pages=[page], entries=[_entry(r) for r in aggregate.resources])
    )


def write_har(aggregate: SessionAggregate, path: Path) -> Path:
    """Serialize the session as HAR JSON (camelCase keys) to ``path``."""
    har = build_har(aggregate)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(
        orjson.dumps(har.model_dump(mode="json", by_alias=True), option=orjson.OPT_INDENT_2)
    )
    logger.info("HAR exported: %s (%d entries)", path, len(har.log.entries))
    return path
