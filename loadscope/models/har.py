"""HAR 1.2 (HTTP Archive) document models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from loadscope import __version__


class HARNameValue(BaseModel):
    """Header, query parameter or cookie pair."""

    name: str
    value: str


class HARPostData(BaseModel):
    mime_type: str = Field(alias="mimeType", default="")
    text: str = ""

    model_config = {"populate_by_name": True}


class HARRequest(BaseModel):
    method: str
    url: str
    http_version: str = Field(alias="httpVersion", default="HTTP/1.1")
    headers: list[HARNameValue] = Field(default_factory=list)
    cookies: list[HARNameValue] = Field(default_factory=list)
    query_string: list[HARNameValue] = Field(alias="queryString", default_factory=list)
    post_data: HARPostData | None = Field(alias="postData", default=None)
    headers_size: int = Field(alias="headersSize", default=-1)
    body_size: int = Field(alias="bodySize", default=-1)

    model_config = {"populate_by_name": True}


class HARContent(BaseModel):
    size: int = 0
    mime_type: str = Field(alias="mimeType", default="application/octet-stream")
    text: str | None = None

    model_config = {"populate_by_name": True}


class HARResponse(BaseModel):
    status: int
    status_text: str = Field(alias="statusText", default="")
    http_version: str = Field(alias="httpVersion", default="HTTP/1.1")
    headers: list[HARNameValue] = Field(default_factory=list)
    cookies: list[HARNameValue] = Field(default_factory=list)
    content: HARContent = Field(default_factory=HARContent)
    redirect_url: str = Field(alias="redirectURL", default="")
    headers_size: int = Field(alias="headersSize", default=-1)
    body_size: int = Field(alias="bodySize", default=-1)

    model_config = {"populate_by_name": True}


class HARTiming(BaseModel):
    """Phase durations in ms; -1 marks a phase that does not apply."""

    blocked: float = -1
    dns: float = -1
    connect: float = -1
    ssl: float = -1
    send: float = 0
    wait: float = 0
    receive: float = 0


class HAREntry(BaseModel):
    pageref: str = ""
    started_date_time: str = Field(alias="startedDateTime", default="")
    time: float = 0
    request: HARRequest
    response: HARResponse
    cache: dict[str, str] = Field(default_factory=dict)
    timings: HARTiming = Field(default_factory=HARTiming)

    model_config = {"populate_by_name": True}


class HARPageTimings(BaseModel):
    on_content_load: float = Field(alias="onContentLoad", default=-1)
    on_load: float = Field(alias="onLoad", default=-1)

    model_config = {"populate_by_name": True}


class HARPage(BaseModel):
    started_date_time: str = Field(alias="startedDateTime", default="")
    id: str
    title: str = ""
    page_timings: HARPageTimings = Field(alias="pageTimings", default_factory=HARPageTimings)

    model_config = {"populate_by_name": True}


class HARCreator(BaseModel):
    name: str = "loadscope"
    version: str = __version__


class HARLog(BaseModel):
    version: str = "1.2"
    creator: HARCreator = Field(default_factory=HARCreator)
    pages: list[HARPage] = Field(default_factory=list)
    entries: list[HAREntry] = Field(default_factory=list)


class HARFile(BaseModel):
    """Root object. Dump with ``by_alias=True`` for the camelCase HAR keys."""

    log: HARLog = Field(default_factory=HARLog)
