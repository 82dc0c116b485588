"""Tests for the capture layer — normalizer, aggregator, bridge, web vitals, HAR export."""

import asyncio
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import orjson

from loadscope.capture.aggregator import SessionAggregator
from loadscope.capture.bridge import CaptureBridge
from loadscope.capture.har_export import PAGE_ID, build_har, write_har
from loadscope.capture.normalizer import (
    TimingNormalizer,
    compute_phases,
    infer_resource_type,
    is_network_url,
)
from loadscope.capture.web_vitals import (
    cls_metric,
    fid_metric,
    lcp_metric,
    web_vitals_from_payload,
)
from loadscope.models.resource import RawTimingSample, ResourceRecord, TimingPhases
from loadscope.models.types import AggregatorEvent, HttpMethod, Rating, ResourceType

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def _sample(url: str, start: float = 0.0, size: int = 1000, **marks) -> dict:
    sample = {
        "url": url,
        "startTime": start,
        "initiatorType": "other",
        "transferSize": size,
        "fetchStart": start,
        "domainLookupStart": start + 5,
        "domainLookupEnd": start + 15,
        "connectStart": start + 15,
        "connectEnd": start + 40,
        "secureConnectionStart": start + 25,
        "requestStart": start + 40,
        "responseStart": start + 90,
        "responseEnd": start + 120,
    }
    sample.update(marks)
    return sample


def _record(url: str, offset_ms: float, wait: float, size: int = 100) -> ResourceRecord:
    return ResourceRecord(
        url=url,
        start_time=T0 + timedelta(milliseconds=offset_ms),
        timings=TimingPhases(wait=wait),
        response_size=size,
    )


class TestPhases:
    def test_consecutive_mark_differences(self) -> None:
        phases = compute_phases(RawTimingSample.model_validate(_sample("https://a.com/")))
        assert phases.blocked == 5
        assert phases.dns == 10
        assert phases.connect == 25
        assert phases.ssl == 15
        assert phases.wait == 50
        assert phases.receive == 30

    def test_non_monotonic_marks_clamped(self) -> None:
        raw = _sample(
            "https://a.com/",
            connectStart=50,
            connectEnd=20,
            domainLookupStart=10,
            domainLookupEnd=3,
            responseStart=30,
            requestStart=60,
            secureConnectionStart=45,
        )
        phases = compute_phases(RawTimingSample.model_validate(raw))
        for value in (phases.blocked, phases.dns, phases.connect, phases.ssl, phases.wait, phases.receive):
            assert value >= 0
        assert phases.connect == 0
        assert phases.dns == 0
        assert phases.wait == 0
        assert phases.ssl == 0

    def test_no_tls_means_zero_ssl(self) -> None:
        raw = _sample("http://a.com/", secureConnectionStart=0)
        assert compute_phases(RawTimingSample.model_validate(raw)).ssl == 0


class TestResourceTypeInference:
    def test_initiator_takes_precedence(self) -> None:
        assert infer_resource_type("script", "https://a.com/style.css") == ResourceType.SCRIPT
        assert infer_resource_type("css", "https://a.com/x") == ResourceType.STYLESHEET
        assert infer_resource_type("img", "https://a.com/x") == ResourceType.IMAGE
        assert infer_resource_type("navigation", "https://a.com/") == ResourceType.DOCUMENT
        assert infer_resource_type("fetch", "https://a.com/api") == ResourceType.XHR
        assert infer_resource_type("XMLHttpRequest", "https://a.com/api") == ResourceType.XHR

    def test_extension_fallback(self) -> None:
        assert infer_resource_type("other", "https://a.com/app.js?v=3") == ResourceType.SCRIPT
        assert infer_resource_type("other", "https://a.com/f/font.woff2") == ResourceType.FONT
        assert infer_resource_type("other", "https://a.com/hero.WEBP") == ResourceType.IMAGE
        assert infer_resource_type("other", "https://a.com/clip.mp4") == ResourceType.MEDIA

    def test_default_other(self) -> None:
        assert infer_resource_type("other", "https://a.com/api/items") == ResourceType.OTHER
        assert infer_resource_type("other", "https://a.com/archive.tar") == ResourceType.OTHER


class TestTimingNormalizer:
    def test_non_network_urls(self) -> None:
        assert not is_network_url("data:image/png;base64,AAAA")
        assert not is_network_url("blob:https://a.com/123")
        assert is_network_url("https://a.com/")

    def test_builds_records(self) -> None:
        records = TimingNormalizer().normalize([_sample("https://a.com/app.js", start=250)], T0)
        assert len(records) == 1
        record = records[0]
        assert record.method == HttpMethod.GET
        assert record.status_code == 200
        assert record.resource_type == ResourceType.SCRIPT
        assert record.start_time == T0 + timedelta(milliseconds=250)
        assert record.response_size == 1000
        assert record.duration_ms == 135

    def test_dedup_keeps_first_sample(self) -> None:
        batch = [
            _sample("https://a.com/x.png", size=111),
            _sample("https://a.com/x.png", size=222),
        ]
        records = TimingNormalizer().normalize(batch, T0)
        assert len(records) == 1
        assert records[0].response_size == 111

    def test_skips_known_urls(self) -> None:
        batch = [_sample("https://a.com/a.js"), _sample("https://a.com/b.js")]
        records = TimingNormalizer().normalize(batch, T0, known_urls={"https://a.com/a.js"})
        assert [r.url for r in records] == ["https://a.com/b.js"]

    def test_drops_malformed_and_inline(self) -> None:
        batch = [
            {"startTime": 3},
            "garbage",
            {"url": "https://a.com/", "fetchStart": "soon"},
            _sample("data:image/gif;base64,R0lGOD"),
            _sample("https://a.com/ok.css"),
        ]
        records = TimingNormalizer().normalize(batch, T0)
        assert [r.url for r in records] == ["https://a.com/ok.css"]

    def test_idempotent_against_same_known_set(self) -> None:
        normalizer = TimingNormalizer()
        batch = [_sample("https://a.com/1"), _sample("https://a.com/2")]
        first = normalizer.normalize(batch, T0)
        second = normalizer.normalize(batch, T0)
        assert [r.model_dump(exclude={"id"}) for r in first] == [
            r.model_dump(exclude={"id"}) for r in second
        ]

    def test_ingest_appends_to_aggregator(self) -> None:
        aggregator = SessionAggregator()
        aggregator.start_session("https://a.com/", started_at=T0)
        normalizer = TimingNormalizer()
        normalizer.ingest([_sample("https://a.com/1")], aggregator)
        normalizer.ingest([_sample("https://a.com/1"), _sample("https://a.com/2")], aggregator)
        assert [r.url for r in aggregator.resources] == ["https://a.com/1", "https://a.com/2"]


class TestSessionAggregator:
    def test_totals_track_wall_clock_span(self) -> None:
        aggregator = SessionAggregator()
        aggregator.start_session("https://a.com/", started_at=T0)
        aggregator.append([_record("https://a.com/", 0, 100, size=500)])
        aggregator.append([_record("https://a.com/app.js", 500, 300, size=250)])

        aggregate = aggregator.aggregate
        assert aggregate.resource_count == 2
        assert aggregate.total_bytes == 750
        assert aggregate.total_duration_ms == 800

    def test_duration_never_decreases(self) -> None:
        aggregator = SessionAggregator()
        aggregator.start_session("https://a.com/", started_at=T0)
        aggregator.append([_record("https://a.com/slow", 0, 900)])
        aggregator.append([_record("https://a.com/fast", 10, 5)])
        assert aggregator.aggregate.total_duration_ms == 900

    def test_append_dedups_by_url(self) -> None:
        aggregator = SessionAggregator()
        aggregator.start_session("https://a.com/", started_at=T0)
        assert aggregator.append([_record("https://a.com/x", 0, 10)]) == 1
        assert aggregator.append([_record("https://a.com/x", 5, 10), _record("https://a.com/y", 0, 10)]) == 1
        assert aggregator.aggregate.resource_count == 2

    def test_clear_resets_totals_and_keeps_filter(self) -> None:
        aggregator = SessionAggregator()
        aggregator.start_session("https://a.com/", started_at=T0)
        aggregator.set_filter(search_text="js")
        aggregator.append([_record("https://a.com/x.js", 0, 10)])
        aggregator.clear()

        aggregate = aggregator.aggregate
        assert aggregate.resources == []
        assert aggregate.resource_count == 0
        assert aggregate.total_bytes == 0
        assert aggregate.total_duration_ms == 0
        assert aggregate.filter.search_text == "js"

    def test_filtered_view_does_not_mutate(self) -> None:
        aggregator = SessionAggregator()
        aggregator.start_session("https://a.com/", started_at=T0)
        aggregator.append([_record("https://a.com/app.js", 0, 10), _record("https://cdn.net/x.png", 0, 10)])
        aggregator.set_filter(domains={"cdn.net"})
        assert [r.url for r in aggregator.filtered_resources] == ["https://cdn.net/x.png"]
        assert len(aggregator.resources) == 2

        aggregator.set_filter(search_text="APP", domains=set())
        assert [r.url for r in aggregator.filtered_resources] == ["https://a.com/app.js"]
        aggregator.reset_filter()
        assert len(aggregator.filtered_resources) == 2

    def test_set_filter_none_keeps_current(self) -> None:
        aggregator = SessionAggregator()
        aggregator.set_filter(types=[ResourceType.IMAGE])
        aggregator.set_filter(search_text="logo")
        assert aggregator.aggregate.filter.types == {ResourceType.IMAGE}
        assert aggregator.aggregate.filter.search_text == "logo"

    def test_notifications(self) -> None:
        aggregator = SessionAggregator()
        events: list[AggregatorEvent] = []
        unsubscribe = aggregator.subscribe(lambda event, aggregate: events.append(event))

        aggregator.start_session("https://a.com/", started_at=T0)
        aggregator.append([_record("https://a.com/", 0, 10)])
        aggregator.append([_record("https://a.com/", 0, 10)])
        aggregator.finish()
        unsubscribe()
        aggregator.clear()

        assert events == [
            AggregatorEvent.SESSION_STARTED,
            AggregatorEvent.RESOURCES_ADDED,
            AggregatorEvent.LOADING_CHANGED,
        ]

    def test_listener_sees_consistent_totals(self) -> None:
        aggregator = SessionAggregator()
        seen: list[tuple[int, int]] = []
        aggregator.subscribe(
            lambda event, aggregate: seen.append((len(aggregate.resources), aggregate.resource_count))
        )
        aggregator.start_session("https://a.com/", started_at=T0)
        aggregator.append([_record("https://a.com/1", 0, 10), _record("https://a.com/2", 0, 10)])
        aggregator.clear()
        assert all(count == total for count, total in seen)

    def test_start_session_replaces_previous(self) -> None:
        aggregator = SessionAggregator()
        aggregator.start_session("https://a.com/", started_at=T0)
        aggregator.append([_record("https://a.com/", 0, 10)])
        aggregate = aggregator.start_session("https://b.com/")
        assert aggregate.url == "https://b.com/"
        assert aggregate.loading is True
        assert aggregate.resources == []


class TestWebVitals:
    def test_lcp_bands(self) -> None:
        good = lcp_metric(1200)
        assert (good.rating, good.score, good.value) == (Rating.GOOD, 88, "1.20 s")
        assert lcp_metric(800).value == "800 ms"
        assert lcp_metric(3000).rating == Rating.NEEDS_IMPROVEMENT
        assert lcp_metric(3000).score == 67
        assert lcp_metric(5000).score == 45
        assert lcp_metric(50_000).score == 0

    def test_cls_bands(self) -> None:
        assert cls_metric(0.05).score == 88
        assert cls_metric(0.05).value == "0.050"
        assert cls_metric(0.2).rating == Rating.NEEDS_IMPROVEMENT
        assert cls_metric(0.5).rating == Rating.POOR
        assert cls_metric(0.5).score == 25

    def test_fid_bands(self) -> None:
        assert fid_metric(50).score == 88
        assert fid_metric(200).score == 63
        assert fid_metric(500).score == 40
        assert fid_metric(500).rating == Rating.POOR

    def test_from_payload(self) -> None:
        vitals = web_vitals_from_payload({"lcp": 1200, "cls": 0.05, "fid": 50})
        assert vitals is not None
        assert vitals.lcp.raw_value == 1200
        assert vitals.fid.rating == Rating.GOOD

    def test_incomplete_payload(self) -> None:
        assert web_vitals_from_payload({"lcp": 1200, "cls": 0.05}) is None
        assert web_vitals_from_payload({"lcp": "fast", "cls": 0.05, "fid": 3}) is None
        assert web_vitals_from_payload({"lcp": True, "cls": 0.05, "fid": 3}) is None


class TestCaptureBridge:
    def test_drops_batches_without_aggregator(self) -> None:
        bridge = CaptureBridge()
        assert bridge.deliver([_sample("https://a.com/")]) == 0

    def test_navigation_lifecycle(self) -> None:
        aggregator = SessionAggregator()
        bridge = CaptureBridge()
        bridge.register(aggregator)

        bridge.load_started("https://a.com/", started_at=T0)
        assert aggregator.aggregate.loading is True
        assert bridge.deliver([_sample("https://a.com/"), _sample("https://a.com/")]) == 1

        bridge.load_finished({"lcp": 1200, "cls": 0.05, "fid": 50})
        assert aggregator.aggregate.loading is False
        assert aggregator.aggregate.web_vitals is not None

        bridge.deregister()
        assert bridge.aggregator is None
        assert bridge.deliver([_sample("https://a.com/other")]) == 0

    def test_load_failed_stops_loading(self) -> None:
        aggregator = SessionAggregator()
        bridge = CaptureBridge()
        bridge.register(aggregator)
        bridge.load_started("https://a.com/", started_at=T0)
        bridge.load_failed("net::ERR_NAME_NOT_RESOLVED")
        assert aggregator.aggregate.loading is False

    def test_capture_consumes_source(self) -> None:
        aggregator = SessionAggregator()
        bridge = CaptureBridge()
        bridge.register(aggregator)
        bridge.load_started("https://a.com/", started_at=T0)

        async def source():
            yield [_sample("https://a.com/1")]
            yield [_sample("https://a.com/2"), _sample("https://a.com/1")]

        assert asyncio.run(bridge.capture(source())) == 2
        assert aggregator.aggregate.resource_count == 2

    def test_new_navigation_stops_capture(self) -> None:
        aggregator = SessionAggregator()
        bridge = CaptureBridge()
        bridge.register(aggregator)
        bridge.load_started("https://a.com/", started_at=T0)

        async def source():
            yield [_sample("https://a.com/1")]
            bridge.load_started("https://b.com/", started_at=T0)
            yield [_sample("https://a.com/late")]

        assert asyncio.run(bridge.capture(source())) == 1
        assert aggregator.aggregate.url == "https://b.com/"
        assert aggregator.aggregate.resources == []

    def test_stop_capture_cancels_task(self) -> None:
        async def scenario() -> bool:
            aggregator = SessionAggregator()
            bridge = CaptureBridge()
            bridge.register(aggregator)
            bridge.load_started("https://a.com/", started_at=T0)
            never = asyncio.Event()

            async def source():
                yield [_sample("https://a.com/1")]
                await never.wait()
                yield [_sample("https://a.com/2")]

            task = bridge.start_capture(source())
            await asyncio.sleep(0.01)
            await bridge.stop_capture()
            assert aggregator.aggregate.resource_count == 1
            return task.cancelled()

        assert asyncio.run(scenario()) is True


class TestHARExport:
    def _aggregator(self) -> SessionAggregator:
        aggregator = SessionAggregator()
        aggregator.start_session("https://a.com/", started_at=T0)
        aggregator.append(
            [
                ResourceRecord(
                    url="https://a.com/search?q=shoes&page=",
                    start_time=T0,
                    timings=TimingPhases(blocked=1, dns=2, connect=3, ssl=4, wait=5, receive=6),
                    response_size=2048,
                    mime_type="text/html",
                ),
                ResourceRecord(
                    url="https://api.a.com/cart",
                    method=HttpMethod.POST,
                    status_code=799,
                    start_time=T0 + timedelta(milliseconds=30),
                    timings=TimingPhases(wait=20),
                    request_headers={"Content-Type": "application/json"},
                    request_body='{"sku": 1}',
                ),
            ]
        )
        return aggregator

    def test_build_har(self) -> None:
        aggregator = self._aggregator()
        har = build_har(aggregator.aggregate)
        assert har.log.version == "1.2"
        assert har.log.pages[0].id == PAGE_ID
        assert har.log.pages[0].page_timings.on_load == aggregator.aggregate.total_duration_ms

        first, second = har.log.entries
        assert first.pageref == PAGE_ID
        assert first.time == 21
        assert first.timings.send == 0
        assert first.timings.ssl == 4
        assert first.response.status_text == "OK"
        assert first.response.content.mime_type == "text/html"
        assert [(q.name, q.value) for q in first.request.query_string] == [("q", "shoes"), ("page", "")]

        assert second.request.method == "POST"
        assert second.request.post_data.mime_type == "application/json"
        assert second.response.status_text == ""

    def test_write_har(self) -> None:
        aggregator = self._aggregator()
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_har(aggregator.aggregate, Path(tmpdir) / "out" / "session.har")
            data = orjson.loads(path.read_bytes())

        assert data["log"]["creator"]["name"] == "loadscope"
        assert data["log"]["pages"][0]["pageTimings"]["onContentLoad"] == 50
        entry = data["log"]["entries"][0]
        assert entry["startedDateTime"].startswith("2026-03-01T12:00:00.000")
        assert entry["request"]["queryString"][0] == {"name": "q", "value": "shoes"}
