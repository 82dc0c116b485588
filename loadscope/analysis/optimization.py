"""Optimization suggestions — rule checks over a session's captured resources."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from urllib.parse import urlparse

from loadscope.analysis.budget import format_duration
from loadscope.models.optimization import AffectedResource, OptimizationSuggestion
from loadscope.models.resource import ResourceRecord
from loadscope.models.session import SessionAggregate
from loadscope.models.types import (
    Difficulty,
    ResourceType,
    SuggestionCategory,
    SuggestionImpact,
)

logger = logging.getLogger(__name__)

KB = 1024
MB = 1_048_576

COMPRESSIBLE_TYPES = {
    ResourceType.DOCUMENT,
    ResourceType.SCRIPT,
    ResourceType.STYLESHEET,
    ResourceType.XHR,
}
MIN_COMPRESSIBLE_SIZE = 1024
COMPRESSION_RATIO = 0.7
CACHE_HEADERS = {"cache-control", "expires", "etag"}

LARGE_IMAGE_SIZE = 500_000
LAZY_LOAD_MIN_IMAGES = 20
ABOVE_FOLD_IMAGES = 5

RENDER_BLOCKING_WINDOW = timedelta(seconds=1)
MAX_BLOCKING_STYLESHEETS = 3

MAX_SCRIPT_BYTES = MB
SCRIPT_TARGET_BYTES = 524_288
MAX_STYLESHEET_BYTES = 204_800
MAX_FONTS = 4
KEEP_FONTS = 3
MAX_DOMAINS = 10
CONNECTION_OVERHEAD_MS = 300

IMPACT_WEIGHTS = {
    SuggestionImpact.CRITICAL: 4,
    SuggestionImpact.HIGH: 3,
    SuggestionImpact.MEDIUM: 2,
    SuggestionImpact.LOW: 1,
}
DIFFICULTY_ORDER = {Difficulty.EASY: 0, Difficulty.MEDIUM: 1, Difficulty.HARD: 2}


def format_bytes(size: int) -> str:
    if size < KB:
        return f"{size} B"
    if size < MB:
        return f"{size / KB:.1f} KB"
    return f"{size / MB:.2f} MB"


def _ms(duration_ms: float) -> str:
    return format_duration(duration_ms / 1000)


def _file_name(url: str) -> str:
    return urlparse(url).path.rstrip("/").rsplit("/", 1)[-1] or "unknown"


def _extension(url: str) -> str:
    name = _file_name(url)
    return name.rsplit(".", 1)[-1].upper() if "." in name else "Unknown"


def _header_names(resource: ResourceRecord) -> set[str]:
    return {name.lower() for name in resource.response_headers}


def _total(resources: list[ResourceRecord]) -> int:
    return sum(r.response_size for r in resources)


def _percent(part: float, whole: float) -> int:
    return int(part * 100 / whole) if whole else 0


def _affected(resource: ResourceRecord, issue: str) -> AffectedResource:
    return AffectedResource(
        url=resource.url,
        size=resource.response_size,
        resource_type=resource.resource_type,
        duration_ms=resource.duration_ms,
        issue=issue,
    )


def _of_type(aggregate: SessionAggregate, resource_type: ResourceType) -> list[ResourceRecord]:
    return [r for r in aggregate.resources if r.resource_type == resource_type]


class OptimizationAnalyzer:
    """Runs every optimization rule over a session and ranks the findings.

    Rules that depend on response headers (compression, caching) only look
    at resources whose headers were observed. Resource Timing batches carry
    no headers, so those rules stay silent for passively captured sessions.
    """

    def analyze(self, aggregate: SessionAggregate) -> list[OptimizationSuggestion]:
        checks = (
            self._compression,
            self._large_images,
            self._lazy_images,
            self._caching,
            self._blocking_scripts,
            self._blocking_stylesheets,
            self._javascript_size,
            self._css_size,
            self._fonts,
            self._connections,
        )
        suggestions = [s for s in (check(aggregate) for check in checks) if s is not None]

        # Highest impact first, easiest first within an impact
        suggestions.sort(
            key=lambda s: (-IMPACT_WEIGHTS[s.impact], DIFFICULTY_ORDER[s.difficulty])
        )
        logger.debug("%d optimization suggestion(s) for %s", len(suggestions), aggregate.url)
        return suggestions

    # ── Transfer ──

    def _compression(self, aggregate: SessionAggregate) -> OptimizationSuggestion | None:
        uncompressed = [
            r
            for r in aggregate.resources
            if r.resource_type in COMPRESSIBLE_TYPES
            and r.response_size > MIN_COMPRESSIBLE_SIZE
            and r.response_headers
            and "content-encoding" not in _header_names(r)
        ]
        if not uncompressed:
            return None

        total = _total(uncompressed)
        savings = int(total * COMPRESSION_RATIO)
        by_type = Counter(r.resource_type.value for r in uncompressed)
        breakdown = ", ".join(f"{count} {kind}" for kind, count in by_type.items())

        return OptimizationSuggestion(
            title="Enable Gzip/Brotli Compression",
            description=(
                f"{len(uncompressed)} text-based resources ({breakdown}) totaling "
                f"{format_bytes(total)} are served without compression. "
                "Text files typically compress 60-80%."
            ),
            impact=SuggestionImpact.CRITICAL if total > MB else SuggestionImpact.HIGH,
            difficulty=Difficulty.EASY,
            category=SuggestionCategory.COMPRESSION,
            affected_resources=[
                _affected(r, "Missing Content-Encoding header (gzip/brotli)") for r in uncompressed
            ],
            estimated_savings=(
                f"Current size: {format_bytes(total)}. With compression: "
                f"~{format_bytes(total - savings)} (saves {format_bytes(savings)} "
                f"or {_percent(savings, total)}%)"
            ),
            current_state=f"{len(uncompressed)} uncompressed files, {format_bytes(total)} total",
            target_state="Enable gzip (compression level 6) or brotli (level 4) on server",
        )

    def _caching(self, aggregate: SessionAggregate) -> OptimizationSuggestion | None:
        uncached = [
            r
            for r in aggregate.resources
            if r.resource_type != ResourceType.DOCUMENT
            and r.response_headers
            and not _header_names(r) & CACHE_HEADERS
        ]
        if not uncached:
            return None

        total = _total(uncached)
        groups: dict[str, list[ResourceRecord]] = defaultdict(list)
        for r in uncached:
            groups[r.resource_type.value].append(r)
        breakdown = ", ".join(
            f"{len(members)} {kind} ({format_bytes(_total(members))})" for kind, members in groups.items()
        )

        return OptimizationSuggestion(
            title="Add Cache Headers",
            description=(
                f"{len(uncached)} static resources ({breakdown}) totaling {format_bytes(total)} "
                "lack cache headers. Every repeat visitor re-downloads these files."
            ),
            impact=SuggestionImpact.MEDIUM,
            difficulty=Difficulty.EASY,
            category=SuggestionCategory.CACHING,
            affected_resources=[
                _affected(r, "No Cache-Control, Expires or ETag header; re-downloaded on every visit")
                for r in uncached
            ],
            estimated_savings=(
                f"Repeat visitors re-download {format_bytes(total)}. With "
                f"Cache-Control: max-age=31536000 on static assets, {len(uncached)} requests "
                "are skipped per repeat visit."
            ),
            current_state=f"{len(uncached)} resources without caching, {format_bytes(total)} per visit",
            target_state="Cache-Control: max-age=31536000 for CSS/JS/images with versioned URLs",
        )

    # ── Images ──

    def _large_images(self, aggregate: SessionAggregate) -> OptimizationSuggestion | None:
        large = [r for r in _of_type(aggregate, ResourceType.IMAGE) if r.response_size > LARGE_IMAGE_SIZE]
        if not large:
            return None

        total = _total(large)
        largest = max(large, key=lambda r: r.response_size)
        target = total // 5

        return OptimizationSuggestion(
            title="Optimize Large Images",
            description=(
                f"{len(large)} images exceed 500 KB each. Largest is "
                f"{format_bytes(largest.response_size)}. Modern formats (WebP, AVIF) and proper "
                "sizing reduce file size while keeping quality."
            ),
            impact=SuggestionImpact.HIGH,
            difficulty=Difficulty.MEDIUM,
            category=SuggestionCategory.IMAGES,
            affected_resources=[
                _affected(
                    r,
                    f"{format_bytes(r.response_size)} {_extension(r.url)} image; "
                    "convert to WebP and resize",
                )
                for r in large
            ],
            estimated_savings=(
                f"Current total: {format_bytes(total)} across {len(large)} images "
                f"(avg {format_bytes(total // len(large))}). Target with WebP: "
                f"~{format_bytes(target)}. Potential savings: {format_bytes(total - target)}"
            ),
            current_state=f"{len(large)} images > 500 KB, totaling {format_bytes(total)}",
            target_state="Convert to WebP, resize to display dimensions, use srcset",
        )

    def _lazy_images(self, aggregate: SessionAggregate) -> OptimizationSuggestion | None:
        images = sorted(_of_type(aggregate, ResourceType.IMAGE), key=lambda r: r.start_time)
        if len(images) <= LAZY_LOAD_MIN_IMAGES:
            return None

        # Assume the first few images are above the fold
        below_fold = images[ABOVE_FOLD_IMAGES:]
        deferred = _total(below_fold)

        return OptimizationSuggestion(
            title="Implement Image Lazy Loading",
            description=(
                f"{len(images)} images loaded eagerly. About {len(below_fold)} images "
                f"(~{_percent(len(below_fold), len(images))}%) are likely below the fold and "
                "could be lazy-loaded."
            ),
            impact=SuggestionImpact.MEDIUM,
            difficulty=Difficulty.EASY,
            category=SuggestionCategory.IMAGES,
            affected_resources=[
                _affected(r, f"{format_bytes(r.response_size)}; candidate for loading=\"lazy\"")
                for r in below_fold
            ],
            estimated_savings=(
                f"Defer {format_bytes(deferred)} ({len(below_fold)} images) from the initial load "
                "with loading=\"lazy\"."
            ),
            current_state=f"{len(images)} images loaded immediately, {format_bytes(_total(images))} total",
            target_state="Lazy load below-the-fold images with loading=\"lazy\" or IntersectionObserver",
        )

    # ── Render blocking ──

    def _early(self, aggregate: SessionAggregate, resource_type: ResourceType) -> list[ResourceRecord]:
        resources = _of_type(aggregate, resource_type)
        if not resources:
            return []
        origin: datetime = aggregate.started_at or min(r.start_time for r in aggregate.resources)
        return [r for r in resources if r.start_time - origin < RENDER_BLOCKING_WINDOW]

    def _blocking_scripts(self, aggregate: SessionAggregate) -> OptimizationSuggestion | None:
        scripts = self._early(aggregate, ResourceType.SCRIPT)
        if not scripts:
            return None

        blocking_ms = sum(r.duration_ms for r in scripts)
        total = _total(scripts)
        longest = max(scripts, key=lambda r: r.duration_ms)

        return OptimizationSuggestion(
            title="Defer Non-Critical JavaScript",
            description=(
                f"{len(scripts)} JavaScript files ({format_bytes(total)}) loaded in the first second "
                "block HTML parsing and rendering. Longest blocker: "
                f"{_ms(longest.duration_ms)}."
            ),
            impact=SuggestionImpact.HIGH,
            difficulty=Difficulty.MEDIUM,
            category=SuggestionCategory.RENDER_BLOCKING,
            affected_resources=[
                _affected(
                    r,
                    f"{_file_name(r.url)}: {format_bytes(r.response_size)}, "
                    f"{_ms(r.duration_ms)} download; add async or defer",
                )
                for r in scripts
            ],
            estimated_savings=(
                f"Blocking time: {_ms(blocking_ms)} total. async/defer could improve First "
                f"Contentful Paint by {_ms(blocking_ms * 0.7)}."
            ),
            current_state=(
                f"{len(scripts)} render-blocking scripts, {_ms(blocking_ms)} blocking time, "
                f"{format_bytes(total)} before render"
            ),
            target_state="async for analytics/ads, defer for app logic, inline critical scripts",
        )

    def _blocking_stylesheets(self, aggregate: SessionAggregate) -> OptimizationSuggestion | None:
        sheets = self._early(aggregate, ResourceType.STYLESHEET)
        if len(sheets) <= MAX_BLOCKING_STYLESHEETS:
            return None

        blocking_ms = sum(r.duration_ms for r in sheets)
        total = _total(sheets)

        return OptimizationSuggestion(
            title="Reduce Render-Blocking CSS",
            description=(
                f"{len(sheets)} CSS files ({format_bytes(total)}) block rendering in the critical "
                f"path. Total blocking time: {_ms(blocking_ms)}."
            ),
            impact=SuggestionImpact.HIGH,
            difficulty=Difficulty.HARD,
            category=SuggestionCategory.RENDER_BLOCKING,
            affected_resources=[
                _affected(
                    r,
                    f"{_file_name(r.url)}: {format_bytes(r.response_size)}, "
                    f"{_ms(r.duration_ms)}; consider inlining critical CSS",
                )
                for r in sheets
            ],
            estimated_savings=(
                f"Inline ~10-15 KB of critical CSS and preload the rest. Could improve First "
                f"Paint by {_ms(blocking_ms * 0.6)}."
            ),
            current_state=(
                f"{len(sheets)} render-blocking stylesheets, {format_bytes(total)} total, "
                f"{_ms(blocking_ms)} blocking time"
            ),
            target_state="Inline critical CSS (~10 KB), load the rest with rel=\"preload\" as=\"style\"",
        )

    # ── Bundle weight ──

    def _javascript_size(self, aggregate: SessionAggregate) -> OptimizationSuggestion | None:
        scripts = _of_type(aggregate, ResourceType.SCRIPT)
        total = _total(scripts)
        if total <= MAX_SCRIPT_BYTES:
            return None

        top5 = _total(sorted(scripts, key=lambda r: r.response_size, reverse=True)[:5])

        return OptimizationSuggestion(
            title="Reduce JavaScript Bundle Size",
            description=(
                f"{len(scripts)} JavaScript files totaling {format_bytes(total)}. The 5 largest "
                f"account for {format_bytes(top5)} ({_percent(top5, total)}%). Excess JavaScript "
                "delays interactivity."
            ),
            impact=SuggestionImpact.HIGH,
            difficulty=Difficulty.MEDIUM,
            category=SuggestionCategory.JAVASCRIPT,
            affected_resources=[
                _affected(
                    r,
                    f"{_file_name(r.url)}: {format_bytes(r.response_size)} "
                    f"({_percent(r.response_size, total)}% of total); split or tree shake",
                )
                for r in scripts
            ],
            estimated_savings=(
                f"Target: < 500 KB total. Potential savings: "
                f"~{format_bytes(total - SCRIPT_TARGET_BYTES)}"
            ),
            current_state=f"{len(scripts)} JS files, {format_bytes(total)} total (target: < 500 KB)",
            target_state="Code split by route, tree shake, use dynamic imports",
        )

    def _css_size(self, aggregate: SessionAggregate) -> OptimizationSuggestion | None:
        sheets = _of_type(aggregate, ResourceType.STYLESHEET)
        total = _total(sheets)
        if total <= MAX_STYLESHEET_BYTES:
            return None

        largest = max(sheets, key=lambda r: r.response_size)

        return OptimizationSuggestion(
            title="Reduce CSS Bundle Size",
            description=(
                f"{len(sheets)} CSS files totaling {format_bytes(total)}. Largest file: "
                f"{format_bytes(largest.response_size)}. Most sites use only 10-30% of their "
                "CSS rules."
            ),
            impact=SuggestionImpact.MEDIUM,
            difficulty=Difficulty.MEDIUM,
            category=SuggestionCategory.CSS,
            affected_resources=[
                _affected(
                    r,
                    f"{_file_name(r.url)}: {format_bytes(r.response_size)} "
                    f"({_percent(r.response_size, total)}% of total); remove unused rules",
                )
                for r in sheets
            ],
            estimated_savings=(
                f"Target: < 100 KB total. Potential savings: ~{format_bytes(int(total * 0.7))}"
            ),
            current_state=f"{len(sheets)} CSS files, {format_bytes(total)} total (target: < 100 KB)",
            target_state="Remove unused rules, combine and minify files",
        )

    def _fonts(self, aggregate: SessionAggregate) -> OptimizationSuggestion | None:
        fonts = _of_type(aggregate, ResourceType.FONT)
        if len(fonts) <= MAX_FONTS:
            return None

        total = _total(fonts)
        average = total // len(fonts)
        removable = len(fonts) - KEEP_FONTS

        return OptimizationSuggestion(
            title="Reduce Font Variants",
            description=(
                f"{len(fonts)} font files loaded, totaling {format_bytes(total)} "
                f"(avg {format_bytes(average)} per font). Most sites need 2-3 weights."
            ),
            impact=SuggestionImpact.MEDIUM,
            difficulty=Difficulty.EASY,
            category=SuggestionCategory.FONTS,
            affected_resources=[
                _affected(
                    r,
                    f"{_file_name(r.url)}: {format_bytes(r.response_size)} {_extension(r.url)}, "
                    f"{_ms(r.duration_ms)} load time",
                )
                for r in fonts
            ],
            estimated_savings=(
                f"Removing {removable} fonts saves ~{format_bytes(average * removable)}. "
                "Use font-display: swap."
            ),
            current_state=f"{len(fonts)} font files, {format_bytes(total)} total",
            target_state="Keep essential weights only, use font-display: swap, subset fonts",
        )

    # ── Connections ──

    def _connections(self, aggregate: SessionAggregate) -> OptimizationSuggestion | None:
        groups: dict[str, list[ResourceRecord]] = defaultdict(list)
        for r in aggregate.resources:
            if r.domain:
                groups[r.domain].append(r)
        if len(groups) <= MAX_DOMAINS:
            return None

        ranked = sorted(groups.items(), key=lambda item: len(item[1]), reverse=True)
        overhead_ms = len(groups) * CONNECTION_OVERHEAD_MS
        chattiest = ", ".join(domain for domain, _ in ranked[:5])

        return OptimizationSuggestion(
            title="Reduce Third-Party Domains",
            description=(
                f"{len(groups)} unique domains detected. Each needs its own DNS lookup, TCP "
                f"connection and TLS handshake (~300 ms). Chattiest: {chattiest}."
            ),
            impact=SuggestionImpact.MEDIUM,
            difficulty=Difficulty.HARD,
            category=SuggestionCategory.THIRD_PARTY,
            affected_resources=[
                AffectedResource(
                    url=domain,
                    size=_total(members),
                    duration_ms=max(r.duration_ms for r in members),
                    issue=f"{len(members)} requests, {format_bytes(_total(members))}",
                )
                for domain, members in ranked
            ],
            estimated_savings=(
                f"Connection overhead ~{_ms(overhead_ms)}. Reducing to {MAX_DOMAINS} domains "
                f"saves ~{_ms((len(groups) - MAX_DOMAINS) * CONNECTION_OVERHEAD_MS)}."
            ),
            current_state=f"{len(groups)} unique domains, ~{_ms(overhead_ms)} connection overhead",
            target_state="Fewer than 10 domains, self-host critical resources, preconnect the rest",
        )
