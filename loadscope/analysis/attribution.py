"""Third-party attribution — groups resources by domain and classifies providers."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from urllib.parse import urlparse

import tldextract

from loadscope.models.attribution import AttributionReport, ThirdPartyDomain, ThirdPartyProvider
from loadscope.models.config import ImpactThresholds
from loadscope.models.resource import ResourceRecord
from loadscope.models.session import SessionAggregate
from loadscope.models.types import ImpactTier, ProviderCategory

logger = logging.getLogger(__name__)

# Bundled public-suffix snapshot only; never fetches the list over the network
_extract = tldextract.TLDExtract(suffix_list_urls=())


def _p(name: str, category: ProviderCategory, description: str) -> ThirdPartyProvider:
    return ThirdPartyProvider(name=name, category=category, description=description)


C = ProviderCategory

# Domain (or parent-domain suffix) -> provider. Queried by longest suffix match.
DEFAULT_PROVIDERS: dict[str, ThirdPartyProvider] = {
    "google-analytics.com": _p("Google Analytics", C.ANALYTICS, "Web analytics service"),
    "analytics.google.com": _p("Google Analytics", C.ANALYTICS, "Web analytics service"),
    "googletagmanager.com": _p("Google Tag Manager", C.TAG_MANAGEMENT, "Tag management system"),
    "doubleclick.net": _p("DoubleClick", C.ADVERTISING, "Ad serving platform"),
    "googlesyndication.com": _p("Google AdSense", C.ADVERTISING, "Ad serving platform"),
    "googleadservices.com": _p("Google Ads", C.ADVERTISING, "Conversion tracking"),
    "adnxs.com": _p("Xandr", C.ADVERTISING, "Programmatic advertising"),
    "criteo.com": _p("Criteo", C.ADVERTISING, "Retargeting ads"),
    "taboola.com": _p("Taboola", C.ADVERTISING, "Content recommendation ads"),
    "outbrain.com": _p("Outbrain", C.ADVERTISING, "Content recommendation ads"),
    "facebook.net": _p("Facebook", C.SOCIAL_MEDIA, "Social media tracking"),
    "connect.facebook.net": _p("Facebook SDK", C.SOCIAL_MEDIA, "Facebook integration"),
    "facebook.com": _p("Facebook", C.SOCIAL_MEDIA, "Social media integration"),
    "twitter.com": _p("Twitter", C.SOCIAL_MEDIA, "Social media integration"),
    "platform.twitter.com": _p("Twitter Widgets", C.SOCIAL_MEDIA, "Embedded tweets and buttons"),
    "linkedin.com": _p("LinkedIn", C.SOCIAL_MEDIA, "Social media integration"),
    "youtube.com": _p("YouTube", C.VIDEO, "Video platform"),
    "ytimg.com": _p("YouTube Images", C.VIDEO, "Video thumbnails"),
    "googlevideo.com": _p("YouTube CDN", C.VIDEO, "Video delivery"),
    "vimeo.com": _p("Vimeo", C.VIDEO, "Video platform"),
    "googleapis.com": _p("Google APIs", C.OTHER, "Google services"),
    "gstatic.com": _p("Google Static", C.CDN, "Google CDN"),
    "cloudflare.com": _p("Cloudflare", C.CDN, "CDN and security"),
    "cdnjs.cloudflare.com": _p("cdnjs", C.CDN, "Open-source library CDN"),
    "cloudfront.net": _p("Amazon CloudFront", C.CDN, "AWS CDN"),
    "akamaized.net": _p("Akamai", C.CDN, "CDN provider"),
    "fastly.net": _p("Fastly", C.CDN, "Edge cloud CDN"),
    "jsdelivr.net": _p("jsDelivr", C.CDN, "Open-source library CDN"),
    "unpkg.com": _p("unpkg", C.CDN, "npm package CDN"),
    "fonts.googleapis.com": _p("Google Fonts", C.FONTS, "Web fonts service"),
    "fonts.gstatic.com": _p("Google Fonts CDN", C.FONTS, "Font delivery"),
    "typekit.net": _p("Adobe Fonts", C.FONTS, "Web fonts service"),
    "use.fontawesome.com": _p("Font Awesome", C.FONTS, "Icon font delivery"),
    "maps.googleapis.com": _p("Google Maps", C.MAPS, "Maps API"),
    "api.mapbox.com": _p("Mapbox", C.MAPS, "Maps API"),
    "stripe.com": _p("Stripe", C.PAYMENTS, "Payment processing"),
    "paypal.com": _p("PayPal", C.PAYMENTS, "Payment processing"),
    "hotjar.com": _p("Hotjar", C.ANALYTICS, "User behavior analytics"),
    "segment.com": _p("Segment", C.ANALYTICS, "Customer data platform"),
    "segment.io": _p("Segment", C.ANALYTICS, "Customer data platform"),
    "mixpanel.com": _p("Mixpanel", C.ANALYTICS, "Product analytics"),
    "amplitude.com": _p("Amplitude", C.ANALYTICS, "Product analytics"),
    "clarity.ms": _p("Microsoft Clarity", C.ANALYTICS, "Session replay analytics"),
    "newrelic.com": _p("New Relic", C.ANALYTICS, "Real user monitoring"),
    "nr-data.net": _p("New Relic", C.ANALYTICS, "Real user monitoring"),
    "sentry.io": _p("Sentry", C.OTHER, "Error monitoring"),
}


def registrable_domain(host: str) -> str:
    """``cdn.example.co.uk`` -> ``example.co.uk``; hosts without a public suffix unchanged."""
    parts = _extract(host)
    if not parts.suffix or not parts.domain:
        return host
    return f"{parts.domain}.{parts.suffix}"


def identify_provider(
    domain: str, providers: Mapping[str, ThirdPartyProvider] = DEFAULT_PROVIDERS
) -> ThirdPartyProvider | None:
    """Longest dot-boundary suffix match of ``domain`` against ``providers``."""
    labels = domain.lower().strip(".").split(".")
    for i in range(len(labels)):
        provider = providers.get(".".join(labels[i:]))
        if provider is not None:
            return provider
    return None


class AttributionEngine:
    """Splits a session's cost between the page's own domain and third parties."""

    def __init__(
        self,
        providers: Mapping[str, ThirdPartyProvider] | None = None,
        thresholds: ImpactThresholds | None = None,
    ) -> None:
        self.providers: dict[str, ThirdPartyProvider] = dict(DEFAULT_PROVIDERS)
        if providers:
            self.providers.update({k.lower(): v for k, v in providers.items()})
        self.thresholds = thresholds or ImpactThresholds()

    def is_first_party(self, domain: str, page_domain: str) -> bool:
        if not page_domain:
            return False
        if domain == page_domain:
            return True
        return registrable_domain(domain) == registrable_domain(page_domain)

    def impact_for(
        self, total_bytes: int, total_duration_ms: float, session_bytes: int, session_duration_ms: float
    ) -> ImpactTier:
        """Tier from the larger of the domain's byte share and duration share."""
        byte_share = total_bytes * 100 / session_bytes if session_bytes > 0 else 0.0
        time_share = total_duration_ms * 100 / session_duration_ms if session_duration_ms > 0 else 0.0
        share = max(byte_share, time_share)
        if share > self.thresholds.critical:
            return ImpactTier.CRITICAL
        if share > self.thresholds.high:
            return ImpactTier.HIGH
        return ImpactTier.LOW

    def analyze(self, resources: Iterable[ResourceRecord], page_url: str) -> AttributionReport:
        page_domain = urlparse(page_url).hostname or ""

        grouped: dict[str, list[ResourceRecord]] = {}
        for resource in resources:
            domain = resource.domain
            if not domain:
                continue
            grouped.setdefault(domain, []).append(resource)

        session_bytes = sum(r.response_size for group in grouped.values() for r in group)
        session_duration = sum(r.duration_ms for group in grouped.values() for r in group)
        session_requests = sum(len(group) for group in grouped.values())

        domains: list[ThirdPartyDomain] = []
        for domain, members in grouped.items():
            first_party = self.is_first_party(domain, page_domain)
            total_bytes = sum(r.response_size for r in members)
            total_duration = sum(r.duration_ms for r in members)
            domains.append(
                ThirdPartyDomain(
                    domain=domain,
                    provider=None if first_party else identify_provider(domain, self.providers),
                    is_first_party=first_party,
                    request_count=len(members),
                    total_bytes=total_bytes,
                    total_duration_ms=total_duration,
                    impact=self.impact_for(total_bytes, total_duration, session_bytes, session_duration),
                    resources=members,
                )
            )

        domains.sort(key=lambda d: d.total_duration_ms, reverse=True)

        report = AttributionReport(
            page_domain=page_domain,
            domains=domains,
            total_bytes=session_bytes,
            total_requests=session_requests,
        )
        logger.debug(
            "Attribution for %s: %d domains, %d third-party (%.1f%% of bytes)",
            page_domain or "session",
            len(domains),
            len(report.third_party_domains),
            report.third_party_percentage,
        )
        return report

    def analyze_aggregate(self, aggregate: SessionAggregate) -> AttributionReport:
        return self.analyze(aggregate.resources, aggregate.url)
