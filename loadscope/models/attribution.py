"""Attribution models — known providers and per-domain cost rollups."""

from __future__ import annotations

from pydantic import BaseModel, Field

from loadscope.models.resource import ResourceRecord
from loadscope.models.types import ImpactTier, ProviderCategory


class ThirdPartyProvider(BaseModel):
    name: str
    category: ProviderCategory = ProviderCategory.OTHER
    description: str = ""


class ThirdPartyDomain(BaseModel):
    """Cost rollup for every resource served from one domain."""

    domain: str
    provider: ThirdPartyProvider | None = None
    is_first_party: bool = False
    request_count: int = 0
    total_bytes: int = 0
    total_duration_ms: float = 0.0
    impact: ImpactTier = ImpactTier.LOW
    resources: list[ResourceRecord] = Field(default_factory=list)


class AttributionReport(BaseModel):
    """Per-domain breakdown of a session plus third-party rollups."""

    page_domain: str = ""
    domains: list[ThirdPartyDomain] = Field(default_factory=list)
    total_bytes: int = 0
    total_requests: int = 0

    @property
    def third_party_domains(self) -> list[ThirdPartyDomain]:
        return [d for d in self.domains if not d.is_first_party]

    @property
    def first_party_domains(self) -> list[ThirdPartyDomain]:
        return [d for d in self.domains if d.is_first_party]

    @property
    def third_party_requests(self) -> int:
        return sum(d.request_count for d in self.third_party_domains)

    @property
    def third_party_bytes(self) -> int:
        return sum(d.total_bytes for d in self.third_party_domains)

    @property
    def third_party_percentage(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return self.third_party_bytes * 100 / self.total_bytes

    def category_summary(self) -> dict[ProviderCategory, int]:
        """Request count per provider category, recognised third parties only."""
        summary: dict[ProviderCategory, int] = {}
        for domain in self.third_party_domains:
            if domain.provider is None:
                continue
            category = domain.provider.category
            summary[category] = summary.get(category, 0) + domain.request_count
        return summary
