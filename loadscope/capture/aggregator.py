"""Session aggregation — owns the active page-load session and its totals."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from loadscope.models.resource import ResourceFilter, ResourceRecord
from loadscope.models.score import WebVitals
from loadscope.models.session import SessionAggregate, utcnow
from loadscope.models.types import AggregatorEvent, ResourceType

logger = logging.getLogger(__name__)

Listener = Callable[[AggregatorEvent, SessionAggregate], None]


class SessionAggregator:
    """Accumulates ResourceRecords for one page-load attempt at a time.

    Every mutation replaces or updates the aggregate in a single step and
    notifies subscribers afterwards, so listeners only ever see consistent
    state.
    """

    def __init__(self) -> None:
        self._aggregate = SessionAggregate()
        self._listeners: list[Listener] = []

    @property
    def aggregate(self) -> SessionAggregate:
        return self._aggregate

    @property
    def resources(self) -> list[ResourceRecord]:
        return list(self._aggregate.resources)

    @property
    def filtered_resources(self) -> list[ResourceRecord]:
        active = self._aggregate.filter
        return [r for r in self._aggregate.resources if active.matches(r)]

    @property
    def domains(self) -> set[str]:
        return self._aggregate.domains

    # ── Subscriptions ──

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: AggregatorEvent) -> None:
        for listener in list(self._listeners):
            listener(event, self._aggregate)

    # ── Lifecycle ──

    def start_session(self, url: str, started_at: datetime | None = None) -> SessionAggregate:
        """Discard the current session and begin a new one for ``url``."""
        self._aggregate = SessionAggregate(
            url=url,
            started_at=started_at or utcnow(),
            loading=True,
            filter=self._aggregate.filter,
        )
        logger.info("Session started: %s", url)
        self._notify(AggregatorEvent.SESSION_STARTED)
        return self._aggregate

    def finish(self) -> None:
        self._set_loading(False)
        logger.info(
            "Session settled: %s (%d resources, %.0f ms)",
            self._aggregate.url,
            self._aggregate.resource_count,
            self._aggregate.total_duration_ms,
        )

    def fail(self, reason: str = "") -> None:
        self._set_loading(False)
        logger.warning("Navigation failed for %s: %s", self._aggregate.url, reason or "unknown")

    def _set_loading(self, loading: bool) -> None:
        if self._aggregate.loading == loading:
            return
        self._aggregate.loading = loading
        self._notify(AggregatorEvent.LOADING_CHANGED)

    # ── Mutation ──

    def append(self, records: Iterable[ResourceRecord]) -> int:
        """Append records not already present (by URL). Returns how many were added."""
        aggregate = self._aggregate
        known = aggregate.urls
        accepted: list[ResourceRecord] = []
        for record in records:
            if record.url in known:
                continue
            known.add(record.url)
            accepted.append(record)

        if not accepted:
            return 0

        if aggregate.started_at is None:
            aggregate.started_at = min(r.start_time for r in accepted)

        resources = aggregate.resources + accepted
        total_bytes = aggregate.total_bytes + sum(r.response_size for r in accepted)
        latest_end = max(r.end_time for r in accepted)
        span_ms = (latest_end - aggregate.started_at) / timedelta(milliseconds=1)
        total_duration_ms = max(aggregate.total_duration_ms, span_ms)

        # Assigned together so readers never see resources and totals disagree
        aggregate.resources = resources
        aggregate.resource_count = len(resources)
        aggregate.total_bytes = total_bytes
        aggregate.total_duration_ms = total_duration_ms

        self._notify(AggregatorEvent.RESOURCES_ADDED)
        return len(accepted)

    def clear(self) -> None:
        """Drop every resource and reset totals in one step."""
        self._aggregate = SessionAggregate(filter=self._aggregate.filter)
        self._notify(AggregatorEvent.CLEARED)

    def update_web_vitals(self, vitals: WebVitals) -> None:
        self._aggregate.web_vitals = vitals
        self._notify(AggregatorEvent.WEB_VITALS_UPDATED)

    def set_filter(
        self,
        search_text: str | None = None,
        types: Iterable[ResourceType] | None = None,
        domains: Iterable[str] | None = None,
    ) -> ResourceFilter:
        """Update the view filter. Arguments left as None keep their current value."""
        current = self._aggregate.filter
        updated = current.model_copy(
            update={
                "search_text": current.search_text if search_text is None else search_text,
                "types": current.types if types is None else set(types),
                "domains": current.domains if domains is None else set(domains),
            }
        )
        self._aggregate.filter = updated
        self._notify(AggregatorEvent.FILTER_CHANGED)
        return updated

    def reset_filter(self) -> None:
        self._aggregate.filter = ResourceFilter()
        self._notify(AggregatorEvent.FILTER_CHANGED)
