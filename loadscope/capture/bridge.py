"""Capture bridge — routes timing batches from the page to one registered aggregator."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterable
from datetime import datetime
from typing import Any

from loadscope.capture.aggregator import SessionAggregator
from loadscope.capture.normalizer import TimingNormalizer
from loadscope.capture.web_vitals import web_vitals_from_payload

logger = logging.getLogger(__name__)

SampleBatch = list[dict[str, Any]]


class CaptureBridge:
    """Delivery channel between the instrumented page and a SessionAggregator.

    Whoever starts a session registers its aggregator here and deregisters on
    tear-down. Batches arriving with nothing registered are dropped.
    """

    def __init__(self, normalizer: TimingNormalizer | None = None) -> None:
        self.normalizer = normalizer or TimingNormalizer()
        self._aggregator: SessionAggregator | None = None
        self._capture_task: asyncio.Task[int] | None = None
        self._generation = 0

    @property
    def aggregator(self) -> SessionAggregator | None:
        return self._aggregator

    def register(self, aggregator: SessionAggregator) -> None:
        if self._aggregator is not None and self._aggregator is not aggregator:
            logger.info("Replacing registered aggregator")
        self._aggregator = aggregator

    def deregister(self) -> None:
        self._cancel_task()
        self._aggregator = None

    # ── Navigation lifecycle ──

    def load_started(self, url: str, started_at: datetime | None = None) -> None:
        """A new navigation began: cancel any in-flight capture and reset the session."""
        self._cancel_task()
        self._generation += 1
        if self._aggregator is None:
            logger.debug("load_started with no registered aggregator: %s", url)
            return
        self._aggregator.start_session(url, started_at)

    def load_finished(self, vitals_payload: dict[str, Any] | None = None) -> None:
        if self._aggregator is None:
            return
        if vitals_payload:
            vitals = web_vitals_from_payload(vitals_payload)
            if vitals is not None:
                self._aggregator.update_web_vitals(vitals)
        self._aggregator.finish()

    def load_failed(self, reason: str = "") -> None:
        if self._aggregator is None:
            return
        self._aggregator.fail(reason)

    # ── Sample delivery ──

    def deliver(self, batch: SampleBatch) -> int:
        """Normalize and append one batch. Returns the number of records added."""
        if self._aggregator is None:
            logger.debug("Dropping batch of %d samples: no aggregator registered", len(batch))
            return 0
        return len(self.normalizer.ingest(batch, self._aggregator))

    async def capture(self, source: AsyncIterable[SampleBatch]) -> int:
        """Consume batches until the source is exhausted or the capture is cancelled."""
        generation = self._generation
        added = 0
        async for batch in source:
            if generation != self._generation:
                logger.debug("Navigation changed mid-capture; stopping")
                break
            added += self.deliver(batch)
        return added

    def start_capture(self, source: AsyncIterable[SampleBatch]) -> asyncio.Task[int]:
        """Run :meth:`capture` as a task owned by the bridge. Requires a running loop."""
        self._cancel_task()
        self._capture_task = asyncio.create_task(self.capture(source))
        return self._capture_task

    async def stop_capture(self) -> None:
        task = self._capture_task
        self._cancel_task()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _cancel_task(self) -> None:
        if self._capture_task is not None and not self._capture_task.done():
            self._capture_task.cancel()
        self._capture_task = None
