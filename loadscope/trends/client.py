"""Trend analysis — asks an OpenAI-compatible chat endpoint to narrate a URL's history."""

from __future__ import annotations

import logging
import statistics
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import httpx
import orjson

from loadscope.analysis.scoring import MIB
from loadscope.models.config import TrendModelConfig
from loadscope.models.session import PersistentSession
from loadscope.models.trends import (
    TrendAnalysisResult,
    TrendAnomaly,
    TrendPattern,
    TrendPrediction,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
MAX_PROMPT_SESSIONS = 20

SYSTEM_PROMPT = (
    "You are a data scientist specializing in web performance forecasting. "
    "Always return valid JSON."
)

RESPONSE_SHAPE = """{
  "summary": "Brief overall trend description",
  "predictions": [
    {"metric": "Score", "forecast": "Will reach X in Y days", "confidence": "High|Medium|Low", "trend": "Improving|Stable|Degrading"}
  ],
  "anomalies": [
    {"date": "ISO8601", "metric": "Score", "deviation": "3x higher", "possibleCauses": ["cause1", "cause2"]}
  ],
  "patterns": [
    {"description": "Performance degrades Mondays", "frequency": "Weekly", "impact": "High|Medium|Low"}
  ],
  "recommendation": "Top recommendation"
}"""


def _chronological(sessions: Sequence[PersistentSession]) -> list[PersistentSession]:
    return sorted(sessions, key=lambda s: s.timestamp)


def _direction(scores: list[int]) -> str:
    if len(scores) >= 2 and scores[0] < scores[-1]:
        return "Improving"
    if len(scores) >= 2 and scores[0] > scores[-1]:
        return "Degrading"
    return "Stable"


def build_trend_prompt(sessions: Sequence[PersistentSession]) -> str:
    """Prompt with the most recent sessions and summary statistics, oldest first."""
    if not sessions:
        raise ValueError("Trend prompt needs at least one session")

    ordered = _chronological(sessions)
    recent = ordered[-MAX_PROMPT_SESSIONS:]
    scores = [s.overall_score for s in ordered if s.overall_score is not None]
    load_times = [s.total_duration_ms / 1000 for s in ordered]
    days = abs((ordered[-1].timestamp - ordered[0].timestamp).days)

    lines = [
        f"- Date: {s.timestamp.isoformat(timespec='seconds')}, "
        f"Score: {s.overall_score or 0}, "
        f"Load Time: {s.total_duration_ms / 1000:.2f}s, "
        f"Size: {s.total_bytes / MIB:.2f} MB"
        for s in recent
    ]
    score_mean = statistics.fmean(scores) if scores else 0.0
    score_std = statistics.pstdev(scores) if len(scores) > 1 else 0.0

    return "\n".join(
        [
            "Analyze these performance trends and make predictions:",
            "",
            f"Historical Data ({len(ordered)} sessions over {days} days):",
            "",
            *lines,
            "",
            "Statistical Summary:",
            f"- Score: mean={score_mean:.1f}, std={score_std:.1f}",
            f"- Load Time: mean={statistics.fmean(load_times):.2f}s",
            f"- Trend: {_direction(scores)}",
            "",
            "Tasks:",
            "1. Identify overall performance trend",
            "2. Forecast performance for next 7, 14, and 30 days",
            "3. Flag any anomalies (sessions >2 std dev from mean)",
            "4. Detect patterns (day-of-week, time trends)",
            "5. Recommend actions",
            "",
            "Return ONLY valid JSON:",
            RESPONSE_SHAPE,
        ]
    )


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def _str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def parse_trend_response(text: str) -> TrendAnalysisResult:
    """Decode the model's JSON reply. Raises ValueError if it is not a JSON object."""
    data = orjson.loads(_strip_fences(text))
    if not isinstance(data, dict):
        raise ValueError("Trend response is not a JSON object")

    predictions = [
        TrendPrediction(
            metric=_str(p.get("metric")),
            forecast=_str(p.get("forecast")),
            confidence=_str(p.get("confidence"), "Low"),
            trend=_str(p.get("trend"), "Stable"),
        )
        for p in data.get("predictions") or []
        if isinstance(p, dict)
    ]

    anomalies = []
    for a in data.get("anomalies") or []:
        if not isinstance(a, dict):
            continue
        try:
            date = datetime.fromisoformat(_str(a.get("date")))
        except ValueError:
            logger.debug("Dropping anomaly with unparseable date: %r", a.get("date"))
            continue
        causes = a.get("possibleCauses")
        anomalies.append(
            TrendAnomaly(
                metric=_str(a.get("metric")),
                deviation=_str(a.get("deviation")),
                date=date,
                possible_causes=[c for c in causes if isinstance(c, str)] if isinstance(causes, list) else [],
            )
        )

    patterns = [
        TrendPattern(
            description=_str(p.get("description")),
            frequency=_str(p.get("frequency")),
            impact=_str(p.get("impact")),
        )
        for p in data.get("patterns") or []
        if isinstance(p, dict)
    ]

    return TrendAnalysisResult(
        summary=_str(data.get("summary")),
        predictions=predictions,
        anomalies=anomalies,
        patterns=patterns,
        recommendation=_str(data.get("recommendation")),
    )


def basic_trend_analysis(sessions: Sequence[PersistentSession]) -> TrendAnalysisResult:
    """Local summary used when the remote service is unavailable or history is short."""
    scores = [s.overall_score for s in _chronological(sessions) if s.overall_score is not None]
    trend = "Improving" if len(scores) >= 2 and scores[0] < scores[-1] else "Stable"
    return TrendAnalysisResult(
        summary=f"Performance is {trend.lower()} over the last {len(sessions)} sessions.",
        recommendation="Need at least 5 sessions for detailed trend analysis. AI backend unavailable.",
    )


class TrendAnalysisClient:
    """Async client for an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: str = "",
        model: TrendModelConfig | None = None,
        base_url: str = DEFAULT_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model or TrendModelConfig()
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(60.0, connect=10.0),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "X-Title": "loadscope",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def complete(self, prompt: str) -> str:
        """One chat completion; returns the first choice's content."""
        payload: dict[str, Any] = {
            "model": self.model.id,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.model.temperature,
            "max_tokens": self.model.max_tokens,
        }
        client = await self._get_client()
        response = await client.post(f"{self.base_url}/chat/completions", json=payload)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Chat completion response is not a JSON object")
        choices = data.get("choices") or []
        if not choices:
            return ""
        content = choices[0]["message"]["content"]
        return content if isinstance(content, str) else ""

    async def analyze(self, sessions: Sequence[PersistentSession]) -> TrendAnalysisResult:
        if not self.api_key:
            logger.warning("No API key configured; using basic trend analysis")
            return basic_trend_analysis(sessions)
        if len(sessions) < self.model.min_sessions:
            logger.warning(
                "Only %d session(s); need %d for trend analysis",
                len(sessions),
                self.model.min_sessions,
            )
            return basic_trend_analysis(sessions)

        try:
            content = await self.complete(build_trend_prompt(sessions))
            return parse_trend_response(content)
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            logger.warning("Trend analysis failed, using basic analysis: %s", e)
            return basic_trend_analysis(sessions)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
