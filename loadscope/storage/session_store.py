"""Session store — one body file per session plus a shared metadata index.

Layout of ``storage_dir``::

    index.json                                   SessionIndex, newest first
    20260105_093012_123456_<id>.json             PersistentSession bodies

Body names start with the UTC save timestamp, so lexical order is
chronological. Every index mutation goes through one asyncio.Lock; file I/O
runs in worker threads.
"""

from __future__ import annotations

import asyncio
import calendar
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path

import orjson
from pydantic import ValidationError

from loadscope.models.config import RetentionConfig
from loadscope.models.session import PersistentSession, SessionIndex, SessionMetadata, utcnow

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"


class StorageError(Exception):
    """A session body or the index could not be written."""


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def body_filename(session_id: str, timestamp: datetime) -> str:
    return f"{_as_utc(timestamp).strftime('%Y%m%d_%H%M%S_%f')}_{session_id}.json"


def session_id_from_filename(name: str) -> str | None:
    """``20260105_093012_123456_abc.json`` -> ``abc``; None for foreign files."""
    if not name.endswith(".json") or name == INDEX_FILE:
        return None
    parts = name[: -len(".json")].split("_", 3)
    if len(parts) != 4 or not all(p.isdigit() for p in parts[:3]):
        return None
    return parts[3]


def month_back(ts: datetime) -> datetime:
    """Same wall-clock time one calendar month earlier, day clamped to month length."""
    year, month = (ts.year, ts.month - 1) if ts.month > 1 else (ts.year - 1, 12)
    day = min(ts.day, calendar.monthrange(year, month)[1])
    return ts.replace(year=year, month=month, day=day)


class SessionStore:
    """Durable, indexed history of completed sessions."""

    def __init__(self, storage_dir: Path | str, retention: RetentionConfig | None = None) -> None:
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.retention = retention or RetentionConfig()
        self.index = self._read_index()
        self.sessions: list[PersistentSession] = []
        self._lock = asyncio.Lock()

    @property
    def index_path(self) -> Path:
        return self.storage_dir / INDEX_FILE

    # ── Disk helpers (run in worker threads) ──

    def _read_index(self) -> SessionIndex:
        if not self.index_path.exists():
            return SessionIndex()
        try:
            return SessionIndex.model_validate(orjson.loads(self.index_path.read_bytes()))
        except (OSError, orjson.JSONDecodeError, ValidationError) as e:
            logger.warning("Unreadable session index %s, starting empty: %s", self.index_path, e)
            return SessionIndex()

    def _write_index_file(self, data: bytes) -> None:
        tmp = self.index_path.with_suffix(".json.tmp")
        tmp.write_bytes(data)
        tmp.replace(self.index_path)

    def _body_files(self) -> dict[str, list[Path]]:
        files: dict[str, list[Path]] = {}
        for path in sorted(self.storage_dir.iterdir()):
            session_id = session_id_from_filename(path.name)
            if session_id is not None and path.is_file():
                files.setdefault(session_id, []).append(path)
        return files

    @staticmethod
    def _unlink_all(paths: list[Path]) -> None:
        for path in paths:
            path.unlink(missing_ok=True)

    async def _persist_index(self) -> None:
        data = orjson.dumps(self.index.model_dump(mode="json"), option=orjson.OPT_INDENT_2)
        await asyncio.to_thread(self._write_index_file, data)

    # ── Mutations ──

    async def save(self, session: PersistentSession) -> SessionMetadata:
        """Persist ``session`` and enforce retention. Raises StorageError on write failure."""
        metadata = SessionMetadata.from_session(session)
        path = self.storage_dir / body_filename(session.id, session.timestamp)
        body = orjson.dumps(session.model_dump(mode="json"), option=orjson.OPT_INDENT_2)

        async with self._lock:
            try:
                await asyncio.to_thread(path.write_bytes, body)
            except OSError as e:
                raise StorageError(f"Failed to write session body {path.name}: {e}") from e

            previous = self.index.get(session.id)
            self.index.add(metadata)
            try:
                await self._persist_index()
            except OSError as e:
                self.index.remove(session.id)
                if previous is not None:
                    self.index.add(previous)
                raise StorageError(f"Failed to write session index: {e}") from e

            self.sessions = [s for s in self.sessions if s.id != session.id]
            self.sessions.insert(0, session)
            logger.info("Saved session %s for %s", session.id, session.url)

            try:
                await self._cleanup_unlocked(utcnow())
            except StorageError as e:
                logger.warning("Retention cleanup after save failed: %s", e)

        return metadata

    async def delete(self, session_id: str) -> bool:
        """Remove a session's bodies, index entry and cached copy. Unknown ids are a no-op."""
        async with self._lock:
            return await self._delete_unlocked(session_id)

    async def _delete_unlocked(self, session_id: str) -> bool:
        files = await asyncio.to_thread(self._body_files)
        paths = files.get(session_id, [])
        try:
            await asyncio.to_thread(self._unlink_all, paths)
        except OSError as e:
            raise StorageError(f"Failed to delete session {session_id}: {e}") from e

        removed = self.index.remove(session_id)
        if removed:
            try:
                await self._persist_index()
            except OSError as e:
                raise StorageError(f"Failed to write session index: {e}") from e

        before = len(self.sessions)
        self.sessions = [s for s in self.sessions if s.id != session_id]
        found = removed or bool(paths) or len(self.sessions) != before
        if found:
            logger.debug("Deleted session %s", session_id)
        return found

    async def cleanup(self, now: datetime | None = None) -> list[str]:
        """Apply retention: drop sessions past the age cap, then the oldest over the count cap."""
        async with self._lock:
            return await self._cleanup_unlocked(now or utcnow())

    async def _cleanup_unlocked(self, now: datetime) -> list[str]:
        cutoff = _as_utc(now) - timedelta(days=self.retention.max_age_days)
        expired = [m.id for m in self.index.sessions if _as_utc(m.timestamp) < cutoff]
        for session_id in expired:
            await self._delete_unlocked(session_id)

        excess: list[str] = []
        overflow = len(self.index.sessions) - self.retention.max_sessions
        if overflow > 0:
            oldest_first = sorted(self.index.sessions, key=lambda m: m.timestamp)
            excess = [m.id for m in oldest_first[:overflow]]
            for session_id in excess:
                await self._delete_unlocked(session_id)

        removed = expired + excess
        if removed:
            logger.info(
                "Retention removed %d session(s) (%d expired, %d over limit)",
                len(removed),
                len(expired),
                len(excess),
            )
        return removed

    # ── Reads ──

    async def load(self) -> list[PersistentSession]:
        """Read every indexed session body. Missing or undecodable bodies are skipped."""
        async with self._lock:
            self.index = await asyncio.to_thread(self._read_index)
            files = await asyncio.to_thread(self._body_files)

            sessions: list[PersistentSession] = []
            for metadata in self.index.sessions:
                paths = files.get(metadata.id)
                if not paths:
                    logger.debug("Index entry %s has no body; skipping", metadata.id)
                    continue
                try:
                    raw = await asyncio.to_thread(paths[-1].read_bytes)
                    sessions.append(PersistentSession.model_validate(orjson.loads(raw)))
                except (OSError, orjson.JSONDecodeError, ValidationError) as e:
                    logger.warning("Skipping unreadable session body %s: %s", paths[-1].name, e)

            self.sessions = sessions
        logger.debug("Loaded %d of %d indexed sessions", len(sessions), len(self.index.sessions))
        return sessions

    async def orphans(self) -> list[Path]:
        """Body files with no index entry. Listed only, never removed."""
        files = await asyncio.to_thread(self._body_files)
        indexed = self.index.ids()
        return [p for session_id, paths in files.items() if session_id not in indexed for p in paths]

    def get(self, session_id: str) -> PersistentSession | None:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def sessions_for_url(self, url: str) -> list[PersistentSession]:
        matches = [s for s in self.sessions if s.url == url]
        matches.sort(key=lambda s: s.timestamp, reverse=True)
        return matches

    def search(
        self,
        query: str = "",
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[PersistentSession]:
        """Case-insensitive match on URL, domain or tags within inclusive time bounds."""
        needle = query.strip().lower()
        lo = _as_utc(start) if start else None
        hi = _as_utc(end) if end else None

        results = []
        for session in self.sessions:
            if needle and not (
                needle in session.url.lower()
                or needle in session.domain.lower()
                or any(needle in tag.lower() for tag in session.tags)
            ):
                continue
            ts = _as_utc(session.timestamp)
            if lo is not None and ts < lo:
                continue
            if hi is not None and ts > hi:
                continue
            results.append(session)
        return results

    def today(self, now: datetime | None = None) -> list[PersistentSession]:
        """Sessions from the current local calendar day."""
        day = (now or utcnow()).astimezone().date()
        return [s for s in self.sessions if _as_utc(s.timestamp).astimezone().date() == day]

    def this_week(self, now: datetime | None = None) -> list[PersistentSession]:
        """Sessions from the last seven days."""
        return self.search(start=_as_utc(now or utcnow()) - timedelta(days=7))

    def this_month(self, now: datetime | None = None) -> list[PersistentSession]:
        """Sessions since the same day one calendar month ago."""
        return self.search(start=month_back(_as_utc(now or utcnow())))
