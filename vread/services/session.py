"""Per-reader session context.

A ``ReaderSession`` is created for an authenticated user and owns that
user's caches: the reading-list view (long TTL) and the validation-adjacent
single-book view (short TTL). Logging out closes the session, which drops
its cached data and cancels pending refreshes, so nothing leaks into the
next user's session.
"""

import logging
import time
from collections.abc import Awaitable, Callable

from sqlalchemy.ext.asyncio import async_sessionmaker

from vread.config import READING_LIST_CACHE_TTL, SESSION_IDLE_TIMEOUT, VALIDATION_CACHE_TTL
from vread.errors import NotAuthenticated
from vread.schemas.reading import EnrichedProgress
from vread.services.cache import ProgressCache
from vread.services.progress import load_book_progress, load_user_progress
from vread.services.refresh import RetryPolicy
from vread.services.status import BackgroundWriter
from vread.services.store import ProgressStore

logger = logging.getLogger(__name__)


def require_user(user_id: str | None) -> str:
    if not user_id or not user_id.strip():
        raise NotAuthenticated()
    return user_id.strip()


class ReaderSession:
    def __init__(
        self,
        user_id: str,
        session_factory: async_sessionmaker,
        writer: BackgroundWriter | None = None,
        reading_list_ttl: float = READING_LIST_CACHE_TTL,
        validation_ttl: float = VALIDATION_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self.user_id = user_id
        self._session_factory = session_factory
        self.writer = writer or BackgroundWriter()
        self.reading_list = ProgressStore(
            self._load_reading_list,
            ProgressCache(reading_list_ttl, clock),
            default=list,
            policy=policy,
            sleep=sleep,
            name="reading-list",
        )
        self.book_progress = ProgressStore(
            self._load_book,
            ProgressCache(validation_ttl, clock),
            default=lambda: None,
            policy=policy,
            sleep=sleep,
            name="book-progress",
        )
        self.closed = False

    async def _load_reading_list(self, user_id: str) -> list[EnrichedProgress]:
        return await load_user_progress(self._session_factory, user_id, self.writer)

    async def _load_book(self, key: tuple[str, int]) -> EnrichedProgress | None:
        user_id, book_id = key
        return await load_book_progress(self._session_factory, user_id, book_id, self.writer)

    async def get_user_reading_progress(self, force_refresh: bool = False) -> list[EnrichedProgress]:
        return await self.reading_list.get(self.user_id, force_refresh=force_refresh)

    async def get_book_reading_progress(
        self, book_id: int, force_refresh: bool = False
    ) -> EnrichedProgress | None:
        return await self.book_progress.get((self.user_id, book_id), force_refresh=force_refresh)

    async def revalidate_reading_list(self) -> list[EnrichedProgress]:
        return await self.reading_list.revalidate(self.user_id)

    def request_refresh(self) -> None:
        """Debounced background refetch of the reading list."""
        self.reading_list.request_refresh(self.user_id)

    def clear_progress_cache(self) -> None:
        self.reading_list.invalidate()
        self.book_progress.invalidate()

    def close(self) -> None:
        self.reading_list.close()
        self.book_progress.close()
        self.closed = True


class SessionRegistry:
    """Live reader sessions of this process, keyed by user id.

    Sessions untouched for ``idle_timeout`` seconds are closed the next time
    any session is opened.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        idle_timeout: float = SESSION_IDLE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        **session_options,
    ) -> None:
        self._session_factory = session_factory
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._options = session_options
        self._options.setdefault("clock", clock)
        self.writer = BackgroundWriter()
        self._sessions: dict[str, ReaderSession] = {}
        self._last_seen: dict[str, float] = {}

    def open(self, user_id: str | None) -> ReaderSession:
        user_id = require_user(user_id)
        now = self._clock()
        self._last_seen[user_id] = now
        self.close_idle(now)
        session = self._sessions.get(user_id)
        if session is None:
            session = ReaderSession(user_id, self._session_factory, self.writer, **self._options)
            self._sessions[user_id] = session
            logger.debug("Opened reader session for user=%s", user_id)
        return session

    def close_idle(self, now: float | None = None) -> None:
        now = self._clock() if now is None else now
        for user_id, seen in list(self._last_seen.items()):
            if now - seen >= self.idle_timeout:
                logger.debug("Reader session for user=%s idle for %.0fs", user_id, now - seen)
                self.close(user_id)

    def get(self, user_id: str) -> ReaderSession | None:
        return self._sessions.get(user_id)

    def clear_progress_cache(self, user_id: str | None = None) -> None:
        if user_id is None:
            for session in self._sessions.values():
                session.clear_progress_cache()
            return
        session = self._sessions.get(user_id)
        if session is not None:
            session.clear_progress_cache()

    def close(self, user_id: str) -> None:
        self._last_seen.pop(user_id, None)
        session = self._sessions.pop(user_id, None)
        if session is not None:
            session.close()
            logger.info("Closed reader session for user=%s", user_id)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    async def aclose(self) -> None:
        for user_id in list(self._sessions):
            self.close(user_id)
        await self.writer.drain()
