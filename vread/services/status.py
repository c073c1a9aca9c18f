"""Reading status reconciliation.

A reading's status is derived, never trusted: validations are the source of
truth once any exist, page counts are used otherwise. Stored statuses that
drift from the derived one are corrected by a background write that never
blocks the read path.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import StrEnum

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vread.models import ReadingProgress

logger = logging.getLogger(__name__)


class ReadingStatus(StrEnum):
    TO_READ = "to_read"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


STATUS_ORDER = {
    ReadingStatus.TO_READ: 0,
    ReadingStatus.IN_PROGRESS: 1,
    ReadingStatus.COMPLETED: 2,
}


def resolve_expected_segments(
    expected_segments: int | None, total_chapters: int | None = None
) -> int:
    """Missing or zero segment counts fall back to total_chapters, then 1."""
    if expected_segments and expected_segments > 0:
        return expected_segments
    if total_chapters and total_chapters > 0:
        return total_chapters
    return 1


def compute_status(
    validations: Sequence | int,
    expected_segments: int | None,
    current_page: int | None,
    total_pages: int | None,
    total_chapters: int | None = None,
) -> ReadingStatus:
    """Canonical status of a reading from its validations and page counters.

    ``validations`` may be the validation list or its length. Counts above the
    ladder size are compared as if capped; storage is never touched here.
    """
    count = validations if isinstance(validations, int) else len(validations)
    if count > 0:
        expected = resolve_expected_segments(expected_segments, total_chapters)
        if min(count, expected) >= expected:
            return ReadingStatus.COMPLETED
        return ReadingStatus.IN_PROGRESS

    page = current_page or 0
    pages = total_pages or 0
    if pages > 0 and page >= pages:
        return ReadingStatus.COMPLETED
    if page > 0:
        return ReadingStatus.IN_PROGRESS
    return ReadingStatus.TO_READ


def needs_correction(stored: str | None, computed: ReadingStatus) -> bool:
    return stored != computed.value


class BackgroundWriter:
    """Runs detached write tasks whose failures go to the log, not the caller."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, factory: Callable[[], Awaitable[None]], description: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(factory())
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, description))
        return task

    def _finished(self, task: asyncio.Task, description: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background write failed (%s): %s", description, exc, exc_info=exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled write. Failures stay in the log."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()


async def write_status(session: AsyncSession, progress_id: int, status: ReadingStatus) -> None:
    await session.execute(
        update(ReadingProgress).where(ReadingProgress.id == progress_id).values(status=status.value)
    )
    await session.commit()


def schedule_status_correction(
    writer: BackgroundWriter,
    session_factory: async_sessionmaker,
    progress_id: int,
    stored: str | None,
    computed: ReadingStatus,
    user_id: str,
    book_id: int,
) -> asyncio.Task:
    logger.info(
        "Correcting stale status user=%s book=%s: %s -> %s",
        user_id, book_id, stored, computed.value,
    )

    async def _correct() -> None:
        async with session_factory() as session:
            await write_status(session, progress_id, computed)

    return writer.schedule(_correct, f"status user={user_id} book={book_id}")
