"""Enriched reading-progress reads.

One logical read per call: progress rows with their book and validation
list eager-loaded, never one query per row. Stored statuses that disagree
with the reconciled one are corrected in the background.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from vread.config import PAGES_PER_SEGMENT
from vread.errors import TransientFetchError
from vread.models import ReadingProgress
from vread.schemas.reading import EnrichedProgress, ValidationResponse
from vread.services.status import (
    BackgroundWriter,
    ReadingStatus,
    compute_status,
    needs_correction,
    schedule_status_correction,
)

logger = logging.getLogger(__name__)


def enrich(progress: ReadingProgress, status: ReadingStatus | None = None) -> EnrichedProgress:
    book = progress.book
    expected = book.segment_count
    validations = progress.validations
    if status is None:
        status = compute_status(validations, expected, progress.current_page, progress.total_pages)
    validated = min(len(validations), expected)
    is_completed = status is ReadingStatus.COMPLETED
    next_segment = None if is_completed else validated + 1
    total_pages = progress.total_pages or book.total_pages
    if is_completed:
        percent = 100
    elif validated == 0 and total_pages:
        # Page-only progress, nothing validated yet
        percent = min(100, round((progress.current_page or 0) / total_pages * 100))
    else:
        percent = round(validated / expected * 100)

    return EnrichedProgress(
        id=progress.id,
        user_id=progress.user_id,
        book_id=progress.book_id,
        current_page=progress.current_page,
        total_pages=total_pages,
        status=status.value,
        streak_current=progress.streak_current,
        streak_best=progress.streak_best,
        started_at=progress.started_at,
        updated_at=progress.updated_at,
        book_title=book.title,
        book_author=book.author,
        book_slug=book.slug,
        book_cover=book.cover_url,
        total_chapters=book.total_chapters,
        expected_segments=expected,
        validated_segments=validated,
        progress_percent=percent,
        next_segment=next_segment,
        next_segment_page=next_segment * PAGES_PER_SEGMENT if next_segment else None,
        is_completed=is_completed,
        validations=[ValidationResponse.model_validate(v) for v in validations],
    )


async def _query_progress(
    session: AsyncSession, user_id: str, book_id: int | None = None
) -> list[ReadingProgress]:
    stmt = (
        select(ReadingProgress)
        .where(ReadingProgress.user_id == user_id, ReadingProgress.removed_at.is_(None))
        .options(selectinload(ReadingProgress.book), selectinload(ReadingProgress.validations))
        .order_by(ReadingProgress.updated_at.desc())
    )
    if book_id is not None:
        stmt = stmt.where(ReadingProgress.book_id == book_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


def _reconcile(
    rows: list[ReadingProgress],
    writer: BackgroundWriter | None,
    session_factory: async_sessionmaker | None,
) -> list[EnrichedProgress]:
    enriched = []
    for row in rows:
        status = compute_status(
            row.validations, row.book.segment_count, row.current_page, row.total_pages
        )
        if needs_correction(row.status, status) and writer is not None and session_factory is not None:
            schedule_status_correction(
                writer, session_factory, row.id, row.status, status, row.user_id, row.book_id
            )
        enriched.append(enrich(row, status))
    return enriched


async def load_user_progress(
    session_factory: async_sessionmaker,
    user_id: str,
    writer: BackgroundWriter | None = None,
) -> list[EnrichedProgress]:
    """Every visible reading of a user, enriched. Raises TransientFetchError."""
    try:
        async with session_factory() as session:
            rows = await _query_progress(session, user_id)
    except SQLAlchemyError as exc:
        logger.warning("Progress fetch failed for user=%s: %s", user_id, exc)
        raise TransientFetchError() from exc
    return _reconcile(rows, writer, session_factory)


async def load_book_progress(
    session_factory: async_sessionmaker,
    user_id: str,
    book_id: int,
    writer: BackgroundWriter | None = None,
) -> EnrichedProgress | None:
    try:
        async with session_factory() as session:
            rows = await _query_progress(session, user_id, book_id)
    except SQLAlchemyError as exc:
        logger.warning("Progress fetch failed for user=%s book=%s: %s", user_id, book_id, exc)
        raise TransientFetchError() from exc
    enriched = _reconcile(rows, writer, session_factory)
    return enriched[0] if enriched else None
