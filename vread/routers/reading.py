from datetime import UTC, datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vread.database import get_session
from vread.dependencies import current_user, get_reader, get_sessions
from vread.errors import IntegrityViolation, ProgressNotFound
from vread.schemas.reading import (
    EnrichedProgress,
    ProgressPageUpdate,
    StreakResponse,
    ValidationResponse,
)
from vread.services.queries import count_validations, progress_for, validations_since
from vread.services.session import ReaderSession, SessionRegistry
from vread.services.status import compute_status
from vread.services.validation import get_book_or_raise, get_or_create_progress, user_streak

router = APIRouter(tags=["reading"])


@router.get("/api/reading/progress", response_model=list[EnrichedProgress])
async def get_user_reading_progress(
    status: Literal["to_read", "in_progress", "completed"] | None = None,
    force_refresh: bool = False,
    revalidate: bool = Query(False, description="Refetch unless fetched moments ago"),
    reader: ReaderSession = Depends(get_reader),
):
    if revalidate and not force_refresh:
        progress = await reader.revalidate_reading_list()
    else:
        progress = await reader.get_user_reading_progress(force_refresh=force_refresh)
    if status is not None:
        progress = [p for p in progress if p.status == status]
    return progress


@router.post("/api/reading/refresh", status_code=202)
async def request_refresh(reader: ReaderSession = Depends(get_reader)):
    reader.request_refresh()
    return {"scheduled": True}


@router.delete("/api/reading/cache", status_code=204)
async def clear_progress_cache(
    user_id: str = Depends(current_user),
    sessions: SessionRegistry = Depends(get_sessions),
):
    sessions.clear_progress_cache(user_id)


@router.get("/api/reading/streak", response_model=StreakResponse)
async def get_streak(
    user_id: str = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    streak = await user_streak(session, user_id)
    return StreakResponse(current=streak.current, best=streak.best, last_day=streak.last_day)


@router.get("/api/reading/validations", response_model=list[ValidationResponse])
async def list_validations_since(
    since: datetime | None = None,
    user_id: str = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    return await validations_since(session, user_id, since)


@router.post("/api/books/{book_id}/reading-list", response_model=EnrichedProgress, status_code=201)
async def add_to_reading_list(
    book_id: int,
    session: AsyncSession = Depends(get_session),
    reader: ReaderSession = Depends(get_reader),
):
    book = await get_book_or_raise(session, book_id)
    existing = await progress_for(session, reader.user_id, book_id)
    if existing is not None and existing.removed_at is None:
        raise IntegrityViolation("This book is already on your reading list")
    progress = await get_or_create_progress(session, reader.user_id, book)
    progress.removed_at = None
    await session.commit()

    reader.clear_progress_cache()
    return await reader.get_book_reading_progress(book_id, force_refresh=True)


@router.delete("/api/books/{book_id}/reading-list", status_code=204)
async def remove_from_reading_list(
    book_id: int,
    session: AsyncSession = Depends(get_session),
    reader: ReaderSession = Depends(get_reader),
):
    progress = await progress_for(session, reader.user_id, book_id)
    if progress is None or progress.removed_at is not None:
        raise ProgressNotFound()
    # Rows referenced by validations are only hidden
    if await count_validations(session, reader.user_id, book_id):
        progress.removed_at = datetime.now(UTC)
    else:
        await session.delete(progress)
    await session.commit()
    reader.clear_progress_cache()


@router.get("/api/books/{book_id}/reading/progress", response_model=EnrichedProgress)
async def get_book_reading_progress(
    book_id: int,
    force_refresh: bool = False,
    reader: ReaderSession = Depends(get_reader),
):
    progress = await reader.get_book_reading_progress(book_id, force_refresh=force_refresh)
    if progress is None:
        raise ProgressNotFound()
    return progress


@router.put("/api/books/{book_id}/reading/progress", response_model=EnrichedProgress)
async def update_current_page(
    book_id: int,
    data: ProgressPageUpdate,
    session: AsyncSession = Depends(get_session),
    reader: ReaderSession = Depends(get_reader),
):
    book = await get_book_or_raise(session, book_id)
    progress = await progress_for(session, reader.user_id, book_id)
    if progress is None or progress.removed_at is not None:
        raise ProgressNotFound()

    page = min(data.current_page, book.total_pages) if book.total_pages else data.current_page
    if page < progress.current_page:
        raise IntegrityViolation(
            f"Current page cannot go back from {progress.current_page} to {page}"
        )
    progress.current_page = page
    progress.total_pages = book.total_pages
    if progress.started_at is None and page > 0:
        progress.started_at = datetime.now(UTC)
    validated = await count_validations(session, reader.user_id, book_id)
    status = compute_status(validated, book.segment_count, page, book.total_pages)
    progress.status = status.value
    await session.commit()

    reader.clear_progress_cache()
    return await reader.get_book_reading_progress(book_id, force_refresh=True)
