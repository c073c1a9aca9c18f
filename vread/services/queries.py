"""Read-only query shapes shared by the recorder and the nudge job."""

from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vread.models import ReadingProgress, ReadingValidation


async def validations_since(
    session: AsyncSession, user_id: str, since: datetime | None = None
) -> list[ReadingValidation]:
    """Validations at or after ``since``. Stored timestamps are naive UTC."""
    stmt = select(ReadingValidation).where(ReadingValidation.user_id == user_id)
    if since is not None:
        if since.tzinfo is not None:
            since = since.astimezone(UTC).replace(tzinfo=None)
        stmt = stmt.where(ReadingValidation.validated_at >= since)
    result = await session.execute(stmt.order_by(ReadingValidation.validated_at))
    return list(result.scalars().all())


async def progress_for(session: AsyncSession, user_id: str, book_id: int) -> ReadingProgress | None:
    result = await session.execute(
        select(ReadingProgress).where(
            ReadingProgress.user_id == user_id, ReadingProgress.book_id == book_id
        )
    )
    return result.scalar_one_or_none()


async def find_validation(
    session: AsyncSession, user_id: str, book_id: int, segment: int
) -> ReadingValidation | None:
    result = await session.execute(
        select(ReadingValidation).where(
            ReadingValidation.user_id == user_id,
            ReadingValidation.book_id == book_id,
            ReadingValidation.segment == segment,
        )
    )
    return result.scalar_one_or_none()


async def count_validations(session: AsyncSession, user_id: str, book_id: int | None = None) -> int:
    stmt = select(func.count(ReadingValidation.id)).where(ReadingValidation.user_id == user_id)
    if book_id is not None:
        stmt = stmt.where(ReadingValidation.book_id == book_id)
    return (await session.execute(stmt)).scalar() or 0


async def validation_timestamps(session: AsyncSession, user_id: str) -> list[datetime]:
    result = await session.execute(
        select(ReadingValidation.validated_at)
        .where(ReadingValidation.user_id == user_id)
        .order_by(ReadingValidation.validated_at)
    )
    return list(result.scalars().all())


async def count_progress_by_status(session: AsyncSession, user_id: str, status: str) -> int:
    result = await session.execute(
        select(func.count(ReadingProgress.id)).where(
            ReadingProgress.user_id == user_id,
            ReadingProgress.status == status,
            ReadingProgress.removed_at.is_(None),
        )
    )
    return result.scalar() or 0
