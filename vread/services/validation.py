"""Recording segment validations.

``record_validation`` is the single insertion path for a validation, joker
or not. A segment is accepted at most once per (user, book): repeated
submissions come back as a ``duplicate`` outcome carrying the stored row,
and never grant XP, badges or quests a second time.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vread.config import PAGES_PER_SEGMENT, TIMEZONE
from vread.errors import (
    BookNotFound,
    DuplicateValidation,
    IntegrityViolation,
    QuestionNotFound,
    QuotaExceeded,
)
from vread.id import make_row_id
from vread.models import Book, ReadingProgress, ReadingQuestion, ReadingValidation
from vread.services.companion import RitualKind, update_companion
from vread.services.jokers import joker_usage
from vread.services.queries import (
    count_validations,
    find_validation,
    progress_for,
    validation_timestamps,
)
from vread.services.questions import check_answer, get_question
from vread.services.rewards import XP_PER_VALIDATION, RewardContext, award_xp, evaluate_rewards
from vread.services.session import SessionRegistry, require_user
from vread.services.status import ReadingStatus, compute_status
from vread.services.streak import Streak, compute_streak, local_day

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    outcome: str
    status: ReadingStatus
    validation: ReadingValidation | None = None
    streak: Streak | None = None
    xp_awarded: int = 0
    new_badges: list[str] = field(default_factory=list)
    new_quests: list[str] = field(default_factory=list)
    ritual: RitualKind | None = None
    revealed_answer: str | None = None
    jokers_remaining: int | None = None

    @property
    def duplicate(self) -> bool:
        return self.outcome == "duplicate"


async def get_book_or_raise(session: AsyncSession, book_id: int) -> Book:
    book = await session.get(Book, book_id)
    if book is None:
        raise BookNotFound()
    return book


async def get_or_create_progress(session: AsyncSession, user_id: str, book: Book) -> ReadingProgress:
    book_id = book.id
    progress = await progress_for(session, user_id, book_id)
    if progress is None:
        progress = ReadingProgress(
            id=make_row_id(user_id, book_id),
            user_id=user_id,
            book_id=book_id,
            current_page=0,
            total_pages=book.total_pages,
            status=ReadingStatus.TO_READ.value,
            streak_current=0,
            streak_best=0,
        )
        session.add(progress)
        try:
            await session.flush()
        except IntegrityError:
            # Created by a concurrent request for the same reader
            await session.rollback()
            await session.refresh(book)
            progress = await progress_for(session, user_id, book_id)
            if progress is None:
                raise IntegrityViolation() from None
    return progress


async def _duplicate_result(session: AsyncSession, existing: ReadingValidation) -> ValidationResult:
    progress = await session.get(ReadingProgress, existing.progress_id)
    status = ReadingStatus(progress.status) if progress is not None else ReadingStatus.IN_PROGRESS
    return ValidationResult(outcome="duplicate", status=status, validation=existing)


async def record_validation(
    session: AsyncSession,
    user_id: str | None,
    book_id: int,
    segment: int,
    correct: bool = True,
    used_joker: bool = False,
    question_id: int | None = None,
    answer: str | None = None,
    sessions: SessionRegistry | None = None,
    now: datetime | None = None,
    tz: str = TIMEZONE,
) -> ValidationResult:
    """Validate ``segment`` of a book for a user.

    Raises NotAuthenticated, BookNotFound, QuotaExceeded (joker requested with
    none left) and IntegrityViolation (segment out of order or beyond the
    ladder). A segment that is already validated is not an error.
    """
    user_id = require_user(user_id)
    try:
        result = await _record(
            session, user_id, book_id, segment, correct, used_joker, question_id, answer, now, ZoneInfo(tz)
        )
    except DuplicateValidation as dup:
        logger.info("Duplicate validation ignored user=%s book=%s segment=%s", user_id, book_id, segment)
        return await _duplicate_result(session, dup.existing)

    if result.outcome == "recorded" and sessions is not None:
        sessions.clear_progress_cache(user_id)
    return result


async def _record(
    session: AsyncSession,
    user_id: str,
    book_id: int,
    segment: int,
    correct: bool,
    used_joker: bool,
    question_id: int | None,
    answer: str | None,
    now: datetime | None,
    tz: ZoneInfo,
) -> ValidationResult:
    book = await get_book_or_raise(session, book_id)

    existing = await find_validation(session, user_id, book_id, segment)
    if existing is not None:
        raise DuplicateValidation(existing)

    expected = book.segment_count
    validated = await count_validations(session, user_id, book_id)
    if segment > expected:
        raise IntegrityViolation(f"This book only has {expected} segments")
    if segment != validated + 1:
        raise IntegrityViolation(f"Segment {validated + 1} must be validated before segment {segment}")

    question = None
    if question_id is not None:
        question = await session.get(ReadingQuestion, question_id)
        if question is None or question.book_id != book_id or question.segment != segment:
            raise QuestionNotFound()
    else:
        question = await get_question(session, book_id, segment)

    jokers_remaining = None
    revealed_answer = None
    if used_joker:
        usage = await joker_usage(session, user_id, book_id, expected)
        if usage.remaining <= 0:
            logger.info("Joker refused user=%s book=%s segment=%s: quota exhausted", user_id, book_id, segment)
            raise QuotaExceeded()
        correct = True
        revealed_answer = question.answer if question is not None else None
        jokers_remaining = usage.remaining - 1
    elif answer is not None and question is not None:
        correct = check_answer(question, answer)

    if not correct:
        progress = await progress_for(session, user_id, book_id)
        status = ReadingStatus(progress.status) if progress is not None else ReadingStatus.TO_READ
        return ValidationResult(outcome="incorrect", status=status)

    question_id = question.id if question is not None else None
    progress = await get_or_create_progress(session, user_id, book)
    validated_at = now or datetime.now(UTC)
    validated_at = validated_at.astimezone(UTC) if validated_at.tzinfo else validated_at.replace(tzinfo=UTC)
    previous = await validation_timestamps(session, user_id)
    validation = ReadingValidation(
        id=make_row_id(user_id, book_id, segment),
        user_id=user_id,
        book_id=book_id,
        progress_id=progress.id,
        segment=segment,
        question_id=question_id,
        answer=answer,
        correct=True,
        used_joker=used_joker,
        validated_at=validated_at,
    )
    session.add(validation)

    segment_page = segment * PAGES_PER_SEGMENT
    if book.total_pages:
        segment_page = min(segment_page, book.total_pages)
    progress.current_page = max(progress.current_page or 0, segment_page)
    progress.total_pages = book.total_pages
    progress.removed_at = None
    if progress.started_at is None:
        progress.started_at = validated_at
    status = compute_status(validated + 1, expected, progress.current_page, progress.total_pages)
    progress.status = status.value

    try:
        await session.flush()
    except IntegrityError:
        await _raise_conflict(session, user_id, book_id, segment)

    timestamps = previous + [validated_at]
    streak = compute_streak(timestamps, today=local_day(validated_at, tz), tz=tz)
    progress.streak_current = streak.current
    progress.streak_best = streak.best

    await award_xp(session, user_id, XP_PER_VALIDATION)
    ctx = RewardContext(
        user_id=user_id,
        validated_at=validated_at,
        tz=tz,
        timestamps=timestamps,
        streak=streak,
        previous_day=previous[-1] if previous else None,
        total_validations=len(timestamps),
    )
    grants = await evaluate_rewards(session, ctx)
    companion = await update_companion(session, user_id, validated_at, tz, streak)

    try:
        await session.commit()
    except IntegrityError:
        await _raise_conflict(session, user_id, book_id, segment)

    logger.info(
        "Validation recorded user=%s book=%s segment=%s joker=%s status=%s",
        user_id, book_id, segment, used_joker, status.value,
    )
    return ValidationResult(
        outcome="recorded",
        status=status,
        validation=validation,
        streak=streak,
        xp_awarded=XP_PER_VALIDATION,
        new_badges=grants.badges,
        new_quests=grants.quests,
        ritual=companion.ritual,
        revealed_answer=revealed_answer,
        jokers_remaining=jokers_remaining,
    )


async def _raise_conflict(session: AsyncSession, user_id: str, book_id: int, segment: int) -> None:
    """A concurrent submission won the unique constraint."""
    await session.rollback()
    existing = await find_validation(session, user_id, book_id, segment)
    if existing is not None:
        raise DuplicateValidation(existing)
    logger.error("Validation insert conflict user=%s book=%s segment=%s", user_id, book_id, segment)
    raise IntegrityViolation()


async def reveal_and_validate(
    session: AsyncSession,
    user_id: str | None,
    book_id: int,
    segment: int,
    sessions: SessionRegistry | None = None,
    now: datetime | None = None,
) -> ValidationResult:
    """Joker flow: reveal the answer and validate the segment in one step."""
    return await record_validation(
        session, user_id, book_id, segment, used_joker=True, sessions=sessions, now=now
    )


async def submit_answer(
    session: AsyncSession,
    user_id: str | None,
    book_id: int,
    segment: int,
    answer: str,
    sessions: SessionRegistry | None = None,
    now: datetime | None = None,
) -> ValidationResult:
    """Check a typed answer against the question bank and validate when it matches."""
    user_id = require_user(user_id)
    await get_book_or_raise(session, book_id)
    question = await get_question(session, book_id, segment)
    if question is None:
        raise QuestionNotFound()
    return await record_validation(
        session, user_id, book_id, segment,
        correct=check_answer(question, answer),
        question_id=question.id,
        answer=answer,
        sessions=sessions,
        now=now,
    )


async def user_streak(
    session: AsyncSession, user_id: str | None, today: date | None = None, tz: str = TIMEZONE
) -> Streak:
    user_id = require_user(user_id)
    return compute_streak(await validation_timestamps(session, user_id), today=today, tz=tz)
