"""Recording validations: idempotency, ordering, jokers and answers."""

from datetime import UTC, date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from vread.errors import (
    BookNotFound,
    IntegrityViolation,
    NotAuthenticated,
    QuestionNotFound,
    QuotaExceeded,
)
from vread.id import make_row_id
from vread.models import ReadingProgress, ReadingValidation, UserLevel
from vread.services.progress import load_book_progress
from vread.services.queries import validations_since
from vread.services.questions import upsert_questions
from vread.services.session import SessionRegistry
from vread.services.validation import (
    record_validation,
    reveal_and_validate,
    submit_answer,
    user_streak,
)
from tests.conftest import TestSession, USER

NOON = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


async def _count(session, **filters):
    stmt = select(func.count(ReadingValidation.id))
    for name, value in filters.items():
        stmt = stmt.where(getattr(ReadingValidation, name) == value)
    return (await session.execute(stmt)).scalar()


async def _progress(session, book_id):
    result = await session.execute(
        select(ReadingProgress).where(ReadingProgress.user_id == USER, ReadingProgress.book_id == book_id)
    )
    return result.scalar_one_or_none()


@pytest.mark.asyncio
async def test_first_validation_creates_progress(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    result = await record_validation(session, USER, book.id, 1, now=NOON)

    assert result.outcome == "recorded"
    assert result.status == "in_progress"
    assert result.validation.segment == 1
    assert result.xp_awarded == 10
    assert result.streak.current == 1

    progress = await _progress(session, book.id)
    assert progress.status == "in_progress"
    assert progress.current_page == 30
    assert progress.started_at is not None


@pytest.mark.asyncio
async def test_validation_is_idempotent(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    first = await record_validation(session, USER, book.id, 1, now=NOON)
    second = await record_validation(session, USER, book.id, 1, now=NOON + timedelta(minutes=1))

    assert second.outcome == "duplicate"
    assert second.duplicate
    assert second.validation.id == first.validation.id
    assert second.xp_awarded == 0
    assert await _count(session, user_id=USER, book_id=book.id) == 1
    level = await session.get(UserLevel, USER)
    assert level.xp == 10


@pytest.mark.asyncio
async def test_completion_boundary(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    for segment in range(1, 5):
        result = await record_validation(session, USER, book.id, segment, now=NOON)
        assert result.status == "in_progress"

    result = await record_validation(session, USER, book.id, 5, now=NOON)
    assert result.status == "completed"
    progress = await _progress(session, book.id)
    assert progress.status == "completed"
    assert progress.current_page == 150


@pytest.mark.asyncio
async def test_out_of_order_segment_rejected(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    with pytest.raises(IntegrityViolation):
        await record_validation(session, USER, book.id, 3, now=NOON)
    assert await _count(session) == 0


@pytest.mark.asyncio
async def test_segment_beyond_ladder_rejected(session, make_book):
    book = await make_book(total_pages=60, expected_segments=2)
    await record_validation(session, USER, book.id, 1, now=NOON)
    await record_validation(session, USER, book.id, 2, now=NOON)
    with pytest.raises(IntegrityViolation):
        await record_validation(session, USER, book.id, 3, now=NOON)


@pytest.mark.asyncio
async def test_current_page_never_decreases(session, make_book):
    book = await make_book(total_pages=300, expected_segments=10)
    await record_validation(session, USER, book.id, 1, now=NOON)
    progress = await _progress(session, book.id)
    progress.current_page = 200
    await session.commit()

    await record_validation(session, USER, book.id, 2, now=NOON)
    progress = await _progress(session, book.id)
    assert progress.current_page == 200


@pytest.mark.asyncio
async def test_segment_page_clamped_to_total_pages(session, make_book):
    book = await make_book(total_pages=40, expected_segments=2)
    await record_validation(session, USER, book.id, 1, now=NOON)
    await record_validation(session, USER, book.id, 2, now=NOON)
    progress = await _progress(session, book.id)
    assert progress.current_page == 40


@pytest.mark.asyncio
async def test_incorrect_validation_stores_nothing(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    result = await record_validation(session, USER, book.id, 1, correct=False, now=NOON)
    assert result.outcome == "incorrect"
    assert result.status == "to_read"
    assert await _count(session) == 0
    assert await _progress(session, book.id) is None


@pytest.mark.asyncio
async def test_requires_user(session, make_book):
    book = await make_book()
    with pytest.raises(NotAuthenticated):
        await record_validation(session, None, book.id, 1)
    with pytest.raises(NotAuthenticated):
        await record_validation(session, "  ", book.id, 1)


@pytest.mark.asyncio
async def test_unknown_book(session):
    with pytest.raises(BookNotFound):
        await record_validation(session, USER, 424242, 1)


# --- jokers ---

@pytest.mark.asyncio
async def test_joker_reveals_and_validates_in_one_step(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    await upsert_questions(session, book.id, [{"segment": 1, "question": "Planet?", "answer": "Arrakis"}])
    await session.commit()

    result = await reveal_and_validate(session, USER, book.id, 1, now=NOON)
    assert result.outcome == "recorded"
    assert result.revealed_answer == "Arrakis"
    assert result.validation.used_joker is True
    assert result.validation.correct is True
    assert result.jokers_remaining == 0
    assert await _count(session, used_joker=True) == 1


@pytest.mark.asyncio
async def test_joker_quota_enforced(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    await reveal_and_validate(session, USER, book.id, 1, now=NOON)
    with pytest.raises(QuotaExceeded):
        await reveal_and_validate(session, USER, book.id, 2, now=NOON)
    assert await _count(session) == 1


@pytest.mark.asyncio
async def test_joker_on_validated_segment_is_duplicate(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    await record_validation(session, USER, book.id, 1, now=NOON)
    result = await reveal_and_validate(session, USER, book.id, 1, now=NOON)
    assert result.duplicate
    assert await _count(session, used_joker=True) == 0


@pytest.mark.asyncio
async def test_long_books_get_more_jokers(session, make_book):
    book = await make_book(total_pages=600, expected_segments=20)
    first = await reveal_and_validate(session, USER, book.id, 1, now=NOON)
    assert first.jokers_remaining == 2


# --- answers ---

@pytest.mark.asyncio
async def test_submit_answer_is_case_insensitive(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    await upsert_questions(session, book.id, [{"segment": 1, "question": "Planet?", "answer": "Arrakis"}])
    await session.commit()

    wrong = await submit_answer(session, USER, book.id, 1, "Caladan", now=NOON)
    assert wrong.outcome == "incorrect"
    right = await submit_answer(session, USER, book.id, 1, "  arrakis ", now=NOON)
    assert right.outcome == "recorded"
    assert right.validation.answer == "  arrakis "


@pytest.mark.asyncio
async def test_submit_answer_without_question(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    with pytest.raises(QuestionNotFound):
        await submit_answer(session, USER, book.id, 1, "anything")


# --- streak and caches ---

@pytest.mark.asyncio
async def test_streak_across_days(session, make_book):
    book = await make_book(total_pages=300, expected_segments=10)
    for offset in range(3):
        result = await record_validation(session, USER, book.id, offset + 1, now=NOON + timedelta(days=offset))
    assert result.streak.current == 3

    progress = await _progress(session, book.id)
    assert (progress.streak_current, progress.streak_best) == (3, 3)

    later = await user_streak(session, USER, today=date(2025, 3, 20))
    assert later.current == 0
    assert later.best == 3


@pytest.mark.asyncio
async def test_recorded_validation_clears_reader_caches(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    registry = SessionRegistry(TestSession)
    reader = registry.open(USER)
    await reader.get_user_reading_progress()
    await reader.get_book_reading_progress(book.id)
    assert USER in reader.reading_list.cache

    await record_validation(session, USER, book.id, 1, sessions=registry, now=NOON)
    assert USER not in reader.reading_list.cache
    assert (USER, book.id) not in reader.book_progress.cache

    fresh = await reader.get_book_reading_progress(book.id)
    assert fresh.validated_segments == 1
    await registry.aclose()


@pytest.mark.asyncio
async def test_store_and_recorder_agree(session, make_book):
    book = await make_book(total_pages=60, expected_segments=2)
    await record_validation(session, USER, book.id, 1, now=NOON)
    await record_validation(session, USER, book.id, 2, now=NOON)
    loaded = await load_book_progress(TestSession, USER, book.id)
    assert loaded.status == "completed"
    assert loaded.validated_segments == 2


@pytest.mark.asyncio
async def test_user_ids_differing_in_case_and_punctuation_do_not_collide(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    first = await record_validation(session, "Reader_1", book.id, 1, now=NOON)
    second = await record_validation(session, "reader1", book.id, 1, now=NOON)
    assert first.outcome == second.outcome == "recorded"
    assert first.validation.id != second.validation.id
    assert await _count(session, book_id=book.id) == 2

    rows = (await session.execute(select(ReadingProgress).where(ReadingProgress.book_id == book.id))).scalars().all()
    assert {row.user_id for row in rows} == {"Reader_1", "reader1"}


def test_row_ids_use_raw_parts():
    assert make_row_id("Reader_1", 7) != make_row_id("reader1", 7)
    assert make_row_id("reader1", 7) == make_row_id("reader1", 7)
    assert make_row_id("u", 1) != make_row_id("u", "1")


@pytest.mark.asyncio
async def test_validations_since_honours_utc_offset(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    await record_validation(session, USER, book.id, 1, now=NOON)
    plus_two = timezone(timedelta(hours=2))

    # 13:30+02:00 is 11:30 UTC, before the validation
    before = await validations_since(session, USER, datetime(2025, 3, 10, 13, 30, tzinfo=plus_two))
    assert len(before) == 1
    # 14:30+02:00 is 12:30 UTC, after it
    after = await validations_since(session, USER, datetime(2025, 3, 10, 14, 30, tzinfo=plus_two))
    assert after == []


@pytest.mark.asyncio
async def test_registry_closes_idle_sessions():
    now = [0.0]
    registry = SessionRegistry(TestSession, idle_timeout=60, clock=lambda: now[0])
    idle = registry.open("a")
    now[0] = 30.0
    registry.open("b")
    assert "a" in registry

    now[0] = 61.0
    registry.open("b")
    assert "a" not in registry
    assert idle.closed
    assert "b" in registry
    await registry.aclose()
