"""Status reconciliation and background corrections."""

import asyncio
import logging

import pytest
from sqlalchemy import select

from vread.models import ReadingProgress, ReadingValidation
from vread.services.progress import load_book_progress, load_user_progress
from vread.services.status import (
    BackgroundWriter,
    ReadingStatus,
    compute_status,
    needs_correction,
    resolve_expected_segments,
)
from tests.conftest import TestSession, USER


# --- compute_status ---

def test_no_validations_no_pages_is_to_read():
    assert compute_status([], 5, 0, 300) is ReadingStatus.TO_READ


def test_pages_started_without_validations_is_in_progress():
    assert compute_status(0, 5, 12, 300) is ReadingStatus.IN_PROGRESS


def test_last_page_without_validations_is_completed():
    assert compute_status(0, 5, 300, 300) is ReadingStatus.COMPLETED


def test_unknown_page_count_never_completes_from_pages():
    assert compute_status(0, 5, 500, 0) is ReadingStatus.IN_PROGRESS


def test_validations_override_pages():
    # Page counter says finished but only two segments are validated
    assert compute_status(2, 5, 300, 300) is ReadingStatus.IN_PROGRESS


@pytest.mark.parametrize("count,expected", [(1, "in_progress"), (4, "in_progress"), (5, "completed")])
def test_completion_boundary(count, expected):
    assert compute_status(count, 5, 0, 0) == expected


def test_count_above_ladder_is_completed():
    assert compute_status(8, 5, 0, 0) is ReadingStatus.COMPLETED


def test_accepts_validation_list():
    assert compute_status([object(), object()], 2, 0, 0) is ReadingStatus.COMPLETED


def test_missing_expected_segments_falls_back():
    assert resolve_expected_segments(None, 12) == 12
    assert resolve_expected_segments(0, None) == 1
    assert compute_status(1, None, 0, 0) is ReadingStatus.COMPLETED
    assert compute_status(1, None, 0, 0, total_chapters=3) is ReadingStatus.IN_PROGRESS


def test_needs_correction():
    assert needs_correction("to_read", ReadingStatus.IN_PROGRESS)
    assert needs_correction(None, ReadingStatus.TO_READ)
    assert not needs_correction("completed", ReadingStatus.COMPLETED)


# --- BackgroundWriter ---

@pytest.mark.asyncio
async def test_background_writer_logs_failures(caplog):
    writer = BackgroundWriter()

    async def _boom():
        raise RuntimeError("disk full")

    with caplog.at_level(logging.ERROR, logger="vread.services.status"):
        writer.schedule(_boom, "status test")
        await writer.drain()

    assert writer.pending == 0
    assert "disk full" in caplog.text


@pytest.mark.asyncio
async def test_background_writer_does_not_block_caller():
    writer = BackgroundWriter()
    gate = asyncio.Event()
    done = []

    async def _slow():
        await gate.wait()
        done.append(True)

    writer.schedule(_slow, "slow")
    assert writer.pending == 1
    assert done == []
    gate.set()
    await writer.drain()
    assert done == [True]


# --- reconciliation on read ---

async def _seed_progress(session, book, status, current_page=0, segments=0):
    progress = ReadingProgress(
        id=1,
        user_id=USER,
        book_id=book.id,
        current_page=current_page,
        total_pages=book.total_pages,
        status=status,
        streak_current=0,
        streak_best=0,
    )
    session.add(progress)
    for segment in range(1, segments + 1):
        session.add(
            ReadingValidation(
                id=100 + segment,
                user_id=USER,
                book_id=book.id,
                progress_id=1,
                segment=segment,
                correct=True,
                used_joker=False,
            )
        )
    await session.commit()
    return progress


@pytest.mark.asyncio
async def test_load_reconciles_and_corrects_stale_status(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    await _seed_progress(session, book, "to_read", segments=5)
    writer = BackgroundWriter()

    result = await load_user_progress(TestSession, USER, writer)
    assert result[0].status == "completed"
    assert result[0].is_completed
    assert result[0].next_segment is None

    await writer.drain()
    async with TestSession() as s:
        stored = (await s.execute(select(ReadingProgress.status))).scalar_one()
    assert stored == "completed"


@pytest.mark.asyncio
async def test_load_leaves_consistent_rows_alone(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    await _seed_progress(session, book, "in_progress", segments=2)
    writer = BackgroundWriter()

    result = await load_book_progress(TestSession, USER, book.id, writer)
    assert result.status == "in_progress"
    assert result.validated_segments == 2
    assert result.next_segment == 3
    assert result.progress_percent == 40
    assert writer.pending == 0


@pytest.mark.asyncio
async def test_completed_stays_completed_after_downgrade_attempt(session, make_book):
    """A stored status lower than the validations imply is corrected upward."""
    book = await make_book(total_pages=60, expected_segments=2)
    await _seed_progress(session, book, "in_progress", segments=2)
    writer = BackgroundWriter()

    first = await load_user_progress(TestSession, USER, writer)
    await writer.drain()
    second = await load_user_progress(TestSession, USER, writer)
    assert first[0].status == second[0].status == "completed"
    assert writer.pending == 0


@pytest.mark.asyncio
async def test_load_book_progress_missing_returns_none(make_book):
    book = await make_book()
    assert await load_book_progress(TestSession, USER, book.id) is None


@pytest.mark.asyncio
async def test_completed_by_pages_reports_full_percent(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    await _seed_progress(session, book, "completed", current_page=150)

    result = await load_book_progress(TestSession, USER, book.id)
    assert result.is_completed
    assert result.validated_segments == 0
    assert result.progress_percent == 100


@pytest.mark.asyncio
async def test_page_only_progress_percent(session, make_book):
    book = await make_book(total_pages=150, expected_segments=5)
    await _seed_progress(session, book, "in_progress", current_page=40)

    result = await load_book_progress(TestSession, USER, book.id)
    assert result.status == "in_progress"
    assert result.progress_percent == 27
