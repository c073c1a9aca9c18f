"""Question bank: one single-word question per book segment."""

import logging

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from vread.id import make_row_id
from vread.models import ReadingQuestion

logger = logging.getLogger(__name__)


def normalize_answer(value: str) -> str:
    return value.strip().lower()


def check_answer(question: ReadingQuestion, submitted: str) -> bool:
    """Case-insensitive, whitespace-trimmed comparison."""
    return normalize_answer(question.answer) == normalize_answer(submitted)


async def get_question(session: AsyncSession, book_id: int, segment: int) -> ReadingQuestion | None:
    result = await session.execute(
        select(ReadingQuestion).where(
            ReadingQuestion.book_id == book_id, ReadingQuestion.segment == segment
        )
    )
    return result.scalar_one_or_none()


async def upsert_questions(session: AsyncSession, book_id: int, items: list[dict]) -> int:
    """Insert or replace questions keyed on (book_id, segment)."""
    if not items:
        return 0
    rows = [
        {
            "id": make_row_id(book_id, item["segment"]),
            "book_id": book_id,
            "segment": item["segment"],
            "question": item["question"],
            "answer": item["answer"].strip(),
        }
        for item in items
    ]
    stmt = insert(ReadingQuestion).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["book_id", "segment"],
        set_={"question": stmt.excluded.question, "answer": stmt.excluded.answer},
    )
    await session.execute(stmt)
    logger.info("Upserted %d questions for book %s", len(rows), book_id)
    return len(rows)
