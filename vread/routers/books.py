import math

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vread.config import PAGES_PER_SEGMENT
from vread.database import get_session
from vread.errors import BookNotFound, IntegrityViolation, QuestionNotFound
from vread.id import make_book_id, make_slug
from vread.models import Book
from vread.schemas.book import BookCreate, BookResponse, BookUpdate, QuestionResponse, QuestionUpsert
from vread.services.questions import get_question, upsert_questions
from vread.services.validation import get_book_or_raise

router = APIRouter(prefix="/api/books", tags=["books"])


@router.get("", response_model=list[BookResponse])
async def list_books(
    q: str | None = None,
    author: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    stmt = select(Book)
    if q:
        stmt = stmt.where(Book.title.ilike(f"%{q}%"))
    if author:
        stmt = stmt.where(Book.author.ilike(f"%{author}%"))
    stmt = stmt.order_by(Book.title).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return result.scalars().all()


@router.post("", response_model=BookResponse, status_code=201)
async def create_book(data: BookCreate, session: AsyncSession = Depends(get_session)):
    book_id = make_book_id(data.title, data.author)
    if await session.get(Book, book_id) is not None:
        raise IntegrityViolation("Book already exists")

    slug = data.slug or make_slug(data.title)
    slug_taken = (await session.execute(select(Book.id).where(Book.slug == slug))).scalar_one_or_none()
    if slug_taken is not None:
        slug = f"{slug}-{book_id % 10000}"

    values = data.model_dump(exclude={"slug"})
    if values["expected_segments"] is None and data.total_pages:
        values["expected_segments"] = math.ceil(data.total_pages / PAGES_PER_SEGMENT)

    book = Book(id=book_id, slug=slug, **values)
    session.add(book)
    await session.commit()
    await session.refresh(book)
    return book


@router.get("/by-slug/{slug}", response_model=BookResponse)
async def get_book_by_slug(slug: str, session: AsyncSession = Depends(get_session)):
    book = (await session.execute(select(Book).where(Book.slug == slug))).scalar_one_or_none()
    if book is None:
        raise BookNotFound()
    return book


@router.get("/{book_id}", response_model=BookResponse)
async def get_book(book_id: int, session: AsyncSession = Depends(get_session)):
    return await get_book_or_raise(session, book_id)


@router.put("/{book_id}", response_model=BookResponse)
async def update_book(book_id: int, data: BookUpdate, session: AsyncSession = Depends(get_session)):
    book = await get_book_or_raise(session, book_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(book, key, value)
    await session.commit()
    await session.refresh(book)
    return book


@router.put("/{book_id}/questions", status_code=200)
async def upsert_book_questions(
    book_id: int,
    questions: list[QuestionUpsert],
    session: AsyncSession = Depends(get_session),
):
    book = await get_book_or_raise(session, book_id)
    out_of_range = [q.segment for q in questions if q.segment > book.segment_count]
    if out_of_range:
        raise IntegrityViolation(f"Segments beyond the end of the book: {out_of_range}")
    count = await upsert_questions(session, book_id, [q.model_dump() for q in questions])
    await session.commit()
    return {"upserted": count}


@router.get("/{book_id}/questions/{segment}", response_model=QuestionResponse)
async def get_segment_question(book_id: int, segment: int, session: AsyncSession = Depends(get_session)):
    await get_book_or_raise(session, book_id)
    question = await get_question(session, book_id, segment)
    if question is None:
        raise QuestionNotFound()
    return question
