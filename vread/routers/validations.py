from fastapi import APIRouter, Depends, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vread.database import get_session
from vread.dependencies import current_user, get_sessions
from vread.models import ReadingValidation
from vread.schemas.reading import (
    AnswerSubmission,
    JokerRequest,
    JokersResponse,
    StreakResponse,
    ValidationCreate,
    ValidationResponse,
    ValidationResultResponse,
)
from vread.services.jokers import joker_usage
from vread.services.session import SessionRegistry
from vread.services.validation import (
    ValidationResult,
    get_book_or_raise,
    record_validation,
    reveal_and_validate,
    submit_answer,
)

router = APIRouter(prefix="/api/books/{book_id}", tags=["validations"])


def _to_response(result: ValidationResult, response: Response) -> ValidationResultResponse:
    response.status_code = 201 if result.outcome == "recorded" else 200
    streak = None
    if result.streak is not None:
        streak = StreakResponse(
            current=result.streak.current, best=result.streak.best, last_day=result.streak.last_day
        )
    return ValidationResultResponse(
        outcome=result.outcome,
        validation=ValidationResponse.model_validate(result.validation) if result.validation else None,
        status=result.status.value,
        streak=streak,
        xp_awarded=result.xp_awarded,
        new_badges=result.new_badges,
        new_quests=result.new_quests,
        ritual=result.ritual.value if result.ritual else None,
        revealed_answer=result.revealed_answer,
        jokers_remaining=result.jokers_remaining,
    )


@router.get("/validations", response_model=list[ValidationResponse])
async def list_validations(
    book_id: int,
    user_id: str = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    await get_book_or_raise(session, book_id)
    result = await session.execute(
        select(ReadingValidation)
        .where(ReadingValidation.user_id == user_id, ReadingValidation.book_id == book_id)
        .order_by(ReadingValidation.segment)
    )
    return result.scalars().all()


@router.post("/validations", response_model=ValidationResultResponse, status_code=201)
async def create_validation(
    book_id: int,
    data: ValidationCreate,
    response: Response,
    user_id: str = Depends(current_user),
    session: AsyncSession = Depends(get_session),
    sessions: SessionRegistry = Depends(get_sessions),
):
    result = await record_validation(
        session,
        user_id,
        book_id,
        data.segment,
        correct=data.correct,
        used_joker=data.used_joker,
        question_id=data.question_id,
        sessions=sessions,
    )
    return _to_response(result, response)


@router.post("/validations/answer", response_model=ValidationResultResponse, status_code=201)
async def answer_segment(
    book_id: int,
    data: AnswerSubmission,
    response: Response,
    user_id: str = Depends(current_user),
    session: AsyncSession = Depends(get_session),
    sessions: SessionRegistry = Depends(get_sessions),
):
    result = await submit_answer(session, user_id, book_id, data.segment, data.answer, sessions=sessions)
    return _to_response(result, response)


@router.post("/validations/joker", response_model=ValidationResultResponse, status_code=201)
async def use_joker(
    book_id: int,
    data: JokerRequest,
    response: Response,
    user_id: str = Depends(current_user),
    session: AsyncSession = Depends(get_session),
    sessions: SessionRegistry = Depends(get_sessions),
):
    result = await reveal_and_validate(session, user_id, book_id, data.segment, sessions=sessions)
    return _to_response(result, response)


@router.get("/jokers", response_model=JokersResponse)
async def get_jokers(
    book_id: int,
    user_id: str = Depends(current_user),
    session: AsyncSession = Depends(get_session),
):
    book = await get_book_or_raise(session, book_id)
    usage = await joker_usage(session, user_id, book_id, book.segment_count)
    return JokersResponse(allowed=usage.allowed, used=usage.used, remaining=usage.remaining)
