from typing import Any

from fastapi import APIRouter

from interview_prep.api.deps import CurrentUserId, SessionDep
from interview_prep.core import quiz
from interview_prep.models import (
    QuizAttemptsPublic,
    QuizFeedback,
    QuizStatsEnvelope,
    QuizSubmission,
)

router = APIRouter(prefix="/quiz", tags=["quiz"])


@router.post("/submit", response_model=QuizFeedback)
async def submit_answer_route(
    current_user: CurrentUserId, session: SessionDep, submission: QuizSubmission
) -> Any:
    """
    Grade an answer. The correct answer and the explanation are always returned.
    """
    feedback = await quiz.submit_answer(
        session=session, user_id=current_user, submission=submission
    )
    await session.commit()
    return feedback


@router.get("/stats", response_model=QuizStatsEnvelope)
async def read_stats_route(current_user: CurrentUserId, session: SessionDep) -> Any:
    stats = await quiz.get_quiz_stats(session=session, user_id=current_user)
    return QuizStatsEnvelope(stats=stats)


@router.get("/lesson/{lesson_id}", response_model=QuizAttemptsPublic)
async def read_lesson_attempts_route(
    current_user: CurrentUserId, session: SessionDep, lesson_id: str
) -> Any:
    """
    The caller's attempts on the questions of a lesson, newest first.
    """
    attempts = await quiz.get_lesson_attempts(
        session=session, user_id=current_user, lesson_id=lesson_id
    )
    return QuizAttemptsPublic(attempts=attempts)
