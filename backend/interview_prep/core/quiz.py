import logging

from sqlmodel.ext.asyncio.session import AsyncSession

from interview_prep import crud
from interview_prep.core.exceptions import NotFoundError
from interview_prep.core.grading import grade
from interview_prep.models import (
    QuizAttempt,
    QuizAttemptDetail,
    QuizAttemptPublic,
    QuizFeedback,
    QuizStats,
    QuizSubmission,
    utcnow,
)
from interview_prep.utils import percentage

logger = logging.getLogger(__name__)


async def submit_answer(
    *, session: AsyncSession, user_id: str, submission: QuizSubmission
) -> QuizFeedback:
    """Grade an answer and record the attempt.

    The response always reveals the correct answer and the explanation,
    whether the answer was right or not.

    :param session: The database session.
    :param user_id: The ID of the user answering.
    :param submission: Question id and answer.
    :raises NotFoundError: If the question does not exist.
    :raises UnprocessableError: If the question type has no grader.
    :returns: QuizFeedback with the stored attempt.
    """
    question = await crud.get_quiz_question(
        session=session, question_id=submission.question_id
    )
    if not question:
        raise NotFoundError("Question not found")

    correct = grade(question.question_type, submission.user_answer, question.correct_answer)
    points = question.points if correct else 0

    attempt = await crud.create_quiz_attempt(
        session=session,
        attempt=QuizAttempt(
            user_id=user_id,
            question_id=question.id,
            user_answer=submission.user_answer,
            is_correct=correct,
            points_earned=points,
            attempted_at=utcnow(),
        ),
    )
    logger.info(
        "User %s attempt %d on question %s: %s",
        user_id,
        attempt.attempt_number,
        question.id,
        "correct" if correct else "wrong",
    )
    return QuizFeedback(
        correct=correct,
        correct_answer=question.correct_answer,
        explanation=question.explanation,
        points_earned=points,
        attempt=QuizAttemptPublic.model_validate(attempt),
    )


async def get_lesson_attempts(
    *, session: AsyncSession, user_id: str, lesson_id: str
) -> list[QuizAttemptDetail]:
    """All attempts of a user on the questions of a lesson, newest first.

    :raises NotFoundError: If the lesson does not exist.
    """
    if not await crud.get_lesson_by_id(session=session, lesson_id=lesson_id):
        raise NotFoundError("Lesson not found")
    rows = await crud.list_lesson_attempts(
        session=session, user_id=user_id, lesson_id=lesson_id
    )
    return [
        QuizAttemptDetail.model_validate(
            attempt, update={"question_text": text, "question_type": kind}
        )
        for attempt, text, kind in rows
    ]


async def get_quiz_stats(*, session: AsyncSession, user_id: str) -> QuizStats:
    """Quiz statistics of a user, see QuizStats for the meaning of each figure."""
    total_attempts, answered, correct, points = await crud.quiz_stats(
        session=session, user_id=user_id
    )
    return QuizStats(
        total_attempts=total_attempts,
        questions_answered=answered,
        correct_answers=correct,
        total_points=points,
        accuracy_percentage=percentage(correct, answered),
    )
