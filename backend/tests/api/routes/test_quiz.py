import pytest
from httpx import AsyncClient
from sqlmodel import func, select
from sqlmodel.ext.asyncio.session import AsyncSession

from interview_prep import crud
from interview_prep.models import QuizAttempt, QuizQuestion, Topic, User
from tests.utils.content import create_lesson, multiple_choice_question
from tests.utils.user import user_authentication_headers

pytestmark = pytest.mark.asyncio

API = "/api"


async def _lesson_with_questions(db: AsyncSession, topic: Topic, *questions: QuizQuestion):
    lesson = await create_lesson(db, topic=topic, quiz_questions=list(questions))
    stored = await crud.list_quiz_questions(session=db, lesson_id=lesson.id)
    return lesson, stored


async def test_submit_right_then_wrong(
    client_with_test_db: AsyncClient,
    db: AsyncSession,
    create_user: User,
    react_hooks: Topic,
) -> None:
    """
    Choices A-D, correct answer C worth 15 points.
    """
    _, (question,) = await _lesson_with_questions(db, react_hooks, multiple_choice_question())
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )

    r = await client_with_test_db.post(
        f"{API}/quiz/submit",
        headers=headers,
        json={"questionId": question.id, "userAnswer": "C"},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["correct"] is True
    assert body["pointsEarned"] == 15
    assert body["correctAnswer"] == "C"
    assert body["explanation"] == "Effects run after the render is committed."
    assert body["attempt"]["attempt_number"] == 1

    r = await client_with_test_db.post(
        f"{API}/quiz/submit",
        headers=headers,
        json={"questionId": question.id, "userAnswer": "A"},
    )
    body = r.json()
    assert body["correct"] is False
    assert body["pointsEarned"] == 0
    assert body["correctAnswer"] == "C"
    assert body["explanation"]
    assert body["attempt"]["attempt_number"] == 2

    count = (
        await db.exec(
            select(func.count(QuizAttempt.id)).where(
                QuizAttempt.user_id == create_user.id
            )
        )
    ).one()
    assert count == 2


async def test_multiple_choice_is_case_sensitive(
    client_with_test_db: AsyncClient,
    db: AsyncSession,
    create_user: User,
    react_hooks: Topic,
) -> None:
    _, (question,) = await _lesson_with_questions(db, react_hooks, multiple_choice_question())
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    r = await client_with_test_db.post(
        f"{API}/quiz/submit",
        headers=headers,
        json={"questionId": question.id, "userAnswer": "c"},
    )
    assert r.json()["correct"] is False


async def test_short_answer_is_normalized(
    client_with_test_db: AsyncClient,
    db: AsyncSession,
    create_user: User,
    react_hooks: Topic,
) -> None:
    _, (question,) = await _lesson_with_questions(
        db,
        react_hooks,
        QuizQuestion(
            question_text="What does React diff against?",
            question_type="short_answer",
            correct_answer="Virtual DOM",
            points=5,
        ),
    )
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    r = await client_with_test_db.post(
        f"{API}/quiz/submit",
        headers=headers,
        json={"questionId": question.id, "userAnswer": "  virtual dom "},
    )
    body = r.json()
    assert body["correct"] is True
    assert body["pointsEarned"] == 5


async def test_submit_unknown_question(
    client_with_test_db: AsyncClient, create_user: User
) -> None:
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    r = await client_with_test_db.post(
        f"{API}/quiz/submit",
        headers=headers,
        json={"questionId": "missing", "userAnswer": "A"},
    )
    assert r.status_code == 404
    assert r.json() == {"error": "Question not found"}


@pytest.mark.parametrize(
    "payload",
    [{"questionId": "q"}, {"userAnswer": "A"}, {"questionId": "q", "userAnswer": ""}],
)
async def test_submit_invalid_payload(
    client_with_test_db: AsyncClient, create_user: User, payload: dict
) -> None:
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    r = await client_with_test_db.post(f"{API}/quiz/submit", headers=headers, json=payload)
    assert r.status_code == 400


async def test_lesson_attempts_newest_first(
    client_with_test_db: AsyncClient,
    db: AsyncSession,
    create_user: User,
    react_hooks: Topic,
) -> None:
    lesson, (first, second) = await _lesson_with_questions(
        db,
        react_hooks,
        multiple_choice_question(order_index=1),
        multiple_choice_question(order_index=2, correct_answer="B"),
    )
    other_lesson, (elsewhere,) = await _lesson_with_questions(
        db, react_hooks, multiple_choice_question()
    )
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    for question_id, answer in [(first.id, "A"), (second.id, "B"), (first.id, "C"), (elsewhere.id, "C")]:
        r = await client_with_test_db.post(
            f"{API}/quiz/submit",
            headers=headers,
            json={"questionId": question_id, "userAnswer": answer},
        )
        assert r.status_code == 200

    r = await client_with_test_db.get(f"{API}/quiz/lesson/{lesson.id}", headers=headers)
    assert r.status_code == 200
    attempts = r.json()["attempts"]
    assert [(a["question_id"], a["user_answer"]) for a in attempts] == [
        (first.id, "C"),
        (second.id, "B"),
        (first.id, "A"),
    ]
    assert attempts[0]["attempt_number"] == 2
    assert attempts[0]["question_text"] == first.question_text
    assert attempts[0]["question_type"] == "multiple_choice"


async def test_lesson_attempts_unknown_lesson(
    client_with_test_db: AsyncClient, create_user: User
) -> None:
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    r = await client_with_test_db.get(f"{API}/quiz/lesson/missing", headers=headers)
    assert r.status_code == 404


async def test_stats_use_latest_attempt(
    client_with_test_db: AsyncClient,
    db: AsyncSession,
    create_user: User,
    react_hooks: Topic,
) -> None:
    _, (q1, q2) = await _lesson_with_questions(
        db,
        react_hooks,
        multiple_choice_question(order_index=1, points=15),
        multiple_choice_question(order_index=2, points=10, correct_answer="B"),
    )
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )

    r = await client_with_test_db.get(f"{API}/quiz/stats", headers=headers)
    assert r.json() == {
        "stats": {
            "total_attempts": 0,
            "questions_answered": 0,
            "correct_answers": 0,
            "total_points": 0,
            "accuracy_percentage": 0.0,
        }
    }

    # q1: right then wrong, q2: wrong then right
    for question_id, answer in [(q1.id, "C"), (q1.id, "A"), (q2.id, "A"), (q2.id, "B")]:
        await client_with_test_db.post(
            f"{API}/quiz/submit",
            headers=headers,
            json={"questionId": question_id, "userAnswer": answer},
        )

    r = await client_with_test_db.get(f"{API}/quiz/stats", headers=headers)
    stats = r.json()["stats"]
    assert stats["total_attempts"] == 4
    assert stats["questions_answered"] == 2
    assert stats["correct_answers"] == 1
    assert stats["total_points"] == 10
    assert stats["accuracy_percentage"] == 50.0
