import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from interview_prep import crud
from interview_prep.models import Category, Lesson, Topic, User
from tests.utils.content import (
    code_example,
    create_category,
    create_lesson,
    create_topic,
    multiple_choice_question,
)
from tests.utils.user import user_authentication_headers

pytestmark = pytest.mark.asyncio

API = "/api"


async def test_lesson_navigation(
    client_with_test_db: AsyncClient, hook_lessons: list[Lesson]
) -> None:
    """
    L1, L2, L3 in that order: L2 points back to L1 and forward to L3.
    """
    first, second, third = hook_lessons
    r = await client_with_test_db.get(f"{API}/lessons/{second.slug}")
    assert r.status_code == 200
    navigation = r.json()["navigation"]
    assert navigation["previous"]["slug"] == first.slug
    assert navigation["next"]["slug"] == third.slug

    r = await client_with_test_db.get(f"{API}/lessons/{first.slug}")
    navigation = r.json()["navigation"]
    assert navigation["previous"] is None
    assert navigation["next"]["slug"] == second.slug

    r = await client_with_test_db.get(f"{API}/lessons/{third.slug}")
    navigation = r.json()["navigation"]
    assert navigation["previous"]["slug"] == second.slug
    assert navigation["next"] is None


async def test_navigation_with_equal_order_index(
    client_with_test_db: AsyncClient, db: AsyncSession, react_hooks: Topic
) -> None:
    lessons = [
        await create_lesson(db, topic=react_hooks, order_index=1) for _ in range(3)
    ]
    ordered = sorted(lessons, key=lambda lesson: lesson.id)

    visited = []
    slug = ordered[0].slug
    while slug:
        visited.append(slug)
        r = await client_with_test_db.get(f"{API}/lessons/{slug}")
        following = r.json()["navigation"]["next"]
        slug = following["slug"] if following else None
    assert visited == [lesson.slug for lesson in ordered]


async def test_lesson_hides_answers(
    client_with_test_db: AsyncClient, db: AsyncSession, react_hooks: Topic
) -> None:
    lesson = await create_lesson(
        db,
        topic=react_hooks,
        slug="use-effect",
        quiz_questions=[multiple_choice_question(), multiple_choice_question(correct_answer="A")],
        code_examples=[code_example("second", order_index=2), code_example("first", order_index=1)],
    )

    r = await client_with_test_db.get(f"{API}/lessons/{lesson.slug}")
    assert r.status_code == 200
    body = r.json()
    assert set(body) == {"lesson", "codeExamples", "quizQuestions", "navigation"}
    assert len(body["quizQuestions"]) == 2
    for question in body["quizQuestions"]:
        assert "correctAnswer" not in question
        assert "correct_answer" not in question
        assert "explanation" not in question
        assert question["options"] == ["A", "B", "C", "D"]
    assert [ex["title"] for ex in body["codeExamples"]] == ["first", "second"]

    detail = body["lesson"]
    assert detail["topic_slug"] == "react-hooks"
    assert detail["category_slug"] == "frontend"
    assert detail["key_points"] == ["first point", "second point"]
    assert "user_progress" not in detail
    # other empty fields are still sent
    assert body["navigation"] == {"previous": None, "next": None}


async def test_lesson_with_user_progress(
    client_with_test_db: AsyncClient,
    db: AsyncSession,
    create_user: User,
    hook_lessons: list[Lesson],
) -> None:
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    r = await client_with_test_db.get(
        f"{API}/lessons/{hook_lessons[0].slug}", headers=headers
    )
    progress = r.json()["lesson"]["user_progress"]
    assert progress["status"] == "not_started"
    assert progress["progress_percentage"] == 0

    await crud.upsert_lesson_progress(
        session=db,
        user_id=create_user.id,
        lesson_id=hook_lessons[0].id,
        status="in_progress",
        progress_percentage=30,
        time_spent_increment=7,
    )
    r = await client_with_test_db.get(
        f"{API}/lessons/{hook_lessons[0].slug}", headers=headers
    )
    progress = r.json()["lesson"]["user_progress"]
    assert progress["status"] == "in_progress"
    assert progress["progress_percentage"] == 30
    assert progress["time_spent"] == 7


async def test_lesson_not_found(client_with_test_db: AsyncClient) -> None:
    r = await client_with_test_db.get(f"{API}/lessons/missing")
    assert r.status_code == 404
    assert r.json() == {"error": "Lesson not found"}


async def test_search_lessons(
    client_with_test_db: AsyncClient, db: AsyncSession, react_hooks: Topic
) -> None:
    backend = await create_category(db, slug="backend")
    oop = await create_topic(db, category=backend, slug="oop")
    in_content = await create_lesson(
        db,
        topic=react_hooks,
        slug="effects",
        title="Side effects",
        content="Cleanup with useEffect and closures.",
    )
    in_title = await create_lesson(
        db,
        topic=oop,
        slug="closures",
        title="Closures explained",
        difficulty_level="advanced",
    )
    await create_lesson(db, topic=oop, slug="unrelated", title="Inheritance")

    r = await client_with_test_db.get(f"{API}/lessons/search", params={"q": "CLOSURE"})
    assert r.status_code == 200
    lessons = r.json()["lessons"]
    assert [lesson["slug"] for lesson in lessons] == [in_title.slug, in_content.slug]
    assert lessons[0]["category_slug"] == "backend"
    assert "content" not in lessons[0]

    r = await client_with_test_db.get(
        f"{API}/lessons/search", params={"q": "closure", "category": "frontend"}
    )
    assert [lesson["slug"] for lesson in r.json()["lessons"]] == [in_content.slug]

    r = await client_with_test_db.get(
        f"{API}/lessons/search", params={"q": "closure", "difficulty": "advanced"}
    )
    assert [lesson["slug"] for lesson in r.json()["lessons"]] == [in_title.slug]


async def test_search_treats_wildcards_literally(
    client_with_test_db: AsyncClient, db: AsyncSession, react_hooks: Topic
) -> None:
    await create_lesson(db, topic=react_hooks, title="Plain title", content="nothing")
    r = await client_with_test_db.get(f"{API}/lessons/search", params={"q": "%"})
    assert r.status_code == 200
    assert r.json()["lessons"] == []


@pytest.mark.parametrize("params", [{}, {"q": "   "}])
async def test_search_requires_query(
    client_with_test_db: AsyncClient, params: dict
) -> None:
    r = await client_with_test_db.get(f"{API}/lessons/search", params=params)
    assert r.status_code == 400
    assert r.json() == {"error": "Search query 'q' is required"}


async def test_create_lesson_with_children(
    client_with_test_db: AsyncClient,
    db: AsyncSession,
    create_user: User,
    react_hooks: Topic,
    hook_lessons: list[Lesson],
) -> None:
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    payload = {
        "topic_id": react_hooks.id,
        "title": "Custom Hooks",
        "content": "# Custom hooks\n\nExtract logic into reusable functions.",
        "difficulty_level": "intermediate",
        "key_points": ["Start with use", "Share logic, not state"],
        "code_examples": [
            {"title": "useToggle", "language": "javascript", "code": "function useToggle() {}"}
        ],
        "quiz_questions": [
            {
                "question_text": "Custom hook names start with?",
                "question_type": "multiple_choice",
                "options": ["use", "hook", "with"],
                "correct_answer": "use",
                "explanation": "The rules of hooks rely on the prefix.",
            },
            {
                "question_text": "Hooks can be called conditionally.",
                "question_type": "true_false",
                "correct_answer": "false",
            },
        ],
    }
    r = await client_with_test_db.post(f"{API}/lessons", headers=headers, json=payload)
    assert r.status_code == 201, r.text
    lesson = r.json()["lesson"]
    assert lesson["slug"] == "custom-hooks"
    assert lesson["order_index"] == 4
    assert lesson["topic_slug"] == "react-hooks"
    assert lesson["key_points"] == ["Start with use", "Share logic, not state"]

    r = await client_with_test_db.get(f"{API}/lessons/custom-hooks")
    body = r.json()
    assert [q["order_index"] for q in body["quizQuestions"]] == [1, 2]
    assert body["codeExamples"][0]["title"] == "useToggle"
    assert body["navigation"]["previous"]["slug"] == hook_lessons[-1].slug


async def test_create_lesson_duplicate_slug(
    client_with_test_db: AsyncClient,
    create_user: User,
    react_hooks: Topic,
    hook_lessons: list[Lesson],
) -> None:
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    r = await client_with_test_db.post(
        f"{API}/lessons",
        headers=headers,
        json={
            "topic_id": react_hooks.id,
            "slug": hook_lessons[0].slug,
            "title": "Again",
            "content": "text",
        },
    )
    assert r.status_code == 409


@pytest.mark.parametrize(
    "overrides",
    [
        {"topic_id": "missing-topic"},
        {"difficulty_level": "trivial"},
        {"order_index": -1},
        {
            "quiz_questions": [
                {
                    "question_text": "Pick one",
                    "options": ["A", "B"],
                    "correct_answer": "C",
                }
            ]
        },
        {
            "quiz_questions": [
                {
                    "question_text": "Essay",
                    "question_type": "essay",
                    "correct_answer": "anything",
                }
            ]
        },
    ],
)
async def test_create_lesson_unprocessable(
    client_with_test_db: AsyncClient,
    db: AsyncSession,
    create_user: User,
    react_hooks: Topic,
    overrides: dict,
) -> None:
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    payload = {
        "topic_id": react_hooks.id,
        "title": "Broken lesson",
        "content": "text",
        **overrides,
    }
    r = await client_with_test_db.post(f"{API}/lessons", headers=headers, json=payload)
    assert r.status_code == 422
    assert await crud.get_lesson_by_slug(session=db, slug="broken-lesson") is None
