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


async def test_read_topics_filtered(
    client_with_test_db: AsyncClient, db: AsyncSession, frontend_category: Category
) -> None:
    backend = await create_category(db, slug="backend")
    await create_topic(db, category=frontend_category, slug="react-basics", order_index=1)
    await create_topic(
        db,
        category=frontend_category,
        slug="react-hooks",
        difficulty_level="intermediate",
        estimated_time=200,
        order_index=2,
    )
    await create_topic(db, category=backend, slug="oop-fundamentals", order_index=1)

    r = await client_with_test_db.get(f"{API}/topics", params={"category": "frontend"})
    assert r.status_code == 200
    topics = r.json()["topics"]
    assert [t["slug"] for t in topics] == ["react-basics", "react-hooks"]
    assert topics[1]["category_slug"] == "frontend"
    assert topics[1]["estimated_time"] == 200

    r = await client_with_test_db.get(
        f"{API}/topics", params={"difficulty": "intermediate"}
    )
    assert [t["slug"] for t in r.json()["topics"]] == ["react-hooks"]

    r = await client_with_test_db.get(f"{API}/topics")
    assert len(r.json()["topics"]) == 3


async def test_read_topics_invalid_difficulty(client_with_test_db: AsyncClient) -> None:
    r = await client_with_test_db.get(f"{API}/topics", params={"difficulty": "godlike"})
    assert r.status_code == 422


async def test_read_topic_with_lessons(
    client_with_test_db: AsyncClient,
    db: AsyncSession,
    react_hooks: Topic,
) -> None:
    await create_lesson(
        db,
        topic=react_hooks,
        slug="use-effect",
        order_index=2,
        code_examples=[code_example("one"), code_example("two")],
        quiz_questions=[multiple_choice_question()],
    )
    await create_lesson(db, topic=react_hooks, slug="use-state", order_index=1)

    r = await client_with_test_db.get(f"{API}/topics/react-hooks")
    assert r.status_code == 200
    topic = r.json()["topic"]
    assert topic["name"] == "React Hooks"
    assert topic["lesson_count"] == 2
    lessons = topic["lessons"]
    assert [lesson["slug"] for lesson in lessons] == ["use-state", "use-effect"]
    assert "content" not in lessons[0]
    assert lessons[1]["code_example_count"] == 2
    assert lessons[1]["quiz_count"] == 1
    assert lessons[0]["code_example_count"] == 0
    # anonymous callers get no per-user fields
    assert "progress_percentage" not in topic
    assert "user_status" not in lessons[0]
    assert "progress_percentage" not in lessons[0]


async def test_read_topic_with_user_progress(
    client_with_test_db: AsyncClient,
    db: AsyncSession,
    create_user: User,
    hook_lessons: list[Lesson],
) -> None:
    await crud.upsert_lesson_progress(
        session=db,
        user_id=create_user.id,
        lesson_id=hook_lessons[1].id,
        status="in_progress",
        progress_percentage=40,
        time_spent_increment=10,
    )
    await crud.upsert_lesson_progress(
        session=db,
        user_id=create_user.id,
        lesson_id=hook_lessons[2].id,
        status="completed",
        progress_percentage=100,
        time_spent_increment=10,
    )
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )

    r = await client_with_test_db.get(f"{API}/topics/react-hooks", headers=headers)
    topic = r.json()["topic"]
    assert topic["progress_percentage"] == 33.33
    statuses = [(lesson["user_status"], lesson["progress_percentage"]) for lesson in topic["lessons"]]
    assert statuses == [("not_started", 0), ("in_progress", 40), ("completed", 100)]


async def test_read_topic_not_found(client_with_test_db: AsyncClient) -> None:
    r = await client_with_test_db.get(f"{API}/topics/missing")
    assert r.status_code == 404
    assert r.json() == {"error": "Topic not found"}


async def test_create_topic(
    client_with_test_db: AsyncClient,
    create_user: User,
    frontend_category: Category,
    react_hooks: Topic,
) -> None:
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    r = await client_with_test_db.post(
        f"{API}/topics",
        headers=headers,
        json={
            "category_id": frontend_category.id,
            "name": "React Performance",
            "difficulty_level": "expert",
            "estimated_time": 300,
        },
    )
    assert r.status_code == 201, r.text
    topic = r.json()["topic"]
    assert topic["slug"] == "react-performance"
    assert topic["category_slug"] == "frontend"
    # react-hooks is the first topic of the category
    assert topic["order_index"] == react_hooks.order_index + 1


async def test_create_topic_duplicate_slug(
    client_with_test_db: AsyncClient,
    create_user: User,
    frontend_category: Category,
    react_hooks: Topic,
) -> None:
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    r = await client_with_test_db.post(
        f"{API}/topics",
        headers=headers,
        json={"category_id": frontend_category.id, "name": "React Hooks"},
    )
    assert r.status_code == 409
    assert r.json() == {"error": "Topic with slug 'react-hooks' already exists"}


@pytest.mark.parametrize(
    "payload",
    [
        {"category_id": "missing-category", "name": "Orphan"},
        {"name": "Bad level", "difficulty_level": "godlike"},
        {"name": "Bad order", "order_index": -3},
    ],
)
async def test_create_topic_unprocessable(
    client_with_test_db: AsyncClient,
    create_user: User,
    frontend_category: Category,
    payload: dict,
) -> None:
    headers = await user_authentication_headers(
        client=client_with_test_db, email=create_user.email
    )
    payload = {"category_id": frontend_category.id, **payload}
    r = await client_with_test_db.post(f"{API}/topics", headers=headers, json=payload)
    assert r.status_code == 422
