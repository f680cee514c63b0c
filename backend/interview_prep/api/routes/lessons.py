from typing import Any

from fastapi import APIRouter, status

from interview_prep.api.deps import (
    CurrentUserId,
    OptionalUserId,
    SessionDep,
    SettingsDep,
)
from interview_prep.core import content
from interview_prep.models import LessonCreate, LessonCreated, LessonDetail, LessonsPublic

router = APIRouter(prefix="/lessons", tags=["lessons"])


# /search has to be declared before /{slug}
@router.get("/search", response_model=LessonsPublic)
async def search_lessons_route(
    session: SessionDep,
    settings: SettingsDep,
    q: str | None = None,
    difficulty: str | None = None,
    category: str | None = None,
) -> Any:
    """
    Search lessons by title, summary and content. Title matches come first.
    """
    lessons = await content.search_lessons(
        session=session,
        q=q,
        limit=settings.SEARCH_RESULT_LIMIT,
        difficulty=difficulty,
        category=category,
    )
    return LessonsPublic(lessons=lessons)


@router.get("/{slug}", response_model=LessonDetail)
async def read_lesson_route(slug: str, user_id: OptionalUserId, session: SessionDep) -> Any:
    """
    A lesson with its code examples, quiz questions (without answers) and navigation.
    """
    return await content.get_lesson(session=session, slug=slug, user_id=user_id)


@router.post("", response_model=LessonCreated, status_code=status.HTTP_201_CREATED)
async def create_lesson_route(
    current_user: CurrentUserId, session: SessionDep, lesson_in: LessonCreate
) -> Any:
    """
    Create a lesson, optionally with its code examples and quiz questions.
    """
    lesson = await content.create_lesson(session=session, lesson_in=lesson_in)
    await session.commit()
    return LessonCreated(lesson=lesson)
