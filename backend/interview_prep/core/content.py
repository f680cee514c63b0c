import logging

from sqlmodel.ext.asyncio.session import AsyncSession

from interview_prep import crud
from interview_prep.core.exceptions import (
    BadRequestError,
    NotFoundError,
    UnprocessableError,
)
from interview_prep.models import (
    Category,
    CategoryCreate,
    CategoryDetail,
    CategoryPublic,
    CodeExample,
    CodeExamplePublic,
    DifficultyLevel,
    Lesson,
    LessonCreate,
    LessonDetail,
    LessonNavigation,
    LessonNavItem,
    LessonProgressPublic,
    LessonPublic,
    LessonSearchResult,
    LessonSummary,
    QuestionDifficulty,
    QuestionType,
    QuizQuestion,
    QuizQuestionPublic,
    Topic,
    TopicCreate,
    TopicDetail,
    TopicPublic,
)
from interview_prep.utils import percentage, slugify

logger = logging.getLogger(__name__)

DIFFICULTY_LEVELS = {level.value for level in DifficultyLevel}
QUESTION_TYPES = {kind.value for kind in QuestionType}
QUESTION_DIFFICULTIES = {level.value for level in QuestionDifficulty}


def _check_difficulty(value: str) -> str:
    if value not in DIFFICULTY_LEVELS:
        raise UnprocessableError(
            f"Invalid difficulty level '{value}', expected one of {sorted(DIFFICULTY_LEVELS)}"
        )
    return value


def _check_order_index(value: int | None) -> int | None:
    if value is not None and value < 0:
        raise UnprocessableError("order_index must not be negative")
    return value


def _resolve_slug(slug: str | None, name: str) -> str:
    """Use the given slug, or derive one from the name."""
    resolved = slug.strip() if slug is not None else slugify(name)
    if not resolved:
        raise UnprocessableError(f"Cannot derive a slug from '{name}'")
    return resolved


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _category_public(
    category: Category, topic_count: int, lesson_count: int, completed: int, user_id: str | None
) -> CategoryPublic:
    return CategoryPublic.model_validate(
        category,
        update={
            "topic_count": topic_count,
            "lesson_count": lesson_count,
            "progress_percentage": percentage(completed, lesson_count) if user_id else None,
        },
    )


def _topic_public(
    topic: Topic,
    category_name: str,
    category_slug: str,
    lesson_count: int,
    completed: int,
    user_id: str | None,
) -> TopicPublic:
    return TopicPublic.model_validate(
        topic,
        update={
            "category_name": category_name,
            "category_slug": category_slug,
            "lesson_count": lesson_count,
            "progress_percentage": percentage(completed, lesson_count) if user_id else None,
        },
    )


async def list_categories(
    *, session: AsyncSession, user_id: str | None = None
) -> list[CategoryPublic]:
    """All categories in order, with topic and lesson counts.

    :param session: The database session.
    :param user_id: Optional user; adds the user's completion percentage per category.
    :returns: List of CategoryPublic.
    """
    rows = await crud.list_categories_with_counts(session=session, user_id=user_id)
    return [
        _category_public(category, topics, lessons, completed, user_id)
        for category, topics, lessons, completed in rows
    ]


async def get_category(
    *, session: AsyncSession, slug: str, user_id: str | None = None
) -> CategoryDetail:
    """Category by slug together with its topics.

    :raises NotFoundError: If no category has this slug.
    """
    rows = await crud.list_categories_with_counts(
        session=session, user_id=user_id, slug=slug
    )
    if not rows:
        raise NotFoundError("Category not found")
    category, topic_count, lesson_count, completed = rows[0]
    topics = await list_topics(session=session, user_id=user_id, category=slug)
    public = _category_public(category, topic_count, lesson_count, completed, user_id)
    return CategoryDetail.model_validate(public, update={"topics": topics})


async def list_topics(
    *,
    session: AsyncSession,
    user_id: str | None = None,
    category: str | None = None,
    difficulty: str | None = None,
) -> list[TopicPublic]:
    """Topics in order, optionally restricted to a category slug and a difficulty.

    :param session: The database session.
    :param user_id: Optional user; adds the user's completion percentage per topic.
    :param category: Optional category slug.
    :param difficulty: Optional difficulty level.
    :raises UnprocessableError: If the difficulty is not a known level.
    :returns: List of TopicPublic.
    """
    if difficulty is not None:
        _check_difficulty(difficulty)
    rows = await crud.list_topics_with_counts(
        session=session,
        user_id=user_id,
        category_slug=category,
        difficulty=difficulty,
    )
    return [_topic_public(*row, user_id=user_id) for row in rows]


async def get_topic(
    *, session: AsyncSession, slug: str, user_id: str | None = None
) -> TopicDetail:
    """Topic by slug with its ordered lesson summaries (no lesson content).

    :raises NotFoundError: If no topic has this slug.
    """
    rows = await crud.list_topics_with_counts(session=session, user_id=user_id, slug=slug)
    if not rows:
        raise NotFoundError("Topic not found")
    topic_public = _topic_public(*rows[0], user_id=user_id)

    summaries = await crud.list_lesson_summaries(
        session=session, topic_id=topic_public.id, user_id=user_id
    )
    lessons = [
        LessonSummary.model_validate(
            lesson,
            update={
                "code_example_count": example_count,
                "quiz_count": quiz_count,
                "user_status": status,
                "progress_percentage": progress,
            },
        )
        for lesson, example_count, quiz_count, status, progress in summaries
    ]
    if user_id:
        # lessons without a progress row are not started
        for summary in lessons:
            if summary.user_status is None:
                summary.user_status = "not_started"
                summary.progress_percentage = 0
    return TopicDetail.model_validate(topic_public, update={"lessons": lessons})


def _nav_item(lesson: Lesson | None) -> LessonNavItem | None:
    if lesson is None:
        return None
    return LessonNavItem.model_validate(lesson)


async def get_lesson(
    *, session: AsyncSession, slug: str, user_id: str | None = None
) -> LessonDetail:
    """Full lesson with code examples, redacted quiz questions and navigation.

    Quiz questions never carry the correct answer or the explanation here;
    they are revealed by the quiz submission.

    :param session: The database session.
    :param slug: Lesson slug.
    :param user_id: Optional user; adds ``user_progress``.
    :raises NotFoundError: If no lesson has this slug.
    :returns: LessonDetail.
    """
    found = await crud.get_lesson_with_context(session=session, slug=slug)
    if not found:
        raise NotFoundError("Lesson not found")
    lesson, topic, category = found

    user_progress = None
    if user_id:
        progress = await crud.get_lesson_progress(
            session=session, user_id=user_id, lesson_id=lesson.id
        )
        user_progress = (
            LessonProgressPublic.model_validate(progress)
            if progress
            else LessonProgressPublic(user_id=user_id, lesson_id=lesson.id)
        )

    code_examples = await crud.list_code_examples(session=session, lesson_id=lesson.id)
    questions = await crud.list_quiz_questions(session=session, lesson_id=lesson.id)
    previous, following = await crud.get_lesson_neighbours(session=session, lesson=lesson)

    return LessonDetail(
        lesson=LessonPublic.model_validate(
            lesson,
            update={
                "topic_name": topic.name,
                "topic_slug": topic.slug,
                "category_name": category.name,
                "category_slug": category.slug,
                "user_progress": user_progress,
            },
        ),
        code_examples=[CodeExamplePublic.model_validate(ex) for ex in code_examples],
        quiz_questions=[QuizQuestionPublic.model_validate(q) for q in questions],
        navigation=LessonNavigation(
            previous=_nav_item(previous), next=_nav_item(following)
        ),
    )


async def search_lessons(
    *,
    session: AsyncSession,
    q: str | None,
    limit: int,
    difficulty: str | None = None,
    category: str | None = None,
) -> list[LessonSearchResult]:
    """Case-insensitive substring search over lesson title, summary and content.

    :raises BadRequestError: If the query text is missing or blank.
    :raises UnprocessableError: If the difficulty is not a known level.
    """
    if q is None or not q.strip():
        raise BadRequestError("Search query 'q' is required")
    if difficulty is not None:
        _check_difficulty(difficulty)
    rows = await crud.search_lessons(
        session=session,
        text=q.strip(),
        limit=limit,
        difficulty=difficulty,
        category_slug=category,
    )
    return [
        LessonSearchResult.model_validate(
            lesson,
            update={
                "topic_name": topic.name,
                "topic_slug": topic.slug,
                "category_name": cat.name,
                "category_slug": cat.slug,
            },
        )
        for lesson, topic, cat in rows
    ]


# ---------------------------------------------------------------------------
# Inserts
# ---------------------------------------------------------------------------


async def create_category(
    *, session: AsyncSession, category_in: CategoryCreate
) -> CategoryPublic:
    """Create a category.

    :raises UnprocessableError: On an empty slug or a negative order index.
    :raises ConflictError: If the slug is taken.
    """
    db_category = Category(
        name=category_in.name,
        description=category_in.description,
        icon=category_in.icon,
        slug=_resolve_slug(category_in.slug, category_in.name),
        order_index=_check_order_index(category_in.order_index),
    )
    db_category = await crud.create_category(session=session, category=db_category)
    logger.info("Created category %s", db_category.slug)
    return _category_public(db_category, 0, 0, 0, None)


async def create_topic(*, session: AsyncSession, topic_in: TopicCreate) -> TopicPublic:
    """Create a topic under an existing category.

    :raises UnprocessableError: On a missing category, an invalid difficulty,
        an empty slug or a negative order index.
    :raises ConflictError: If the slug is taken.
    """
    _check_difficulty(topic_in.difficulty_level)
    _check_order_index(topic_in.order_index)
    category = await session.get(Category, topic_in.category_id)
    if not category:
        raise UnprocessableError(f"Category {topic_in.category_id} does not exist")

    db_topic = Topic(
        category_id=category.id,
        name=topic_in.name,
        description=topic_in.description,
        estimated_time=topic_in.estimated_time,
        icon=topic_in.icon,
        slug=_resolve_slug(topic_in.slug, topic_in.name),
        difficulty_level=topic_in.difficulty_level,
        order_index=topic_in.order_index,
    )
    db_topic = await crud.create_topic(session=session, topic=db_topic)
    logger.info("Created topic %s in category %s", db_topic.slug, category.slug)
    return _topic_public(db_topic, category.name, category.slug, 0, 0, None)


def _validate_question(index: int, question) -> None:
    if question.question_type not in QUESTION_TYPES:
        raise UnprocessableError(
            f"Question {index}: invalid question type '{question.question_type}'"
        )
    if question.difficulty not in QUESTION_DIFFICULTIES:
        raise UnprocessableError(
            f"Question {index}: invalid difficulty '{question.difficulty}'"
        )
    _check_order_index(question.order_index)
    if question.question_type == QuestionType.MULTIPLE_CHOICE.value:
        if question.correct_answer not in question.options:
            raise UnprocessableError(
                f"Question {index}: correct answer is not one of the options"
            )
    elif question.question_type == QuestionType.TRUE_FALSE.value:
        if question.correct_answer.strip().casefold() not in {"true", "false"}:
            raise UnprocessableError(
                f"Question {index}: a true/false answer must be 'true' or 'false'"
            )


async def create_lesson(*, session: AsyncSession, lesson_in: LessonCreate) -> LessonPublic:
    """Create a lesson under an existing topic, with its initial code examples and quiz questions.

    Everything is inserted atomically.

    :param session: The database session.
    :param lesson_in: Lesson data.
    :raises UnprocessableError: On a missing topic, an invalid difficulty or question,
        an empty slug or a negative order index.
    :raises ConflictError: If the slug is taken.
    :returns: LessonPublic.
    """
    _check_difficulty(lesson_in.difficulty_level)
    _check_order_index(lesson_in.order_index)
    for example in lesson_in.code_examples:
        _check_order_index(example.order_index)
    for index, question in enumerate(lesson_in.quiz_questions, start=1):
        _validate_question(index, question)

    topic = await session.get(Topic, lesson_in.topic_id)
    if not topic:
        raise UnprocessableError(f"Topic {lesson_in.topic_id} does not exist")
    category = await session.get(Category, topic.category_id)

    db_lesson = Lesson(
        topic_id=topic.id,
        slug=_resolve_slug(lesson_in.slug, lesson_in.title),
        title=lesson_in.title,
        summary=lesson_in.summary,
        estimated_time=lesson_in.estimated_time,
        content=lesson_in.content,
        difficulty_level=lesson_in.difficulty_level,
        order_index=lesson_in.order_index,
        key_points=list(lesson_in.key_points),
    )
    # lesson_id and missing order indexes are filled in by the store
    code_examples = [CodeExample(**example.model_dump()) for example in lesson_in.code_examples]
    quiz_questions = [
        QuizQuestion(**question.model_dump()) for question in lesson_in.quiz_questions
    ]
    db_lesson = await crud.create_lesson(
        session=session,
        lesson=db_lesson,
        code_examples=code_examples,
        quiz_questions=quiz_questions,
    )
    logger.info(
        "Created lesson %s with %d code examples and %d questions",
        db_lesson.slug,
        len(code_examples),
        len(quiz_questions),
    )
    return LessonPublic.model_validate(
        db_lesson,
        update={
            "topic_name": topic.name,
            "topic_slug": topic.slug,
            "category_name": category.name if category else None,
            "category_slug": category.slug if category else None,
        },
    )
