import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import and_, case, delete, distinct, literal_column, null, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlmodel import SQLModel, func, select
from sqlmodel.ext.asyncio.session import AsyncSession

from interview_prep.core.exceptions import ConflictError, NotFoundError
from interview_prep.core.security import get_password_hash, verify_password
from interview_prep.models import (
    Category,
    CodeExample,
    Lesson,
    LessonProgress,
    ProgressStatus,
    QuizAttempt,
    QuizQuestion,
    Topic,
    User,
    UserRegister,
    utcnow,
)

logger = logging.getLogger(__name__)

COMPLETED = ProgressStatus.COMPLETED.value


async def _insert_unique(session: AsyncSession, obj: SQLModel, what: str) -> None:
    """Insert a row whose unique columns were already checked.

    A concurrent insert can still win the race; the savepoint keeps the rest
    of the transaction usable and the violation becomes a ConflictError.
    """
    try:
        async with session.begin_nested():
            session.add(obj)
    except IntegrityError as e:
        logger.info("Unique constraint violated while inserting %s: %s", what, e.orig)
        raise ConflictError(f"{what} already exists") from e


async def _next_order_index(
    session: AsyncSession, column: Any, parent_column: Any = None, parent_id: str | None = None
) -> int:
    """Return max(order_index) + 1 among siblings, 1 for the first one."""
    statement = select(func.coalesce(func.max(column), 0))
    if parent_column is not None:
        statement = statement.where(parent_column == parent_id)
    current = (await session.exec(statement)).one()
    return int(current) + 1


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def create_user(*, session: AsyncSession, user_create: UserRegister) -> User:
    """Function to create a user.

    :param session: The SQLAlchemy session object.
    :param user_create: The registration data.
    :raises ConflictError: If the username or the email is taken.
    :returns: User object.
    """
    if await get_user_by_username(session=session, username=user_create.username):
        raise ConflictError("Username already taken")
    if await get_user_by_email(session=session, email=user_create.email):
        raise ConflictError("Email already registered")

    db_obj = User.model_validate(
        user_create, update={"hashed_password": get_password_hash(user_create.password)}
    )
    await _insert_unique(session, db_obj, "User")
    await session.refresh(db_obj)
    return db_obj


async def get_user_by_id(*, session: AsyncSession, user_id: str) -> User | None:
    return await session.get(User, user_id)


async def get_user_by_email(*, session: AsyncSession, email: str) -> User | None:
    statement = select(User).where(User.email == email.strip().lower())
    return (await session.exec(statement)).first()


async def get_user_by_username(*, session: AsyncSession, username: str) -> User | None:
    statement = select(User).where(User.username == username.strip())
    return (await session.exec(statement)).first()


async def authenticate(
    *, session: AsyncSession, password: str, email: str | None = None, username: str | None = None
) -> User | None:
    """Function to get a user authenticated by email or username.

    :param session: The SQLAlchemy session object.
    :param password: Plain password to check.
    :param email: email string to find a user.
    :param username: username to find a user, used when no email is given.
    :returns: User object, or None on unknown user or wrong password.
    """
    if email:
        db_user = await get_user_by_email(session=session, email=email)
    else:
        db_user = await get_user_by_username(session=session, username=username or "")
    if not db_user:
        return None
    if not verify_password(password, db_user.hashed_password):
        return None
    return db_user


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


async def create_category(*, session: AsyncSession, category: Category) -> Category:
    """Insert a category. A missing order_index is placed after the last category.

    :raises ConflictError: If the slug is taken.
    """
    if await get_category_by_slug(session=session, slug=category.slug):
        raise ConflictError(f"Category with slug '{category.slug}' already exists")
    if category.order_index is None:
        category.order_index = await _next_order_index(session, Category.order_index)
    await _insert_unique(session, category, "Category")
    await session.refresh(category)
    return category


async def get_category_by_slug(*, session: AsyncSession, slug: str) -> Category | None:
    statement = select(Category).where(Category.slug == slug)
    return (await session.exec(statement)).first()


async def list_categories_with_counts(
    *, session: AsyncSession, user_id: str | None = None, slug: str | None = None
) -> Sequence[tuple[Category, int, int, int]]:
    """Categories with topic count, lesson count and completed lessons of a user.

    One grouped query over category ⟕ topic ⟕ lesson ⟕ progress. The
    completed count is 0 when no user is given.

    :param session: The database session.
    :param user_id: Optional user whose completed lessons are counted.
    :param slug: Optional slug restricting the result to one category.
    :returns: Rows of (Category, topic_count, lesson_count, completed_lessons) in category order.
    """
    completed = (
        func.count(
            distinct(case((LessonProgress.status == COMPLETED, Lesson.id)))
        )
        if user_id
        else literal_column("0")
    )
    statement = (
        select(
            Category,
            func.count(distinct(Topic.id)).label("topic_count"),
            func.count(distinct(Lesson.id)).label("lesson_count"),
            completed.label("completed_lessons"),
        )
        .outerjoin(Topic, Topic.category_id == Category.id)
        .outerjoin(Lesson, Lesson.topic_id == Topic.id)
    )
    if user_id:
        statement = statement.outerjoin(
            LessonProgress,
            and_(
                LessonProgress.lesson_id == Lesson.id,
                LessonProgress.user_id == user_id,
            ),
        )
    if slug is not None:
        statement = statement.where(Category.slug == slug)
    statement = statement.group_by(Category.id).order_by(
        Category.order_index, Category.id
    )
    return (await session.exec(statement)).all()


async def delete_category(*, session: AsyncSession, slug: str) -> bool:
    """Delete a category; topics, lessons and everything below go with it via ON DELETE CASCADE.

    :returns: True if a category was deleted.
    """
    result = await session.exec(delete(Category).where(Category.slug == slug))
    await session.flush()
    # rows removed by the database cascade may still sit in the identity map
    session.expunge_all()
    return result.rowcount > 0


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------


async def create_topic(*, session: AsyncSession, topic: Topic) -> Topic:
    """Insert a topic. A missing order_index is placed after the last topic of its category.

    :raises ConflictError: If the slug is taken.
    """
    if await get_topic_by_slug(session=session, slug=topic.slug):
        raise ConflictError(f"Topic with slug '{topic.slug}' already exists")
    if topic.order_index is None:
        topic.order_index = await _next_order_index(
            session, Topic.order_index, Topic.category_id, topic.category_id
        )
    await _insert_unique(session, topic, "Topic")
    await session.refresh(topic)
    return topic


async def get_topic_by_slug(*, session: AsyncSession, slug: str) -> Topic | None:
    statement = select(Topic).where(Topic.slug == slug)
    return (await session.exec(statement)).first()


async def get_topic_by_id(*, session: AsyncSession, topic_id: str) -> Topic | None:
    return await session.get(Topic, topic_id)


async def list_topics_with_counts(
    *,
    session: AsyncSession,
    user_id: str | None = None,
    category_slug: str | None = None,
    category_id: str | None = None,
    difficulty: str | None = None,
    slug: str | None = None,
) -> Sequence[tuple[Topic, str, str, int, int]]:
    """Topics with their category, lesson count and completed lessons of a user.

    :returns: Rows of (Topic, category_name, category_slug, lesson_count, completed_lessons)
        in (order_index, id) order.
    """
    completed = (
        func.count(
            distinct(case((LessonProgress.status == COMPLETED, Lesson.id)))
        )
        if user_id
        else literal_column("0")
    )
    statement = (
        select(
            Topic,
            Category.name,
            Category.slug,
            func.count(distinct(Lesson.id)).label("lesson_count"),
            completed.label("completed_lessons"),
        )
        .join(Category, Category.id == Topic.category_id)
        .outerjoin(Lesson, Lesson.topic_id == Topic.id)
    )
    if user_id:
        statement = statement.outerjoin(
            LessonProgress,
            and_(
                LessonProgress.lesson_id == Lesson.id,
                LessonProgress.user_id == user_id,
            ),
        )
    if category_slug is not None:
        statement = statement.where(Category.slug == category_slug)
    if category_id is not None:
        statement = statement.where(Topic.category_id == category_id)
    if difficulty is not None:
        statement = statement.where(Topic.difficulty_level == difficulty)
    if slug is not None:
        statement = statement.where(Topic.slug == slug)
    statement = statement.group_by(Topic.id, Category.name, Category.slug).order_by(
        Topic.order_index, Topic.id
    )
    return (await session.exec(statement)).all()


# ---------------------------------------------------------------------------
# Lessons
# ---------------------------------------------------------------------------


async def create_lesson(
    *,
    session: AsyncSession,
    lesson: Lesson,
    code_examples: list[CodeExample],
    quiz_questions: list[QuizQuestion],
) -> Lesson:
    """Insert a lesson with its initial code examples and quiz questions in one savepoint.

    Children without an order_index are numbered after the ones that have one.

    :raises ConflictError: If the slug is taken.
    """
    if await get_lesson_by_slug(session=session, slug=lesson.slug):
        raise ConflictError(f"Lesson with slug '{lesson.slug}' already exists")
    if lesson.order_index is None:
        lesson.order_index = await _next_order_index(
            session, Lesson.order_index, Lesson.topic_id, lesson.topic_id
        )

    for children in (code_examples, quiz_questions):
        next_index = max((c.order_index or 0 for c in children), default=0) + 1
        for child in children:
            if child.order_index is None:
                child.order_index = next_index
                next_index += 1

    try:
        async with session.begin_nested():
            session.add(lesson)
            await session.flush()
            for child in [*code_examples, *quiz_questions]:
                child.lesson_id = lesson.id
                session.add(child)
    except IntegrityError as e:
        logger.info("Unique constraint violated while inserting lesson: %s", e.orig)
        raise ConflictError("Lesson already exists") from e

    await session.refresh(lesson)
    return lesson


async def get_lesson_by_slug(*, session: AsyncSession, slug: str) -> Lesson | None:
    statement = select(Lesson).where(Lesson.slug == slug)
    return (await session.exec(statement)).first()


async def get_lesson_by_id(*, session: AsyncSession, lesson_id: str) -> Lesson | None:
    return await session.get(Lesson, lesson_id)


async def get_lesson_with_context(
    *, session: AsyncSession, slug: str
) -> tuple[Lesson, Topic, Category] | None:
    """Lesson by slug together with its topic and category."""
    statement = (
        select(Lesson, Topic, Category)
        .join(Topic, Topic.id == Lesson.topic_id)
        .join(Category, Category.id == Topic.category_id)
        .where(Lesson.slug == slug)
    )
    return (await session.exec(statement)).first()


async def list_lesson_summaries(
    *, session: AsyncSession, topic_id: str, user_id: str | None = None
) -> Sequence[tuple[Lesson, int, int, str | None, int | None]]:
    """Lessons of a topic with example and question counts and the user's progress.

    :returns: Rows of (Lesson, code_example_count, quiz_count, user_status, progress_percentage).
    """
    example_count = (
        select(func.count(CodeExample.id))
        .where(CodeExample.lesson_id == Lesson.id)
        .correlate(Lesson)
        .scalar_subquery()
    )
    quiz_count = (
        select(func.count(QuizQuestion.id))
        .where(QuizQuestion.lesson_id == Lesson.id)
        .correlate(Lesson)
        .scalar_subquery()
    )
    if user_id:
        statement = select(
            Lesson,
            example_count,
            quiz_count,
            LessonProgress.status,
            LessonProgress.progress_percentage,
        ).outerjoin(
            LessonProgress,
            and_(
                LessonProgress.lesson_id == Lesson.id,
                LessonProgress.user_id == user_id,
            ),
        )
    else:
        statement = select(Lesson, example_count, quiz_count, null(), null())
    statement = statement.where(Lesson.topic_id == topic_id).order_by(
        Lesson.order_index, Lesson.id
    )
    return (await session.exec(statement)).all()


async def get_lesson_neighbours(
    *, session: AsyncSession, lesson: Lesson
) -> tuple[Lesson | None, Lesson | None]:
    """Previous and next lesson of the same topic in (order_index, id) order."""
    before = or_(
        Lesson.order_index < lesson.order_index,
        and_(Lesson.order_index == lesson.order_index, Lesson.id < lesson.id),
    )
    after = or_(
        Lesson.order_index > lesson.order_index,
        and_(Lesson.order_index == lesson.order_index, Lesson.id > lesson.id),
    )
    previous_statement = (
        select(Lesson)
        .where(Lesson.topic_id == lesson.topic_id, before)
        .order_by(Lesson.order_index.desc(), Lesson.id.desc())
        .limit(1)
    )
    next_statement = (
        select(Lesson)
        .where(Lesson.topic_id == lesson.topic_id, after)
        .order_by(Lesson.order_index, Lesson.id)
        .limit(1)
    )
    previous = (await session.exec(previous_statement)).first()
    following = (await session.exec(next_statement)).first()
    return previous, following


async def list_code_examples(*, session: AsyncSession, lesson_id: str) -> Sequence[CodeExample]:
    statement = (
        select(CodeExample)
        .where(CodeExample.lesson_id == lesson_id)
        .order_by(CodeExample.order_index, CodeExample.id)
    )
    return (await session.exec(statement)).all()


async def list_quiz_questions(*, session: AsyncSession, lesson_id: str) -> Sequence[QuizQuestion]:
    statement = (
        select(QuizQuestion)
        .where(QuizQuestion.lesson_id == lesson_id)
        .order_by(QuizQuestion.order_index, QuizQuestion.id)
    )
    return (await session.exec(statement)).all()


async def search_lessons(
    *,
    session: AsyncSession,
    text: str,
    limit: int,
    difficulty: str | None = None,
    category_slug: str | None = None,
) -> Sequence[tuple[Lesson, Topic, Category]]:
    """Case-insensitive substring search over title, summary and content.

    Title matches come first, then hierarchy order.
    """
    needle = text.lower()
    in_title = func.lower(Lesson.title).contains(needle, autoescape=True)
    in_summary = func.lower(func.coalesce(Lesson.summary, "")).contains(
        needle, autoescape=True
    )
    in_content = func.lower(Lesson.content).contains(needle, autoescape=True)

    statement = (
        select(Lesson, Topic, Category)
        .join(Topic, Topic.id == Lesson.topic_id)
        .join(Category, Category.id == Topic.category_id)
        .where(or_(in_title, in_summary, in_content))
    )
    if difficulty is not None:
        statement = statement.where(Lesson.difficulty_level == difficulty)
    if category_slug is not None:
        statement = statement.where(Category.slug == category_slug)
    statement = statement.order_by(
        case((in_title, 0), else_=1),
        Category.order_index,
        Topic.order_index,
        Lesson.order_index,
        Lesson.id,
    ).limit(limit)
    return (await session.exec(statement)).all()


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


async def get_lesson_progress(
    *, session: AsyncSession, user_id: str, lesson_id: str
) -> LessonProgress | None:
    statement = (
        select(LessonProgress)
        .where(
            LessonProgress.user_id == user_id,
            LessonProgress.lesson_id == lesson_id,
        )
        .execution_options(populate_existing=True)
    )
    return (await session.exec(statement)).first()


def _insert_for(dialect_name: str):
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Progress upsert is not supported on {dialect_name}")


async def upsert_lesson_progress(
    *,
    session: AsyncSession,
    user_id: str,
    lesson_id: str,
    status: str,
    progress_percentage: int | None,
    time_spent_increment: int,
    notes: str | None = None,
    now: datetime | None = None,
) -> LessonProgress:
    """Insert or update the progress row of (user, lesson) in one statement.

    The time increment is added inside the database, started_at is only
    written by the insert, and last_updated is always refreshed.

    :param progress_percentage: Normalized percentage, or None to keep a stored
        in-progress percentage (1 when there is none).
    :raises NotFoundError: If the row cannot be read back.
    :returns: The row as stored.
    """
    now = now or utcnow()
    table = LessonProgress.__table__
    insert = _insert_for(session.get_bind().dialect.name)

    statement = insert(table).values(
        user_id=user_id,
        lesson_id=lesson_id,
        status=status,
        progress_percentage=progress_percentage if progress_percentage is not None else 1,
        time_spent=time_spent_increment,
        notes=notes,
        started_at=now,
        completed_at=now if status == COMPLETED else None,
        last_updated=now,
    )
    excluded = statement.excluded
    current = table.c

    if progress_percentage is None:
        percentage = case(
            (current.progress_percentage.between(1, 99), current.progress_percentage),
            else_=excluded.progress_percentage,
        )
    else:
        percentage = excluded.progress_percentage

    statement = statement.on_conflict_do_update(
        index_elements=[current.user_id, current.lesson_id],
        set_={
            "status": excluded.status,
            "progress_percentage": percentage,
            "time_spent": current.time_spent + excluded.time_spent,
            "notes": func.coalesce(excluded.notes, current.notes),
            "completed_at": case(
                (
                    and_(excluded.status == COMPLETED, current.status != COMPLETED),
                    excluded.completed_at,
                ),
                (excluded.status != COMPLETED, null()),
                else_=current.completed_at,
            ),
            "last_updated": excluded.last_updated,
        },
    )
    await session.exec(statement)

    progress = await get_lesson_progress(
        session=session, user_id=user_id, lesson_id=lesson_id
    )
    if progress is None:
        # the lesson went away between the write and the read
        raise NotFoundError("Lesson not found")
    return progress


async def category_progress(
    *, session: AsyncSession, user_id: str
) -> Sequence[tuple[str, str, str, int, int]]:
    """Total and completed lessons per category for a user, in category order.

    One grouped query over category ⟕ topic ⟕ lesson ⟕ progress; categories
    without lessons report 0 / 0.

    :returns: Rows of (category_id, name, slug, total_lessons, completed_lessons).
    """
    statement = (
        select(
            Category.id,
            Category.name,
            Category.slug,
            func.count(distinct(Lesson.id)).label("total_lessons"),
            func.count(
                distinct(case((LessonProgress.status == COMPLETED, Lesson.id)))
            ).label("completed_lessons"),
        )
        .outerjoin(Topic, Topic.category_id == Category.id)
        .outerjoin(Lesson, Lesson.topic_id == Topic.id)
        .outerjoin(
            LessonProgress,
            and_(
                LessonProgress.lesson_id == Lesson.id,
                LessonProgress.user_id == user_id,
            ),
        )
        .group_by(Category.id, Category.name, Category.slug, Category.order_index)
        .order_by(Category.order_index, Category.id)
    )
    return (await session.exec(statement)).all()


async def recent_activity(
    *, session: AsyncSession, user_id: str, limit: int
) -> Sequence[tuple[LessonProgress, str, str, str, str]]:
    """Most recently updated progress rows of a user with lesson, topic and category names.

    :returns: Rows of (LessonProgress, lesson_title, lesson_slug, topic_name, category_name),
        last_updated descending, lesson id descending on ties.
    """
    statement = (
        select(LessonProgress, Lesson.title, Lesson.slug, Topic.name, Category.name)
        .join(Lesson, Lesson.id == LessonProgress.lesson_id)
        .join(Topic, Topic.id == Lesson.topic_id)
        .join(Category, Category.id == Topic.category_id)
        .where(LessonProgress.user_id == user_id)
        .order_by(LessonProgress.last_updated.desc(), LessonProgress.lesson_id.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return (await session.exec(statement)).all()


# ---------------------------------------------------------------------------
# Quiz
# ---------------------------------------------------------------------------


async def get_quiz_question(*, session: AsyncSession, question_id: str) -> QuizQuestion | None:
    return await session.get(QuizQuestion, question_id)


async def create_quiz_attempt(*, session: AsyncSession, attempt: QuizAttempt) -> QuizAttempt:
    """Append an attempt. attempt_number is 1 + the user's previous attempts on the question."""
    previous = (
        await session.exec(
            select(func.count(QuizAttempt.id)).where(
                QuizAttempt.user_id == attempt.user_id,
                QuizAttempt.question_id == attempt.question_id,
            )
        )
    ).one()
    attempt.attempt_number = int(previous) + 1
    session.add(attempt)
    await session.flush()
    await session.refresh(attempt)
    return attempt


async def list_lesson_attempts(
    *, session: AsyncSession, user_id: str, lesson_id: str
) -> Sequence[tuple[QuizAttempt, str, str]]:
    """Attempts of a user on the questions of a lesson, newest first.

    :returns: Rows of (QuizAttempt, question_text, question_type).
    """
    statement = (
        select(QuizAttempt, QuizQuestion.question_text, QuizQuestion.question_type)
        .join(QuizQuestion, QuizQuestion.id == QuizAttempt.question_id)
        .where(QuizAttempt.user_id == user_id, QuizQuestion.lesson_id == lesson_id)
        .order_by(QuizAttempt.attempted_at.desc(), QuizAttempt.id.desc())
    )
    return (await session.exec(statement)).all()


async def quiz_stats(*, session: AsyncSession, user_id: str) -> tuple[int, int, int, int]:
    """Lifetime attempt count plus figures over the latest attempt of each question.

    :returns: (total_attempts, questions_answered, correct_answers, total_points).
    """
    ranked = (
        select(
            QuizAttempt.question_id,
            QuizAttempt.is_correct,
            QuizAttempt.points_earned,
            func.row_number()
            .over(
                partition_by=QuizAttempt.question_id,
                order_by=(QuizAttempt.attempted_at.desc(), QuizAttempt.id.desc()),
            )
            .label("recency"),
            func.count()
            .over()
            .label("total_attempts"),
        )
        .where(QuizAttempt.user_id == user_id)
        .subquery()
    )
    statement = select(
        func.coalesce(func.max(ranked.c.total_attempts), 0),
        func.count(ranked.c.question_id),
        func.coalesce(func.sum(case((ranked.c.is_correct, 1), else_=0)), 0),
        func.coalesce(func.sum(ranked.c.points_earned), 0),
    ).where(ranked.c.recency == 1)
    total_attempts, answered, correct, points = (await session.exec(statement)).one()
    return int(total_attempts), int(answered), int(correct), int(points)
