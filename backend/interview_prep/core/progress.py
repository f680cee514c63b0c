import logging
from typing import NamedTuple

from sqlmodel.ext.asyncio.session import AsyncSession

from interview_prep import crud
from interview_prep.core.exceptions import NotFoundError, UnprocessableError
from interview_prep.models import (
    CategoryProgress,
    LessonProgressPublic,
    ProgressOverview,
    ProgressStatus,
    ProgressUpdate,
    RecentActivity,
)
from interview_prep.utils import percentage

logger = logging.getLogger(__name__)

STATUSES = {status.value for status in ProgressStatus}


class NormalizedProgress(NamedTuple):
    status: str
    # None keeps a stored in-progress percentage
    progress_percentage: int | None
    time_spent: int


def normalize_progress(
    status: str,
    progress_percentage: int | None,
    time_spent: int,
    max_time_spent: int,
) -> NormalizedProgress:
    """Validate a progress update and bring status and percentage in line.

    - 100% means completed, and completed means 100%.
    - not_started means 0%.
    - in_progress is kept strictly between 0 and 100 (clamped to 1..99).
      Without a percentage the stored one is kept, see ``upsert_lesson_progress``.

    :param status: Requested status.
    :param progress_percentage: Requested percentage, may be omitted.
    :param time_spent: Minutes to add to the accumulated time.
    :param max_time_spent: Largest accepted increment.
    :raises UnprocessableError: On an unknown status, a percentage outside 0..100
        or an increment outside 0..max_time_spent.
    :returns: NormalizedProgress.
    """
    if status not in STATUSES:
        raise UnprocessableError(
            f"Invalid status '{status}', expected one of {sorted(STATUSES)}"
        )
    if progress_percentage is not None and not 0 <= progress_percentage <= 100:
        raise UnprocessableError("progressPercentage must be between 0 and 100")
    if not 0 <= time_spent <= max_time_spent:
        raise UnprocessableError(
            f"timeSpent must be between 0 and {max_time_spent} minutes"
        )

    if progress_percentage == 100:
        status = ProgressStatus.COMPLETED.value

    if status == ProgressStatus.COMPLETED.value:
        progress_percentage = 100
    elif status == ProgressStatus.NOT_STARTED.value:
        progress_percentage = 0
    elif progress_percentage is not None:
        progress_percentage = min(max(progress_percentage, 1), 99)

    return NormalizedProgress(status, progress_percentage, time_spent)


async def update_progress(
    *,
    session: AsyncSession,
    user_id: str,
    lesson_id: str,
    progress_in: ProgressUpdate,
    max_time_spent: int,
) -> LessonProgressPublic:
    """Insert or update the progress of a user on a lesson.

    :param session: The database session.
    :param user_id: The ID of the user.
    :param lesson_id: The ID of the lesson.
    :param progress_in: Requested status, percentage, time increment and notes.
    :param max_time_spent: Largest accepted time increment.
    :raises UnprocessableError: If the update is invalid.
    :raises NotFoundError: If the lesson does not exist; nothing is written.
    :returns: The stored row.
    """
    normalized = normalize_progress(
        progress_in.status,
        progress_in.progress_percentage,
        progress_in.time_spent,
        max_time_spent,
    )
    if not await crud.get_lesson_by_id(session=session, lesson_id=lesson_id):
        raise NotFoundError("Lesson not found")

    progress = await crud.upsert_lesson_progress(
        session=session,
        user_id=user_id,
        lesson_id=lesson_id,
        status=normalized.status,
        progress_percentage=normalized.progress_percentage,
        time_spent_increment=normalized.time_spent,
        notes=progress_in.notes,
    )
    logger.debug(
        "Progress of user %s on lesson %s: %s %d%%",
        user_id,
        lesson_id,
        progress.status,
        progress.progress_percentage,
    )
    return LessonProgressPublic.model_validate(progress)


async def get_progress(
    *, session: AsyncSession, user_id: str, lesson_id: str
) -> LessonProgressPublic:
    """Stored progress, or a not-started row when the user never acted on the lesson.

    :raises NotFoundError: If the lesson does not exist.
    """
    if not await crud.get_lesson_by_id(session=session, lesson_id=lesson_id):
        raise NotFoundError("Lesson not found")
    progress = await crud.get_lesson_progress(
        session=session, user_id=user_id, lesson_id=lesson_id
    )
    if progress is None:
        return LessonProgressPublic(user_id=user_id, lesson_id=lesson_id)
    return LessonProgressPublic.model_validate(progress)


async def get_overview(
    *, session: AsyncSession, user_id: str, recent_limit: int
) -> ProgressOverview:
    """Per-category roll-up and the most recent activity of a user."""
    categories = [
        CategoryProgress(
            category_id=category_id,
            category_name=name,
            category_slug=slug,
            total_lessons=total,
            completed_lessons=completed,
            progress_percentage=percentage(completed, total),
        )
        for category_id, name, slug, total, completed in await crud.category_progress(
            session=session, user_id=user_id
        )
    ]
    recent = [
        RecentActivity.model_validate(
            progress,
            update={
                "lesson_title": title,
                "lesson_slug": slug,
                "topic_name": topic_name,
                "category_name": category_name,
            },
        )
        for progress, title, slug, topic_name, category_name in await crud.recent_activity(
            session=session, user_id=user_id, limit=recent_limit
        )
    ]
    return ProgressOverview(category_progress=categories, recent_activity=recent)
