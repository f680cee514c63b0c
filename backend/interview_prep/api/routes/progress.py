"""
Progress is only ever read and written for the user owning the token.
"""
from typing import Any

from fastapi import APIRouter

from interview_prep.api.deps import CurrentUserId, SessionDep, SettingsDep
from interview_prep.core import progress
from interview_prep.models import ProgressEnvelope, ProgressOverview, ProgressUpdate

router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("/overview", response_model=ProgressOverview)
async def read_overview_route(
    current_user: CurrentUserId, session: SessionDep, settings: SettingsDep
) -> Any:
    """
    Completion per category and the most recent activity.
    """
    return await progress.get_overview(
        session=session,
        user_id=current_user,
        recent_limit=settings.RECENT_ACTIVITY_LIMIT,
    )


@router.get("/lesson/{lesson_id}", response_model=ProgressEnvelope)
async def read_lesson_progress_route(
    current_user: CurrentUserId, session: SessionDep, lesson_id: str
) -> Any:
    lesson_progress = await progress.get_progress(
        session=session, user_id=current_user, lesson_id=lesson_id
    )
    return ProgressEnvelope(progress=lesson_progress)


@router.post("/lesson/{lesson_id}", response_model=ProgressEnvelope)
async def update_lesson_progress_route(
    current_user: CurrentUserId,
    session: SessionDep,
    settings: SettingsDep,
    lesson_id: str,
    progress_in: ProgressUpdate,
) -> Any:
    """
    Record progress on a lesson. timeSpent is added to the time already spent.
    """
    lesson_progress = await progress.update_progress(
        session=session,
        user_id=current_user,
        lesson_id=lesson_id,
        progress_in=progress_in,
        max_time_spent=settings.MAX_TIME_SPENT_INCREMENT,
    )
    await session.commit()
    return ProgressEnvelope(progress=lesson_progress)
