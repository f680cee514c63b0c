from typing import Any

from fastapi import APIRouter, status

from interview_prep.api.deps import CurrentUserId, OptionalUserId, SessionDep
from interview_prep.core import content
from interview_prep.models import TopicCreate, TopicCreated, TopicEnvelope, TopicsPublic

router = APIRouter(prefix="/topics", tags=["topics"])


@router.get("", response_model=TopicsPublic)
async def read_topics_route(
    user_id: OptionalUserId,
    session: SessionDep,
    category: str | None = None,
    difficulty: str | None = None,
) -> Any:
    """
    Topics in order, filtered by category slug and difficulty.
    """
    topics = await content.list_topics(
        session=session, user_id=user_id, category=category, difficulty=difficulty
    )
    return TopicsPublic(topics=topics)


@router.get("/{slug}", response_model=TopicEnvelope)
async def read_topic_route(slug: str, user_id: OptionalUserId, session: SessionDep) -> Any:
    """
    A topic with the summaries of its lessons.
    """
    topic = await content.get_topic(session=session, slug=slug, user_id=user_id)
    return TopicEnvelope(topic=topic)


@router.post("", response_model=TopicCreated, status_code=status.HTTP_201_CREATED)
async def create_topic_route(
    current_user: CurrentUserId, session: SessionDep, topic_in: TopicCreate
) -> Any:
    topic = await content.create_topic(session=session, topic_in=topic_in)
    await session.commit()
    return TopicCreated(topic=topic)
