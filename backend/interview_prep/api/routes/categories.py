from typing import Any

from fastapi import APIRouter, status

from interview_prep.api.deps import CurrentUserId, OptionalUserId, SessionDep
from interview_prep.core import content
from interview_prep.models import (
    CategoriesPublic,
    CategoryCreate,
    CategoryCreated,
    CategoryEnvelope,
)

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=CategoriesPublic)
async def read_categories_route(user_id: OptionalUserId, session: SessionDep) -> Any:
    """
    All categories in order, with the caller's progress when logged in.
    """
    categories = await content.list_categories(session=session, user_id=user_id)
    return CategoriesPublic(categories=categories)


@router.post("", response_model=CategoryCreated, status_code=status.HTTP_201_CREATED)
async def create_category_route(
    current_user: CurrentUserId, session: SessionDep, category_in: CategoryCreate
) -> Any:
    category = await content.create_category(session=session, category_in=category_in)
    await session.commit()
    return CategoryCreated(category=category)


@router.get("/{slug}", response_model=CategoryEnvelope)
async def read_category_route(
    slug: str, user_id: OptionalUserId, session: SessionDep
) -> Any:
    """
    A category and its topics.
    """
    category = await content.get_category(session=session, slug=slug, user_id=user_id)
    return CategoryEnvelope(category=category)
