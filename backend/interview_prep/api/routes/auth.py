import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status

from interview_prep import crud
from interview_prep.api.deps import CurrentUserId, SessionDep, SettingsDep
from interview_prep.core.security import create_access_token
from interview_prep.models import (
    AuthResponse,
    UserEnvelope,
    UserLogin,
    UserPublic,
    UserRegister,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED
)
async def register_route(
    session: SessionDep, settings: SettingsDep, user_in: UserRegister
) -> Any:
    """
    Create a new account and log it in.
    """
    user = await crud.create_user(session=session, user_create=user_in)
    await session.commit()
    logger.info("Registered user %s", user.id)
    return AuthResponse(
        user=UserPublic.model_validate(user),
        token=create_access_token(user.id, settings),
    )


@router.post("/login", response_model=AuthResponse)
async def login_route(
    session: SessionDep, settings: SettingsDep, credentials: UserLogin
) -> Any:
    """
    Log in with email or username and password.
    """
    user = await crud.authenticate(
        session=session,
        password=credentials.password,
        email=credentials.email,
        username=credentials.username,
    )
    if not user:
        logger.warning("Failed login attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    return AuthResponse(
        user=UserPublic.model_validate(user),
        token=create_access_token(user.id, settings),
    )


@router.get("/me", response_model=UserEnvelope)
async def read_me_route(current_user: CurrentUserId, session: SessionDep) -> Any:
    """
    The user owning the token.
    """
    user = await crud.get_user_by_id(session=session, user_id=current_user)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="User no longer exists"
        )
    return UserEnvelope(user=UserPublic.model_validate(user))
