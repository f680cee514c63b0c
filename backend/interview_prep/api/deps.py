import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel.ext.asyncio.session import AsyncSession

from interview_prep.core.config import Settings
from interview_prep.core.security import decode_access_token

logger = logging.getLogger(__name__)

# raises nothing by itself, the dependencies below decide between 401 and anonymous
bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """One session per request.

    Routes that write commit before returning, so the response is only sent
    once the data is stored. Anything left uncommitted is rolled back.
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


SettingsDep = Annotated[Settings, Depends(get_settings)]
SessionDep = Annotated[AsyncSession, Depends(get_db)]
CredentialsDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def get_current_user_id(credentials: CredentialsDep, settings: SettingsDep) -> str:
    """User id from a valid bearer token; 401 otherwise.

    Only the token is checked, the database is never touched here.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token_data = decode_access_token(credentials.credentials, settings)
    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token_data.sub


def get_optional_user_id(credentials: CredentialsDep, settings: SettingsDep) -> str | None:
    """User id when a valid bearer token is sent, None for anonymous or invalid tokens."""
    if credentials is None:
        return None
    token_data = decode_access_token(credentials.credentials, settings)
    if token_data is None:
        logger.debug("Ignoring invalid token on a public endpoint")
        return None
    return token_data.sub


CurrentUserId = Annotated[str, Depends(get_current_user_id)]
OptionalUserId = Annotated[str | None, Depends(get_optional_user_id)]
