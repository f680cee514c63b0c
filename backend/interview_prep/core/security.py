from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from interview_prep.core.config import Settings
from interview_prep.models import TokenPayload


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def create_access_token(
    subject: str, settings: Settings, expires_delta: timedelta | None = None
) -> str:
    """Issue a signed access token for a user.

    :param subject: The user id stored in the ``sub`` claim.
    :param settings: Settings carrying the signing key and default lifetime.
    :param expires_delta: Optional lifetime overriding the configured one.
    :returns: Encoded JWT.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"exp": expire, "sub": str(subject)}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str, settings: Settings) -> TokenPayload | None:
    """Decode a bearer token.

    :param token: The raw token string.
    :param settings: Settings carrying the signing key.
    :returns: The payload, or None when the token is malformed, forged or expired.
    """
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None
    token_data = TokenPayload(**payload)
    if not token_data.sub:
        return None
    return token_data


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)
