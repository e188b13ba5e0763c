import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request, Response, HTTPException, status
from jose import JWTError, jwt
from job_recommender.config import get_settings

settings = get_settings()

TOKEN_EXPIRE_DAYS = 30
SESSION_HEADER = "X-Session-Id"


def create_access_token(user_id: str, expires_in: timedelta = timedelta(days=TOKEN_EXPIRE_DAYS)) -> str:
    expire = datetime.now(timezone.utc) + expires_in
    to_encode = {"sub": user_id, "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_user_id(token: str) -> Optional[str]:
    """User id from the token's "sub" claim, or None if the token is invalid."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    subject = payload.get("sub")
    return str(subject) if subject else None


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def get_optional_user_id(request: Request) -> Optional[str]:
    token = _bearer_token(request)
    if not token:
        return None
    return decode_user_id(token)


async def require_user_id(request: Request) -> str:
    user_id = await get_optional_user_id(request)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def read_session_id(request: Request) -> Optional[str]:
    return request.cookies.get(settings.session_cookie_name) or request.headers.get(SESSION_HEADER)


async def get_session_id(request: Request, response: Response) -> str:
    """Session id from cookie or header; a new one is issued as a cookie if absent."""
    session_id = read_session_id(request)
    if not session_id:
        session_id = str(uuid.uuid4())
        response.set_cookie(
            settings.session_cookie_name,
            session_id,
            max_age=settings.session_cookie_max_age,
            httponly=True,
        )
    return session_id
