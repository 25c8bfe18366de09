"""JWT authentication for the HTTP API and the WebSocket handshake."""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import os

from fastapi import Depends, Request
from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import BaseModel
from sqlmodel import Session

from chatapp.db.config import get_session
from chatapp.errors import AuthenticationError
from chatapp.models.user import User

logger = logging.getLogger(__name__)

JWT_SECRET = os.environ.get("JWT_SECRET", "default_secret")
JWT_ALGORITHM = "HS256"
JWT_EXPIRE_DAYS = int(os.environ.get("JWT_EXPIRE_DAYS", "7"))


class CurrentUser(BaseModel):
    """User information for an authenticated request."""
    user_id: str
    username: str
    email: Optional[str] = None


def create_access_token(user: User) -> str:
    """Issue a signed credential binding the bearer to ``user``."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "username": user.username,
        "iat": now,
        "exp": now + timedelta(days=JWT_EXPIRE_DAYS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> str:
    """
    Verify a credential and return the user id it was issued for.

    Raises:
        AuthenticationError: If the token is expired, malformed or unsigned
    """
    if token.startswith("Bearer "):
        token = token[7:]

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except JWTError as e:
        logger.warning(f"JWT decode error: {str(e)}")
        raise AuthenticationError("Invalid token", error=str(e))

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token: missing user ID")
    return user_id


def authenticate_token(token: Optional[str], session: Session) -> User:
    """Resolve a raw credential to a stored user, as both HTTP and WebSocket need."""
    if not token:
        raise AuthenticationError("Authentication error: Token not provided")

    user = session.get(User, decode_token(token))
    if user is None:
        raise AuthenticationError("Authentication error: User not found")
    return user


def bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]


async def get_current_user(
    request: Request,
    session: Session = Depends(get_session),
) -> CurrentUser:
    """
    Validate the bearer credential and load the user it names.

    Raises:
        AuthenticationError: If the header is missing, the token invalid or
            the user no longer exists
    """
    user = authenticate_token(bearer_token(request), session)
    return CurrentUser(user_id=user.id, username=user.username, email=user.email)
