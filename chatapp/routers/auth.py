"""Authentication router: register, login and profile."""
from fastapi import APIRouter, Depends, status
from sqlmodel import Session
import logging

from chatapp.db.config import get_session
from chatapp.middleware.auth import CurrentUser, create_access_token, get_current_user
from chatapp.schemas.auth import AuthResponse, LoginRequest, RegisterRequest, UserPublic, UserResponse
from chatapp.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Authentication"])  # main.py mounts this under /api/auth


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, session: Session = Depends(get_session)):
    user = UserService(session).register(request.username, request.email, request.password)
    return AuthResponse(token=create_access_token(user), user=UserPublic.model_validate(user))


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, session: Session = Depends(get_session)):
    user = UserService(session).login(request.email, request.password)
    logger.info(f"User {user.id} logged in")
    return AuthResponse(token=create_access_token(user), user=UserPublic.model_validate(user))


@router.get("/profile", response_model=UserResponse)
async def profile(
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    user = UserService(session).get(current_user.user_id)
    return UserResponse(user=UserPublic.model_validate(user))
