"""User search and lookup router."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from chatapp.db.config import get_session
from chatapp.middleware.auth import CurrentUser, get_current_user
from chatapp.schemas.auth import UserListResponse, UserPublic, UserResponse
from chatapp.services.user_service import UserService

router = APIRouter(tags=["users"])


@router.get("/search", response_model=UserListResponse)
async def search_users(
    query: Optional[str] = Query(default=None),
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Search users by username or email (max 10, never the caller)."""
    users = UserService(session).search(query, current_user.user_id)
    return UserListResponse(users=[UserPublic.model_validate(u) for u in users])


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    user = UserService(session).get(user_id)
    return UserResponse(user=UserPublic.model_validate(user))
