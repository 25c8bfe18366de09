"""Routers package for the chat API."""

from .auth import router as auth_router
from .messages import router as messages_router
from .users import router as users_router

__all__ = ["auth_router", "messages_router", "users_router"]
