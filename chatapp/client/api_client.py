"""
REST client for the chat API.

Read paths favour availability: a failed fetch is logged and returns an empty
collection (or None) instead of raising into the caller. Sends return None on
failure so the caller can roll back its optimistic state.
"""

from dataclasses import dataclass
from typing import Any, List, Optional
import logging

import httpx
from pydantic import TypeAdapter

from chatapp.schemas.auth import UserPublic
from chatapp.schemas.messages import (
    ConversationRead,
    DirectMessageRead,
    MessageRead,
    RoomMessageRead,
)

logger = logging.getLogger(__name__)

STATUS_TIMEOUT = 2.0

_messages_adapter = TypeAdapter(List[MessageRead])
_message_adapter = TypeAdapter(MessageRead)


@dataclass
class ServerStatus:
    """Reachability of the API and validity of the held credential."""
    is_online: bool
    auth_issue: bool = False
    message: str = ""


class ChatApiClient:
    """Thin async wrapper over the ``/api`` endpoints."""

    def __init__(self, base_url: str, token: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token = token
        self.http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=10.0)

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        response = await self.http.request(method, path, headers=self._headers(), **kwargs)
        response.raise_for_status()
        return response.json()

    async def _try(self, method: str, path: str, **kwargs) -> Optional[dict]:
        try:
            return await self._request(method, path, **kwargs)
        except httpx.HTTPStatusError as e:
            logger.error(f"{method} {path} failed with status {e.response.status_code}: {e.response.text}")
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {str(e)}")
        return None

    # Identity

    async def register(self, username: str, email: str, password: str) -> UserPublic:
        body = await self._request("POST", "/api/auth/register", json={
            "username": username, "email": email, "password": password,
        })
        self.token = body["token"]
        return UserPublic.model_validate(body["user"])

    async def login(self, email: str, password: str) -> UserPublic:
        body = await self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = body["token"]
        return UserPublic.model_validate(body["user"])

    def logout(self):
        self.token = None

    async def get_profile(self) -> Optional[UserPublic]:
        """Current user for the stored token; an expired token is dropped."""
        if not self.token:
            return None
        try:
            body = await self._request("GET", "/api/auth/profile")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 401:
                logger.info("Token invalid or expired, clearing it")
                self.logout()
            else:
                logger.error(f"Profile fetch failed with status {e.response.status_code}")
            return None
        except httpx.HTTPError as e:
            logger.error(f"Profile fetch failed: {str(e)}")
            return None
        return UserPublic.model_validate(body["user"])

    async def check_server_status(self) -> ServerStatus:
        """Check /api/health, then the credential when one is held."""
        try:
            health = await self.http.get("/api/health", timeout=STATUS_TIMEOUT)
        except httpx.HTTPError:
            return ServerStatus(is_online=False, message="Connection error")
        if not health.is_success:
            return ServerStatus(is_online=False, message="Backend server not responding")

        if self.token:
            try:
                profile = await self.http.get(
                    "/api/auth/profile", headers=self._headers(), timeout=STATUS_TIMEOUT
                )
            except httpx.HTTPError:
                return ServerStatus(is_online=True)
            if profile.status_code == 401:
                return ServerStatus(
                    is_online=True,
                    auth_issue=True,
                    message="Authentication expired. Please log in again.",
                )
        return ServerStatus(is_online=True)

    async def get_user(self, user_id: str) -> Optional[UserPublic]:
        body = await self._try("GET", f"/api/users/{user_id}")
        if not body:
            return None
        return UserPublic.model_validate(body["user"])

    async def search_users(self, query: str) -> List[UserPublic]:
        body = await self._try("GET", "/api/users/search", params={"query": query})
        if not body:
            return []
        return [UserPublic.model_validate(u) for u in body.get("users", [])]

    # Conversations

    async def list_conversations(self) -> List[ConversationRead]:
        body = await self._try("GET", "/api/messages/conversations")
        if not body:
            return []
        return [ConversationRead.model_validate(c) for c in body.get("conversations", [])]

    async def get_or_create_conversation(self, user_id: str) -> Optional[ConversationRead]:
        body = await self._try("GET", f"/api/messages/conversations/user/{user_id}")
        if not body:
            return None
        return ConversationRead.model_validate(body["conversation"])

    async def get_conversation_messages(self, conversation_id: Any) -> List[Any]:
        body = await self._try("GET", f"/api/messages/conversations/{conversation_id}/messages")
        if not body:
            return []
        return _messages_adapter.validate_python(body.get("messages", []))

    async def mark_read(self, conversation_id: Any) -> Optional[int]:
        body = await self._try("PUT", f"/api/messages/conversations/{conversation_id}/read")
        if not body:
            return None
        return body.get("updatedCount", 0)

    async def send_direct_message(self, conversation_id: Any, content: str) -> Optional[DirectMessageRead]:
        body = await self._try("POST", "/api/messages/direct", json={
            "conversationId": str(conversation_id), "content": content,
        })
        if not body:
            return None
        return _message_adapter.validate_python(body["message"])

    # Rooms

    async def get_room_messages(self, room_id: str) -> List[Any]:
        body = await self._try("GET", f"/api/messages/rooms/{room_id}")
        if not body:
            return []
        return _messages_adapter.validate_python(body.get("messages", []))

    async def send_room_message(self, room_id: str, content: str) -> Optional[RoomMessageRead]:
        body = await self._try("POST", "/api/messages/rooms", json={"roomId": room_id, "content": content})
        if not body:
            return None
        return _message_adapter.validate_python(body["message"])

    async def aclose(self):
        await self.http.aclose()
