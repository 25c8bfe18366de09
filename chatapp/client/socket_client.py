"""Live transport client: connects to ``/ws`` and feeds ``ChatState``."""

import json
from typing import Any, Optional
from urllib.parse import urlencode
import logging

import websockets
from websockets.exceptions import ConnectionClosed

from chatapp.client.state import ChatState

logger = logging.getLogger(__name__)


class ChatSocketClient:
    """WebSocket client speaking the ``{"event", "data"}`` frame protocol."""

    def __init__(self, url: str, token: str):
        self.url = f"{url}?{urlencode({'token': token})}"
        self.connection: Optional[Any] = None

    async def connect(self):
        self.connection = await websockets.connect(self.url)
        logger.info("Connected to chat server")

    async def emit(self, event: str, data: Any) -> None:
        if self.connection is None:
            raise RuntimeError("Socket is not connected")
        await self.connection.send(json.dumps({"event": event, "data": data}))

    async def listen(self, state: ChatState):
        """Dispatch server events to ``state`` until the connection closes."""
        if self.connection is None:
            raise RuntimeError("Socket is not connected")
        try:
            async for raw in self.connection:
                frame = json.loads(raw)
                event = frame.get("event")
                if event == "receive_message":
                    await state.handle_incoming(frame.get("data") or {})
                elif event == "error":
                    message = (frame.get("data") or {}).get("message")
                    logger.warning(f"Server rejected frame: {message}")
                    state.notifications.append(message)
                else:
                    logger.debug(f"Ignoring event {event}")
        except ConnectionClosed:
            logger.info("Connection with chat server closed")

    async def close(self):
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
