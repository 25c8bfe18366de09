"""
Fanout Engine.

Delivers one outbound message to every live connection that should see it:

1. every subscriber of the message's logical channel (``room:<id>`` or
   ``conversation:<id>``) except the connection it came from;
2. for direct messages, the other participant's registered connection when it
   is not already among those subscribers.

Each distinct connection receives the message at most once. Delivery is
best-effort: an offline recipient, a failed recipient lookup or a failed
socket write never raises; the message is already persisted and the client
picks it up on its next fetch.
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from uuid import UUID

from chatapp.utils.logger import get_logger
from chatapp.utils.metrics import MetricsCollector, metrics_collector
from chatapp.ws.session_registry import (
    Connection,
    SessionRegistry,
    conversation_channel,
    room_channel,
)

logger = get_logger("chatapp.realtime")

RECEIVE_MESSAGE = "receive_message"

# (conversation_id, sender_id) -> the other participant's user id, or None
RecipientResolver = Callable[[UUID, str], Union[Optional[str], Awaitable[Optional[str]]]]


# Recipient outcomes for direct messages
DELIVERED = "delivered"
VIA_CHANNEL = "via_channel"
OFFLINE = "offline"
UNRESOLVED = "unresolved"
LOOKUP_FAILED = "lookup_failed"
NOT_APPLICABLE = "not_applicable"


@dataclass
class DeliveryReport:
    """Outcome of one publish; kept server-side (logged and counted)."""
    channel: str
    channel_deliveries: int = 0
    recipient_id: Optional[str] = None
    recipient_status: str = NOT_APPLICABLE
    failures: int = 0

    @property
    def direct_delivered(self) -> bool:
        return self.recipient_status == DELIVERED


def channel_for(message: Dict[str, Any]) -> str:
    """Logical channel of a wire message (exactly one of roomId/conversationId)."""
    if message.get("conversationId"):
        return conversation_channel(message["conversationId"])
    return room_channel(message["roomId"])


class FanoutEngine:
    """Pushes messages to channel subscribers and to direct recipients."""

    def __init__(
        self,
        registry: SessionRegistry,
        resolve_recipient: RecipientResolver,
        metrics: MetricsCollector = metrics_collector,
    ):
        self.registry = registry
        self.resolve_recipient = resolve_recipient
        self.metrics = metrics

    async def _resolve(self, conversation_id: Any, sender_id: str) -> Optional[str]:
        result = self.resolve_recipient(UUID(str(conversation_id)), sender_id)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _deliver(self, connection: Connection, message: Dict[str, Any]) -> bool:
        try:
            await connection.send(RECEIVE_MESSAGE, message)
            return True
        except Exception as e:
            logger.error("Error sending message to connection", error=str(e))
            return False

    async def publish(self, message: Dict[str, Any], origin: Optional[Connection], sender_id: str) -> DeliveryReport:
        """
        Fan ``message`` out to its channel and, for direct messages, its recipient.

        Args:
            message: Wire payload carrying ``conversationId`` or ``roomId``
            origin: Connection the message came from; never echoed to
            sender_id: Authenticated sender, used to find the other participant

        Returns:
            DeliveryReport describing who was reached
        """
        channel = channel_for(message)
        report = DeliveryReport(channel=channel)

        destinations: List[Connection] = [
            conn for conn in self.registry.subscribers(channel) if conn is not origin
        ]
        report.channel_deliveries = len(destinations)

        conversation_id = message.get("conversationId")
        if conversation_id:
            report.recipient_status = await self._add_recipient(
                report, destinations, conversation_id, origin, sender_id
            )

        results = await asyncio.gather(*(self._deliver(conn, message) for conn in destinations))
        report.failures = results.count(False)

        self.metrics.message_published(
            channel_deliveries=report.channel_deliveries,
            direct_delivered=report.direct_delivered,
            failures=report.failures,
        )
        logger.info(
            "Message published",
            channel=channel,
            sender_id=sender_id,
            channel_deliveries=report.channel_deliveries,
            recipient_id=report.recipient_id,
            recipient_status=report.recipient_status,
            failures=report.failures,
        )
        return report

    async def _add_recipient(
        self,
        report: DeliveryReport,
        destinations: List[Connection],
        conversation_id: Any,
        origin: Optional[Connection],
        sender_id: str,
    ) -> str:
        try:
            recipient_id = await self._resolve(conversation_id, sender_id)
        except Exception as e:
            # Persistence already committed; degrade to channel-only
            logger.warning("Recipient lookup failed", conversation_id=str(conversation_id), error=str(e))
            self.metrics.recipient_lookup_failed()
            return LOOKUP_FAILED

        if not recipient_id:
            self.metrics.recipient_lookup_failed()
            return UNRESOLVED

        report.recipient_id = recipient_id
        connection = self.registry.lookup(recipient_id)
        if connection is None:
            self.metrics.recipient_offline()
            return OFFLINE
        if connection is origin or connection in destinations:
            return VIA_CHANNEL

        destinations.append(connection)
        return DELIVERED
