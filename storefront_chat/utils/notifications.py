import json
import logging
from typing import Any

from storefront_chat.config import settings
from storefront_chat.schemas.chat import ConversationOut, MessageOut
from storefront_chat.utils.realtime_bus import get_bus
from storefront_chat.utils.websocket_manager import RoomRegistry, conversation_room, registry, user_room


logger = logging.getLogger(__name__)

CONVERSATION_EVENT = "chat:conversation"
MESSAGE_EVENT = "chat:message"


class ChatNotifier:
    """Pushes chat events to rooms, locally or through the bus.

    Delivery is fire-and-forget: a failed emit is logged and dropped.
    """

    def __init__(self, rooms: RoomRegistry, bus, channel: str | None = None) -> None:
        self._rooms = rooms
        self._bus = bus
        self._channel = channel or settings.REDIS_CHANNEL

    async def emit(self, room: str, event: str, data: Any) -> None:
        try:
            if getattr(self._bus, "enabled", False):
                await self._bus.publish(self._channel, json.dumps({"room": room, "type": event, "data": data}))
            else:
                await self._rooms.emit(room, event, data)
        except Exception:
            logger.warning("Realtime emit of %s to %s failed", event, room, exc_info=True)

    async def dispatch(self, raw: str) -> None:
        """Deliver one bus message to the sockets of this process."""
        try:
            envelope = json.loads(raw)
            room, event = envelope["room"], envelope["type"]
        except (TypeError, ValueError, KeyError):
            logger.warning("Ignoring malformed bus message: %r", raw)
            return
        await self._rooms.emit(room, event, envelope.get("data"))

    async def emit_conversation_update(self, conversation: ConversationOut) -> None:
        if not conversation.id:
            return
        payload = conversation.socket_payload()
        for participant_id in (conversation.user_id, conversation.seller_id):
            if participant_id:
                await self.emit(user_room(participant_id), CONVERSATION_EVENT, payload)

    async def emit_chat_message(self, conversation: ConversationOut, message: MessageOut) -> None:
        if not conversation.id or not message.id:
            return
        await self.emit_conversation_update(conversation)
        await self.emit(
            conversation_room(conversation.id),
            MESSAGE_EVENT,
            {"conversationId": conversation.id, "message": message.model_dump(mode="json", by_alias=True)},
        )


async def get_notifier() -> ChatNotifier:
    return ChatNotifier(registry, await get_bus())
