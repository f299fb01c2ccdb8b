import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

from fastapi import WebSocket

from storefront_chat.utils.dependencies import AuthenticatedUser


logger = logging.getLogger(__name__)


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


def conversation_room(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


@dataclass(eq=False)
class SocketConnection:
    """One accepted socket and the rooms it currently belongs to."""

    websocket: WebSocket
    user: AuthenticatedUser
    rooms: Set[str] = field(default_factory=set)

    async def send(self, event: str, data: Any = None, ref: str | None = None) -> None:
        frame: Dict[str, Any] = {"type": event, "data": data}
        if ref is not None:
            frame["ref"] = ref
        await self.websocket.send_json(frame)


class RoomRegistry:
    """In-process room membership for connected sockets.

    Every connection sits in its personal room; conversation rooms are joined
    and left on request and are forgotten on disconnect.
    """

    def __init__(self) -> None:
        self.rooms: Dict[str, List[SocketConnection]] = {}

    async def connect(self, connection: SocketConnection) -> None:
        await connection.websocket.accept()
        self.join(connection, user_room(connection.user.id))

    def disconnect(self, connection: SocketConnection) -> None:
        for room in list(connection.rooms):
            self.leave(connection, room)

    def join(self, connection: SocketConnection, room: str) -> None:
        members = self.rooms.setdefault(room, [])
        if connection not in members:
            members.append(connection)
        connection.rooms.add(room)

    def leave(self, connection: SocketConnection, room: str) -> None:
        connection.rooms.discard(room)
        members = self.rooms.get(room)
        if not members:
            return
        try:
            members.remove(connection)
        except ValueError:
            pass
        if not members:
            del self.rooms[room]

    def members(self, room: str) -> List[SocketConnection]:
        return list(self.rooms.get(room, []))

    async def emit(self, room: str, event: str, data: Any) -> int:
        """Send ``event`` to every socket in ``room``; returns how many sends succeeded."""
        delivered = 0
        for conn in self.members(room):
            try:
                await conn.send(event, data)
                delivered += 1
            except Exception:
                # no redelivery: the client refetches over HTTP
                logger.warning("Dropped %s for room %s", event, room, exc_info=True)
        return delivered


registry = RoomRegistry()
