import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from storefront_chat.config import settings
from storefront_chat.database.connection import mongo_db_dependency
from storefront_chat.repositories.user_repository import UserRepository
from storefront_chat.routers.chat import get_chat_service
from storefront_chat.services.chat_service import ChatService
from storefront_chat.utils.dependencies import authenticate_token
from storefront_chat.utils.errors import AuthenticationError, ChatError, PermissionDeniedError
from storefront_chat.utils.websocket_manager import SocketConnection, conversation_room, registry


logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403

JOIN_EVENT = "chat:join"
LEAVE_EVENT = "chat:leave"
ACK_EVENT = "chat:ack"
ERROR_EVENT = "chat:error"
CONNECTED_EVENT = "socket:connected"


def _handshake_token(websocket: WebSocket) -> Optional[str]:
    return (
        websocket.cookies.get(settings.USER_COOKIE_NAME)
        or websocket.cookies.get(settings.SELLER_COOKIE_NAME)
        or websocket.query_params.get("token")
    )


async def _receive_frame(websocket: WebSocket) -> Optional[str]:
    """Next frame as text; binary frames are decoded as UTF-8, None when they are not."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    if message.get("text") is not None:
        return message["text"]
    try:
        return (message.get("bytes") or b"").decode("utf-8")
    except UnicodeDecodeError:
        return None


async def _reply(connection: SocketConnection, ref: Optional[str], success: bool, message: Optional[str] = None) -> None:
    """Answer the originating client only: an ack when it asked for one, else chat:error on failure."""
    if ref is not None:
        data: Dict[str, Any] = {"success": success}
        if message:
            data["message"] = message
        await connection.send(ACK_EVENT, data, ref=ref)
    elif not success:
        await connection.send(ERROR_EVENT, {"message": message})


async def handle_frame(connection: SocketConnection, raw: str, service: ChatService) -> None:
    try:
        frame = json.loads(raw)
    except ValueError:
        await _reply(connection, None, False, "Invalid payload")
        return
    if not isinstance(frame, dict):
        await _reply(connection, None, False, "Invalid payload")
        return

    event = frame.get("type")
    data = frame.get("data") if isinstance(frame.get("data"), dict) else {}
    ref = frame.get("ref")
    ref = str(ref) if ref is not None else None
    conversation_id = data.get("conversationId")

    try:
        if event == JOIN_EVENT:
            conversation = await service.ensure_conversation_access(conversation_id, connection.user.id)
            registry.join(connection, conversation_room(str(conversation["_id"])))
        elif event == LEAVE_EVENT:
            if not conversation_id:
                raise ChatError("Conversation id required")
            registry.leave(connection, conversation_room(str(conversation_id)))
        else:
            raise ChatError(f"Unsupported event: {event}")
    except ChatError as exc:
        await _reply(connection, ref, False, exc.message)
        return
    except Exception:
        logger.exception("Socket event %s failed", event)
        await _reply(connection, ref, False, "Internal server error")
        return

    await _reply(connection, ref, True)


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket, db = Depends(mongo_db_dependency), service: ChatService = Depends(get_chat_service)):
    # rejected sockets never reach the accept() below
    try:
        user = await authenticate_token(_handshake_token(websocket), UserRepository(db))
    except AuthenticationError as exc:
        await websocket.close(code=CLOSE_UNAUTHENTICATED, reason=exc.message)
        return
    except PermissionDeniedError as exc:
        await websocket.close(code=CLOSE_FORBIDDEN, reason=exc.message)
        return

    connection = SocketConnection(websocket=websocket, user=user)
    await registry.connect(connection)
    logger.info("Socket connected for user %s", user.id)
    try:
        await connection.send(CONNECTED_EVENT, {"userId": user.id})
        while True:
            raw = await _receive_frame(websocket)
            if raw is None:
                await _reply(connection, None, False, "Invalid payload")
                continue
            await handle_frame(connection, raw, service)
    except WebSocketDisconnect:
        pass
    finally:
        registry.disconnect(connection)
        logger.info("Socket disconnected for user %s", user.id)
