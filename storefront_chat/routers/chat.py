from typing import Type, TypeVar

from fastapi import APIRouter, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from storefront_chat.config import Settings, get_settings
from storefront_chat.database.connection import mongo_db_dependency
from storefront_chat.repositories.conversation_repository import ConversationRepository
from storefront_chat.repositories.message_repository import MessageRepository
from storefront_chat.repositories.product_repository import ProductRepository
from storefront_chat.repositories.user_repository import UserRepository
from storefront_chat.schemas.chat import (
    ConversationListResponse,
    SendMessageResponse,
    SendSellerMessageRequest,
    SendUserMessageRequest,
    ThreadResponse,
)
from storefront_chat.services.chat_service import ChatService
from storefront_chat.utils.attachment_storage import AttachmentStorage, get_attachment_storage, store_uploads
from storefront_chat.utils.dependencies import AuthenticatedUser, get_current_customer, get_current_seller
from storefront_chat.utils.errors import ChatValidationError
from storefront_chat.utils.notifications import ChatNotifier, get_notifier


router = APIRouter(prefix="/api/chat", tags=["chat"])

SendRequest = TypeVar("SendRequest", SendUserMessageRequest, SendSellerMessageRequest)


def get_chat_service(db = Depends(mongo_db_dependency), notifier: ChatNotifier = Depends(get_notifier)) -> ChatService:
    return ChatService(
        ConversationRepository(db),
        MessageRepository(db),
        UserRepository(db),
        ProductRepository(db),
        notifier,
    )


async def _read_send_request(request: Request, model: Type[SendRequest], storage: AttachmentStorage, settings: Settings) -> SendRequest:
    """Send bodies arrive as JSON with attachment metadata, or as a multipart form carrying image files."""
    if request.headers.get("content-type", "").startswith("multipart/form-data"):
        form = await request.form()
        fields = {key: value for key, value in form.multi_items() if key != "attachments" and isinstance(value, str)}
        uploads = [f for f in form.getlist("attachments") if isinstance(f, UploadFile) and f.filename]
        payload = _validate(model, fields)
        if uploads:
            payload = payload.model_copy(update={"attachments": await store_uploads(uploads, storage, settings)})
        return payload

    try:
        data = await request.json()
    except ValueError:
        raise ChatValidationError("Invalid payload")
    return _validate(model, data)


def _validate(model: Type[SendRequest], data) -> SendRequest:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())


async def customer_send_request(request: Request, storage: AttachmentStorage = Depends(get_attachment_storage), settings: Settings = Depends(get_settings)) -> SendUserMessageRequest:
    return await _read_send_request(request, SendUserMessageRequest, storage, settings)


async def seller_send_request(request: Request, storage: AttachmentStorage = Depends(get_attachment_storage), settings: Settings = Depends(get_settings)) -> SendSellerMessageRequest:
    return await _read_send_request(request, SendSellerMessageRequest, storage, settings)


# customer side

@router.get("/user", response_model=ConversationListResponse)
async def list_user_conversations(current_user: AuthenticatedUser = Depends(get_current_customer), service: ChatService = Depends(get_chat_service)):
    conversations = await service.list_customer_conversations(current_user)
    return ConversationListResponse(conversations=conversations)


@router.get("/user/{conversation_id}/messages", response_model=ThreadResponse)
async def get_user_conversation_messages(conversation_id: str, current_user: AuthenticatedUser = Depends(get_current_customer), service: ChatService = Depends(get_chat_service)):
    conversation, messages = await service.get_customer_thread(current_user, conversation_id)
    return ThreadResponse(conversation=conversation, messages=messages)


@router.post("/user/send", response_model=SendMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_user_message(current_user: AuthenticatedUser = Depends(get_current_customer), body: SendUserMessageRequest = Depends(customer_send_request), service: ChatService = Depends(get_chat_service)):
    conversation, message = await service.send_customer_message(current_user, body)
    return SendMessageResponse(conversation=conversation, message=message)


# seller side

@router.get("/seller", response_model=ConversationListResponse)
async def list_seller_conversations(current_user: AuthenticatedUser = Depends(get_current_seller), service: ChatService = Depends(get_chat_service)):
    conversations = await service.list_seller_conversations(current_user)
    return ConversationListResponse(conversations=conversations)


@router.get("/seller/{conversation_id}/messages", response_model=ThreadResponse)
async def get_seller_conversation_messages(conversation_id: str, current_user: AuthenticatedUser = Depends(get_current_seller), service: ChatService = Depends(get_chat_service)):
    conversation, messages = await service.get_seller_thread(current_user, conversation_id)
    return ThreadResponse(conversation=conversation, messages=messages)


@router.post("/seller/send", response_model=SendMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_seller_message(current_user: AuthenticatedUser = Depends(get_current_seller), body: SendSellerMessageRequest = Depends(seller_send_request), service: ChatService = Depends(get_chat_service)):
    conversation, message = await service.send_seller_message(current_user, body)
    return SendMessageResponse(conversation=conversation, message=message)
