import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId

from storefront_chat.config import settings
from storefront_chat.models.message import ReadSide
from storefront_chat.models.user import SELLER_ROLES
from storefront_chat.repositories.conversation_repository import ConversationRepository
from storefront_chat.repositories.message_repository import MessageRepository
from storefront_chat.repositories.product_repository import ProductRepository
from storefront_chat.repositories.user_repository import UserRepository
from storefront_chat.schemas.chat import (
    Attachment,
    ConversationOut,
    MessageOut,
    ProductSummary,
    SendSellerMessageRequest,
    SendUserMessageRequest,
)
from storefront_chat.schemas.user import PublicUser
from storefront_chat.utils.dependencies import AuthenticatedUser
from storefront_chat.utils.errors import ChatValidationError, NotFoundError
from storefront_chat.utils.notifications import ChatNotifier
from storefront_chat.utils.object_id import parse_object_id


logger = logging.getLogger(__name__)


class ChatService:
    """Conversation resolution, message send and read-state for both sides of a chat."""

    def __init__(
        self,
        conversation_repo: ConversationRepository,
        message_repo: MessageRepository,
        user_repo: UserRepository,
        product_repo: ProductRepository,
        notifier: ChatNotifier,
    ) -> None:
        self._conversation_repo = conversation_repo
        self._message_repo = message_repo
        self._user_repo = user_repo
        self._product_repo = product_repo
        self._notifier = notifier

    # -- resolution ---------------------------------------------------------

    async def resolve_seller_and_product(self, seller_id: Optional[str], product_id: Optional[str]) -> Tuple[ObjectId, Optional[ObjectId]]:
        """Work out the seller (and product) a new conversation should point at.

        A product id wins over a seller id: the seller is whoever owns the product.
        The seller account must exist, hold seller or admin role and be active.
        """
        resolved_seller: Optional[ObjectId] = None
        resolved_product: Optional[ObjectId] = None

        if product_id:
            product_oid = parse_object_id(product_id, "Invalid product id")
            product = await self._product_repo.get_product_by_id(product_oid)
            if not product:
                raise NotFoundError("Product not found")
            if not product.get("seller"):
                raise ChatValidationError("Product is not associated with a seller")
            resolved_seller = product["seller"]
            resolved_product = product["_id"]
        elif seller_id:
            resolved_seller = parse_object_id(seller_id, "Invalid seller id")

        if resolved_seller is None:
            raise ChatValidationError("Seller id is required")

        seller = await self._user_repo.get_user_by_id(resolved_seller)
        if not seller or seller.get("role") not in SELLER_ROLES:
            raise NotFoundError("Seller account not found")
        if not seller.get("is_active", False):
            raise ChatValidationError("Seller account is inactive")

        return seller["_id"], resolved_product

    async def ensure_conversation(self, user_id: ObjectId, seller_id: ObjectId, product_id: Optional[ObjectId]) -> Dict[str, Any]:
        if user_id == seller_id:
            raise ChatValidationError("Cannot create a conversation with yourself")
        return await self._conversation_repo.get_or_create(user_id, seller_id, product_id)

    async def ensure_conversation_access(self, conversation_id: Optional[str], user_id: str) -> Dict[str, Any]:
        """Used by the socket join: either participant may enter the room."""
        oid = parse_object_id(conversation_id, "Invalid conversation id")
        conversation = await self._conversation_repo.find_by_id(oid)
        if not conversation:
            raise NotFoundError("Conversation not found")
        if user_id not in (str(conversation["user"]), str(conversation["seller"])):
            raise NotFoundError("Conversation not found")
        return conversation

    # -- listing ------------------------------------------------------------

    async def list_customer_conversations(self, user: AuthenticatedUser) -> List[ConversationOut]:
        conversations = await self._conversation_repo.list_for_user(user.object_id)
        return await self._summaries(conversations, viewer_side="user")

    async def list_seller_conversations(self, user: AuthenticatedUser) -> List[ConversationOut]:
        conversations = await self._conversation_repo.list_for_seller(user.object_id)
        return await self._summaries(conversations, viewer_side="seller")

    async def _summaries(self, conversations: List[Dict[str, Any]], viewer_side: ReadSide) -> List[ConversationOut]:
        if not conversations:
            return []
        user_ids = [c["user"] for c in conversations] + [c["seller"] for c in conversations]
        product_ids = [c.get("product") for c in conversations]
        users, products = await asyncio.gather(
            self._user_repo.get_users_by_ids(user_ids),
            self._product_repo.get_products_by_ids(product_ids),
        )
        user_map = {u["_id"]: u for u in users}
        product_map = {p["_id"]: p for p in products}

        last_messages, unread_counts = await asyncio.gather(
            asyncio.gather(*(self._message_repo.get_last_message(c["_id"]) for c in conversations)),
            asyncio.gather(*(self._message_repo.count_unread(c["_id"], viewer_side) for c in conversations)),
        )

        return [
            self._format_conversation(
                conversation,
                customer=user_map.get(conversation["user"]),
                seller=user_map.get(conversation["seller"]),
                product=product_map.get(conversation.get("product")),
                last_message=last,
                unread_count=unread,
            )
            for conversation, last, unread in zip(conversations, last_messages, unread_counts)
        ]

    async def load_conversation_summary(self, conversation_id: ObjectId) -> ConversationOut:
        conversation = await self._conversation_repo.find_by_id(conversation_id)
        if not conversation:
            raise NotFoundError("Conversation not found")
        product_id = conversation.get("product")
        customer, seller, product, last = await asyncio.gather(
            self._user_repo.get_user_by_id(conversation["user"]),
            self._user_repo.get_user_by_id(conversation["seller"]),
            self._product_repo.get_product_by_id(product_id) if product_id else _none(),
            self._message_repo.get_last_message(conversation_id),
        )
        return self._format_conversation(conversation, customer=customer, seller=seller, product=product, last_message=last)

    @staticmethod
    def _format_conversation(
        conversation: Dict[str, Any],
        customer: Optional[Dict[str, Any]] = None,
        seller: Optional[Dict[str, Any]] = None,
        product: Optional[Dict[str, Any]] = None,
        last_message: Optional[Dict[str, Any]] = None,
        unread_count: Optional[int] = None,
    ) -> ConversationOut:
        product_id = conversation.get("product")
        return ConversationOut(
            id=str(conversation["_id"]),
            user_id=str(conversation["user"]),
            seller_id=str(conversation["seller"]),
            product_id=str(product_id) if product_id else None,
            created_at=conversation["created_at"],
            updated_at=conversation["updated_at"],
            last_message=MessageOut.from_document(last_message) if last_message else None,
            customer=PublicUser.from_document(customer),
            seller=PublicUser.from_document(seller),
            product=ProductSummary.from_document(product),
            unread_count=unread_count,
        )

    # -- threads ------------------------------------------------------------

    async def get_customer_thread(self, user: AuthenticatedUser, conversation_id: str) -> Tuple[ConversationOut, List[MessageOut]]:
        oid = parse_object_id(conversation_id, "Invalid conversation id")
        conversation = await self._conversation_repo.find_by_id(oid)
        if not conversation or str(conversation["user"]) != user.id:
            raise NotFoundError("Conversation not found")
        return await self._read_thread(oid, side="user")

    async def get_seller_thread(self, user: AuthenticatedUser, conversation_id: str) -> Tuple[ConversationOut, List[MessageOut]]:
        oid = parse_object_id(conversation_id, "Invalid conversation id")
        conversation = await self._conversation_repo.find_by_id(oid)
        if not conversation or str(conversation["seller"]) != user.id:
            raise NotFoundError("Conversation not found")
        if conversation["user"] == conversation["seller"]:
            raise ChatValidationError("Cannot load messages for your own seller account")
        return await self._read_thread(oid, side="seller")

    async def _read_thread(self, conversation_id: ObjectId, side: ReadSide) -> Tuple[ConversationOut, List[MessageOut]]:
        # returned list shows read state as it was before this fetch
        messages = await self._message_repo.list_for_conversation(conversation_id)
        await self._message_repo.mark_read(conversation_id, side)
        summary = await self.load_conversation_summary(conversation_id)
        return summary, [MessageOut.from_document(m) for m in messages]

    # -- sending ------------------------------------------------------------

    async def send_customer_message(self, user: AuthenticatedUser, payload: SendUserMessageRequest) -> Tuple[ConversationOut, MessageOut]:
        body, attachments = self._validate_content(payload.message, payload.attachments)

        if payload.seller_id and payload.seller_id == user.id:
            raise ChatValidationError("Cannot start a chat with yourself")

        if payload.conversation_id:
            oid = parse_object_id(payload.conversation_id, "Invalid conversation id")
            conversation = await self._conversation_repo.find_by_id(oid)
            if not conversation or str(conversation["user"]) != user.id:
                raise NotFoundError("Conversation not found")
        else:
            seller_id, product_id = await self.resolve_seller_and_product(payload.seller_id, payload.product_id)
            if str(seller_id) == user.id:
                raise ChatValidationError("Cannot start a chat with your own seller account")
            conversation = await self.ensure_conversation(user.object_id, seller_id, product_id)

        if conversation["user"] == conversation["seller"]:
            raise ChatValidationError("Invalid conversation participants")

        return await self._deliver(conversation, user, body, attachments, side="user")

    async def send_seller_message(self, user: AuthenticatedUser, payload: SendSellerMessageRequest) -> Tuple[ConversationOut, MessageOut]:
        body, attachments = self._validate_content(payload.message, payload.attachments)

        oid = parse_object_id(payload.conversation_id, "Conversation id required")
        conversation = await self._conversation_repo.find_by_id(oid)
        if not conversation or str(conversation["seller"]) != user.id:
            raise NotFoundError("Conversation not found")
        if conversation["user"] == conversation["seller"]:
            raise ChatValidationError("Cannot send messages to your own seller account")

        return await self._deliver(conversation, user, body, attachments, side="seller")

    @staticmethod
    def _validate_content(message: Optional[str], attachments: List[Attachment]) -> Tuple[str, List[Dict[str, Any]]]:
        body = (message or "").strip()
        if not body and not attachments:
            raise ChatValidationError("Message body is required")
        if len(body) > settings.CHAT_MAX_BODY_LENGTH:
            raise ChatValidationError(f"Message body must be at most {settings.CHAT_MAX_BODY_LENGTH} characters")
        if len(attachments) > settings.CHAT_MAX_ATTACHMENTS:
            raise ChatValidationError(f"At most {settings.CHAT_MAX_ATTACHMENTS} attachments are allowed")
        return body, [a.model_dump() for a in attachments]

    async def _deliver(
        self,
        conversation: Dict[str, Any],
        sender: AuthenticatedUser,
        body: str,
        attachments: List[Dict[str, Any]],
        side: ReadSide,
    ) -> Tuple[ConversationOut, MessageOut]:
        # insert, touch, notify run one after another with no transaction around them
        saved = await self._message_repo.save_message(
            conversation_id=conversation["_id"],
            sender_id=sender.object_id,
            sender_role=sender.role,
            body=body,
            attachments=attachments,
            sender_side=side,
        )
        message = MessageOut.from_document(saved)
        logger.info("Message %s stored in conversation %s", message.id, message.conversation_id)

        await self._conversation_repo.touch(conversation["_id"])
        summary = await self.load_conversation_summary(conversation["_id"])

        await self._notifier.emit_chat_message(summary, message)
        return summary, message


async def _none() -> None:
    return None
