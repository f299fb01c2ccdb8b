from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import StringConstraints

from storefront_chat.schemas.base import CamelModel
from storefront_chat.schemas.user import PublicUser


class Attachment(CamelModel):

    url: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
    type: Literal["image"] = "image"
    width: Optional[int] = None
    height: Optional[int] = None
    bytes: Optional[int] = None
    public_id: Optional[str] = None


class MessageOut(CamelModel):

    id: str
    conversation_id: str
    sender_id: str
    sender_role: str
    body: str = ""
    attachments: List[Attachment] = []
    read_by_user: bool
    read_by_seller: bool
    created_at: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MessageOut":
        return cls(
            id=str(doc["_id"]),
            conversation_id=str(doc["conversation"]),
            sender_id=str(doc["sender"]),
            sender_role=doc.get("sender_role", "customer"),
            body=doc.get("body", ""),
            attachments=[Attachment(**a) for a in doc.get("attachments") or []],
            read_by_user=bool(doc.get("read_by_user")),
            read_by_seller=bool(doc.get("read_by_seller")),
            created_at=doc["created_at"],
        )


class ProductSummary(CamelModel):

    id: str
    name: Optional[str] = None
    offer_price: Optional[float] = None
    image: List[str] = []

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> Optional["ProductSummary"]:
        if not doc:
            return None
        return cls(
            id=str(doc["_id"]),
            name=doc.get("name"),
            offer_price=doc.get("offer_price"),
            image=list(doc.get("image") or []),
        )


class ConversationOut(CamelModel):

    id: str
    user_id: str
    seller_id: str
    product_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    last_message: Optional[MessageOut] = None
    customer: Optional[PublicUser] = None
    seller: Optional[PublicUser] = None
    product: Optional[ProductSummary] = None
    # unread count for the viewing side; not part of socket summaries
    unread_count: Optional[int] = None

    def socket_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"unread_count"})


class SendUserMessageRequest(CamelModel):

    conversation_id: Optional[str] = None
    seller_id: Optional[str] = None
    product_id: Optional[str] = None
    message: Optional[str] = None
    attachments: List[Attachment] = []


class SendSellerMessageRequest(CamelModel):

    conversation_id: Optional[str] = None
    message: Optional[str] = None
    attachments: List[Attachment] = []


class ConversationListResponse(CamelModel):

    success: bool = True
    conversations: List[ConversationOut]


class ThreadResponse(CamelModel):

    success: bool = True
    conversation: ConversationOut
    messages: List[MessageOut]


class SendMessageResponse(CamelModel):

    success: bool = True
    conversation: ConversationOut
    message: MessageOut
