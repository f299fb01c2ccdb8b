from datetime import datetime
from typing import Dict, List, Literal, Optional, TypedDict

from bson import ObjectId


ReadSide = Literal["user", "seller"]

READ_FLAGS: Dict[str, str] = {
    "user": "read_by_user",
    "seller": "read_by_seller",
}


class AttachmentDocument(TypedDict, total=False):
    url: str
    type: Literal["image"]
    width: Optional[int]
    height: Optional[int]
    bytes: Optional[int]
    public_id: Optional[str]


class MessageDocument(TypedDict, total=False):
    _id: ObjectId
    conversation: ObjectId
    sender: ObjectId
    sender_role: str
    body: str
    attachments: List[AttachmentDocument]
    # read state, one flag per side
    read_by_user: bool
    read_by_seller: bool
    created_at: datetime
