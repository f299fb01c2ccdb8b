from datetime import datetime
from typing import Optional, TypedDict

from bson import ObjectId


class ConversationDocument(TypedDict, total=False):
    _id: ObjectId
    # customer side
    user: ObjectId
    seller: ObjectId
    # None means the seller-wide thread
    product: Optional[ObjectId]
    created_at: datetime
    updated_at: datetime
