from typing import Optional

from bson import ObjectId

from storefront_chat.utils.errors import ChatValidationError


def parse_object_id(value: Optional[str], message: str) -> ObjectId:
    if not value or not isinstance(value, str) or not ObjectId.is_valid(value):
        raise ChatValidationError(message)
    return ObjectId(value)
