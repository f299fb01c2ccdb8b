from typing import Literal, TypedDict

from bson import ObjectId


UserRole = Literal["customer", "seller", "admin"]

SELLER_ROLES = ("seller", "admin")


class UserDocument(TypedDict, total=False):

    _id: ObjectId
    name: str
    email: str
    role: UserRole
    is_active: bool
