from dataclasses import dataclass
from typing import Optional, Sequence

import jwt
from bson import ObjectId
from fastapi import Depends, Request

from storefront_chat.config import settings
from storefront_chat.database.connection import mongo_db_dependency
from storefront_chat.logging_config import user_id_var
from storefront_chat.models.user import SELLER_ROLES
from storefront_chat.repositories.user_repository import UserRepository
from storefront_chat.utils.errors import AuthenticationError, PermissionDeniedError
from storefront_chat.utils.security import decode_access_token


@dataclass
class AuthenticatedUser:
    id: str
    role: str
    name: Optional[str] = None

    @property
    def object_id(self) -> ObjectId:
        return ObjectId(self.id)


async def authenticate_token(token: Optional[str], users: UserRepository, roles: Optional[Sequence[str]] = None) -> AuthenticatedUser:
    """Resolve a session token to an active account.

    Raises AuthenticationError for a missing/invalid token or unknown account and
    PermissionDeniedError for an inactive account or one outside ``roles``.
    """
    if not token:
        raise AuthenticationError("Authentication required")
    try:
        payload = decode_access_token(token)
    except jwt.InvalidTokenError:
        raise AuthenticationError("Access token expired or invalid")

    raw_id = payload.get("id")
    if not raw_id or not ObjectId.is_valid(str(raw_id)):
        raise AuthenticationError("Invalid token payload")

    user = await users.get_user_by_id(ObjectId(str(raw_id)))
    if not user:
        raise AuthenticationError("Account not found")
    if not user.get("is_active", False):
        raise PermissionDeniedError("Account inactive")
    role = user.get("role", "customer")
    if roles is not None and role not in roles:
        raise PermissionDeniedError("Seller privileges required")

    user_id_var.set(str(user["_id"]))
    return AuthenticatedUser(id=str(user["_id"]), role=role, name=user.get("name"))


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header.split(" ", 1)[1].strip() or None
    return None


async def get_current_customer(request: Request, db = Depends(mongo_db_dependency)) -> AuthenticatedUser:
    token = request.cookies.get(settings.USER_COOKIE_NAME) or _bearer_token(request)
    return await authenticate_token(token, UserRepository(db))


async def get_current_seller(request: Request, db = Depends(mongo_db_dependency)) -> AuthenticatedUser:
    token = (
        request.cookies.get(settings.SELLER_COOKIE_NAME)
        or request.cookies.get(settings.USER_COOKIE_NAME)
        or _bearer_token(request)
    )
    return await authenticate_token(token, UserRepository(db), roles=SELLER_ROLES)
