from typing import Any, Dict, Optional

from storefront_chat.schemas.base import CamelModel


class PublicUser(CamelModel):

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str = "customer"
    is_active: bool = True

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> Optional["PublicUser"]:
        if not doc:
            return None
        return cls(
            id=str(doc["_id"]),
            name=doc.get("name"),
            email=doc.get("email"),
            role=doc.get("role", "customer"),
            is_active=bool(doc.get("is_active", False)),
        )
