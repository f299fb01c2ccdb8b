from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from storefront_chat.models.message import READ_FLAGS, ReadSide


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["chat_messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation", ASCENDING), ("created_at", ASCENDING)])

    async def save_message(
        self,
        conversation_id: ObjectId,
        sender_id: ObjectId,
        sender_role: str,
        body: str,
        attachments: List[Dict[str, Any]],
        sender_side: ReadSide,
    ) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "conversation": conversation_id,
            "sender": sender_id,
            "sender_role": sender_role,
            "body": body,
            "attachments": attachments,
            # the sender has read their own message, the counterpart has not
            "read_by_user": sender_side == "user",
            "read_by_seller": sender_side == "seller",
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    async def list_for_conversation(self, conversation_id: ObjectId) -> List[Dict[str, Any]]:
        cursor = self.collection.find({"conversation": conversation_id}).sort([("created_at", ASCENDING), ("_id", ASCENDING)])
        return await cursor.to_list(length=None)

    async def get_last_message(self, conversation_id: ObjectId) -> Optional[Dict[str, Any]]:
        cursor = self.collection.find({"conversation": conversation_id}).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(1)
        items = await cursor.to_list(length=1)
        return items[0] if items else None

    async def mark_read(self, conversation_id: ObjectId, side: ReadSide) -> int:
        flag = READ_FLAGS[side]
        result = await self.collection.update_many(
            {"conversation": conversation_id, flag: False},
            {"$set": {flag: True}},
        )
        return result.modified_count or 0

    async def count_unread(self, conversation_id: ObjectId, side: ReadSide) -> int:
        return await self.collection.count_documents({"conversation": conversation_id, READ_FLAGS[side]: False})
