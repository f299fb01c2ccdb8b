from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["chat_conversations"]

    async def ensure_indexes(self) -> None:
        # product=None also participates, so a pair has a single seller-wide thread
        await self.collection.create_index(
            [("user", ASCENDING), ("seller", ASCENDING), ("product", ASCENDING)],
            unique=True,
            name="uniq_participants_product",
        )
        await self.collection.create_index([("user", ASCENDING), ("updated_at", DESCENDING)])
        await self.collection.create_index([("seller", ASCENDING), ("updated_at", DESCENDING)])

    async def find_by_id(self, conversation_id: ObjectId) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"_id": conversation_id})

    async def find_for_participants(self, user_id: ObjectId, seller_id: ObjectId, product_id: Optional[ObjectId]) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"user": user_id, "seller": seller_id, "product": product_id})

    async def get_or_create(self, user_id: ObjectId, seller_id: ObjectId, product_id: Optional[ObjectId]) -> Dict[str, Any]:
        existing = await self.find_for_participants(user_id, seller_id, product_id)
        if existing:
            return existing
        now = datetime.now(timezone.utc)
        doc: Dict[str, Any] = {
            "user": user_id,
            "seller": seller_id,
            "product": product_id,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError:
            # lost a creation race; the unique index kept the other insert
            winner = await self.find_for_participants(user_id, seller_id, product_id)
            if winner is None:
                raise
            return winner
        doc["_id"] = result.inserted_id
        return doc

    async def touch(self, conversation_id: ObjectId) -> None:
        await self.collection.update_one(
            {"_id": conversation_id},
            {"$set": {"updated_at": datetime.now(timezone.utc)}},
        )

    async def list_for_user(self, user_id: ObjectId) -> List[Dict[str, Any]]:
        cursor = self.collection.find({"user": user_id}).sort([("updated_at", DESCENDING), ("_id", DESCENDING)])
        return await cursor.to_list(length=None)

    async def list_for_seller(self, seller_id: ObjectId) -> List[Dict[str, Any]]:
        cursor = self.collection.find({"seller": seller_id}).sort([("updated_at", DESCENDING), ("_id", DESCENDING)])
        items = await cursor.to_list(length=None)
        return [it for it in items if it.get("user") != it.get("seller")]
