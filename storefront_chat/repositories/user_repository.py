from typing import Iterable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def get_user_by_id(self, user_id: ObjectId) -> Optional[dict]:
        return await self._collection.find_one({"_id": user_id}, {"password": 0})

    async def get_users_by_ids(self, user_ids: Iterable[ObjectId]) -> List[dict]:
        ids = list(set(user_ids))
        if not ids:
            return []
        cursor = self._collection.find({"_id": {"$in": ids}}, {"password": 0})
        return await cursor.to_list(length=len(ids))
