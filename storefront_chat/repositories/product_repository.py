from typing import Iterable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase


class ProductRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("products")

    async def get_product_by_id(self, product_id: ObjectId) -> Optional[dict]:
        return await self._collection.find_one({"_id": product_id})

    async def get_products_by_ids(self, product_ids: Iterable[ObjectId]) -> List[dict]:
        ids = list({pid for pid in product_ids if pid is not None})
        if not ids:
            return []
        cursor = self._collection.find({"_id": {"$in": ids}})
        return await cursor.to_list(length=len(ids))
