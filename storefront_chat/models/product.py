from typing import List, Optional, TypedDict

from bson import ObjectId


class ProductDocument(TypedDict, total=False):
    _id: ObjectId
    name: str
    offer_price: float
    image: List[str]
    seller: Optional[ObjectId]
