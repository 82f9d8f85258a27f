from typing import Iterable, List

from motor.motor_asyncio import AsyncIOMotorDatabase

from venture_chat.models.user import UserDocument
from venture_chat.utils.object_ids import parse_object_ids


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def get_users_by_ids(self, user_ids: Iterable[str]) -> List[UserDocument]:

        oids = parse_object_ids(user_ids)
        if not oids:
            return []
        cursor = self._collection.find({"_id": {"$in": oids}}, {"hashed_password": 0})
        users = await cursor.to_list(length=len(oids))
        for user in users:
            user["_id"] = str(user["_id"])  # normalize to string for API layer
        return users
