from datetime import datetime
from typing import List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from venture_chat.models.message import ReadReceiptDocument


class ReadReceiptRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["message_read_receipts"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [("message_id", ASCENDING), ("user_id", ASCENDING)], unique=True
        )
        await self.collection.create_index(
            [("conversation_id", ASCENDING), ("user_id", ASCENDING)]
        )

    async def add(self, message_id: str, conversation_id: str, user_id: str, read_at: datetime) -> bool:
        """Insert a receipt unless one exists. Returns True only for a new receipt."""
        receipt = ReadReceiptDocument(conversation_id=conversation_id, read_at=read_at)
        try:
            result = await self.collection.update_one(
                {"message_id": message_id, "user_id": user_id},
                {"$setOnInsert": receipt},
                upsert=True,
            )
        except DuplicateKeyError:
            # a concurrent upsert for the same pair won the race
            return False
        return result.upserted_id is not None

    async def read_message_ids(self, conversation_id: str, user_id: str) -> List[str]:
        cursor = self.collection.find(
            {"conversation_id": conversation_id, "user_id": user_id},
            {"message_id": 1},
        )
        return [doc["message_id"] async for doc in cursor]
