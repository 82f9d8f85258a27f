from datetime import datetime
from typing import Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from venture_chat.models.message import MessageDocument
from venture_chat.utils.object_ids import parse_object_id, parse_object_ids


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [("conversation_id", ASCENDING), ("created_at", DESCENDING)]
        )

    async def save_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        created_at: datetime,
    ) -> MessageDocument:
        doc: MessageDocument = {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "content": content,
            "created_at": created_at,
            "updated_at": created_at,
            "is_edited": False,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def delete(self, message_id: str) -> None:
        await self.collection.delete_one({"_id": parse_object_id(message_id)})

    async def get_recent(self, conversation_id: str, limit: int) -> List[MessageDocument]:
        cursor = (
            self.collection.find({"conversation_id": conversation_id})
            .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
            .limit(limit)
        )
        items = await cursor.to_list(length=limit)
        for it in items:
            it["_id"] = str(it["_id"])
        # newest first from the query, callers want chronological order
        return list(reversed(items))

    async def get_last(self, conversation_id: str) -> Optional[MessageDocument]:
        items = await self.get_recent(conversation_id, 1)
        return items[0] if items else None

    async def get_by_ids(self, message_ids: Iterable[str]) -> List[MessageDocument]:
        oids = parse_object_ids(message_ids)
        if not oids:
            return []
        cursor = self.collection.find({"_id": {"$in": oids}}).sort(
            [("created_at", ASCENDING), ("_id", ASCENDING)]
        )
        items = await cursor.to_list(length=len(oids))
        for it in items:
            it["_id"] = str(it["_id"])
        return items

    async def count_unread(self, conversation_id: str, user_id: str, read_message_ids: Iterable[str]) -> int:
        return await self.collection.count_documents(
            {
                "conversation_id": conversation_id,
                "sender_id": {"$ne": user_id},
                "_id": {"$nin": parse_object_ids(read_message_ids)},
            }
        )
