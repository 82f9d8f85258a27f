from datetime import datetime, timezone
from typing import Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from venture_chat.models.conversation import ConversationDocument, ParticipantDocument
from venture_chat.utils.object_ids import parse_object_id, parse_object_ids


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    @property
    def participants(self):
        return self._db["conversation_participants"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("updated_at", DESCENDING)])
        await self.participants.create_index(
            [("conversation_id", ASCENDING), ("user_id", ASCENDING)], unique=True
        )
        await self.participants.create_index([("user_id", ASCENDING)])

    async def create(self, participant_ids: List[str]) -> ConversationDocument:
        now = datetime.now(timezone.utc)
        doc: ConversationDocument = {"created_at": now, "updated_at": now}
        result = await self.collection.insert_one(doc)
        conversation_id = str(result.inserted_id)
        try:
            await self.participants.insert_many(
                [
                    ParticipantDocument(conversation_id=conversation_id, user_id=user_id, joined_at=now)
                    for user_id in participant_ids
                ]
            )
        except PyMongoError:
            # never leave a conversation nobody belongs to
            await self.participants.delete_many({"conversation_id": conversation_id})
            await self.collection.delete_one({"_id": result.inserted_id})
            raise
        doc["_id"] = conversation_id
        return doc

    async def get(self, conversation_id: str) -> Optional[ConversationDocument]:
        oid = parse_object_id(conversation_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def touch(self, conversation_id: str, at: datetime) -> None:
        await self.collection.update_one(
            {"_id": parse_object_id(conversation_id)},
            {"$set": {"updated_at": at}},
        )

    async def is_participant(self, conversation_id: str, user_id: str) -> bool:
        doc = await self.participants.find_one(
            {"conversation_id": conversation_id, "user_id": user_id}
        )
        return doc is not None

    async def list_participant_ids(self, conversation_id: str) -> List[str]:
        cursor = self.participants.find({"conversation_id": conversation_id}).sort(
            [("joined_at", ASCENDING), ("_id", ASCENDING)]
        )
        return [doc["user_id"] async for doc in cursor]

    async def list_conversation_ids_for_user(self, user_id: str) -> List[str]:
        cursor = self.participants.find({"user_id": user_id})
        return [doc["conversation_id"] async for doc in cursor]

    async def list_by_ids(self, conversation_ids: Iterable[str]) -> List[ConversationDocument]:
        oids = parse_object_ids(conversation_ids)
        if not oids:
            return []
        cursor = self.collection.find({"_id": {"$in": oids}}).sort(
            [("updated_at", DESCENDING), ("_id", DESCENDING)]
        )
        items = await cursor.to_list(length=len(oids))
        for it in items:
            it["_id"] = str(it["_id"])
        return items
