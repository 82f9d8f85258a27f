from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from venture_chat.schemas.user import UserPublic


class CamelModel(BaseModel):

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def _utc_ms(value: datetime) -> datetime:
    # MongoDB keeps UTC at millisecond precision and may hand back naive values
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def _iso(value: datetime) -> str:
    return _utc_ms(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MessageOut(CamelModel):

    id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: datetime
    updated_at: datetime
    is_edited: bool = False

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_ts(cls, value: datetime) -> datetime:
        return _utc_ms(value)

    @field_serializer("created_at", "updated_at")
    def _serialize_ts(self, value: datetime) -> str:
        return _iso(value)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MessageOut":
        return cls(
            id=str(doc["_id"]),
            conversation_id=doc["conversation_id"],
            sender_id=doc["sender_id"],
            content=doc["content"],
            created_at=doc["created_at"],
            updated_at=doc.get("updated_at", doc["created_at"]),
            is_edited=doc.get("is_edited", False),
        )


class ConversationOut(CamelModel):

    id: str
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_ts(cls, value: datetime) -> datetime:
        return _utc_ms(value)

    @field_serializer("created_at", "updated_at")
    def _serialize_ts(self, value: datetime) -> str:
        return _iso(value)


class ConversationSummary(ConversationOut):

    participants: List[UserPublic] = []
    last_message: Optional[MessageOut] = None
    unread_count: int = 0


class CreateConversationRequest(CamelModel):

    participant_ids: List[str] = Field(min_length=1)


class SendMessageRequest(CamelModel):

    conversation_id: str = Field(min_length=1)
    content: str


class MarkReadRequest(CamelModel):

    message_ids: List[str] = Field(min_length=1)


class ClientFrame(BaseModel):
    """Realtime frame sent by a client."""

    event: str
    data: Any = None
    ref: Optional[Union[str, int]] = None


class ServerFrame(BaseModel):
    """Realtime frame sent to a client."""

    event: str
    data: Any = None
    ref: Optional[Union[str, int]] = None

    def to_wire(self) -> Dict[str, Any]:
        frame = {"event": self.event, "data": self.data}
        if self.ref is not None:
            frame["ref"] = self.ref
        return frame
