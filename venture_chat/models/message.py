from datetime import datetime
from typing import TypedDict


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: datetime
    updated_at: datetime
    is_edited: bool


class ReadReceiptDocument(TypedDict, total=False):
    _id: str
    message_id: str
    conversation_id: str
    user_id: str
    read_at: datetime
