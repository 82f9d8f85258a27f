from datetime import datetime
from typing import TypedDict


class ConversationDocument(TypedDict, total=False):
    _id: str
    created_at: datetime
    # bumped on every new message, used to order conversation lists
    updated_at: datetime


class ParticipantDocument(TypedDict, total=False):
    _id: str
    conversation_id: str
    user_id: str
    joined_at: datetime
