import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pymongo.errors import PyMongoError

from venture_chat.core.config import settings
from venture_chat.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    TransientStoreError,
    ValidationError,
)
from venture_chat.repositories.conversation_repository import ConversationRepository
from venture_chat.repositories.message_repository import MessageRepository
from venture_chat.repositories.read_receipt_repository import ReadReceiptRepository
from venture_chat.repositories.user_repository import UserRepository
from venture_chat.schemas.chat import ConversationSummary, MessageOut
from venture_chat.schemas.user import UserPublic
from venture_chat.services.conversation_directory import ConversationDirectory


logger = logging.getLogger(__name__)


@contextmanager
def _store_errors():
    try:
        yield
    except PyMongoError as exc:
        logger.error("Message store operation failed: %s", exc)
        raise TransientStoreError("Message store is temporarily unavailable") from exc


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _public_users(user_ids: List[str], users: Dict[str, Dict[str, Any]]) -> List[UserPublic]:
    participants = []
    for user_id in user_ids:
        user = users.get(user_id, {})
        participants.append(
            UserPublic(id=user_id, name=user.get("name"), email=user.get("email"), role=user.get("role"))
        )
    return participants


class MessageStore:
    """Durable conversations, participants, messages and read receipts.

    Every method raises the typed errors from ``venture_chat.exceptions``;
    database I/O failures surface as ``TransientStoreError``.
    """

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        receipt_repo: ReadReceiptRepository,
        user_repo: UserRepository,
        directory: ConversationDirectory,
        max_length: int = settings.message_max_length,
        history_limit: int = settings.message_history_limit,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._receipt_repo = receipt_repo
        self._user_repo = user_repo
        self._directory = directory
        self.max_length = max_length
        self.history_limit = history_limit

    async def create_conversation(self, participant_user_ids: Iterable[str]) -> ConversationSummary:
        """Create a conversation and return its summary.

        The summary is built from what was just written, so no read follows
        the insert.
        """
        participant_ids: List[str] = []
        for user_id in participant_user_ids:
            if user_id and user_id not in participant_ids:
                participant_ids.append(user_id)
        if len(participant_ids) < 2:
            raise ValidationError("At least one other participant is required")

        with _store_errors():
            users = {user["_id"]: user for user in await self._user_repo.get_users_by_ids(participant_ids)}
            missing = [user_id for user_id in participant_ids if user_id not in users]
            if missing:
                raise NotFoundError(f"Unknown user: {', '.join(missing)}")
            doc = await self._conversation_repo.create(participant_ids)
        logger.info("Created conversation %s with %d participants", doc["_id"], len(participant_ids))
        return ConversationSummary(
            id=doc["_id"],
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
            participants=_public_users(participant_ids, users),
        )

    def validate_content(self, content: Optional[str]) -> str:
        if content is None or not content.strip():
            raise ValidationError("Message cannot be empty")
        if len(content) > self.max_length:
            raise ValidationError(f"Message is too long (max {self.max_length} characters)")
        return content

    async def append_message(self, conversation_id: str, sender_id: str, content: str) -> MessageOut:
        content = self.validate_content(content)
        with _store_errors():
            await self._require_participant(conversation_id, sender_id)
            now = _now()
            doc = await self._message_repo.save_message(conversation_id, sender_id, content, now)
            try:
                await self._conversation_repo.touch(conversation_id, now)
                # the sender has implicitly read their own message
                await self._receipt_repo.add(doc["_id"], conversation_id, sender_id, now)
            except PyMongoError:
                await self._discard_message(doc["_id"])
                raise
        return MessageOut.from_document(doc)

    async def _discard_message(self, message_id: str) -> None:
        # a failed send must not leave a message behind for the retry to duplicate
        try:
            await self._message_repo.delete(message_id)
        except PyMongoError as exc:
            logger.error("Could not discard partially sent message %s: %s", message_id, exc)

    async def mark_read_by_conversation(self, message_ids: List[str], reader_id: str) -> Dict[str, List[str]]:
        """Create missing receipts and return the newly read ids grouped by conversation.

        Own messages, unknown ids and messages of conversations the reader is
        not part of are skipped.
        """
        if not message_ids:
            raise ValidationError("At least one message ID is required")

        marked: Dict[str, List[str]] = {}
        membership: Dict[str, bool] = {}
        with _store_errors():
            messages = await self._message_repo.get_by_ids(message_ids)
            now = _now()
            for message in messages:
                if message["sender_id"] == reader_id:
                    continue
                conversation_id = message["conversation_id"]
                if conversation_id not in membership:
                    membership[conversation_id] = await self._directory.is_participant(conversation_id, reader_id)
                if not membership[conversation_id]:
                    continue
                if await self._receipt_repo.add(message["_id"], conversation_id, reader_id, now):
                    marked.setdefault(conversation_id, []).append(message["_id"])
        return marked

    async def mark_read(self, message_ids: List[str], reader_id: str) -> int:
        marked = await self.mark_read_by_conversation(message_ids, reader_id)
        return sum(len(ids) for ids in marked.values())

    async def list_messages(self, conversation_id: str, user_id: str, limit: Optional[int] = None) -> List[MessageOut]:
        limit = self.history_limit if limit is None else limit
        if limit < 1:
            raise ValidationError("limit must be a positive integer")
        with _store_errors():
            await self._require_participant(conversation_id, user_id)
            docs = await self._message_repo.get_recent(conversation_id, limit)
        return [MessageOut.from_document(doc) for doc in docs]

    async def list_conversations_for_user(self, user_id: str) -> List[ConversationSummary]:
        with _store_errors():
            conversation_ids = await self._directory.conversations_of(user_id)
            conversations = await self._conversation_repo.list_by_ids(conversation_ids)
            return [await self._summarize(doc, user_id) for doc in conversations]

    async def get_conversation_summary(self, conversation_id: str, user_id: str) -> ConversationSummary:
        with _store_errors():
            conversation = await self._require_participant(conversation_id, user_id)
            return await self._summarize(conversation, user_id)

    async def _require_participant(self, conversation_id: str, user_id: str) -> Dict[str, Any]:
        conversation = await self._conversation_repo.get(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        if not await self._directory.is_participant(conversation_id, user_id):
            raise PermissionDeniedError("You are not a participant in this conversation")
        return conversation

    async def _summarize(self, conversation: Dict[str, Any], user_id: str) -> ConversationSummary:
        conversation_id = conversation["_id"]
        participant_ids = await self._conversation_repo.list_participant_ids(conversation_id)
        users = {user["_id"]: user for user in await self._user_repo.get_users_by_ids(participant_ids)}
        last = await self._message_repo.get_last(conversation_id)
        read_ids = await self._receipt_repo.read_message_ids(conversation_id, user_id)
        unread = await self._message_repo.count_unread(conversation_id, user_id, read_ids)
        return ConversationSummary(
            id=conversation_id,
            created_at=conversation["created_at"],
            updated_at=conversation["updated_at"],
            participants=_public_users(participant_ids, users),
            last_message=MessageOut.from_document(last) if last else None,
            unread_count=unread,
        )
