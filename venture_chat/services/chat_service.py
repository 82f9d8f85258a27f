import logging
from typing import Callable, List, Optional

from pymongo.errors import PyMongoError

from venture_chat.exceptions import PermissionDeniedError
from venture_chat.schemas import events
from venture_chat.schemas.chat import ConversationSummary, MessageOut
from venture_chat.services.conversation_directory import ConversationDirectory
from venture_chat.services.message_store import MessageStore
from venture_chat.utils.realtime_bus import RealtimeBus, Session


logger = logging.getLogger(__name__)


class ChatService:
    """Sequences store mutations before their realtime events.

    An event is emitted only after the mutation it announces has been
    persisted. Store errors propagate unchanged; broadcast errors are logged
    and never reach the caller.
    """

    def __init__(self, store: MessageStore, directory: ConversationDirectory, bus: RealtimeBus) -> None:
        self._store = store
        self._directory = directory
        self._bus = bus

    async def send_message(self, conversation_id: str, sender_id: str, content: str) -> MessageOut:
        message = await self._store.append_message(conversation_id, sender_id, content)
        payload = message.to_wire()
        self._emit(self._bus.publish, conversation_id, events.NEW_MESSAGE, payload)

        try:
            participants = await self._directory.participants_of(conversation_id)
        except PyMongoError as exc:
            logger.warning("Skipping message notifications for %s: %s", conversation_id, exc)
            return message
        notification = {"conversationId": conversation_id, "message": payload}
        for user_id in participants - {sender_id}:
            self._emit(self._bus.notify_user, user_id, events.NEW_MESSAGE_NOTIFICATION, notification)
        return message

    async def create_conversation(self, creator_id: str, other_user_ids: List[str]) -> ConversationSummary:
        summary = await self._store.create_conversation([creator_id, *other_user_ids])
        payload = summary.to_wire()
        for participant in summary.participants:
            if participant.id != creator_id:
                self._emit(self._bus.notify_user, participant.id, events.NEW_CONVERSATION, payload)
        return summary

    async def mark_read(self, message_ids: List[str], reader_id: str) -> int:
        marked = await self._store.mark_read_by_conversation(message_ids, reader_id)
        for conversation_id, ids in marked.items():
            self._emit(
                self._bus.publish,
                conversation_id,
                events.MESSAGES_READ,
                {"conversationId": conversation_id, "userId": reader_id, "messageIds": ids},
            )
        return sum(len(ids) for ids in marked.values())

    def typing(self, session: Session, conversation_id: str) -> int:
        return self._relay_typing(session, conversation_id, events.USER_TYPING)

    def stop_typing(self, session: Session, conversation_id: str) -> int:
        return self._relay_typing(session, conversation_id, events.USER_STOP_TYPING)

    def _relay_typing(self, session: Session, conversation_id: str, event: str) -> int:
        # membership was checked when the session joined the room
        if conversation_id not in session.rooms:
            raise PermissionDeniedError("Join the conversation before sending typing events")
        payload = {"conversationId": conversation_id, "userId": session.user_id}
        return self._emit(self._bus.publish, conversation_id, event, payload, exclude=session) or 0

    async def list_conversations(self, user_id: str) -> List[ConversationSummary]:
        return await self._store.list_conversations_for_user(user_id)

    async def get_conversation(self, conversation_id: str, user_id: str) -> ConversationSummary:
        return await self._store.get_conversation_summary(conversation_id, user_id)

    async def get_history(self, conversation_id: str, user_id: str, limit: Optional[int] = None) -> List[MessageOut]:
        return await self._store.list_messages(conversation_id, user_id, limit=limit)

    def _emit(self, send: Callable[..., int], *args, **kwargs) -> Optional[int]:
        try:
            return send(*args, **kwargs)
        except Exception:
            logger.exception("Realtime broadcast failed")
            return None
