import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError as PayloadError

from venture_chat.exceptions import ChatError, InternalError, ValidationError
from venture_chat.schemas import events
from venture_chat.schemas.chat import ClientFrame, ServerFrame
from venture_chat.services.chat_service import ChatService
from venture_chat.utils.realtime_bus import RealtimeBus, Session


logger = logging.getLogger(__name__)

Handler = Callable[[Session, Any], Awaitable[Any]]


def _field(data: Any, name: str) -> Any:
    if isinstance(data, dict):
        return data.get(name)
    return None


def _conversation_id(data: Any) -> str:
    # join/leave send a bare id, the other events wrap it in an object
    conversation_id = data if isinstance(data, str) else _field(data, "conversationId")
    if not isinstance(conversation_id, str) or not conversation_id:
        raise ValidationError("conversationId is required")
    return conversation_id


class RealtimeDispatcher:
    """Routes inbound client frames to their handlers.

    Every handled frame is answered with an ``ack`` frame carrying either the
    result or a typed error, so no exception crosses the socket boundary.
    """

    def __init__(self, bus: RealtimeBus, chat_service: ChatService) -> None:
        self._bus = bus
        self._chat = chat_service
        self._handlers: Dict[str, Handler] = {
            events.JOIN_CONVERSATION: self._join,
            events.LEAVE_CONVERSATION: self._leave,
            events.SEND_MESSAGE: self._send_message,
            events.TYPING: self._typing,
            events.STOP_TYPING: self._stop_typing,
            events.MARK_MESSAGES_READ: self._mark_read,
        }

    async def dispatch(self, session: Session, raw: Any) -> Optional[Dict[str, Any]]:
        try:
            frame = ClientFrame.model_validate(raw)
        except PayloadError:
            return self._ack(None, None, error=ValidationError("Malformed realtime frame"))

        if frame.event == events.PING:
            return ServerFrame(event=events.PONG, ref=frame.ref).to_wire()

        handler = self._handlers.get(frame.event)
        if handler is None:
            return self._ack(frame.event, frame.ref, error=ValidationError(f"Unknown event: {frame.event}"))

        try:
            result = await handler(session, frame.data)
        except ChatError as exc:
            return self._ack(frame.event, frame.ref, error=exc)
        except Exception:
            logger.exception("Unhandled error in %s handler", frame.event)
            return self._ack(frame.event, frame.ref, error=InternalError("Internal server error"))
        return self._ack(frame.event, frame.ref, result=result)

    async def _join(self, session: Session, data: Any) -> Dict[str, Any]:
        conversation_id = _conversation_id(data)
        await self._bus.join(session, conversation_id)
        return {"conversationId": conversation_id}

    async def _leave(self, session: Session, data: Any) -> Dict[str, Any]:
        conversation_id = _conversation_id(data)
        self._bus.leave(session, conversation_id)
        return {"conversationId": conversation_id}

    async def _send_message(self, session: Session, data: Any) -> Dict[str, Any]:
        conversation_id = _conversation_id(data)
        message = _field(data, "message")
        if isinstance(message, dict):
            message = message.get("content")
        if not isinstance(message, str):
            raise ValidationError("message is required")
        sent = await self._chat.send_message(conversation_id, session.user_id, message)
        return sent.to_wire()

    async def _typing(self, session: Session, data: Any) -> None:
        self._chat.typing(session, _conversation_id(data))

    async def _stop_typing(self, session: Session, data: Any) -> None:
        self._chat.stop_typing(session, _conversation_id(data))

    async def _mark_read(self, session: Session, data: Any) -> Dict[str, int]:
        message_ids = _field(data, "messageIds")
        if not isinstance(message_ids, list) or not all(isinstance(i, str) for i in message_ids):
            raise ValidationError("messageIds must be a list of ids")
        updated = await self._chat.mark_read(message_ids, session.user_id)
        return {"updated": updated}

    def _ack(
        self,
        event: Optional[str],
        ref,
        result: Any = None,
        error: Optional[ChatError] = None,
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {"event": event, "ok": error is None}
        if error is None:
            data["result"] = result
        else:
            data["error"] = error.to_dict()
        return ServerFrame(event=events.ACK, data=data, ref=ref).to_wire()
