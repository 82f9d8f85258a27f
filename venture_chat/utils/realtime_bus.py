import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Set

from venture_chat.exceptions import AuthError, PermissionDeniedError
from venture_chat.schemas.user import CurrentUser
from venture_chat.services.conversation_directory import ConversationDirectory


logger = logging.getLogger(__name__)

_CLOSED = None


class SessionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Session:
    """One live client connection bound to a single authenticated user.

    Outgoing frames are queued on ``outbox`` and drained by the connection
    writer, so fan-out never waits on a socket.
    """

    def __init__(self, user_id: str, session_id: Optional[str] = None) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.user_id = user_id
        self.state = SessionState.CONNECTING
        self.rooms: Set[str] = set()
        self.outbox: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    def deliver(self, frame: Dict[str, Any]) -> bool:
        if not self.connected:
            return False
        self.outbox.put_nowait(frame)
        return True

    async def next_frame(self) -> Optional[Dict[str, Any]]:
        """Next queued frame, or None once the session is closed."""
        return await self.outbox.get()

    def close(self) -> None:
        if self.state is SessionState.DISCONNECTED:
            return
        self.state = SessionState.DISCONNECTED
        self.outbox.put_nowait(_CLOSED)

    def __repr__(self) -> str:
        return f"<Session {self.id} user={self.user_id} {self.state.value}>"


class RealtimeBus:
    """In-process, room based event bus.

    Owns the room table (conversation id -> sessions) and the per-user
    session table. Both are mutated only between awaits on the event loop.
    """

    def __init__(self, directory: Optional[ConversationDirectory] = None, validate_join: bool = True) -> None:
        self._directory = directory
        self._validate_join = validate_join and directory is not None
        self._rooms: Dict[str, Set[Session]] = {}
        self._user_sessions: Dict[str, Set[Session]] = {}
        self._shut_down = False

    def open_session(self, user: Optional[CurrentUser]) -> Session:
        if user is None or not user.id:
            raise AuthError("Authentication required")
        if self._shut_down:
            raise RuntimeError("Realtime bus is shut down")
        session = Session(user.id)
        self._user_sessions.setdefault(user.id, set()).add(session)
        session.state = SessionState.CONNECTED
        logger.info("User connected: %s (%s)", user.id, session.id)
        return session

    async def join(self, session: Session, conversation_id: str) -> None:
        if not session.connected:
            return
        if self._validate_join and not await self._directory.is_participant(conversation_id, session.user_id):
            logger.warning("User %s refused to join conversation %s", session.user_id, conversation_id)
            raise PermissionDeniedError("You are not a participant in this conversation")
        # the connection may have closed while membership was checked
        if not session.connected:
            return
        self._rooms.setdefault(conversation_id, set()).add(session)
        session.rooms.add(conversation_id)
        logger.debug("User %s joined conversation %s", session.user_id, conversation_id)

    def leave(self, session: Session, conversation_id: str) -> None:
        members = self._rooms.get(conversation_id)
        if members is not None:
            members.discard(session)
            if not members:
                del self._rooms[conversation_id]
        session.rooms.discard(conversation_id)
        logger.debug("User %s left conversation %s", session.user_id, conversation_id)

    def close_session(self, session: Session) -> None:
        if session.state is SessionState.DISCONNECTED:
            return
        for conversation_id in list(session.rooms):
            self.leave(session, conversation_id)
        sessions = self._user_sessions.get(session.user_id)
        if sessions is not None:
            sessions.discard(session)
            if not sessions:
                del self._user_sessions[session.user_id]
        session.close()
        logger.info("User disconnected: %s (%s)", session.user_id, session.id)

    def publish(self, conversation_id: str, event: str, payload: Any, exclude: Optional[Session] = None) -> int:
        frame = {"event": event, "data": payload}
        return self._fan_out(self._rooms.get(conversation_id, ()), frame, exclude)

    def notify_user(self, user_id: str, event: str, payload: Any) -> int:
        frame = {"event": event, "data": payload}
        return self._fan_out(self._user_sessions.get(user_id, ()), frame, None)

    def _fan_out(self, sessions: Iterable[Session], frame: Dict[str, Any], exclude: Optional[Session]) -> int:
        delivered = 0
        for session in list(sessions):
            if session is exclude:
                continue
            try:
                if session.deliver(frame):
                    delivered += 1
                else:
                    logger.debug("Dropped %s for closed session %s", frame["event"], session.id)
            except Exception:
                logger.exception("Failed to deliver %s to session %s", frame["event"], session.id)
        return delivered

    def room_members(self, conversation_id: str) -> Set[Session]:
        return set(self._rooms.get(conversation_id, ()))

    def sessions_of(self, user_id: str) -> Set[Session]:
        return set(self._user_sessions.get(user_id, ()))

    def shutdown(self) -> None:
        for sessions in list(self._user_sessions.values()):
            for session in list(sessions):
                self.close_session(session)
        self._rooms.clear()
        self._shut_down = True
        logger.info("Realtime bus shut down")
