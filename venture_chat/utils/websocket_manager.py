import logging

from fastapi import WebSocket

from venture_chat.schemas.user import CurrentUser
from venture_chat.utils.realtime_bus import RealtimeBus, Session


logger = logging.getLogger(__name__)


class ConnectionManager:
    """Binds accepted WebSockets to realtime bus sessions."""

    def __init__(self, bus: RealtimeBus) -> None:
        self._bus = bus

    async def connect(self, websocket: WebSocket, user: CurrentUser) -> Session:
        await websocket.accept()
        return self._bus.open_session(user)

    def disconnect(self, session: Session) -> None:
        self._bus.close_session(session)

    async def pump(self, websocket: WebSocket, session: Session) -> None:
        """Write queued frames to the socket until the session closes."""
        while True:
            frame = await session.next_frame()
            if frame is None:
                return
            try:
                await websocket.send_json(frame)
            except Exception as exc:
                # peer went away; stop queuing for a socket nobody drains
                logger.debug("Closing session %s after failed send: %s", session.id, exc)
                self._bus.close_session(session)
                return
