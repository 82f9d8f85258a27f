import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, status

from venture_chat.core.config import settings
from venture_chat.database.connection import mongo_db_dependency
from venture_chat.schemas import events
from venture_chat.schemas.chat import MarkReadRequest, SendMessageRequest, ServerFrame
from venture_chat.schemas.user import CurrentUser
from venture_chat.services.chat_service import ChatService
from venture_chat.services.realtime_dispatcher import RealtimeDispatcher
from venture_chat.utils.dependencies import (
    authenticator,
    build_chat_service,
    get_chat_service,
    get_current_user,
    get_ws_bus,
)
from venture_chat.utils.realtime_bus import RealtimeBus
from venture_chat.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["chat"])


def _decode_frame(text):
    # binary frames and invalid JSON decode to None and get a malformed-frame ack
    if text is None:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(body: SendMessageRequest, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    message = await service.send_message(body.conversation_id, current_user.id, body.content)
    return message.to_wire()


@router.patch("/read")
async def mark_read(body: MarkReadRequest, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    count = await service.mark_read(body.message_ids, current_user.id)
    return {"updated": count}


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket, db=Depends(mongo_db_dependency), bus: RealtimeBus = Depends(get_ws_bus)):
    # credential comes as ?token=... or the access_token cookie
    token = websocket.query_params.get("token") or websocket.cookies.get("access_token")
    user = authenticator.current_user(token)
    if user is None:
        logger.warning("Refused realtime connection without a valid credential")
        await websocket.close(code=4401)
        return

    manager = ConnectionManager(bus)
    try:
        session = await manager.connect(websocket, user)
    except RuntimeError:
        logger.warning("Refused realtime connection for %s: bus is shut down", user.id)
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return
    dispatcher = RealtimeDispatcher(bus, build_chat_service(db, bus))
    writer = asyncio.create_task(manager.pump(websocket, session))
    session.deliver(
        ServerFrame(
            event=events.CONNECTED,
            data={"userId": user.id, "typingTimeout": settings.typing_timeout_seconds},
        ).to_wire()
    )

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            reply = await dispatcher.dispatch(session, _decode_frame(message.get("text")))
            if reply is not None:
                session.deliver(reply)
    finally:
        manager.disconnect(session)
        await writer
