from typing import Optional

from fastapi import Depends, Request, WebSocket
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorDatabase

from venture_chat.database.connection import mongo_db_dependency
from venture_chat.exceptions import AuthError
from venture_chat.repositories.conversation_repository import ConversationRepository
from venture_chat.repositories.message_repository import MessageRepository
from venture_chat.repositories.read_receipt_repository import ReadReceiptRepository
from venture_chat.repositories.user_repository import UserRepository
from venture_chat.schemas.user import CurrentUser
from venture_chat.services.chat_service import ChatService
from venture_chat.services.conversation_directory import ConversationDirectory
from venture_chat.services.message_store import MessageStore
from venture_chat.utils.realtime_bus import RealtimeBus
from venture_chat.utils.security import JwtAuthenticator


_bearer = HTTPBearer(auto_error=False)
authenticator = JwtAuthenticator()


def build_chat_service(db: AsyncIOMotorDatabase, bus: RealtimeBus) -> ChatService:
    conversation_repo = ConversationRepository(db)
    directory = ConversationDirectory(conversation_repo)
    store = MessageStore(
        MessageRepository(db),
        conversation_repo,
        ReadReceiptRepository(db),
        UserRepository(db),
        directory,
    )
    return ChatService(store, directory, bus)


def get_bus(request: Request) -> RealtimeBus:
    return request.app.state.bus


def get_ws_bus(websocket: WebSocket) -> RealtimeBus:
    return websocket.app.state.bus


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)) -> CurrentUser:
    user = authenticator.current_user(credentials.credentials if credentials else None)
    if user is None:
        raise AuthError("Could not validate credentials")
    return user


def get_chat_service(db=Depends(mongo_db_dependency), bus: RealtimeBus = Depends(get_bus)) -> ChatService:
    return build_chat_service(db, bus)
