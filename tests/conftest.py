import asyncio

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from venture_chat.main import ensure_indexes
from venture_chat.repositories.conversation_repository import ConversationRepository
from venture_chat.repositories.message_repository import MessageRepository
from venture_chat.repositories.read_receipt_repository import ReadReceiptRepository
from venture_chat.repositories.user_repository import UserRepository
from venture_chat.schemas.user import CurrentUser
from venture_chat.services.chat_service import ChatService
from venture_chat.services.conversation_directory import ConversationDirectory
from venture_chat.services.message_store import MessageStore
from venture_chat.utils.realtime_bus import RealtimeBus


@pytest.fixture
def db():
    return AsyncMongoMockClient()["venture_chat_test"]


async def seed_user(db, email, name, role):
    """Users are owned by the profile service; tests write them directly."""
    result = await db["users"].insert_one({"email": email, "name": name, "role": role})
    return str(result.inserted_id)


@pytest_asyncio.fixture
async def users(db):
    """Three users: x and y talk to each other, z is an outsider."""
    await ensure_indexes(db)
    return {
        "x": await seed_user(db, "ada@founders.io", "Ada", "entrepreneur"),
        "y": await seed_user(db, "ben@capital.vc", "Ben", "investor"),
        "z": await seed_user(db, "cy@capital.vc", "Cy", "investor"),
    }


@pytest.fixture
def directory(db):
    return ConversationDirectory(ConversationRepository(db))


@pytest.fixture
def store(db, directory):
    return MessageStore(
        MessageRepository(db),
        ConversationRepository(db),
        ReadReceiptRepository(db),
        UserRepository(db),
        directory,
    )


@pytest.fixture
def bus(directory):
    return RealtimeBus(directory)


@pytest.fixture
def chat_service(store, directory, bus):
    return ChatService(store, directory, bus)


@pytest.fixture
def connect(bus):
    """Open a bus session for a user id."""
    def _connect(user_id):
        return bus.open_session(CurrentUser(id=user_id))
    return _connect


def drain(session):
    """Frames queued for a session so far, in delivery order."""
    frames = []
    while True:
        try:
            frame = session.outbox.get_nowait()
        except asyncio.QueueEmpty:
            return frames
        if frame is not None:
            frames.append(frame)
