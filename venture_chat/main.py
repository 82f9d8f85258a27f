import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from venture_chat.core.config import settings
from venture_chat.database.connection import (
    close_mongo_connection,
    connect_to_mongo,
    get_database,
    set_database,
)
from venture_chat.exceptions import ChatError, InternalError
from venture_chat.repositories.conversation_repository import ConversationRepository
from venture_chat.repositories.message_repository import MessageRepository
from venture_chat.repositories.read_receipt_repository import ReadReceiptRepository
from venture_chat.routers.chat import router as chat_router
from venture_chat.routers.conversations import router as conversations_router
from venture_chat.services.conversation_directory import ConversationDirectory
from venture_chat.utils.realtime_bus import RealtimeBus


logger = logging.getLogger(__name__)


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await ConversationRepository(db).ensure_indexes()
    await MessageRepository(db).ensure_indexes()
    await ReadReceiptRepository(db).ensure_indexes()


def create_app(database: Optional[AsyncIOMotorDatabase] = None) -> FastAPI:
    """Build the application. ``database`` replaces the MongoDB connection when given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting %s (%s)", settings.app_name, settings.app_env)
        if database is None:
            db = await connect_to_mongo()
        else:
            set_database(database)
            db = database
        await ensure_indexes(db)
        app.state.bus = RealtimeBus(
            ConversationDirectory(ConversationRepository(db)),
            validate_join=settings.realtime_validate_join,
        )
        try:
            yield
        finally:
            app.state.bus.shutdown()
            if database is None:
                await close_mongo_connection()
            else:
                set_database(None)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(conversations_router)
    app.include_router(chat_router)

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        error = InternalError("Internal server error")
        return JSONResponse(status_code=error.status_code, content={"detail": error.message, "code": error.code})

    @app.get("/health")
    async def health():
        get_database()
        return {"status": "ok"}

    return app


logging.basicConfig(level=settings.log_level)

app = create_app()
