# booking_chat/main.py

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from booking_chat.api import websocket as websocket_module
from booking_chat.api.error_handler import register_exception_handlers
from booking_chat.api.routes import bookings, health, root
from booking_chat.core import state
from booking_chat.core.config import settings
from booking_chat.core.logging import get_logger, setup_logging
from booking_chat.services.message_store import RedisMessageStore

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="Booking Chat - Negotiation Rooms")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# REST routes
app.include_router(root.router)
app.include_router(health.router)
app.include_router(bookings.router)

# WebSocket routes
app.include_router(websocket_module.router)


@app.on_event("startup")
async def startup_event():
    logger.info(
        "🚀 Application starting - bookings: %s, messages: %s",
        settings.STORE_BACKEND, settings.MESSAGE_STORE_BACKEND,
    )

    if isinstance(state.message_store, RedisMessageStore) and state.message_store.client is None:
        await state.message_store.connect()


@app.on_event("shutdown")
async def on_shutdown():
    await state.message_store.close()
    await state.booking_store.aclose()
    await state.payments.aclose()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("booking_chat.main:app", host="0.0.0.0", port=8000)
