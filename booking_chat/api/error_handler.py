# booking_chat/api/error_handler.py

from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from booking_chat.core.errors import BookingChatError, InvalidPayload
from booking_chat.core.logging import get_logger

logger = get_logger(__name__)


def _body(error: BookingChatError) -> dict:
    return {
        "error": error.kind,
        "message": error.message,
        "details": error.details,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def booking_chat_error_handler(request: Request, exc: BookingChatError):
    """
    Map a domain error to its HTTP status.

    401 Unauthorized, 404 NotFound, 409 NegotiationLocked / NotConfirmed,
    422 InvalidAmount / NoPriceSet, 503 StoreUnavailable, 400 InvalidPayload.
    """
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind} - {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.kind} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=_body(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()]
    logger.warning(f"Validation error on {request.url.path}: {errors}")
    error = InvalidPayload("Request validation failed", details=errors)
    return JSONResponse(status_code=error.status_code, content=_body(error))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingChatError, booking_chat_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
