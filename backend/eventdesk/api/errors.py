"""
Exception handlers. Every error body is rendered as {"message": ...}.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from eventdesk.core.logging import get_logger
from eventdesk.domain.errors import EventNotFoundError, IntegrityViolation, InvalidEventError

logger = get_logger(__name__)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else str(first.get("msg", "Invalid request"))
    return JSONResponse(
        status_code=422,
        content={"message": message, "errors": _jsonable_errors(errors)},
    )


def _jsonable_errors(errors: list) -> list[dict]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]


async def event_not_found_handler(request: Request, exc: EventNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"message": exc.message})


async def invalid_event_handler(request: Request, exc: InvalidEventError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": exc.message})


async def integrity_violation_handler(request: Request, exc: IntegrityViolation) -> JSONResponse:
    logger.critical(
        "integrity_violation",
        code=exc.code.value,
        error=exc.message,
        **exc.context,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal error. The operation was not applied."},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(EventNotFoundError, event_not_found_handler)
    app.add_exception_handler(InvalidEventError, invalid_event_handler)
    app.add_exception_handler(IntegrityViolation, integrity_violation_handler)
