"""
Error taxonomy shared by every feature.

Services raise these (they are plain `HTTPException`s with sensible defaults)
and FastAPI turns them into `{"detail": ...}` responses. Anything else that
escapes a handler is logged and collapsed into a generic 404 so no driver
detail reaches the client.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import config

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong, try again!"


class ValidationError(HTTPException):
    """Missing or malformed input (400), conflicts (422), bad characters (423)."""

    def __init__(self, detail: str = "All fields are required", status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(status_code=status_code, detail=detail)


class AuthError(HTTPException):
    """Missing/invalid credential or a failed ownership/role check."""

    def __init__(self, detail: str = "Unauthorized", status_code: int = status.HTTP_401_UNAUTHORIZED):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundOrTransient(HTTPException):
    def __init__(self, detail: str = GENERIC_FAILURE):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class PersistenceError(HTTPException):
    def __init__(self, detail: str = "Could not save changes, please try again."):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def conflict(detail: str) -> ValidationError:
    return ValidationError(detail, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    content: dict = {"detail": "Invalid inputs passed."}
    if not config.is_production():
        content["errors"] = jsonable_errors(exc)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


async def _unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": GENERIC_FAILURE})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_handler)
