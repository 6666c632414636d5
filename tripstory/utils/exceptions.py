import logging
import re

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from tripstory.utils.response import error_response

logger = logging.getLogger(__name__)

_SECRET_PATTERN = re.compile(r"sk-[A-Za-z0-9_-]+")


class AppException(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(AppException):
    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class ConflictError(AppException):
    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class OracleError(Exception):
    """An external model returned nothing usable, or could not be reached."""


class ImageNotFoundError(Exception):
    """The image store has no file at the requested path."""


class PipelineError(Exception):
    """A pipeline precondition failed or a whole stage produced no results."""


def mask_secrets(message: str) -> str:
    return _SECRET_PATTERN.sub("sk-***", message)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.message),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("Internal server error"),
        )
