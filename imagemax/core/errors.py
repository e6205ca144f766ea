import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ImageMaxError(Exception):
    status_code = 500
    message = "Failed to process image"

    def __init__(self, message: Optional[str] = None, details: Optional[Any] = None,
                 status_code: Optional[int] = None):
        self.message = message or self.message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ImageValidationError(ImageMaxError):
    """Bad input: missing file, unsupported format, undecodable image."""
    status_code = 400
    message = "Invalid image"


class ProcessingError(ImageMaxError):
    status_code = 500


class StorageError(ProcessingError):
    message = "Failed to upload image"


class RemoveBgError(ImageMaxError):
    message = "Failed to remove background"

    def __init__(self, message: Optional[str] = None, code: str = "UNKNOWN_ERROR",
                 status: int = 500):
        super().__init__(message, details=code, status_code=status)
        self.code = code


def error_body(message: str, details: Optional[Any] = None) -> dict:
    body = {"error": message}
    if details is not None:
        body["details"] = details
    return body


async def imagemax_error_handler(request: Request, exc: ImageMaxError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.details)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.details))


async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("Invalid request", details))


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(ImageMaxError, imagemax_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
