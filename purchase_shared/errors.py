"""Error taxonomy shared by both services, plus the FastAPI handlers that map it.

Every error response body has the same shape: `{"error": "<message>"}`.
Infrastructure details are logged, never returned to the client.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .logger_config import log


class PurchasePipelineError(Exception):
    """Base class for all purchase pipeline errors."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_exception = original_exception


class DependencyUnavailable(PurchasePipelineError):
    """The stream or the store is not connected (or was lost)."""

    def __init__(
        self,
        dependency: str,
        message: str = "",
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(
            f"{dependency} unavailable: {message}" if message else f"{dependency} unavailable",
            original_exception=original_exception,
        )
        self.dependency = dependency
        self.detail = message


class PublishError(DependencyUnavailable):
    """The broker did not confirm delivery of a purchase event."""

    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__("stream", message, original_exception=original_exception)


class DownstreamError(PurchasePipelineError):
    """A call to another service timed out or returned a non-2xx status."""

    def __init__(
        self, service_name: str, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(f"{service_name} error: {message}", original_exception=original_exception)
        self.service_name = service_name


class MessageDecodeError(PurchasePipelineError):
    """A stream payload could not be decoded into a purchase event."""


def describe_validation_errors(errors) -> str:
    """Collapse pydantic error dicts into one readable sentence.

    Missing fields are reported together, like
    "Missing required fields: username, price". Anything else reports the
    first failing field.
    """
    missing = [
        ".".join(str(part) for part in err["loc"] if part != "body")
        for err in errors
        if err.get("type") == "missing"
    ]
    if missing:
        named = [field for field in missing if field]
        if not named:
            return "Request body is required"
        return "Missing required fields: " + ", ".join(named)

    for err in errors:
        if err.get("type") == "json_invalid":
            return "Request body must be valid JSON"
        field = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        if field:
            return f"Invalid field '{field}': {err.get('msg')}"
        return err.get("msg", "Invalid request")
    return "Invalid request"


def install_error_handlers(app: FastAPI) -> None:
    """Render every error as `{"error": ...}`; validation problems become 400."""

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        message = describe_validation_errors(exc.errors())
        log.debug("Rejected request", path=request.url.path, reason=message)
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        log.exception("Unhandled error", path=request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
