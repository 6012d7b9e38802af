import logging
import traceback
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    status_code = 500

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(status_code=self.status_code, detail=message)
        self.message = message
        self.errors = errors or []


class ValidationError(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class InternalError(ApiError):
    status_code = 500


def error_body(message: str, errors: Optional[List[Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"message": message}
    if errors:
        body["errors"] = [e.model_dump() if hasattr(e, "model_dump") else e for e in errors]
    return body


def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    """Render every failure as ``{message, errors?}`` with the matching status."""

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        if isinstance(exc, ApiError):
            return JSONResponse(error_body(exc.message, exc.errors), status_code=exc.status_code)
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse({"message": f"Not found - {request.url.path}"}, status_code=404)
        return JSONResponse({"message": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())[1:]) or "body", "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(error_body("Invalid request data", errors), status_code=400)

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key(request: Request, exc: DuplicateKeyError):
        logger.warning(f"Duplicate key on write: {exc}", extra={"event_type": "duplicate_key"})
        return JSONResponse({"message": "Resource already exists"}, status_code=400)

    @app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception):
        logger.error(f"Unhandled error: {exc}\n{traceback.format_exc()}", extra={"event_type": "server_error"})
        body: Dict[str, Any] = {"message": "Server error"}
        if not settings.is_production:
            body["error"] = str(exc)
            body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(body, status_code=500)
