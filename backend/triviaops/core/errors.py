"""
统一错误与响应封装
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

# 稳定的机器可读错误码
NOT_FOUND = "not_found"
EVENT_CLOSED = "event_closed"
NOT_LIVE = "not_live"
FORBIDDEN = "forbidden"
UNAUTHORIZED = "unauthorized"
VALIDATION_ERROR = "validation_error"
RATE_LIMITED = "rate_limited"
TEAM_SESSION_INVALID = "team_session_invalid"
TEAM_NAME_REQUIRED = "team_name_required"
TEAM_NAME_MISMATCH = "team_name_mismatch"
TIMER_EXPIRED = "timer_expired"
TIMER_NOT_STARTED = "timer_not_started"
NOT_CURRENT = "not_current"
INVALID_CHOICE = "invalid_choice"
INVALID_TYPE = "invalid_type"
AUDIO_STILL_PLAYING = "audio_still_playing"
CONFLICT = "conflict"
SERVER_ERROR = "server_error"


class ApiError(Exception):
    """带错误码的业务异常，由异常处理器渲染为统一信封"""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return error


def ok(data: Any) -> Dict[str, Any]:
    """成功响应信封"""
    return {"ok": True, "data": data}


def error_response(error: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=jsonable_encoder({"ok": False, "error": error.to_dict()}),
        headers=error.headers,
    )


def validation_details(errors) -> list:
    """精简校验错误，只保留字段位置和说明"""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in errors
    ]


def rate_limited(retry_after: Optional[int]) -> ApiError:
    headers = {"Retry-After": str(retry_after)} if retry_after else None
    return ApiError(
        RATE_LIMITED,
        "请求过于频繁，请稍后再试",
        status_code=429,
        details={"retry_after": retry_after},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """注册异常处理器"""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return error_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        code = NOT_FOUND if exc.status_code == 404 else VALIDATION_ERROR
        return error_response(ApiError(code, str(exc.detail), status_code=exc.status_code, headers=exc.headers))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(ApiError(VALIDATION_ERROR, "请求参数无效", details=validation_details(exc.errors())))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        logger.error(
            "request_error request_id=%s method=%s path=%s",
            request_id,
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return error_response(ApiError(SERVER_ERROR, "Unexpected error", status_code=500))
