"""
日志与请求上下文
"""

import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from triviaops.core.config import settings

logger = logging.getLogger("triviaops.request")

REQUEST_ID_PATTERN = re.compile(r"^[a-zA-Z0-9._-]{8,80}$")


def configure_logging() -> None:
    """配置根日志"""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@dataclass(frozen=True)
class RequestContext:
    """单次请求的上下文，显式传给需要记录日志的服务"""
    request_id: str
    client_ip: str

    def tag(self) -> str:
        return f"request_id={self.request_id} ip={self.client_ip}"


def resolve_request_id(request: Request) -> str:
    header_id = request.headers.get("x-request-id")
    if header_id:
        return header_id
    query_id = request.query_params.get("request_id")
    if query_id and REQUEST_ID_PATTERN.match(query_id):
        return query_id
    return str(uuid.uuid4())


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("cf-connecting-ip") or request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_request_context(request: Request) -> RequestContext:
    """FastAPI依赖：构建请求上下文"""
    request_id: Optional[str] = getattr(request.state, "request_id", None)
    return RequestContext(request_id=request_id or resolve_request_id(request), client_ip=client_ip(request))


async def request_logging_middleware(request: Request, call_next):
    """记录请求开始/结束，并回写 x-request-id"""
    request_id = resolve_request_id(request)
    request.state.request_id = request_id
    path = request.url.path
    loggable = path.startswith("/api")
    started = time.perf_counter()

    if loggable:
        logger.debug("request_start request_id=%s method=%s path=%s", request_id, request.method, path)
    response = await call_next(request)
    if loggable:
        logger.info(
            "request_end request_id=%s method=%s path=%s status=%s duration_ms=%.1f",
            request_id,
            request.method,
            path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
    response.headers["x-request-id"] = request_id
    return response
