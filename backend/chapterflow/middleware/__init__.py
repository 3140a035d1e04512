"""中间件"""
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from chapterflow.middleware.auth_middleware import AuthMiddleware

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """为每个请求分配请求ID，沿用客户端传入的 X-Request-ID"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


__all__ = ["AuthMiddleware", "RequestIDMiddleware", "REQUEST_ID_HEADER"]
