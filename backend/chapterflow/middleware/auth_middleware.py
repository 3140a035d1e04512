"""
认证中间件 - 从 Cookie 中提取用户身份并注入到 request.state

Cookie 由外部认证服务签发，这里只负责查出用户的角色，不做登录。
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from chapterflow.config import settings
from chapterflow.user_manager import user_manager
from chapterflow.logger import get_logger

logger = get_logger(__name__)


class AuthMiddleware(BaseHTTPMiddleware):
    """认证中间件"""

    async def dispatch(self, request: Request, call_next):
        request.state.user = None
        request.state.actor = None

        user_id = request.cookies.get(settings.session_cookie_name)
        if user_id:
            user = await user_manager.get_user(user_id)
            if user:
                request.state.user = user
                request.state.actor = user.to_actor()
            else:
                # 用户不存在，视为未登录
                logger.warning(f"未知用户尝试访问: {user_id}")

        response = await call_next(request)
        return response
