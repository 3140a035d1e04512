"""
用户 API - 当前用户与按角色查询用户
"""
from fastapi import APIRouter, HTTPException, Request, Depends
from typing import List, Optional

from chapterflow.models.enums import Role
from chapterflow.services.lifecycle import Actor
from chapterflow.user_manager import user_manager, User

router = APIRouter(prefix="/users", tags=["用户"])


def require_login(request: Request) -> Actor:
    """依赖：要求请求带有已知用户身份"""
    actor = getattr(request.state, "actor", None)
    if actor is None:
        raise HTTPException(status_code=401, detail="需要登录")
    return actor


def require_roles(*roles: Role):
    """依赖工厂：要求用户属于指定角色之一"""

    def dependency(actor: Actor = Depends(require_login)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=403, detail="没有权限执行此操作")
        return actor

    return dependency


require_admin = require_roles(Role.ADMIN)
require_staff = require_roles(Role.ADMIN, Role.EDITOR)


@router.get("/current", response_model=User)
async def get_current_user(request: Request, actor: Actor = Depends(require_login)):
    """获取当前用户信息"""
    return request.state.user


@router.get("", response_model=List[User])
async def list_users(
    role: Optional[Role] = None,
    actor: Actor = Depends(require_staff),
):
    """
    获取用户列表（管理员、编辑）

    分配作者时用 role=writer 过滤。
    """
    return await user_manager.list_users(role=role)
