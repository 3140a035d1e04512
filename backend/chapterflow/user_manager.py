"""
用户查询模块 - 为认证网关提供身份与角色
"""
from typing import Dict, Iterable, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from chapterflow.models.enums import Role
from chapterflow.services.lifecycle import Actor


class User(BaseModel):
    """用户数据传输对象"""
    id: str
    name: str
    role: Role
    created_at: Optional[str] = None

    def to_actor(self) -> Actor:
        return Actor(user_id=self.id, role=self.role, name=self.name)


class UserManager:
    """用户管理器 - 只读取角色，不修改"""

    async def _get_session(self) -> AsyncSession:
        """获取数据库会话"""
        from chapterflow.database import get_session_factory

        session_maker = await get_session_factory()
        return session_maker()

    async def get_user(self, user_id: str) -> Optional[User]:
        """获取用户"""
        from chapterflow.models.user import User as UserModel

        async with await self._get_session() as session:
            result = await session.execute(
                select(UserModel).where(UserModel.id == user_id)
            )
            user = result.scalar_one_or_none()

            if user:
                return User(**user.to_dict())
            return None

    async def list_users(self, role: Optional[Role] = None) -> List[User]:
        """获取用户列表，可按角色过滤"""
        from chapterflow.models.user import User as UserModel

        query = select(UserModel).order_by(UserModel.name)
        if role is not None:
            query = query.where(UserModel.role == Role(role).value)

        async with await self._get_session() as session:
            result = await session.execute(query)
            return [User(**user.to_dict()) for user in result.scalars().all()]

    async def get_names(self, user_ids: Iterable[str]) -> Dict[str, str]:
        """批量获取显示名称"""
        from chapterflow.models.user import User as UserModel

        ids = {user_id for user_id in user_ids if user_id}
        if not ids:
            return {}

        async with await self._get_session() as session:
            result = await session.execute(
                select(UserModel.id, UserModel.name).where(UserModel.id.in_(ids))
            )
            return {user_id: name for user_id, name in result.all()}

    async def is_writer(self, user_id: str) -> bool:
        """检查用户是否存在且为作者"""
        user = await self.get_user(user_id)
        return user is not None and user.role == Role.WRITER

    async def create_user(self, name: str, role: Role, user_id: Optional[str] = None) -> User:
        """
        新增用户（用于导入脚本和测试数据）

        Args:
            name: 显示名称
            role: 角色
            user_id: 指定ID，默认自动生成

        Returns:
            用户对象
        """
        from chapterflow.models.user import User as UserModel

        async with await self._get_session() as session:
            user = UserModel(name=name, role=Role(role).value)
            if user_id:
                user.id = user_id
            session.add(user)
            await session.commit()
            await session.refresh(user)

            return User(**user.to_dict())


# 全局用户管理器实例
user_manager = UserManager()
