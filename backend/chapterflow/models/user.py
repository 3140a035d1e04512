"""
用户数据模型 - 只读地提供参与者身份与角色
"""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from chapterflow.database import Base
import uuid


class User(Base):
    """用户表（由外部认证服务维护，本服务只读取）"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False, unique=True, index=True, comment="显示名称")
    role = Column(String(20), nullable=False, index=True, comment="角色: admin/editor/writer")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")

    def to_dict(self):
        """转换为字典"""
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
