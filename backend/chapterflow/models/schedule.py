"""制作日程数据模型"""
from sqlalchemy import Column, String, Integer, Date, DateTime, Boolean
from sqlalchemy.sql import func
from chapterflow.database import Base
import uuid


class Schedule(Base):
    """制作日程表：截稿、交付印刷、出版三个固定节点"""
    __tablename__ = "schedules"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(100), nullable=False, comment="节点名称")
    due_date = Column(Date, nullable=False, comment="截止日期")
    order_number = Column(Integer, nullable=False, default=0, unique=True, comment="节点序号 1-3")
    completed = Column(Boolean, nullable=False, default=False, comment="是否已完成")
    completed_at = Column(DateTime, comment="完成时间")
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")

    def __repr__(self):
        return f"<Schedule(order={self.order_number}, title={self.title}, due={self.due_date})>"
