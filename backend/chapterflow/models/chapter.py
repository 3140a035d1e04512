"""章节数据模型"""
from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func
from chapterflow.database import Base
from chapterflow.models.enums import ChapterStatus
import uuid


class Chapter(Base):
    """章节表"""
    __tablename__ = "chapters"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number = Column(Integer, nullable=False, default=0, index=True, comment="目录排序序号")
    chapter_code = Column(String(20), nullable=False, comment="目录编号，如 3-1")
    title = Column(String(200), nullable=False, comment="章节标题")
    writer_id = Column(String(36), nullable=True, index=True, comment="负责的作者ID，未分配时为空")
    status = Column(String(20), nullable=False, default=ChapterStatus.DRAFT.value, index=True, comment="章节状态: draft/submitted/editing/reviewed/confirmed")

    # 正文
    original_body = Column(Text, comment="作者原稿")
    edited_body = Column(Text, comment="编辑校对稿")

    # 流转记录
    submitted_at = Column(DateTime, comment="提交时间")
    edited_by = Column(String(36), comment="最后校对的编辑ID")
    edited_at = Column(DateTime, comment="最后校对时间")
    reviewed_by = Column(String(36), comment="校对完成的编辑ID")
    reviewed_at = Column(DateTime, comment="校对完成时间")
    confirmed_by = Column(String(36), comment="确认的管理员ID")
    confirmed_at = Column(DateTime, comment="确认时间")

    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    def __repr__(self):
        return f"<Chapter(id={self.id}, code={self.chapter_code}, title={self.title}, status={self.status})>"


class ChapterFile(Base):
    """章节附件表"""
    __tablename__ = "files"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chapter_id = Column(String(36), ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True, comment="所属章节ID")
    file_url = Column(String(500), nullable=False, comment="可访问的文件地址")
    file_name = Column(String(255), nullable=False, comment="显示文件名")
    file_size = Column(Integer, nullable=True, comment="文件大小（字节）")
    uploaded_at = Column(DateTime, server_default=func.now(), comment="上传时间")

    def __repr__(self):
        return f"<ChapterFile(id={self.id}, chapter_id={self.chapter_id}, name={self.file_name})>"
