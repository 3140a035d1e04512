"""章节相关的Pydantic模型"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from chapterflow.services.lifecycle import TransitionKind


class ChapterCreate(BaseModel):
    """管理员新建章节的请求模型"""
    chapter_code: str = Field(..., description="目录编号，如 3-1")
    title: str = Field(..., description="章节标题")
    order_number: Optional[int] = Field(None, description="排序序号，不提供则排在最后")
    writer_id: Optional[str] = Field(None, description="负责的作者ID")


class ChapterMetadataUpdate(BaseModel):
    """修改章节元数据的请求模型，只提交需要修改的字段"""
    writer_id: Optional[str] = None  # 空字符串表示取消分配
    order_number: Optional[int] = None
    chapter_code: Optional[str] = None
    title: Optional[str] = None


class TransitionRequest(BaseModel):
    """章节流转请求"""
    kind: TransitionKind = Field(..., description="流转类型")
    body: Optional[str] = Field(None, description="正文（作者原稿或编辑校对稿）")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="update_metadata 的字段")


class FileResponse(BaseModel):
    """附件响应模型"""
    id: str
    chapter_id: str
    file_url: str
    file_name: str
    file_size: Optional[int] = None
    uploaded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChapterResponse(BaseModel):
    """章节响应模型"""
    id: str
    order_number: int
    chapter_code: str
    title: str
    writer_id: Optional[str] = None
    writer_name: Optional[str] = None  # 从用户表联查
    status: str
    original_body: Optional[str] = None
    edited_body: Optional[str] = None
    submitted_at: Optional[datetime] = None
    edited_by: Optional[str] = None
    edited_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    files: List[FileResponse] = []
    available_actions: List[str] = []  # 当前用户可发起的流转

    class Config:
        from_attributes = True


class ChapterListResponse(BaseModel):
    """章节列表响应模型"""
    total: int
    items: List[ChapterResponse]


class ChapterProgressRow(BaseModel):
    id: str
    order_number: int
    chapter_code: str
    title: str
    writer_id: Optional[str] = None
    writer_name: Optional[str] = None
    status: str


class ProgressResponse(BaseModel):
    """全书进度概览"""
    total: int
    counts: Dict[str, int]
    in_progress: int
    confirmed: int
    unassigned: int
    progress: int = Field(..., description="已确认章节百分比")
    chapters: List[ChapterProgressRow]


class DiffSegment(BaseModel):
    op: str = Field(..., description="equal / insert / delete")
    text: str


class DiffResponse(BaseModel):
    """原稿与校对稿对比结果"""
    chapter_id: str
    similarity: float
    difference: float
    original_length: int
    edited_length: int
    original_paragraph_count: int
    edited_paragraph_count: int
    segments: List[DiffSegment]
