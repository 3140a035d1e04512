"""数据模型"""
from chapterflow.models.enums import ChapterStatus, Role
from chapterflow.models.chapter import Chapter, ChapterFile
from chapterflow.models.user import User
from chapterflow.models.schedule import Schedule

__all__ = [
    "ChapterStatus",
    "Role",
    "Chapter",
    "ChapterFile",
    "User",
    "Schedule",
]
