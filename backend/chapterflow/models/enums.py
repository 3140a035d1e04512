"""章节工作流用到的枚举"""
from enum import Enum


class ChapterStatus(str, Enum):
    """章节状态，按工作流推进顺序排列"""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    EDITING = "editing"
    REVIEWED = "reviewed"
    CONFIRMED = "confirmed"


class Role(str, Enum):
    """参与者角色（由外部认证服务提供）"""
    ADMIN = "admin"
    EDITOR = "editor"
    WRITER = "writer"
