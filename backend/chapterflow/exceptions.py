"""章节工作流的异常体系"""
from enum import Enum
from typing import Optional


class RejectionReason(str, Enum):
    """请求被拒绝的原因（对外返回的 reason 字段）"""
    GUARD_FAILED = "guard_failed"
    UNAUTHORIZED = "unauthorized"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"


class ChapterFlowError(Exception):
    """所有业务异常的基类"""

    reason: Optional[RejectionReason] = None

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class Unauthorized(ChapterFlowError):
    """角色或身份不允许执行该操作"""
    reason = RejectionReason.UNAUTHORIZED


class GuardFailed(ChapterFlowError):
    """条件写入未命中：状态已被其他人改变，需要重新加载"""
    reason = RejectionReason.GUARD_FAILED

    def __init__(self, message: str = "章节状态已被其他人修改，请刷新后重试", details: Optional[dict] = None):
        super().__init__(message, details)


StaleState = GuardFailed


class ValidationFailed(ChapterFlowError):
    """输入校验失败（空正文、缺少必填信息等）"""
    reason = RejectionReason.VALIDATION_FAILED

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class NotFound(ChapterFlowError):
    """引用的章节或文件不存在"""
    reason = RejectionReason.NOT_FOUND

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} 不存在", {"id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class StorageFailure(ChapterFlowError):
    """底层存储不可用或出错，整个请求可以安全重试"""
