"""
章节工作流服务

所有角色的界面都通过这里发起流转：先由生命周期引擎做完全部策略检查，
再对存储发起一次带守卫的条件写入。被拒绝的请求不会产生任何副作用。
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from chapterflow.exceptions import (
    ChapterFlowError,
    GuardFailed,
    NotFound,
    RejectionReason,
    Unauthorized,
    ValidationFailed,
)
from chapterflow.logger import get_logger
from chapterflow.models.chapter import Chapter, ChapterFile
from chapterflow.models.enums import ChapterStatus, Role
from chapterflow.services.chapter_store import ChapterStore
from chapterflow.services.file_registry import FileRegistry
from chapterflow.services.lifecycle import (
    Actor,
    TransitionKind,
    TransitionPayload,
    apply_transition,
    can_modify_files,
    invariant_violations,
)
from chapterflow.user_manager import UserManager, user_manager as default_user_manager

logger = get_logger(__name__)

# 编辑默认看到的工作队列
EDITOR_QUEUE_STATUSES = (
    ChapterStatus.SUBMITTED,
    ChapterStatus.EDITING,
    ChapterStatus.REVIEWED,
    ChapterStatus.CONFIRMED,
)


@dataclass
class TransitionResult:
    """流转结果：成功时带回最新章节，失败时带回原因"""
    ok: bool
    chapter: Optional[Chapter] = None
    error: Optional[ChapterFlowError] = None

    @property
    def reason(self) -> Optional[RejectionReason]:
        return self.error.reason if self.error else None

    @classmethod
    def success(cls, chapter: Optional[Chapter]) -> "TransitionResult":
        return cls(ok=True, chapter=chapter)

    @classmethod
    def rejected(cls, error: ChapterFlowError) -> "TransitionResult":
        return cls(ok=False, error=error)


class ChapterWorkflow:
    """无状态的章节工作流，每个请求创建一个实例"""

    def __init__(
        self,
        db: AsyncSession,
        file_registry: Optional[FileRegistry] = None,
        users: Optional[UserManager] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = ChapterStore(db)
        self.files = file_registry or FileRegistry(db)
        self.users = users or default_user_manager
        self.clock = clock

    async def _load(self, chapter_id: str) -> Chapter:
        chapter = await self.store.get(chapter_id)
        if chapter is None:
            raise NotFound("章节", chapter_id)
        return chapter

    async def _check_writer(self, payload: TransitionPayload) -> None:
        writer_id = payload.metadata.get("writer_id")
        if writer_id and not await self.users.is_writer(writer_id):
            raise ValidationFailed("指定的作者不存在", field="writer_id")

    async def request_transition(
        self,
        chapter_id: str,
        kind: TransitionKind,
        actor: Actor,
        payload: Optional[TransitionPayload] = None,
    ) -> TransitionResult:
        """
        发起一次章节流转

        Args:
            chapter_id: 章节ID
            kind: 流转类型
            actor: 操作者
            payload: 正文或元数据

        Returns:
            TransitionResult；存储故障以 StorageFailure 异常抛出
        """
        payload = payload or TransitionPayload()
        try:
            current = await self._load(chapter_id)
            plan = apply_transition(current, kind, actor, payload, now=self.clock())
            if kind == TransitionKind.UPDATE_METADATA:
                await self._check_writer(payload)
        except (Unauthorized, GuardFailed, ValidationFailed, NotFound) as e:
            logger.info(f"流转被拒绝 [{kind.value}] chapter={chapter_id} actor={actor.user_id}({actor.role.value}): {e}")
            return TransitionResult.rejected(e)

        previous_status = current.status

        if plan.removes:
            affected = await self.store.conditional_delete(chapter_id, ChapterStatus.DRAFT)
        else:
            affected = await self.store.conditional_update(
                chapter_id, plan.guard, plan.patch, expected_writer_id=plan.owner_id
            )

        if affected == 0:
            # 区分"已被删除"和"状态已被他人改变"
            latest = await self.store.get(chapter_id)
            if latest is None:
                return TransitionResult.rejected(NotFound("章节", chapter_id))
            if plan.owner_id is not None and latest.writer_id != plan.owner_id:
                logger.warning(f"⚠️ 章节作者已变更 [{kind.value}] chapter={chapter_id} actor={actor.user_id}")
                return TransitionResult.rejected(
                    Unauthorized("章节已分配给其他作者", {"kind": kind.value})
                )
            logger.warning(
                f"⚠️ 条件写入未命中 [{kind.value}] chapter={chapter_id} "
                f"expected={plan.guard_values} actual={latest.status}"
            )
            return TransitionResult.rejected(
                GuardFailed(details={"status": latest.status, "expected": plan.guard_values})
            )

        if plan.removes:
            await self.files.purge_chapter(chapter_id)
            logger.info(f"🗑️ 章节已删除 chapter={chapter_id} actor={actor.user_id}")
            return TransitionResult.success(None)

        updated = await self._load(chapter_id)
        violations = invariant_violations(updated)
        if violations:
            logger.error(f"🚨 章节 {chapter_id} 状态字段不一致: {'; '.join(violations)}")

        logger.info(
            f"✅ 流转完成 [{kind.value}] chapter={chapter_id} "
            f"{previous_status} → {updated.status} actor={actor.user_id}({actor.role.value})"
        )
        return TransitionResult.success(updated)

    async def create_chapter(
        self,
        actor: Actor,
        chapter_code: str,
        title: str,
        order_number: Optional[int] = None,
        writer_id: Optional[str] = None,
    ) -> Chapter:
        """管理员新建章节，初始状态为 draft"""
        if actor.role != Role.ADMIN:
            raise Unauthorized("只有管理员可以新建章节")
        if not chapter_code or not chapter_code.strip():
            raise ValidationFailed("编号不能为空", field="chapter_code")
        if not title or not title.strip():
            raise ValidationFailed("标题不能为空", field="title")
        if order_number is not None and order_number < 0:
            raise ValidationFailed("排序序号必须是非负整数", field="order_number")
        writer_id = writer_id or None
        if writer_id and not await self.users.is_writer(writer_id):
            raise ValidationFailed("指定的作者不存在", field="writer_id")

        if order_number is None:
            order_number = await self.store.next_order_number()

        now = self.clock()
        chapter = Chapter(
            order_number=order_number,
            chapter_code=chapter_code.strip(),
            title=title.strip(),
            writer_id=writer_id,
            status=ChapterStatus.DRAFT.value,
            created_at=now,
            updated_at=now,
        )
        chapter = await self.store.insert(chapter)
        logger.info(f"📄 新建章节 {chapter.chapter_code} {chapter.title} (id={chapter.id})")
        return chapter

    async def list_chapters(
        self,
        actor: Actor,
        statuses: Optional[List[ChapterStatus]] = None,
        unassigned: bool = False,
    ) -> List[Chapter]:
        """按角色可见范围列出章节：作者只看自己的，编辑默认看工作队列，管理员看全部"""
        if actor.role == Role.WRITER:
            return await self.store.list(writer_id=actor.user_id, statuses=statuses)
        if actor.role == Role.EDITOR and statuses is None and not unassigned:
            statuses = list(EDITOR_QUEUE_STATUSES)
        return await self.store.list(unassigned=unassigned, statuses=statuses)

    async def get_chapter(self, chapter_id: str, actor: Actor) -> Chapter:
        """读取单个章节，作者只能读取分配给自己的章节"""
        chapter = await self._load(chapter_id)
        if actor.role == Role.WRITER and chapter.writer_id != actor.user_id:
            raise Unauthorized("只能查看分配给自己的章节")
        return chapter

    async def list_files(self, chapter_id: str, actor: Actor) -> List[ChapterFile]:
        await self.get_chapter(chapter_id, actor)
        return await self.files.list(chapter_id)

    async def add_file(self, chapter_id: str, actor: Actor, data: bytes, name: str) -> ChapterFile:
        """上传附件，章节确认后不可再添加"""
        chapter = await self._load(chapter_id)
        can_modify_files(chapter, actor)
        return await self.files.add(chapter_id, data, name)

    async def remove_file(self, file_id: str, actor: Actor) -> None:
        """删除附件，章节确认后不可再删除"""
        record = await self.files.get(file_id)
        if record is None:
            raise NotFound("附件", file_id)
        chapter = await self._load(record.chapter_id)
        can_modify_files(chapter, actor)
        await self.files.remove(file_id)
