"""章节存储 - 提供带状态守卫的条件更新/删除"""
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chapterflow.exceptions import StorageFailure
from chapterflow.logger import get_logger
from chapterflow.models.chapter import Chapter, ChapterFile
from chapterflow.models.enums import ChapterStatus

logger = get_logger(__name__)


def _status_values(statuses: Iterable[ChapterStatus]) -> List[str]:
    return sorted(ChapterStatus(s).value for s in statuses)


class ChapterStore:
    """章节存储，所有数据以数据库为唯一来源"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fail(self, action: str, error: SQLAlchemyError) -> None:
        logger.error(f"❌ 章节存储{action}失败: {str(error)}", exc_info=True)
        if self.db.in_transaction():
            await self.db.rollback()
        raise StorageFailure(f"章节存储{action}失败", {"error": type(error).__name__}) from error

    async def get(self, chapter_id: str) -> Optional[Chapter]:
        """读取章节的最新状态（覆盖会话中缓存的旧对象）"""
        try:
            result = await self.db.execute(
                select(Chapter)
                .where(Chapter.id == chapter_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("读取", e)

    async def list(
        self,
        writer_id: Optional[str] = None,
        unassigned: bool = False,
        statuses: Optional[Iterable[ChapterStatus]] = None,
    ) -> List[Chapter]:
        """按条件列出章节，按目录序号排序"""
        query = select(Chapter).execution_options(populate_existing=True)
        if writer_id is not None:
            query = query.where(Chapter.writer_id == writer_id)
        if unassigned:
            query = query.where(Chapter.writer_id.is_(None))
        if statuses is not None:
            query = query.where(Chapter.status.in_(_status_values(statuses)))
        query = query.order_by(Chapter.order_number, Chapter.chapter_code)

        try:
            result = await self.db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            await self._fail("查询", e)

    async def next_order_number(self) -> int:
        """新章节默认排在最后"""
        try:
            result = await self.db.execute(select(func.max(Chapter.order_number)))
            current_max = result.scalar_one_or_none()
            return (current_max or 0) + 1
        except SQLAlchemyError as e:
            await self._fail("查询", e)

    async def insert(self, chapter: Chapter) -> Chapter:
        try:
            self.db.add(chapter)
            await self.db.commit()
            await self.db.refresh(chapter)
            return chapter
        except SQLAlchemyError as e:
            await self._fail("插入", e)

    async def conditional_update(
        self,
        chapter_id: str,
        expected_statuses: Iterable[ChapterStatus],
        patch: Dict[str, Any],
        expected_writer_id: Optional[str] = None,
    ) -> int:
        """
        仅当存储中的状态仍在 expected_statuses 内时写入 patch

        给出 expected_writer_id 时，作者也必须仍是该用户

        Returns:
            受影响行数；0 表示章节不存在、状态或作者已被改变
        """
        expected = _status_values(expected_statuses)
        conditions = [Chapter.id == chapter_id, Chapter.status.in_(expected)]
        if expected_writer_id is not None:
            conditions.append(Chapter.writer_id == expected_writer_id)
        try:
            result = await self.db.execute(
                update(Chapter)
                .where(*conditions)
                .values(**patch)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._fail("更新", e)

        logger.debug(f"条件更新 chapter={chapter_id} expected={expected} rows={result.rowcount}")
        return result.rowcount

    async def conditional_delete(self, chapter_id: str, expected_status: ChapterStatus) -> int:
        """
        仅当状态等于 expected_status 时删除章节，同一事务内删除其附件记录

        Returns:
            删除的章节行数（0 或 1）
        """
        try:
            result = await self.db.execute(
                delete(Chapter)
                .where(Chapter.id == chapter_id, Chapter.status == ChapterStatus(expected_status).value)
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount
            if deleted:
                await self.db.execute(
                    delete(ChapterFile)
                    .where(ChapterFile.chapter_id == chapter_id)
                    .execution_options(synchronize_session=False)
                )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._fail("删除", e)

        logger.debug(f"条件删除 chapter={chapter_id} expected={expected_status} rows={deleted}")
        return deleted

