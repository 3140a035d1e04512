"""
附件登记 - 章节附件的增删查

文件内容交给 blob 存储保存并返回可访问地址；登记表只记录章节与文件的关联，
不感知章节状态（状态策略由工作流在调用前检查）。
"""
import asyncio
import shutil
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from chapterflow.config import settings
from chapterflow.exceptions import NotFound, StorageFailure, ValidationFailed
from chapterflow.logger import get_logger
from chapterflow.models.chapter import ChapterFile

logger = get_logger(__name__)


class LocalBlobStore:
    """本地磁盘 blob 存储，对外返回 public_base_url 下的地址"""

    def __init__(self, root: Optional[Path] = None, public_base_url: Optional[str] = None):
        self.root = Path(root or settings.upload_dir)
        self.public_base_url = (public_base_url if public_base_url is not None else settings.public_base_url).rstrip("/")

    def _key_from_url(self, file_url: str) -> Optional[str]:
        prefix = f"{self.public_base_url}/"
        if not file_url.startswith(prefix):
            return None
        return file_url[len(prefix):]

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def put(self, chapter_id: str, file_name: str, data: bytes) -> str:
        """保存文件，路径为 <chapter_id>/<毫秒时间戳>_<文件名>，返回访问地址"""
        key = f"{chapter_id}/{int(time.time() * 1000)}_{file_name}"
        await asyncio.to_thread(self._write, self.root / key, data)
        return f"{self.public_base_url}/{key}"

    async def delete(self, file_url: str) -> bool:
        key = self._key_from_url(file_url)
        if key is None:
            logger.warning(f"⚠️ 无法从地址解析存储路径: {file_url}")
            return False
        path = self.root / key
        if not path.exists():
            return False
        await asyncio.to_thread(path.unlink)
        return True

    async def delete_chapter(self, chapter_id: str) -> None:
        """删除章节目录下的全部文件"""
        path = self.root / chapter_id
        if path.is_dir():
            await asyncio.to_thread(shutil.rmtree, path)


class FileRegistry:
    """章节附件登记表"""

    def __init__(self, db: AsyncSession, blob_store: Optional[LocalBlobStore] = None):
        self.db = db
        self.blob_store = blob_store or LocalBlobStore()

    @staticmethod
    def _clean_name(name: str) -> str:
        file_name = Path(name or "").name.strip()
        if not file_name:
            raise ValidationFailed("文件名不能为空", field="file_name")
        return file_name

    async def add(self, chapter_id: str, data: bytes, name: str) -> ChapterFile:
        """保存文件并登记到章节"""
        file_name = self._clean_name(name)
        if not data:
            raise ValidationFailed("不能上传空文件", field="file")
        if len(data) > settings.max_upload_bytes:
            raise ValidationFailed(
                f"文件超过大小限制 {settings.max_upload_bytes} 字节", field="file"
            )

        try:
            file_url = await self.blob_store.put(chapter_id, file_name, data)
        except OSError as e:
            logger.error(f"❌ 文件保存失败: {file_name}: {str(e)}", exc_info=True)
            raise StorageFailure("文件保存失败", {"file_name": file_name}) from e

        record = ChapterFile(
            chapter_id=chapter_id,
            file_url=file_url,
            file_name=file_name,
            file_size=len(data),
        )
        try:
            self.db.add(record)
            await self.db.commit()
            await self.db.refresh(record)
        except SQLAlchemyError as e:
            await self.db.rollback()
            await self.blob_store.delete(file_url)
            logger.error(f"❌ 附件登记失败: {file_name}: {str(e)}", exc_info=True)
            raise StorageFailure("附件登记失败", {"file_name": file_name}) from e

        logger.info(f"📎 附件已登记: chapter={chapter_id}, file={file_name}, size={len(data)}")
        return record

    async def get(self, file_id: str) -> Optional[ChapterFile]:
        try:
            result = await self.db.execute(select(ChapterFile).where(ChapterFile.id == file_id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageFailure("附件查询失败") from e

    async def remove(self, file_id: str) -> None:
        """删除附件记录及其存储的文件"""
        record = await self.get(file_id)
        if record is None:
            raise NotFound("附件", file_id)

        file_url = record.file_url
        try:
            await self.db.delete(record)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"❌ 附件删除失败: {file_id}: {str(e)}", exc_info=True)
            raise StorageFailure("附件删除失败", {"file_id": file_id}) from e

        await self.delete_blobs([file_url])
        logger.info(f"🗑️ 附件已删除: {file_id}")

    async def list(self, chapter_id: str) -> List[ChapterFile]:
        files = await self.list_for_chapters([chapter_id])
        return files.get(chapter_id, [])

    async def list_for_chapters(self, chapter_ids: Iterable[str]) -> Dict[str, List[ChapterFile]]:
        """批量查询多个章节的附件，按章节ID分组"""
        ids = list(chapter_ids)
        if not ids:
            return {}
        try:
            result = await self.db.execute(
                select(ChapterFile)
                .where(ChapterFile.chapter_id.in_(ids))
                .order_by(ChapterFile.uploaded_at, ChapterFile.file_name)
            )
        except SQLAlchemyError as e:
            raise StorageFailure("附件查询失败") from e

        grouped: Dict[str, List[ChapterFile]] = {}
        for record in result.scalars().all():
            grouped.setdefault(record.chapter_id, []).append(record)
        return grouped

    async def purge_chapter(self, chapter_id: str) -> None:
        """章节删除后清理其存储目录，包括删除过程中新上传、未登记的文件"""
        try:
            await self.blob_store.delete_chapter(chapter_id)
        except OSError as e:
            logger.warning(f"⚠️ 章节存储目录清理失败: {chapter_id}: {str(e)}")

    async def delete_blobs(self, file_urls: Iterable[str]) -> None:
        """删除存储中的文件；记录已删除时，文件清理失败只记录警告"""
        for file_url in file_urls:
            try:
                await self.blob_store.delete(file_url)
            except OSError as e:
                logger.warning(f"⚠️ 存储文件清理失败: {file_url}: {str(e)}")
