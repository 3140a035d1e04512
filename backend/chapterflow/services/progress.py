"""全书进度概览"""
from typing import Dict, Iterable, List

from chapterflow.models.chapter import Chapter
from chapterflow.models.enums import ChapterStatus

# 已提交但尚未确认的状态
IN_PROGRESS_STATUSES = (ChapterStatus.SUBMITTED, ChapterStatus.EDITING, ChapterStatus.REVIEWED)


def summarize_progress(chapters: Iterable[Chapter], writer_names: Dict[str, str]) -> dict:
    """
    汇总各状态章节数和确认进度

    Args:
        chapters: 全部章节（按目录顺序）
        writer_names: 作者ID到显示名称的映射

    Returns:
        包含 total / counts / in_progress / confirmed / progress / chapters 的字典
    """
    counts = {status.value: 0 for status in ChapterStatus}
    rows: List[dict] = []

    for chapter in chapters:
        counts[ChapterStatus(chapter.status).value] += 1
        rows.append({
            "id": chapter.id,
            "order_number": chapter.order_number,
            "chapter_code": chapter.chapter_code,
            "title": chapter.title,
            "writer_id": chapter.writer_id,
            "writer_name": writer_names.get(chapter.writer_id) if chapter.writer_id else None,
            "status": chapter.status,
        })

    total = len(rows)
    confirmed = counts[ChapterStatus.CONFIRMED.value]
    return {
        "total": total,
        "counts": counts,
        "in_progress": sum(counts[s.value] for s in IN_PROGRESS_STATUSES),
        "confirmed": confirmed,
        "unassigned": sum(1 for row in rows if not row["writer_id"]),
        "progress": round(confirmed / total * 100) if total else 0,
        "chapters": rows,
    }
