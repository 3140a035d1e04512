"""章节管理API"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List, Optional
from urllib.parse import quote

from chapterflow.database import get_db
from chapterflow.models.chapter import Chapter, ChapterFile
from chapterflow.models.enums import ChapterStatus
from chapterflow.schemas.chapter import (
    ChapterCreate,
    ChapterMetadataUpdate,
    ChapterResponse,
    ChapterListResponse,
    DiffResponse,
    FileResponse,
    ProgressResponse,
    TransitionRequest,
)
from chapterflow.services.diff import compare_bodies
from chapterflow.services.lifecycle import (
    Actor,
    TransitionKind,
    TransitionPayload,
    available_transitions,
)
from chapterflow.services.progress import summarize_progress
from chapterflow.services.workflow import ChapterWorkflow
from chapterflow.user_manager import user_manager
from chapterflow.api.users import require_login, require_staff
from chapterflow.logger import get_logger

router = APIRouter(prefix="/chapters", tags=["章节管理"])
logger = get_logger(__name__)


def get_workflow(db: AsyncSession = Depends(get_db)) -> ChapterWorkflow:
    return ChapterWorkflow(db)


def _to_response(
    chapter: Chapter,
    actor: Actor,
    files: List[ChapterFile],
    names: Dict[str, str],
) -> ChapterResponse:
    response = ChapterResponse.model_validate(chapter)
    response.writer_name = names.get(chapter.writer_id) if chapter.writer_id else None
    response.files = [FileResponse.model_validate(f) for f in files]
    response.available_actions = [kind.value for kind in available_transitions(chapter, actor)]
    return response


async def _build_responses(
    workflow: ChapterWorkflow,
    chapters: List[Chapter],
    actor: Actor,
) -> List[ChapterResponse]:
    files = await workflow.files.list_for_chapters([c.id for c in chapters])
    names = await user_manager.get_names(c.writer_id for c in chapters)
    return [_to_response(c, actor, files.get(c.id, []), names) for c in chapters]


async def _run_transition(
    workflow: ChapterWorkflow,
    chapter_id: str,
    kind: TransitionKind,
    actor: Actor,
    payload: TransitionPayload,
) -> Optional[Chapter]:
    result = await workflow.request_transition(chapter_id, kind, actor, payload)
    if not result.ok:
        raise result.error
    return result.chapter


@router.get("", response_model=ChapterListResponse, summary="获取章节列表")
async def list_chapters(
    status: Optional[List[ChapterStatus]] = Query(None, description="按状态过滤"),
    unassigned: bool = Query(False, description="只看未分配作者的章节"),
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    """
    按角色返回可见章节

    - 作者：只返回分配给自己的章节
    - 编辑：默认返回已提交之后的章节
    - 管理员：全部章节
    """
    chapters = await workflow.list_chapters(actor, statuses=status, unassigned=unassigned)
    items = await _build_responses(workflow, chapters, actor)
    return ChapterListResponse(total=len(items), items=items)


@router.get("/progress", response_model=ProgressResponse, summary="全书进度概览")
async def get_progress(
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    chapters = await workflow.store.list()
    names = await user_manager.get_names(c.writer_id for c in chapters)
    return summarize_progress(chapters, names)


@router.post("", response_model=ChapterResponse, status_code=201, summary="新建章节")
async def create_chapter(
    data: ChapterCreate,
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    """新建章节（仅管理员），初始状态为 draft"""
    chapter = await workflow.create_chapter(
        actor,
        chapter_code=data.chapter_code,
        title=data.title,
        order_number=data.order_number,
        writer_id=data.writer_id,
    )
    return (await _build_responses(workflow, [chapter], actor))[0]


@router.get("/{chapter_id}", response_model=ChapterResponse, summary="获取章节详情")
async def get_chapter(
    chapter_id: str,
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    chapter = await workflow.get_chapter(chapter_id, actor)
    return (await _build_responses(workflow, [chapter], actor))[0]


@router.post("/{chapter_id}/transitions", response_model=Optional[ChapterResponse], summary="发起章节流转")
async def request_transition(
    chapter_id: str,
    data: TransitionRequest,
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    """
    统一的流转入口：保存草稿、提交、校对、校对完成、确认、取消确认、修改元数据、删除

    状态已被他人修改时返回 409，客户端应重新加载章节后再操作。
    """
    payload = TransitionPayload(body=data.body, metadata=data.metadata)
    chapter = await _run_transition(workflow, chapter_id, data.kind, actor, payload)
    if chapter is None:
        return None
    return (await _build_responses(workflow, [chapter], actor))[0]


@router.patch("/{chapter_id}", response_model=ChapterResponse, summary="修改章节元数据")
async def update_chapter_metadata(
    chapter_id: str,
    data: ChapterMetadataUpdate,
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    """修改作者分配、排序、编号、标题（管理员、编辑）"""
    payload = TransitionPayload(metadata=data.model_dump(exclude_unset=True))
    chapter = await _run_transition(workflow, chapter_id, TransitionKind.UPDATE_METADATA, actor, payload)
    return (await _build_responses(workflow, [chapter], actor))[0]


@router.delete("/{chapter_id}", summary="删除章节")
async def delete_chapter(
    chapter_id: str,
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    """删除章节及其附件，仅限 draft 状态"""
    await _run_transition(workflow, chapter_id, TransitionKind.DELETE, actor, TransitionPayload())
    return {"message": "章节已删除", "id": chapter_id}


@router.get("/{chapter_id}/diff", response_model=DiffResponse, summary="原稿与校对稿对比")
async def get_chapter_diff(
    chapter_id: str,
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    chapter = await workflow.get_chapter(chapter_id, actor)
    return {"chapter_id": chapter.id, **compare_bodies(chapter.original_body, chapter.edited_body)}


@router.get("/{chapter_id}/export", response_class=PlainTextResponse, summary="导出章节正文")
async def export_chapter(
    chapter_id: str,
    actor: Actor = Depends(require_staff),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    """导出校对稿（没有校对稿时导出原稿）为 txt 文件"""
    chapter = await workflow.get_chapter(chapter_id, actor)
    body = chapter.edited_body if chapter.edited_body is not None else (chapter.original_body or "")
    filename = f"{chapter.chapter_code}_{chapter.title}.txt"
    logger.info(f"📤 导出章节: {filename} actor={actor.user_id}")
    return PlainTextResponse(
        body,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )
