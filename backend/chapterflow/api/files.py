"""章节附件API"""
from fastapi import APIRouter, Depends, File, UploadFile
from typing import List

from chapterflow.schemas.chapter import FileResponse
from chapterflow.services.lifecycle import Actor
from chapterflow.services.workflow import ChapterWorkflow
from chapterflow.api.chapters import get_workflow
from chapterflow.api.users import require_login

router = APIRouter(tags=["章节附件"])


@router.get("/chapters/{chapter_id}/files", response_model=List[FileResponse], summary="获取章节附件")
async def list_files(
    chapter_id: str,
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    return await workflow.list_files(chapter_id, actor)


@router.post("/chapters/{chapter_id}/files", response_model=FileResponse, status_code=201, summary="上传附件")
async def upload_file(
    chapter_id: str,
    file: UploadFile = File(...),
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    """上传章节附件，章节确认后不可上传"""
    data = await file.read()
    return await workflow.add_file(chapter_id, actor, data, file.filename or "")


@router.delete("/files/{file_id}", summary="删除附件")
async def delete_file(
    file_id: str,
    actor: Actor = Depends(require_login),
    workflow: ChapterWorkflow = Depends(get_workflow),
):
    await workflow.remove_file(file_id, actor)
    return {"message": "附件已删除", "id": file_id}
