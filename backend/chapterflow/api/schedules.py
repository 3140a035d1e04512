"""制作日程API"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from chapterflow.database import get_db
from chapterflow.models.schedule import Schedule
from chapterflow.schemas.schedule import ScheduleResponse, ScheduleUpdate
from chapterflow.services.lifecycle import Actor
from chapterflow.api.users import require_admin, require_login
from chapterflow.logger import get_logger

router = APIRouter(prefix="/schedules", tags=["制作日程"])
logger = get_logger(__name__)


@router.get("", response_model=List[ScheduleResponse], summary="获取制作日程")
async def list_schedules(
    actor: Actor = Depends(require_login),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Schedule).order_by(Schedule.order_number))
    return result.scalars().all()


@router.put("/{order_number}", response_model=ScheduleResponse, summary="修改日程节点")
async def update_schedule(
    order_number: int,
    data: ScheduleUpdate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """修改截止日期或完成状态（仅管理员）"""
    result = await db.execute(select(Schedule).where(Schedule.order_number == order_number))
    schedule = result.scalar_one_or_none()
    if not schedule:
        raise HTTPException(status_code=404, detail="日程节点不存在")

    if data.due_date is not None:
        schedule.due_date = data.due_date
    if data.completed is not None:
        schedule.completed = data.completed
        schedule.completed_at = datetime.now() if data.completed else None

    await db.commit()
    await db.refresh(schedule)
    logger.info(f"📅 日程已更新: {schedule.title} → {schedule.due_date} (completed={schedule.completed})")
    return schedule
