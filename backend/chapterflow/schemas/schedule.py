"""日程相关的Pydantic模型"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import date, datetime


class ScheduleResponse(BaseModel):
    id: str
    title: str
    due_date: date
    order_number: int
    completed: bool = False
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScheduleUpdate(BaseModel):
    """修改日程的请求模型（仅管理员）"""
    due_date: Optional[date] = Field(None, description="截止日期")
    completed: Optional[bool] = Field(None, description="是否已完成")
