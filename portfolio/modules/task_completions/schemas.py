from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime, date as CalendarDate
from portfolio.core.dates import coerce_local_date


class TaskCompletionUpdate(BaseModel):
    task_id: str
    completed: bool = True
    date: Optional[CalendarDate] = None  # defaults to today

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, value):
        if isinstance(value, (str, datetime)):
            return coerce_local_date(value)
        return value


class TaskCompletionResponse(BaseModel):
    id: str
    task_id: str
    completed_date: CalendarDate
    completed: bool
    created_at: datetime

    class Config:
        from_attributes = True
