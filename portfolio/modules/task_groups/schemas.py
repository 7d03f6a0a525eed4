from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime, date
from portfolio.core.dates import coerce_local_date


class TaskCreate(BaseModel):
    text: str = Field(min_length=1)
    type: str = "task"
    completed: bool = False


class TaskResponse(BaseModel):
    id: str
    group_id: str
    text: str
    type: str = "task"
    completed: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaskGroupCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str
    duration: int = Field(ge=1)
    start_date: date
    tasks: List[TaskCreate] = []

    @field_validator("start_date", mode="before")
    @classmethod
    def parse_start_date(cls, value):
        # YYYY-MM-DD is a local calendar day; full ISO timestamps keep only their date part
        if isinstance(value, (str, datetime)):
            return coerce_local_date(value)
        return value


class TaskGroupUpdate(TaskGroupCreate):
    id: str


class TaskGroupResponse(BaseModel):
    id: str
    name: str
    color: str
    duration: int
    start_date: date
    created_at: datetime
    updated_at: Optional[datetime] = None
    tasks: List[TaskResponse] = []

    class Config:
        from_attributes = True
