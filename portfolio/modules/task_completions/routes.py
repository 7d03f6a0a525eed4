from fastapi import APIRouter, Depends, HTTPException
from portfolio.core.dependencies import get_task_completion_service, parse_date_param
from portfolio.modules.task_completions.schemas import TaskCompletionUpdate, TaskCompletionResponse
from portfolio.modules.task_completions.service import TaskCompletionService
from typing import List, Optional

router = APIRouter(tags=["task-completions"])


@router.get("/task-completions", response_model=List[TaskCompletionResponse])
async def list_task_completions(
    date: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    service: TaskCompletionService = Depends(get_task_completion_service)
):
    """Completions for ?date=, for ?start=&end= (inclusive), or all"""
    on_date = parse_date_param("date", date)
    start_date = parse_date_param("start", start)
    end_date = parse_date_param("end", end)
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start must not be after end")
    return service.list_completions(on_date=on_date, start=start_date, end=end_date)


@router.post("/task-completions", response_model=TaskCompletionResponse)
async def set_task_completion(
    data: TaskCompletionUpdate,
    service: TaskCompletionService = Depends(get_task_completion_service)
):
    """Mark a task completed (or not) for a calendar day"""
    return service.set_completion(data)
