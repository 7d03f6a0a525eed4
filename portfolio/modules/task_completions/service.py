from supabase import Client
from portfolio.modules.task_completions.schemas import TaskCompletionUpdate, TaskCompletionResponse
from portfolio.core.dates import get_local_today, local_date_to_utc, utc_date_to_local
from typing import Any, Dict, List, Optional
from fastapi import HTTPException
from datetime import date, datetime, timezone
import logging

logger = logging.getLogger(__name__)


def _to_response(row: Dict[str, Any]) -> TaskCompletionResponse:
    return TaskCompletionResponse(**{**row, "completed_date": utc_date_to_local(row["completed_date"])})


class TaskCompletionService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def list_completions(
        self,
        on_date: Optional[date] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[TaskCompletionResponse]:
        """Completions for one day, an inclusive range of days, or all of them"""
        try:
            query = self.supabase.table("task_completions").select("*")
            if on_date is not None:
                target = local_date_to_utc(on_date).isoformat()
                logger.debug(f"Querying completions for {on_date} ({target})")
                query = query.eq("completed_date", target)
            else:
                if start is not None:
                    query = query.gte("completed_date", local_date_to_utc(start).isoformat())
                if end is not None:
                    query = query.lte("completed_date", local_date_to_utc(end).isoformat())
            result = query.order("completed_date").execute()
            return [_to_response(row) for row in result.data or []]
        except Exception as e:
            logger.error(f"Error fetching task completions: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch task completions")

    def set_completion(self, data: TaskCompletionUpdate) -> TaskCompletionResponse:
        """Upsert the completion record of a task for one calendar day"""
        try:
            completed_date = local_date_to_utc(data.date or get_local_today()).isoformat()
            existing = self.supabase.table("task_completions")\
                .select("*")\
                .eq("task_id", data.task_id)\
                .eq("completed_date", completed_date)\
                .execute()

            if existing.data:
                result = self.supabase.table("task_completions")\
                    .update({
                        "completed": data.completed,
                        "created_at": datetime.now(timezone.utc).isoformat(),
                    })\
                    .eq("id", existing.data[0]["id"])\
                    .execute()
            else:
                result = self.supabase.table("task_completions").insert({
                    "task_id": data.task_id,
                    "completed": data.completed,
                    "completed_date": completed_date,
                }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to update task completion")
            return _to_response(result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating task completion: {e}")
            raise HTTPException(status_code=500, detail="Failed to update task completion")
