from supabase import Client
from portfolio.modules.task_groups.schemas import (
    TaskCreate, TaskGroupCreate, TaskGroupUpdate, TaskGroupResponse, TaskResponse
)
from portfolio.core.dates import local_date_to_utc, utc_date_to_local
from typing import Any, Dict, List
from fastapi import HTTPException
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class TaskGroupService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    @staticmethod
    def _to_response(group: Dict[str, Any], tasks: List[Dict[str, Any]]) -> TaskGroupResponse:
        """Convert the stored UTC start_date back to the local calendar day for clients"""
        return TaskGroupResponse(
            **{**group, "start_date": utc_date_to_local(group["start_date"])},
            tasks=[TaskResponse(**task) for task in tasks],
        )

    def _insert_tasks(self, group_id: str, tasks: List[TaskCreate]) -> List[Dict[str, Any]]:
        if not tasks:
            return []
        result = self.supabase.table("tasks").insert([
            {
                "group_id": group_id,
                "text": task.text,
                "type": task.type,
                "completed": task.completed,
            }
            for task in tasks
        ]).execute()
        return result.data or []

    def list_task_groups(self) -> List[TaskGroupResponse]:
        """All groups oldest first, each with its tasks oldest first"""
        try:
            groups_result = self.supabase.table("task_groups")\
                .select("*")\
                .order("created_at")\
                .execute()
            groups = groups_result.data or []
            if not groups:
                return []

            tasks_result = self.supabase.table("tasks")\
                .select("*")\
                .in_("group_id", [g["id"] for g in groups])\
                .order("created_at")\
                .execute()
            tasks_by_group: Dict[str, List[Dict[str, Any]]] = {}
            for task in tasks_result.data or []:
                tasks_by_group.setdefault(task["group_id"], []).append(task)

            return [self._to_response(g, tasks_by_group.get(g["id"], [])) for g in groups]
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error fetching task groups: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch task groups")

    def create_task_group(self, group_data: TaskGroupCreate) -> TaskGroupResponse:
        """Create a group and its tasks"""
        try:
            utc_start_date = local_date_to_utc(group_data.start_date)
            logger.info(f"Creating task group {group_data.name!r} starting {group_data.start_date} ({utc_start_date.isoformat()})")

            result = self.supabase.table("task_groups").insert({
                "name": group_data.name,
                "color": group_data.color,
                "duration": group_data.duration,
                "start_date": utc_start_date.isoformat(),
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create task group")

            group = result.data[0]
            tasks = self._insert_tasks(group["id"], group_data.tasks)
            return self._to_response(group, tasks)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating task group: {e}")
            raise HTTPException(status_code=500, detail="Failed to create task group")

    def update_task_group(self, group_data: TaskGroupUpdate) -> TaskGroupResponse:
        """Update group fields and replace its task list"""
        try:
            result = self.supabase.table("task_groups")\
                .update({
                    "name": group_data.name,
                    "color": group_data.color,
                    "duration": group_data.duration,
                    "start_date": local_date_to_utc(group_data.start_date).isoformat(),
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                })\
                .eq("id", group_data.id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Task group not found")

            # Delete existing tasks and create new ones
            self.supabase.table("tasks")\
                .delete()\
                .eq("group_id", group_data.id)\
                .execute()
            tasks = self._insert_tasks(group_data.id, group_data.tasks)
            return self._to_response(result.data[0], tasks)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating task group: {e}")
            raise HTTPException(status_code=500, detail="Failed to update task group")

    def delete_task_group(self, group_id: str) -> bool:
        """Delete group; tasks and their completions go with it via ON DELETE CASCADE"""
        try:
            result = self.supabase.table("task_groups")\
                .delete()\
                .eq("id", group_id)\
                .execute()
            return len(result.data or []) > 0
        except Exception as e:
            logger.error(f"Error deleting task group: {e}")
            raise HTTPException(status_code=500, detail="Failed to delete task group")

    def check_connection(self) -> int:
        """Cheap read used by the health probe; returns rows seen (0 or 1)"""
        result = self.supabase.table("task_groups").select("id").limit(1).execute()
        return len(result.data or [])
