from fastapi import APIRouter, Depends, HTTPException, Query
from portfolio.core.dependencies import get_health_check_service, get_task_group_service
from portfolio.core.limiter import limiter
from portfolio.modules.task_groups.schemas import TaskGroupCreate, TaskGroupUpdate, TaskGroupResponse
from portfolio.modules.task_groups.service import TaskGroupService
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["task-groups"])


@router.get("/task-groups", response_model=List[TaskGroupResponse])
async def list_task_groups(service: TaskGroupService = Depends(get_task_group_service)):
    """List task groups with their tasks"""
    return service.list_task_groups()


@router.post("/task-groups", response_model=TaskGroupResponse)
async def create_task_group(
    group_data: TaskGroupCreate,
    service: TaskGroupService = Depends(get_task_group_service)
):
    """Create a task group together with its tasks"""
    return service.create_task_group(group_data)


@router.put("/task-groups", response_model=TaskGroupResponse)
async def update_task_group(
    group_data: TaskGroupUpdate,
    service: TaskGroupService = Depends(get_task_group_service)
):
    """Update a task group and replace its tasks"""
    return service.update_task_group(group_data)


@router.delete("/task-groups")
async def delete_task_group(
    id: Optional[str] = Query(None),
    service: TaskGroupService = Depends(get_task_group_service)
):
    """Delete a task group (tasks are deleted by cascade)"""
    if not id:
        raise HTTPException(status_code=400, detail="Task group ID is required")
    service.delete_task_group(id)
    return {"success": True}


@router.get("/db-health")
@limiter.exempt
async def db_health(service: TaskGroupService = Depends(get_health_check_service)):
    """Readiness probe for the tracker database"""
    try:
        service.check_connection()
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        raise HTTPException(status_code=503, detail="Database connection failed")
    return {"success": True, "message": "Database connection successful"}
