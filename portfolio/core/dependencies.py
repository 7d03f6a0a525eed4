"""
Core dependencies shared by the route modules
"""

from fastapi import Depends, HTTPException
from portfolio.core.dates import parse_local_date
from portfolio.database.supabase_client import get_service_supabase, get_supabase
from portfolio.modules.leaderboard.service import LeaderboardService, ScoreStore, get_score_store
from portfolio.modules.task_groups.service import TaskGroupService
from portfolio.modules.task_completions.service import TaskCompletionService
from supabase import Client
from typing import Optional
from datetime import date
import logging

logger = logging.getLogger(__name__)


def get_leaderboard_service(store: ScoreStore = Depends(get_score_store)) -> LeaderboardService:
    return LeaderboardService(store)


def get_task_group_service(supabase: Client = Depends(get_supabase)) -> TaskGroupService:
    return TaskGroupService(supabase)


def get_health_check_service(supabase: Client = Depends(get_service_supabase)) -> TaskGroupService:
    return TaskGroupService(supabase)


def get_task_completion_service(supabase: Client = Depends(get_supabase)) -> TaskCompletionService:
    return TaskCompletionService(supabase)


def parse_date_param(name: str, value: Optional[str]) -> Optional[date]:
    """Parse an optional YYYY-MM-DD query parameter, 400 on garbage"""
    if not value:
        return None
    try:
        return parse_local_date(value)
    except ValueError:
        logger.debug(f"Rejected {name} query parameter {value!r}")
        raise HTTPException(status_code=400, detail=f"Invalid {name}: expected YYYY-MM-DD")
