from fastapi import APIRouter, Depends, HTTPException, Request
from portfolio.config import settings
from portfolio.core.dependencies import get_leaderboard_service
from portfolio.core.limiter import limiter
from portfolio.modules.leaderboard.schemas import (
    LeaderboardResponse, ScoreResultResponse, PlayerStatsResponse, MessageResponse
)
from portfolio.modules.leaderboard.service import INVALID_SCORE_MESSAGE, LeaderboardService
from datetime import datetime, timezone

router = APIRouter(tags=["leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(service: LeaderboardService = Depends(get_leaderboard_service)):
    """Top 10 scores"""
    return {"success": True, "data": service.get_leaderboard()}


@router.post("/scores", response_model=ScoreResultResponse)
@limiter.limit(settings.score_submit_rate_limit)
async def add_score(
    request: Request,
    service: LeaderboardService = Depends(get_leaderboard_service)
):
    """Add a new score and return the resulting rank"""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail=INVALID_SCORE_MESSAGE)
    return {"success": True, "data": service.add_score(payload)}


@router.get("/player/{name}", response_model=PlayerStatsResponse)
async def get_player_stats(name: str, service: LeaderboardService = Depends(get_leaderboard_service)):
    """Best, total and average score of a player"""
    return {"success": True, "data": service.get_player_stats(name)}


@router.delete("/scores", response_model=MessageResponse, response_model_exclude_none=True)
async def clear_scores(service: LeaderboardService = Depends(get_leaderboard_service)):
    """Clear all scores (admin endpoint)"""
    service.clear_scores()
    return {"success": True, "message": "All scores cleared"}


@router.get("/health", response_model=MessageResponse)
@limiter.exempt
async def health():
    return {
        "success": True,
        "message": "Tetris Leaderboard Server is running",
        "timestamp": datetime.now(timezone.utc),
    }
