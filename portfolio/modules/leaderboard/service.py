from fastapi import HTTPException
from pydantic import ValidationError
from portfolio.config import settings
from portfolio.modules.leaderboard.schemas import (
    ScoreSubmission, RankedScore, ScoreResult, PlayerStats
)
from portfolio.modules.leaderboard.storage import JsonFileScoreStore, MemoryScoreStore
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
import logging
import uuid

logger = logging.getLogger(__name__)

ScoreStore = Union[JsonFileScoreStore, MemoryScoreStore]

INVALID_SCORE_MESSAGE = (
    "Invalid score data. Name must be a non-empty string and score must be a positive integer."
)

_store: Optional[ScoreStore] = None


def create_score_store() -> ScoreStore:
    """Build the store selected by LEADERBOARD_BACKEND"""
    if settings.leaderboard_backend == "memory":
        logger.info("Leaderboard using in-memory score store")
        return MemoryScoreStore()
    store = JsonFileScoreStore(settings.scores_file)
    store.initialize()
    logger.info(f"Leaderboard using JSON file score store at {settings.scores_file}")
    return store


def get_score_store() -> ScoreStore:
    global _store
    if _store is None:
        _store = create_score_store()
    return _store


def validate_score_data(data: Any) -> ScoreSubmission:
    """Reject anything but an object with a non-blank string name and a positive integer score."""
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail=INVALID_SCORE_MESSAGE)
    try:
        return ScoreSubmission.model_validate(data)
    except ValidationError:
        raise HTTPException(status_code=400, detail=INVALID_SCORE_MESSAGE)


def rank_scores(scores: List[Dict[str, Any]], limit: int) -> List[RankedScore]:
    ranked: List[RankedScore] = []
    for entry in scores:
        if len(ranked) >= limit:
            break
        try:
            ranked.append(RankedScore(**entry, rank=len(ranked) + 1))
        except (ValidationError, TypeError) as e:
            logger.warning(f"Skipping unreadable score record {entry.get('id')!r}: {e}")
    return ranked


class LeaderboardService:
    def __init__(self, store: ScoreStore):
        self.store = store
        self.size = settings.leaderboard_size
        self.buffer = max(settings.leaderboard_buffer, settings.leaderboard_size)

    def get_leaderboard(self) -> List[RankedScore]:
        """Top scores, highest first, with 1-based ranks"""
        try:
            scores = self.store.read_scores()
            return rank_scores(scores, self.size)
        except Exception as e:
            logger.error(f"Error getting leaderboard: {e}")
            raise HTTPException(status_code=500, detail="Failed to retrieve leaderboard")

    def add_score(self, data: Any) -> ScoreResult:
        """Validate and insert a score, keep the list sorted and bounded, report where it landed"""
        submission = validate_score_data(data)
        new_score = {
            "id": uuid.uuid4().hex,
            "name": submission.name.strip()[: settings.max_name_length],
            "score": submission.score,
            "date": datetime.now(timezone.utc).isoformat(),
        }
        try:
            with self.store.lock:
                scores = self.store.read_scores()
                scores.append(new_score)
                # sort is stable, so earlier submissions keep their place on ties
                scores.sort(key=lambda s: s["score"], reverse=True)
                top_scores = scores[: self.buffer]
                saved = self.store.write_scores(top_scores)
        except Exception as e:
            logger.error(f"Error adding score: {e}")
            raise HTTPException(status_code=500, detail="Failed to add score")

        if not saved:
            raise HTTPException(status_code=500, detail="Failed to save score")

        leaderboard = rank_scores(top_scores, self.size)
        rank = next((entry.rank for entry in leaderboard if entry.id == new_score["id"]), -1)
        logger.info(f"Score {new_score['score']} submitted by {new_score['name']} (rank {rank})")
        return ScoreResult(
            rank=rank,
            made_leaderboard=rank > 0,
            is_new_record=rank == 1,
            leaderboard=leaderboard,
        )

    def get_player_stats(self, name: str) -> PlayerStats:
        """Best, count and rounded average of the scores still on record for a player"""
        player_name = name.strip().lower()
        if not player_name:
            raise HTTPException(status_code=400, detail="Player name is required")
        try:
            scores = self.store.read_scores()
        except Exception as e:
            logger.error(f"Error getting player stats: {e}")
            raise HTTPException(status_code=500, detail="Failed to retrieve player stats")

        player_scores = [s["score"] for s in scores if s["name"].lower() == player_name]
        if not player_scores:
            return PlayerStats(name=name)
        return PlayerStats(
            name=name,
            best_score=max(player_scores),
            total_games=len(player_scores),
            average_score=int(sum(player_scores) / len(player_scores) + 0.5),
        )

    def clear_scores(self) -> None:
        with self.store.lock:
            saved = self.store.write_scores([])
        if not saved:
            raise HTTPException(status_code=500, detail="Failed to clear scores")
        logger.info("All scores cleared")
