from pydantic import BaseModel, StrictInt, StrictStr, field_validator
from typing import List, Optional
from datetime import datetime


class ScoreSubmission(BaseModel):
    name: StrictStr
    score: StrictInt

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be empty")
        return value

    @field_validator("score")
    @classmethod
    def score_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("score must be a positive integer")
        return value


class ScoreEntry(BaseModel):
    id: str
    name: str
    score: int
    date: datetime

    @field_validator("id", mode="before")
    @classmethod
    def id_as_text(cls, value):
        # older score files carry numeric ids
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class RankedScore(ScoreEntry):
    rank: int


class LeaderboardResponse(BaseModel):
    success: bool = True
    data: List[RankedScore]


class ScoreResult(BaseModel):
    rank: int
    made_leaderboard: bool
    is_new_record: bool
    leaderboard: List[RankedScore]


class ScoreResultResponse(BaseModel):
    success: bool = True
    data: ScoreResult


class PlayerStats(BaseModel):
    name: str
    best_score: int = 0
    total_games: int = 0
    average_score: int = 0


class PlayerStatsResponse(BaseModel):
    success: bool = True
    data: PlayerStats


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    timestamp: Optional[datetime] = None
