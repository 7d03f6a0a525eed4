"""
Game-side leaderboard client.

Talks to the leaderboard API and, when the server cannot be reached, keeps
playing against a local JSON backup of the top scores so a finished game
never loses its result.
"""

import json
import logging
import uuid
from urllib.parse import quote
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from portfolio.config import settings

logger = logging.getLogger(__name__)


class LeaderboardUnavailable(Exception):
    """Raised when neither the server nor the local backup can serve a request."""


class ScoreClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        backup_file: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        max_scores: Optional[int] = None,
    ):
        self.base_url = (base_url or settings.leaderboard_api_url).rstrip("/")
        self.backup_path = Path(backup_file or settings.scores_backup_file)
        self.max_scores = max_scores or settings.leaderboard_size
        self.http = http or httpx.Client(timeout=settings.http_timeout_seconds)
        logger.info(f"ScoreClient initialized with API URL: {self.base_url}")

    def _request(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.http.request(method, url, json=payload)
        except httpx.TransportError as e:
            logger.warning(f"Server unavailable at {self.base_url} ({e}), falling back to local backup")
            return self._fallback(method, endpoint, payload)

        data = response.json()
        if response.is_error:
            message = data.get("detail") or data.get("error") or f"HTTP {response.status_code}"
            logger.error(f"API request failed for {url}: {message}")
            raise ValueError(message)
        return data

    def _read_backup(self) -> List[Dict[str, Any]]:
        try:
            scores = json.loads(self.backup_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read score backup {self.backup_path}: {e}")
            return []
        return scores if isinstance(scores, list) else []

    def _ranked(self, scores: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [{**s, "rank": i + 1} for i, s in enumerate(scores[: self.max_scores])]

    def _fallback(self, method: str, endpoint: str, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if endpoint == "/leaderboard" and method == "GET":
            return {"success": True, "data": self._ranked(self._read_backup())}

        if endpoint == "/scores" and method == "POST":
            entry = {
                "id": uuid.uuid4().hex,
                "name": payload["name"],
                "score": payload["score"],
                "date": datetime.now(timezone.utc).isoformat(),
            }
            scores = self._read_backup()
            scores.append(entry)
            scores.sort(key=lambda s: s["score"], reverse=True)
            top_scores = scores[: self.max_scores]
            try:
                self.backup_path.write_text(json.dumps(top_scores, indent=2), encoding="utf-8")
            except OSError as e:
                logger.error(f"Local score backup failed: {e}")
                raise LeaderboardUnavailable(str(e))
            rank = next((i + 1 for i, s in enumerate(top_scores) if s["id"] == entry["id"]), -1)
            return {
                "success": True,
                "data": {
                    "rank": rank,
                    "made_leaderboard": rank > 0,
                    "is_new_record": rank == 1,
                    "leaderboard": self._ranked(top_scores),
                },
            }

        raise LeaderboardUnavailable(f"{method} {endpoint} is not supported in fallback mode")

    def get_leaderboard(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/leaderboard")["data"]

    def add_score(self, player_name: str, score: int) -> Dict[str, Any]:
        return self._request("POST", "/scores", {"name": player_name, "score": score})["data"]

    def get_player_stats(self, player_name: str) -> Dict[str, Any]:
        return self._request("GET", f"/player/{quote(player_name, safe='')}")["data"]

    def would_make_leaderboard(self, score: int) -> bool:
        leaderboard = self.get_leaderboard()
        if len(leaderboard) < self.max_scores:
            return True
        return score > leaderboard[-1]["score"]

    def clear_scores(self) -> None:
        self._request("DELETE", "/scores")

    def get_player_best_score(self, player_name: str) -> int:
        try:
            return self.get_player_stats(player_name)["best_score"]
        except (ValueError, LeaderboardUnavailable) as e:
            logger.warning(f"Could not fetch best score for {player_name}: {e}")
            return 0

    def check_server_health(self) -> bool:
        try:
            response = self.http.get(f"{self.base_url}/health")
        except httpx.TransportError:
            return False
        return response.is_success
