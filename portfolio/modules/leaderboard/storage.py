import json
import logging
import threading
from pathlib import Path
from typing import List, Dict, Any

logger = logging.getLogger(__name__)


def is_valid_record(record: Any) -> bool:
    """A stored score needs a text name and a whole-number score"""
    if not isinstance(record, dict):
        return False
    score = record.get("score")
    return (
        isinstance(record.get("name"), str)
        and isinstance(score, int)
        and not isinstance(score, bool)
        and record.get("id") is not None
        and isinstance(record.get("date"), str)
    )


class MemoryScoreStore:
    """Scores held in process memory; lost on restart (serverless deployments)."""

    def __init__(self):
        self._scores: List[Dict[str, Any]] = []
        self.lock = threading.Lock()

    def read_scores(self) -> List[Dict[str, Any]]:
        return [dict(s) for s in self._scores]

    def write_scores(self, scores: List[Dict[str, Any]]) -> bool:
        self._scores = [dict(s) for s in scores]
        return True


class JsonFileScoreStore:
    """Scores persisted as a JSON array in a single file."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.lock = threading.Lock()

    def initialize(self) -> None:
        """Create the scores file with an empty array if it doesn't exist"""
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps([]))
        logger.info(f"Created scores file {self.path}")

    def read_scores(self) -> List[Dict[str, Any]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            logger.error(f"Error reading scores from {self.path}: {e}")
            return []
        if not isinstance(data, list):
            logger.error(f"Scores file {self.path} does not hold a list, ignoring it")
            return []
        records = [r for r in data if is_valid_record(r)]
        if len(records) != len(data):
            logger.warning(f"Skipped {len(data) - len(records)} malformed score record(s) in {self.path}")
        return records

    def write_scores(self, scores: List[Dict[str, Any]]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(scores, indent=2), encoding="utf-8")
            return True
        except OSError as e:
            logger.error(f"Error writing scores to {self.path}: {e}")
            return False
