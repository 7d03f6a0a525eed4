import logging
from typing import Any, Dict, List, Optional

import httpx

from portfolio.config import settings

logger = logging.getLogger(__name__)


class TrackerAPIClient:
    """Thin HTTP client for the Daily Tracker endpoints; errors propagate as httpx exceptions"""

    def __init__(self, base_url: Optional[str] = None, http: Optional[httpx.Client] = None):
        self.http = http or httpx.Client(
            base_url=base_url or settings.tracker_api_url,
            timeout=settings.http_timeout_seconds,
        )

    def _send(self, method: str, path: str, **kwargs) -> Any:
        response = self.http.request(method, path, **kwargs)
        response.raise_for_status()
        return response.json()

    def list_task_groups(self) -> List[Dict[str, Any]]:
        return self._send("GET", "/api/task-groups")

    def create_task_group(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._send("POST", "/api/task-groups", json=data)

    def update_task_group(self, group_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._send("PUT", "/api/task-groups", json={**data, "id": group_id})

    def delete_task_group(self, group_id: str) -> Dict[str, Any]:
        return self._send("DELETE", "/api/task-groups", params={"id": group_id})

    def list_task_completions(self, date: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"date": date} if date else None
        return self._send("GET", "/api/task-completions", params=params)

    def set_task_completion(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._send("POST", "/api/task-completions", json=data)

    def is_reachable(self) -> bool:
        try:
            self.http.get("/api/health")
        except httpx.TransportError:
            return False
        return True
