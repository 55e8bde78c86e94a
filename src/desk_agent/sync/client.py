# src/desk_agent/sync/client.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..tasks.task_models import Task

logger = logging.getLogger(__name__)


class TaskSyncClient:
    """
    Companion-server sync for the task list.

    The server keeps one JSON array per account; pull/push move the whole array
    (last write wins). Failures are logged and reported as None/False, never raised.
    """

    def __init__(
        self,
        server_url: str,
        token: str,
        *,
        timeout_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._server_url = server_url.rstrip("/")
        self._token = token
        self._timeout = httpx.Timeout(timeout_seconds)
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self._server_url and self._token)

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        headers = {"Authorization": f"Bearer {self._token}"}
        url = self._server_url + path

        if self._http_client is not None:
            resp = await self._http_client.request(method, url, json=body, headers=headers, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.request(method, url, json=body, headers=headers)

        resp.raise_for_status()
        return resp.json() if resp.content else None

    async def pull_tasks(self) -> list[Task] | None:
        try:
            data = await self._request("GET", "/api/tasks")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Task pull failed: %s", e)
            return None

        if not isinstance(data, list):
            logger.warning("Task pull returned %s, expected a list", type(data).__name__)
            return None

        tasks = [Task.from_dict(raw) for raw in data if isinstance(raw, dict)]
        logger.info("Pulled %d tasks from %s", len(tasks), self._server_url)
        return [t for t in tasks if t.id]

    async def push_tasks(self, tasks: list[Task]) -> bool:
        try:
            await self._request("PUT", "/api/tasks", [t.to_dict() for t in tasks])
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Task push failed: %s", e)
            return False
        logger.info("Pushed %d tasks to %s", len(tasks), self._server_url)
        return True
