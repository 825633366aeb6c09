# src/tasksync/remote/http_gateway.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..core.errors import NotFoundError, TransportError, ValidationError
from ..core.ports import TokenProvider
from ..tasks.task_models import CanonicalTask

logger = logging.getLogger(__name__)


def _static_token(token: str | None) -> TokenProvider:
    value = (token or "").strip() or None

    def _provider() -> str | None:
        return value

    return _provider


def _error_detail(response: httpx.Response) -> str:
    """Best-effort extraction of the server's error message."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip()[:200]
    if isinstance(data, dict):
        for key in ("message", "detail", "error"):
            val = data.get(key)
            if val:
                return str(val)
    return str(data)[:200]


class HttpTaskGateway:
    """
    RemoteGateway over the JSON tasks API.

    Endpoints (relative to base_url):
    - GET    tasks/                 -> list of records
    - POST   tasks/                 -> created record
    - PUT    tasks/{id}             -> updated record
    - DELETE tasks/{id}
    - PATCH  tasks/{id}/toggle-read -> toggled record

    The bearer token is read from token_provider on every request, so a token
    refreshed elsewhere is picked up without rebuilding the client.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        token_provider: TokenProvider | None = None,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base = (base_url or "").strip()
        if not base:
            raise RuntimeError("Tasks API base URL is not set. Set TASKSYNC_API_BASE_URL in your .env.")
        if not base.endswith("/"):
            base += "/"

        self._token_provider = token_provider or _static_token(token)
        self._client = httpx.AsyncClient(
            base_url=base,
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds)),
            transport=transport,
        )
        logger.info("HttpTaskGateway ready base_url=%s", base)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- low-level helpers ----

    def _auth_headers(self) -> dict[str, str]:
        try:
            token = self._token_provider()
        except Exception:
            logger.warning("Token provider failed; sending request without Authorization.", exc_info=True)
            return {}
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _request(self, method: str, path: str, *, task_id: str | None = None, json: Any = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json, headers=self._auth_headers())
        except httpx.HTTPError as e:
            logger.info("%s %s failed: %s", method, path, e.__class__.__name__)
            raise TransportError(f"{method} {path} failed: {e.__class__.__name__}") from e

        status = response.status_code
        if status == 404 and task_id is not None:
            raise NotFoundError(task_id, f"Task not found on server: {task_id}")
        if status in (400, 422):
            raise ValidationError(_error_detail(response) or "Request rejected by server.")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(response)
            logger.info("%s %s -> HTTP %s %s", method, path, status, detail)
            raise TransportError(f"HTTP {status}: {detail}" if detail else f"HTTP {status}", status_code=status) from e

        if status == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{method} {path}: response is not JSON", status_code=status) from e

    @staticmethod
    def _record(data: Any, *, status_code: int | None = None) -> CanonicalTask:
        try:
            return CanonicalTask.from_json(data)
        except (TypeError, ValueError) as e:
            raise TransportError(f"Malformed task record: {e}", status_code=status_code) from e

    @staticmethod
    def _payload(title: str, description: str) -> dict[str, str]:
        return {"task_title": title, "task_description": description}

    # ---- RemoteGateway ----

    async def list(self) -> list[CanonicalTask]:
        data = await self._request("GET", "tasks/")
        if not isinstance(data, list):
            raise TransportError("GET tasks/: expected a JSON array")
        return [self._record(item) for item in data]

    async def create(self, title: str, description: str) -> CanonicalTask:
        data = await self._request("POST", "tasks/", json=self._payload(title, description))
        return self._record(data)

    async def update(self, task_id: str, title: str, description: str) -> CanonicalTask:
        data = await self._request(
            "PUT", f"tasks/{task_id}", task_id=task_id, json=self._payload(title, description)
        )
        return self._record(data)

    async def delete(self, task_id: str) -> None:
        await self._request("DELETE", f"tasks/{task_id}", task_id=task_id)

    async def toggle(self, task_id: str) -> CanonicalTask:
        data = await self._request("PATCH", f"tasks/{task_id}/toggle-read", task_id=task_id)
        return self._record(data)
