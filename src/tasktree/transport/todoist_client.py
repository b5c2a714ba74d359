# src/tasktree/transport/todoist_client.py

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import httpx

from ..core.errors import TransportError
from ..core.models import BulkPayload

logger = logging.getLogger(__name__)

DEPRECATED_ID_ERROR = "The ID provided was deprecated and cannot be used with this version of the API"


class TodoistClient:
    """
    Minimal async REST client for the bulk load and task completion.

    - bearer-token auth
    - cursor pagination for list endpoints
    - a deprecated project id is translated via id_mappings and retried once
    - non-2xx responses raise TransportError

    `transport` is passed straight to httpx (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token or not token.strip():
            raise ValueError("API token is required")

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token.strip()}"},
            timeout=httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds)),
            transport=transport,
        )
        # legacy project id -> current id, learned from id_mappings
        self._project_aliases: dict[str, str] = {}

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- low-level helpers ----

    async def _get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def _post(self, path: str, *, json_body: dict[str, Any] | None = None) -> Any:
        return await self._request("POST", path, json_body=json_body)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        try:
            resp = await self._client.request(method, path, params=params, json=json_body)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e.__class__.__name__}") from e

        if resp.is_success:
            # close/reopen answer 204 with no body
            if not resp.content:
                return None
            try:
                return resp.json()
            except ValueError as e:
                raise TransportError(f"{method} {path}: response is not JSON", status=resp.status_code) from e

        try:
            body: Any = resp.json()
        except ValueError:
            body = resp.text
        message = body.get("error") if isinstance(body, dict) and body.get("error") else resp.reason_phrase
        raise TransportError(
            f"{method} {path} -> {resp.status_code}: {message}",
            status=resp.status_code,
            body=body,
        )

    async def _get_paginated(self, path: str, *, params: dict[str, Any] | None = None) -> list[Any]:
        """
        Follow `next_cursor` until it is null.

        A page without a `results` list ends the walk with an empty result.
        """
        results: list[Any] = []
        cursor: str | None = None

        while True:
            query = dict(params or {})
            if cursor:
                query["cursor"] = cursor

            page = await self._get(path, params=query)
            if not isinstance(page, dict) or not isinstance(page.get("results"), list):
                logger.warning("Unexpected page shape from %s; treating as empty", path)
                return []

            results.extend(page["results"])
            cursor = page.get("next_cursor")
            if cursor is None:
                return results

    # ---- public API ----

    async def get_project(self, project_id: str) -> dict[str, Any]:
        return await self._get(f"/api/v1/projects/{project_id}")

    async def get_sections(self, project_id: str) -> list[dict[str, Any]]:
        return await self._get_paginated("/api/v1/sections", params={"project_id": project_id})

    async def get_tasks(self, project_id: str) -> list[dict[str, Any]]:
        return await self._get_paginated("/api/v1/tasks", params={"project_id": project_id})

    async def get_id_mappings(self, object_name: str, ids: list[str]) -> list[dict[str, Any]]:
        """Translate legacy ids: [{"old_id": ..., "new_id": ...}, ...]."""
        data = await self._get(f"/api/v1/id_mappings/{object_name}/{','.join(ids)}")
        return data if isinstance(data, list) else []

    async def close_task(self, task_id: str) -> None:
        if not task_id:
            raise TransportError("task_id is required")
        await self._post(f"/api/v1/tasks/{task_id}/close")
        logger.info("Closed task id=%s", task_id)

    async def fetch_bulk(self, project_id: str) -> BulkPayload:
        if not project_id:
            raise TransportError("project_id is required (set TASKTREE_PROJECT_ID)")

        project_id = self._project_aliases.get(project_id, project_id)
        try:
            project = await self.get_project(project_id)
        except TransportError as e:
            new_id = await self._resolve_deprecated_project_id(project_id, e)
            self._project_aliases[project_id] = new_id
            project_id = new_id
            project = await self.get_project(project_id)

        sections = await self.get_sections(project_id)
        tasks = await self.get_tasks(project_id)
        logger.info(
            "Fetched project=%s sections=%d tasks=%d",
            project_id,
            len(sections),
            len(tasks),
        )
        return BulkPayload.from_dict({"project": project, "sections": sections, "tasks": tasks})

    async def _resolve_deprecated_project_id(self, project_id: str, error: TransportError) -> str:
        """
        Map a legacy project id to its current id.

        Re-raises `error` unless the API flagged the id as deprecated and a
        mapping exists.
        """
        body = error.body
        if not (isinstance(body, dict) and body.get("error") == DEPRECATED_ID_ERROR):
            raise error

        mappings = await self.get_id_mappings("projects", [project_id])
        new_id = next(
            (str(m["new_id"]) for m in mappings if isinstance(m, dict) and m.get("new_id") is not None),
            None,
        )
        if new_id is None:
            raise error

        logger.info("Translated deprecated project id %s -> %s", project_id, new_id)
        return new_id


class OfflineTransport:
    """
    Offline transport used for demos when no API token is configured.

    Serves the bulk payload from a local JSON file; without a file, an empty project.
    """

    def __init__(self, payload_path: Path | None = None, *, project_name: str = "Offline") -> None:
        self._payload_path = payload_path
        self._project_name = project_name

    async def fetch_bulk(self, project_id: str) -> BulkPayload:
        if self._payload_path is None:
            return BulkPayload.from_dict({"project": {"id": project_id, "name": self._project_name}})

        try:
            data = json.loads(self._payload_path.read_text("utf-8"))
        except (OSError, ValueError) as e:
            raise TransportError(f"Cannot read offline payload {self._payload_path}: {e}") from e

        if not isinstance(data, dict):
            raise TransportError(f"Offline payload {self._payload_path} is not a JSON object")
        return BulkPayload.from_dict(data)

    async def close_task(self, task_id: str) -> None:
        # Nothing upstream to close; the caller still removes the task locally.
        logger.info("Offline: task %s closed locally only", task_id)

    async def aclose(self) -> None:
        return
