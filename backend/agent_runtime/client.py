"""HTTP client for the worker-facing agent API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import AgentApiError

logger = logging.getLogger(__name__)

AGENT_KEY_HEADER = "X-Agent-Key"
API_PREFIX = "/api/agent"


class AgentApiClient:
    """
    Thin wrapper over `httpx.Client` speaking the `{"data": ...}` envelope.

    Every failure (transport error or non-2xx answer) surfaces as
    `AgentApiError` with the server's error message when one was sent.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={AGENT_KEY_HEADER: api_key, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> AgentApiClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, *, json: dict | None = None) -> Any:
        url = f"{API_PREFIX}{path}"
        try:
            response = self._client.request(method, url, json=json)
        except httpx.HTTPError as exc:
            raise AgentApiError(f"{method} {url} failed: {exc}") from exc

        if not response.is_success:
            raise AgentApiError(
                f"{method} {url} returned {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError as exc:
            raise AgentApiError(f"{method} {url} returned a non-JSON body", status_code=response.status_code) from exc
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    def register(
        self,
        *,
        agent_id: str | None,
        name: str | None,
        capacity: int,
        capabilities: list[str],
        system_info: dict,
    ) -> dict:
        payload: dict[str, Any] = {
            "capacity": capacity,
            "capabilities": capabilities,
            "system_info": system_info,
        }
        if agent_id:
            payload["agent_id"] = agent_id
        if name:
            payload["name"] = name
        return self._request("POST", "/register/", json=payload)

    def heartbeat(self, *, current_capacity: int, max_capacity: int, running_jobs: int, system_info: dict) -> dict:
        return self._request(
            "POST",
            "/heartbeat/",
            json={
                "current_capacity": current_capacity,
                "max_capacity": max_capacity,
                "running_jobs": running_jobs,
                "system_info": system_info,
            },
        )

    def poll(self) -> list[dict]:
        data = self._request("GET", "/jobs/poll/") or {}
        return list(data.get("jobs") or [])

    def claim(self, job_id: int) -> dict | None:
        """Claim a job; returns None when another agent got there first."""
        try:
            return self._request("POST", f"/jobs/{job_id}/claim/")
        except AgentApiError as exc:
            if exc.status_code == httpx.codes.CONFLICT:
                logger.info("Job %s was claimed by another agent", job_id)
                return None
            raise

    def start(self, job_id: int) -> dict:
        return self._request("POST", f"/jobs/{job_id}/start/")

    def report(self, job_id: int, payload: dict) -> dict:
        return self._request("POST", f"/jobs/{job_id}/result/", json=payload)

    def get_job(self, job_id: int) -> dict:
        return self._request("GET", f"/jobs/{job_id}/")

    def get_setting(self, key: str) -> Any:
        data = self._request("GET", f"/settings/{key}/") or {}
        return data.get("value")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("detail"):
            return str(body["detail"])
    return response.reason_phrase
