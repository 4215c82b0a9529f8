# src/flowdesk/api/client.py

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from ..errors import (
    NotFoundError,
    PermissionDeniedError,
    ServerError,
    TrackerError,
    TransportError,
    UnauthenticatedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
TokenProvider = Callable[[], str | None]


def make_timeout(connect_s: float, read_s: float) -> httpx.Timeout:
    """Explicit timeouts so a dead service never hangs the console."""
    return httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s)


def _server_message(resp: httpx.Response) -> str | None:
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        msg = body.get("message") or body.get("error")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return None


def error_for_response(resp: httpx.Response) -> TrackerError:
    """Classify a non-2xx response into the client's error taxonomy."""
    status = resp.status_code
    message = _server_message(resp)

    if status == 401:
        return UnauthenticatedError(message, status_code=status)
    if status == 403:
        return PermissionDeniedError(message, status_code=status)
    if status == 404:
        return NotFoundError(message, status_code=status)
    if 400 <= status < 500:
        return ValidationError(message, status_code=status)
    return ServerError(message, status_code=status)


class TrackerClient:
    """
    Async HTTP client for the tracker service.

    - one method per endpoint; JSON in, JSON out
    - every call after login carries "Authorization: Bearer <token>"
      (the token is read on each request, so logout/login take effect at once)
    - no automatic retries: a failed request is reported once
    """

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: TokenProvider,
        timeout: httpx.Timeout | float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
        on_unauthorized: Callable[[], None] | None = None,
    ) -> None:
        self._token_provider = token_provider
        # Called when the service rejects the bearer token (401 on an authenticated call).
        self._on_unauthorized = on_unauthorized
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> TrackerClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ---- low-level helpers ----

    def _auth_headers(self) -> dict[str, str]:
        token = self._token_provider()
        if not token:
            raise UnauthenticatedError()
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Payload | None = None,
        params: dict[str, str] | None = None,
        auth: bool = True,
    ) -> Any:
        headers = self._auth_headers() if auth else {}
        try:
            resp = await self._http.request(method, path, json=json, params=params or None, headers=headers)
        except httpx.TimeoutException as e:
            logger.info("%s %s timed out", method, path)
            raise TransportError("The service took too long to respond.") from e
        except httpx.TransportError as e:
            logger.info("%s %s failed: %s", method, path, e.__class__.__name__)
            raise TransportError() from e

        if resp.is_error:
            err = error_for_response(resp)
            logger.info("%s %s -> %s (%s)", method, path, resp.status_code, err.__class__.__name__)
            if auth and isinstance(err, UnauthenticatedError) and self._on_unauthorized is not None:
                self._on_unauthorized()
            raise err

        logger.debug("%s %s -> %s", method, path, resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise ServerError("The service sent an unreadable response.") from e

    # ---- auth / org ----

    async def login(self, *, email: str, password: str) -> Payload:
        return await self._request("POST", "/auth/login", json={"email": email, "password": password}, auth=False)

    async def register(self, *, name: str, email: str, password: str, org_name: str) -> Payload:
        body = {"name": name, "email": email, "password": password, "orgName": org_name}
        return await self._request("POST", "/auth/register", json=body, auth=False)

    async def join_org(self, *, name: str, email: str, password: str, org_name: str) -> Payload:
        body = {"name": name, "email": email, "password": password, "orgName": org_name}
        return await self._request("POST", "/org/join", json=body, auth=False)

    async def list_members(self) -> list[Payload]:
        return await self._request("GET", "/org/members") or []

    # ---- dashboard ----

    async def get_dashboard(self) -> Payload:
        return await self._request("GET", "/dashboard") or {}

    # ---- projects ----

    async def list_projects(self) -> list[Payload]:
        return await self._request("GET", "/projects") or []

    async def get_project(self, project_id: str) -> Payload:
        return await self._request("GET", f"/projects/{project_id}")

    async def create_project(self, fields: Payload) -> Payload:
        return await self._request("POST", "/projects", json=fields)

    async def update_project(self, project_id: str, fields: Payload) -> Payload:
        return await self._request("PATCH", f"/projects/{project_id}", json=fields)

    async def delete_project(self, project_id: str) -> None:
        await self._request("DELETE", f"/projects/{project_id}")

    # ---- tasks ----

    async def list_tasks(self, query: dict[str, str] | None = None) -> list[Payload]:
        return await self._request("GET", "/tasks", params=query) or []

    async def create_task(self, fields: Payload) -> Payload:
        return await self._request("POST", "/tasks", json=fields)

    async def update_task(self, task_id: str, fields: Payload) -> Payload:
        return await self._request("PATCH", f"/tasks/{task_id}", json=fields)

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}")
