from __future__ import annotations

from typing import Any, Optional

import httpx

from services.notification_service import config
from services.notification_service.models import UserInfo


class ServiceClientError(Exception):
    """Raised when a downstream microservice call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _extract_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
        if isinstance(payload, dict):
            return payload.get("detail") or payload.get("message") or str(payload)
        return str(payload)
    except ValueError:
        return response.text or "Unexpected server error"


class UserDirectoryClient:
    """Resolves a library user to the guardian who receives their notifications."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or config.USER_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.SERVICE_CLIENT_TIMEOUT
        self.transport = transport

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            with httpx.Client(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = client.request(method, path, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _extract_detail(exc.response)
            raise ServiceClientError(detail, status_code=exc.response.status_code) from exc
        except httpx.RequestError as exc:
            raise ServiceClientError("User service temporarily unavailable") from exc
        if response.content:
            return response.json()
        return None

    def get_user_info_by_id(self, user_id: str) -> UserInfo:
        data = self._request("GET", f"/users/{user_id}")
        if not data:
            raise ServiceClientError(f"User {user_id} not found", status_code=404)
        try:
            return UserInfo(name=data["name"], guardian_email=data["guardian_email"])
        except (KeyError, TypeError) as exc:
            raise ServiceClientError(f"Malformed user payload for {user_id}") from exc
