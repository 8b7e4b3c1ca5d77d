"""Push notification client for chat alerts"""

import httpx
from typing import Any, Dict
from finance_notes.domain.models import PushResult
from finance_notes.config import settings

INVALID_TOKEN = "INVALID_TOKEN"

# Provider error codes that mean the device token will never work again
_DEAD_TOKEN_ERRORS = {"UNREGISTERED", "INVALID_ARGUMENT", "NOT_FOUND"}


class PushClient:
    """Best-effort sender; reports failures in the result instead of raising"""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url or settings.push_api_url
        self.timeout = timeout or settings.push_timeout_seconds
        self.transport = transport

    async def send(self, token: str, title: str, body: str, data: Dict[str, Any]) -> PushResult:
        payload = {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": {key: str(value) for key, value in data.items()},
            }
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(self.url, json=payload)
            except httpx.TimeoutException:
                return PushResult(success=False, error="TIMEOUT")
            except httpx.RequestError:
                return PushResult(success=False, error="UNAVAILABLE")

        if response.is_success:
            return PushResult(success=True)
        return PushResult(success=False, error=_error_code(response))


def _error_code(response: httpx.Response) -> str:
    try:
        error = response.json().get("error") or {}
    except (ValueError, AttributeError):
        error = {}
    status = error.get("status") if isinstance(error, dict) else None
    details = error.get("details") if isinstance(error, dict) else None
    codes = {status}
    for detail in details or []:
        if isinstance(detail, dict):
            codes.add(detail.get("errorCode"))
    if codes & _DEAD_TOKEN_ERRORS:
        return INVALID_TOKEN
    return status or f"HTTP_{response.status_code}"
