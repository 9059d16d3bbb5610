from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

INVALID_TOKEN_CODES = {
    "messaging/registration-token-not-registered",
    "messaging/invalid-registration-token",
}


@dataclass(slots=True)
class PushResult:
    success_count: int
    failure_count: int
    invalid_tokens: list[str] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.success_count > 0


class PushGateway:
    """Client for an HTTP push relay (`POST /send`, `POST /send-multicast`).

    Per-token rejections come back in the response body; transport failures
    and 5xx responses raise `httpx.HTTPError` for the caller to record.
    """

    def __init__(
        self,
        base_url: str | None,
        *,
        api_token: str | None = None,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return self.base_url is not None

    async def send(self, token: str, title: str, body: str, data: dict[str, str]) -> PushResult:
        if self.base_url is None:
            logger.info("push gateway not configured; skipping single send")
            return PushResult(success_count=0, failure_count=1)

        response = await self._post("/send", {"token": token, **_message(title, body, data)})
        if response.is_success:
            return PushResult(success_count=1, failure_count=0)

        code = _error_code(_json_body(response))
        logger.warning("push rejected status=%s code=%s", response.status_code, code)
        return PushResult(
            success_count=0,
            failure_count=1,
            invalid_tokens=[token] if code in INVALID_TOKEN_CODES else [],
        )

    async def send_multicast(self, tokens: Sequence[str], title: str, body: str, data: dict[str, str]) -> PushResult:
        if self.base_url is None:
            logger.info("push gateway not configured; skipping multicast to %s tokens", len(tokens))
            return PushResult(success_count=0, failure_count=len(tokens))

        response = await self._post("/send-multicast", {"tokens": list(tokens), **_message(title, body, data)})
        payload = _json_body(response)
        if not response.is_success:
            logger.warning("multicast rejected status=%s code=%s", response.status_code, _error_code(payload))
            return PushResult(success_count=0, failure_count=len(tokens))

        responses = payload.get("responses")
        if not isinstance(responses, list):
            responses = []
        invalid_tokens = [
            token
            for token, item in zip(tokens, responses)
            if isinstance(item, dict) and not item.get("success") and _error_code(item) in INVALID_TOKEN_CODES
        ]
        success_count = _as_int(payload.get("successCount"))
        if success_count is None:
            success_count = sum(1 for item in responses if isinstance(item, dict) and item.get("success"))
        failure_count = _as_int(payload.get("failureCount"))
        if failure_count is None:
            failure_count = len(tokens) - success_count
        logger.info("multicast sent: %s success, %s failed", success_count, failure_count)
        return PushResult(success_count=success_count, failure_count=failure_count, invalid_tokens=invalid_tokens)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        response = await self._client.post(f"{self.base_url}{path}", json=body, headers=self.headers)
        if response.status_code >= 500:
            response.raise_for_status()
        return response


def _message(title: str, body: str, data: dict[str, str]) -> dict[str, Any]:
    return {
        "notification": {"title": title, "body": body},
        "data": data,
        "webpush": {"fcmOptions": {"link": data.get("url") or "/notifications"}},
    }


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _error_code(payload: dict[str, Any]) -> str | None:
    error = payload.get("error")
    if isinstance(error, dict):
        code = error.get("code")
        return code if isinstance(code, str) else None
    return None


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
