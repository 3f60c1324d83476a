"""HTTP client for the gateway bridge endpoints."""

from __future__ import annotations

from typing import Any

import aiohttp

from .errors import (
    GatewayConnectionError,
    GatewayResponseError,
    GatewayTimeout,
)

DEFAULT_BRIDGE_URL = "http://localhost:12394"
DEFAULT_BRIDGE_MODEL = "openclaw"


class BridgeHttpClient:
    """HTTP client wrapper for the bridge's REST API."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str = DEFAULT_BRIDGE_URL,
        *,
        token: str | None = None,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._token = token

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    def _auth_headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def health(self) -> dict[str, Any]:
        """Fetch bridge health from /health."""
        url = self._url("/health")
        try:
            async with self._session.get(
                url,
                headers=self._auth_headers(),
                timeout=aiohttp.ClientTimeout(total=5),
            ) as resp:
                if resp.status != 200:
                    raise GatewayResponseError(
                        f"Bridge unavailable: {resp.status}", code=resp.status
                    )
                data = await resp.json()
                return data if isinstance(data, dict) else {}
        except TimeoutError as err:
            raise GatewayTimeout("Bridge health request timed out") from err
        except aiohttp.ClientError as err:
            raise GatewayConnectionError("Bridge health request failed") from err

    async def chat_completion(
        self,
        text: str,
        *,
        model: str = DEFAULT_BRIDGE_MODEL,
        timeout: float = 120.0,
    ) -> str:
        """Send one user message to /v1/chat/completions and return the reply text."""
        url = self._url("/v1/chat/completions")
        body = {
            "model": model,
            "messages": [{"role": "user", "content": text}],
            "stream": False,
        }
        try:
            async with self._session.post(
                url,
                json=body,
                headers=self._auth_headers(),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                if resp.status != 200:
                    raise GatewayResponseError(
                        f"Request failed: {resp.status}", code=resp.status
                    )
                data = await resp.json()
        except TimeoutError as err:
            raise GatewayTimeout("Chat completion request timed out") from err
        except aiohttp.ClientError as err:
            raise GatewayConnectionError("Chat completion request failed") from err

        return _reply_content(data)


def _reply_content(data: Any) -> str:
    """Extract choices[0].message.content, or an empty string."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""
