"""
Chat client -> relay server HTTP client.

Thin async wrapper over the relay's CRUD exchange: auth, conversations,
messages and file upload. The relay authenticates with a session cookie,
kept in the aiohttp cookie jar for the lifetime of the client.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp

from logging_setup import get_logger, Component as LogComponent


logger = get_logger(LogComponent.RELAY_CLIENT)


class RelayError(Exception):
    """Non-2xx answer from the relay, or the relay could not be reached."""

    def __init__(self, status: int, detail: str):
        super().__init__(f"{status}: {detail}")
        self.status = status
        self.detail = detail


class RelayClient:
    """
    Async client for the relay API.

    Usage:
        async with RelayClient("http://127.0.0.1:8000") as relay:
            await relay.login("ada", "secret")
            conversation = await relay.create_conversation("Hello")
    """

    def __init__(self, base_url: str, timeout_seconds: float = 60.0):
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "RelayClient":
        return self

    async def __aexit__(self, *_exc) -> None:
        await self.aclose()

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # unsafe=True keeps cookies for IP hosts such as 127.0.0.1
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                cookie_jar=aiohttp.CookieJar(unsafe=True),
            )
        return self._session

    async def aclose(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        endpoint = f"{self.base_url}{path}"
        start_ts = time.time()
        try:
            async with self._http().request(method, endpoint, **kwargs) as resp:
                latency_ms = int((time.time() - start_ts) * 1000)
                if resp.status == 204:
                    logger.debug("Relay response", method=method, endpoint=endpoint, status=204, latency_ms=latency_ms)
                    return None
                if not 200 <= resp.status < 300:
                    detail = await _error_detail(resp)
                    logger.warning(
                        "Relay request rejected",
                        method=method,
                        endpoint=endpoint,
                        status=resp.status,
                        detail=detail,
                        latency_ms=latency_ms,
                    )
                    raise RelayError(resp.status, detail)
                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    logger.warning("Relay response is not JSON", method=method, endpoint=endpoint, status=resp.status)
                    raise RelayError(resp.status, "invalid_response")
                logger.debug("Relay response", method=method, endpoint=endpoint, status=resp.status, latency_ms=latency_ms)
                return payload
        except aiohttp.ClientError as e:
            logger.warning(
                "Relay request failed",
                method=method,
                endpoint=endpoint,
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=int((time.time() - start_ts) * 1000),
            )
            raise RelayError(0, "relay_unreachable") from e

    # --- auth ---

    async def register(self, username: str, password: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/register", json={"username": username, "password": password})

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/login", json={"username": username, "password": password})

    async def logout(self) -> None:
        await self._request("POST", "/api/logout")

    async def current_user(self) -> Dict[str, Any]:
        return await self._request("GET", "/api/user")

    # --- conversations ---

    async def list_conversations(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/api/conversations")

    async def create_conversation(self, title: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/conversations", json={"title": title})

    async def delete_conversation(self, conversation_id: int) -> None:
        await self._request("DELETE", f"/api/conversations/{conversation_id}")

    # --- messages ---

    async def list_messages(self, conversation_id: int) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/api/conversations/{conversation_id}/messages")

    async def send_message(self, conversation_id: int, content: str) -> Dict[str, Any]:
        """Post a user message; returns {"user_message": ..., "ai_message": ...}."""
        return await self._request(
            "POST",
            f"/api/conversations/{conversation_id}/messages",
            json={"role": "user", "content": content},
        )

    # --- files ---

    async def upload_file(self, path: str | Path, content_type: str) -> Dict[str, Any]:
        path = Path(path)
        form = aiohttp.FormData()
        form.add_field("file", path.read_bytes(), filename=path.name, content_type=content_type)
        return await self._request("POST", "/api/files/upload", data=form)


async def _error_detail(resp: aiohttp.ClientResponse) -> str:
    """FastAPI's {"detail": ...} when present, else the status reason or body text."""
    try:
        payload = await resp.json(content_type=None)
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("detail"):
        return str(payload["detail"])
    if resp.reason:
        return resp.reason
    return (await resp.text()).strip() or "relay_error"
