"""
Relay -> LLM provider client.

Calls the Anthropic Messages API for replies and the Files API for upload
passthrough. One short-lived aiohttp session per call.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from logging_setup import get_logger, Component as LogComponent
from .config import RelayConfig
from .errors import AssistantError

API_VERSION = "2023-06-01"
FILES_BETA = "files-api-2025-04-14"
FALLBACK_REPLY = "Sorry, I could not generate a response."


logger = get_logger(LogComponent.ASSISTANT)


@dataclass
class AssistantReply:
    text: str
    model: str
    thinking: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)


def build_request(config: RelayConfig, history: List[Dict[str, str]]) -> Dict[str, Any]:
    """Messages API request body for the given user/assistant history."""
    body: Dict[str, Any] = {
        "model": config.model,
        "max_tokens": config.max_tokens,
        "system": config.system_prompt,
        "messages": [
            {"role": m["role"], "content": m["content"]}
            for m in history
            if m["role"] in ("user", "assistant")
        ],
    }
    if config.thinking_budget_tokens:
        body["thinking"] = {"type": "enabled", "budget_tokens": config.thinking_budget_tokens}
    return body


def parse_reply(payload: Dict[str, Any], default_model: str) -> AssistantReply:
    """Collect text and thinking blocks from a Messages API response."""
    texts: List[str] = []
    thoughts: List[str] = []
    for block in payload.get("content") or []:
        if block.get("type") == "text":
            texts.append(block.get("text", ""))
        elif block.get("type") == "thinking":
            thoughts.append(block.get("thinking", ""))

    text = "".join(texts)
    return AssistantReply(
        text=text if text.strip() else FALLBACK_REPLY,
        model=payload.get("model") or default_model,
        thinking="\n\n".join(thoughts) if thoughts else None,
        usage=payload.get("usage") or {},
    )


class AssistantClient:
    """LLM provider client."""

    def __init__(self, config: RelayConfig):
        self.config = config
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout_seconds)

    def _headers(self, *, beta: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "x-api-key": self.config.anthropic_api_key,
            "anthropic-version": API_VERSION,
        }
        if beta:
            headers["anthropic-beta"] = beta
        return headers

    async def complete(self, history: List[Dict[str, str]], *, session_id: str = "") -> AssistantReply:
        """Send the conversation history and return the assistant reply."""
        endpoint = f"{self.config.anthropic_base_url}/v1/messages"
        body = build_request(self.config, history)
        start_ts = time.time()

        async with aiohttp.ClientSession(timeout=self._timeout) as s:
            async with s.post(endpoint, json=body, headers=self._headers()) as resp:
                latency_ms = int((time.time() - start_ts) * 1000)
                payload = await _read_payload(resp)

        reply = parse_reply(payload, self.config.model)
        logger.info(
            "Assistant reply received",
            session_id=session_id,
            model=reply.model,
            history_length=len(body["messages"]),
            reply_length=len(reply.text),
            latency_ms=latency_ms,
        )
        return reply

    async def upload_file(self, data: bytes, filename: str, content_type: str) -> str:
        """Pass a file through to the Files API; returns the provider file id."""
        endpoint = f"{self.config.anthropic_base_url}/v1/files"
        form = aiohttp.FormData()
        form.add_field("file", data, filename=filename, content_type=content_type)
        start_ts = time.time()

        async with aiohttp.ClientSession(timeout=self._timeout) as s:
            async with s.post(endpoint, data=form, headers=self._headers(beta=FILES_BETA)) as resp:
                payload = await _read_payload(resp)

        logger.info(
            "File uploaded upstream",
            filename=filename,
            size=len(data),
            latency_ms=int((time.time() - start_ts) * 1000),
        )
        return payload["id"]


async def _read_payload(resp: aiohttp.ClientResponse) -> Dict[str, Any]:
    """
    JSON body of a 200 answer.

    Any other status raises AssistantError carrying that status, even when
    the body is not JSON.
    """
    try:
        payload = await resp.json(content_type=None)
    except ValueError:
        payload = None

    if resp.status != 200:
        raise AssistantError(_error_message(payload, resp.reason), status=resp.status)
    if not isinstance(payload, dict):
        raise AssistantError("upstream returned a non-JSON body", status=resp.status)
    return payload


def _error_message(payload: Any, fallback: Optional[str]) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return fallback or "upstream error"
