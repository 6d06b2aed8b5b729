"""
Upstream (LLM provider) error handling.
Maps provider failures to stable categories without crashing the relay.
"""
import asyncio
from typing import Optional

import aiohttp

from observability.events import Component, EventEmitter, Severity


class UpstreamErrorCategory:
    """Stable upstream error categories."""

    AUTH_FAILED = "upstream.auth_failed"
    INVALID_REQUEST = "upstream.invalid_request"
    RATE_LIMITED = "upstream.rate_limited"
    OVERLOADED = "upstream.overloaded"
    NETWORK_ERROR = "upstream.network_error"
    UNKNOWN_ERROR = "upstream.unknown_error"


class AssistantError(Exception):
    """The LLM provider call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


emitter = EventEmitter(Component.RELAY_SERVER)


class UpstreamErrorHandler:
    """Classifies and reports upstream failures."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        """Classify an upstream failure into a stable category."""
        status = getattr(error, "status", None)

        if status in (401, 403):
            return UpstreamErrorCategory.AUTH_FAILED
        if status in (400, 404, 413, 422):
            return UpstreamErrorCategory.INVALID_REQUEST
        if status == 429:
            return UpstreamErrorCategory.RATE_LIMITED
        if status in (500, 502, 503, 529):
            return UpstreamErrorCategory.OVERLOADED

        if isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError)):
            return UpstreamErrorCategory.NETWORK_ERROR

        error_str = str(error).lower()
        if "timeout" in error_str or "connection" in error_str:
            return UpstreamErrorCategory.NETWORK_ERROR

        return UpstreamErrorCategory.UNKNOWN_ERROR

    @staticmethod
    def handle_error(session_id: str, error: Exception, operation: str) -> str:
        """
        Emit an assistant.error event and return the category.
        Never raises.
        """
        category = UpstreamErrorHandler.classify_error(error)

        detail = str(error)
        if "key" in detail.lower() or "secret" in detail.lower():
            detail = "[redacted: potential secret]"

        emitter.emit(
            "assistant.error",
            session_id,
            severity=Severity.ERROR if category == UpstreamErrorCategory.UNKNOWN_ERROR else Severity.WARN,
            operation=operation,
            category=category,
            status=getattr(error, "status", None),
            error_class=type(error).__name__,
            detail=detail,
        )
        return category
