"""
Structured JSON event emission (shared).

Used by the chat client core and the relay server. Every event shares one
envelope: ts, session_id, component, event_type, severity, correlation_id.
Message bodies and transcripts are never emitted, only their metadata.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .event_store import event_store


class Component(str, Enum):
    """Emitting components."""

    CHAT_CLIENT = "chat_client"
    VOICE_SESSION = "voice_session"
    RELAY_SERVER = "relay_server"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EventEmitter:
    """Emits structured JSON events to stdout and the in-memory event store."""

    def __init__(self, component: Component):
        self.component = component

    def emit(
        self,
        event_type: str,
        session_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        """
        Emit a structured JSON event.

        Args:
            event_type: Stable event type string (e.g., "voice.state_changed")
            session_id: Opaque session identifier (voice session or conversation)
            severity: Event severity level
            correlation_id: Optional correlation ID for a request/utterance
            **kwargs: Additional event-specific fields
        """
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or session_id,
        }
        event.update(kwargs)

        sys.stdout.write(json.dumps(event, ensure_ascii=False, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()

        event_store.store(event)
