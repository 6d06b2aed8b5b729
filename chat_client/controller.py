"""
Chat session controller.

Glue between the relay, the content parser and the voice session:
- voice mode owns the VoiceSession lifecycle (created on enable, closed on disable)
- a final transcript is sent as a user message
- assistant replies are read aloud when voice mode and auto-read are on
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Set

from logging_setup import get_logger, Component as LogComponent

from .backends import CaptureBackend, PlaybackBackend
from .config import ClientConfig
from .parser import ContentSegment, parse_content
from .relay_client import RelayClient, RelayError
from .voice_errors import VOICE_MODE_UNAVAILABLE, VoiceNotice
from .voice_session import VoiceSession

TITLE_MAX_CHARS = 50


logger = get_logger(LogComponent.CHAT_CLIENT)


def conversation_title(message: str) -> str:
    """First 50 characters of the opening message, with an ellipsis when cut."""
    if len(message) > TITLE_MAX_CHARS:
        return message[:TITLE_MAX_CHARS] + "..."
    return message


class ChatSessionController:
    """One chat view: current conversation, its messages and optional voice mode."""

    def __init__(
        self,
        relay: RelayClient,
        config: Optional[ClientConfig] = None,
        *,
        capture: Optional[CaptureBackend] = None,
        playback: Optional[PlaybackBackend] = None,
        on_notice: Optional[Callable[[VoiceNotice], None]] = None,
        on_transcript: Optional[Callable[[str], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.relay = relay
        self.config = config or ClientConfig()
        self.auto_read = self.config.auto_read
        self.on_notice = on_notice
        self.on_transcript = on_transcript

        self._capture = capture
        self._playback = playback

        self.conversation_id: Optional[int] = None
        self.messages: List[Dict[str, Any]] = []
        self.notices: List[VoiceNotice] = []
        self.voice: Optional[VoiceSession] = None

        # Loop that voice-triggered sends run on. Taken from the first async
        # call when not given; backends may report from other threads.
        self._loop = loop
        self._send_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    # --- voice mode ---

    @property
    def voice_mode(self) -> bool:
        return self.voice is not None

    def enable_voice_mode(self) -> bool:
        """Create the voice session. Needs both capture and playback support."""
        if self.voice is not None:
            return True

        session = VoiceSession(
            self._capture,
            self._playback,
            settings=self.config.voice_settings,
            language=self.config.language,
            continuous=self.config.continuous,
            on_transcript=self.on_transcript,
            on_speech_end=self._on_speech_end,
            on_notice=self._notify,
        )
        if not (session.capture_supported and session.playback_supported):
            session.close()
            self._notify(VOICE_MODE_UNAVAILABLE)
            return False

        self.voice = session
        logger.info("Voice mode enabled", voice_session_id=session.session_id)
        return True

    def disable_voice_mode(self) -> None:
        if self.voice is None:
            return
        self.voice.close()
        logger.info("Voice mode disabled", voice_session_id=self.voice.session_id)
        self.voice = None

    def toggle_listening(self) -> bool:
        """Start listening if idle, stop if listening. Returns whether a request was made."""
        if self.voice is None:
            return False
        if self.voice.is_listening:
            return self.voice.stop_listening()
        return self.voice.start_listening()

    def read_aloud(self, text: str) -> bool:
        if self.voice is None:
            return False
        return self.voice.speak(text) is not None

    def _on_speech_end(self, final_transcript: str) -> None:
        text = final_transcript.strip()
        if not text:
            return
        if self.voice is not None:
            self.voice.reset_transcript()

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None:
            self._loop = self._loop or running
            self._schedule_send(text)
        elif self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._schedule_send, text)
        else:
            logger.warning("Transcript arrived without an event loop", transcript_length=len(text))
            self._notify(VoiceNotice(
                category="relay-error",
                title="Error sending message",
                description="Voice input arrived before the chat was ready",
            ))

    def _schedule_send(self, text: str) -> None:
        task = asyncio.get_running_loop().create_task(self._send_transcript(text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_transcript(self, text: str) -> None:
        # Waits behind any send in flight; transcripts go out in arrival order.
        async with self._send_lock:
            await self._send(text)

    async def drain(self) -> None:
        """Wait for messages sent from voice input to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # --- messages ---

    async def send_message(self, text: str) -> Optional[Dict[str, Any]]:
        """
        Send a user message and return the assistant's reply.

        Opens a new conversation on first send. Returns None for blank
        input, while another send is in flight, or when the relay fails
        (a notice is raised instead).
        """
        message = text.strip()
        if not message or self._send_lock.locked():
            return None
        async with self._send_lock:
            return await self._send(message)

    async def _send(self, message: str) -> Optional[Dict[str, Any]]:
        self._loop = self._loop or asyncio.get_running_loop()
        try:
            if self.conversation_id is None:
                conversation = await self.relay.create_conversation(conversation_title(message))
                self.conversation_id = conversation["id"]
                logger.info("Conversation created", conversation_id=self.conversation_id)

            result = await self.relay.send_message(self.conversation_id, message)
        except RelayError as e:
            logger.warning("Sending message failed", status=e.status, detail=e.detail)
            self._notify(VoiceNotice(category="relay-error", title="Error sending message", description=e.detail))
            return None

        reply = result["ai_message"]
        self.messages.extend([result["user_message"], reply])

        if self.voice is not None and self.auto_read:
            self.voice.speak(reply["content"])

        return reply

    async def open_conversation(self, conversation_id: int) -> List[Dict[str, Any]]:
        self.messages = await self.relay.list_messages(conversation_id)
        self.conversation_id = conversation_id
        return self.messages

    async def delete_conversation(self) -> bool:
        if self.conversation_id is None:
            return False
        await self.relay.delete_conversation(self.conversation_id)
        logger.info("Conversation deleted", conversation_id=self.conversation_id)
        self.conversation_id = None
        self.messages = []
        return True

    def new_conversation(self) -> None:
        self.conversation_id = None
        self.messages = []

    @staticmethod
    def render(message: Dict[str, Any]) -> List[ContentSegment]:
        return parse_content(message.get("content", ""))

    def _notify(self, notice: VoiceNotice) -> None:
        self.notices.append(notice)
        if self.on_notice:
            self.on_notice(notice)
