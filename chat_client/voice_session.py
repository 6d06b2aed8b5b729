"""
Voice session: speech capture and playback lifecycle.

One session owns at most one capture stream and one playback stream.
Requests (start_listening, speak, pause, ...) return immediately; backends
report progress asynchronously as VoiceEvents through handle_event(), which
is the only place backend signals change state.

States:
    IDLE       nothing active
    LISTENING  capture active, no playback
    SPEAKING   playback active (capture may run alongside)
    PAUSED     playback paused

Capture stays LISTENING after stop_listening() until the backend reports
CAPTURE_ENDED, which carries the final transcript. Playback is cancelled
synchronously; the cancelled utterance's late PLAYBACK_ENDED is recognised
by its utterance_id and ignored.
"""

from __future__ import annotations

import dataclasses
import uuid
from enum import Enum
from typing import Callable, List, Optional

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter, Severity

from .backends import (
    CaptureBackend,
    PlaybackBackend,
    Utterance,
    VoiceEvent,
    VoiceEventType,
    VoiceInfo,
    find_voice,
    select_default_voice,
)
from .config import VoiceSettings
from .voice_errors import (
    VoiceErrorCategory,
    VoiceNotice,
    classify_capture_error,
    get_capture_notice,
    get_playback_notice,
)

# Playback errors that only mean "someone cancelled me"
_CANCEL_CODES = frozenset(["canceled", "cancelled", "interrupted"])


class VoiceState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    SPEAKING = "speaking"
    PAUSED = "paused"


class VoiceSession:
    """State machine coordinating one capture and one playback backend."""

    def __init__(
        self,
        capture: Optional[CaptureBackend],
        playback: Optional[PlaybackBackend],
        *,
        settings: Optional[VoiceSettings] = None,
        language: str = "en-US",
        continuous: bool = False,
        session_id: Optional[str] = None,
        on_transcript: Optional[Callable[[str], None]] = None,
        on_speech_start: Optional[Callable[[], None]] = None,
        on_speech_end: Optional[Callable[[str], None]] = None,
        on_state_change: Optional[Callable[[VoiceState, VoiceState], None]] = None,
        on_notice: Optional[Callable[[VoiceNotice], None]] = None,
    ):
        self.session_id = session_id or f"voice_{uuid.uuid4().hex[:12]}"
        self.language = language
        self.continuous = continuous
        self.settings = settings or VoiceSettings()

        self.on_transcript = on_transcript
        self.on_speech_start = on_speech_start
        self.on_speech_end = on_speech_end
        self.on_state_change = on_state_change
        self.on_notice = on_notice

        self.emitter = EventEmitter(ObsComponent.VOICE_SESSION)
        self.logger = get_logger(LogComponent.VOICE_SESSION, session_id=self.session_id)

        self._capture = capture
        self._playback = playback

        # Feature detection happens once, here.
        self.capture_supported = bool(capture is not None and capture.is_supported())
        self.playback_supported = bool(playback is not None and playback.is_supported())
        if self.capture_supported:
            capture.bind(self.handle_event)
        if self.playback_supported:
            playback.bind(self.handle_event)

        self.transcript: str = ""
        self.last_error: Optional[str] = None

        self._listening = False
        self._utterance: Optional[Utterance] = None
        self._paused = False
        self._next_utterance_id = 1
        self._closed = False

        self.logger.debug(
            "Voice session created",
            capture_supported=self.capture_supported,
            playback_supported=self.playback_supported,
        )

    # --- derived state ---

    @property
    def state(self) -> VoiceState:
        if self._utterance is not None:
            return VoiceState.PAUSED if self._paused else VoiceState.SPEAKING
        if self._listening:
            return VoiceState.LISTENING
        return VoiceState.IDLE

    @property
    def is_listening(self) -> bool:
        return self._listening

    @property
    def is_speaking(self) -> bool:
        return self._utterance is not None and not self._paused

    @property
    def is_paused(self) -> bool:
        return self._utterance is not None and self._paused

    @property
    def current_utterance(self) -> Optional[Utterance]:
        return self._utterance

    @property
    def closed(self) -> bool:
        return self._closed

    # --- capture requests ---

    def start_listening(self) -> bool:
        """
        Begin capturing speech. Clears the previous transcript.

        Returns False (and changes nothing) when already listening, closed,
        or when capture is unsupported.
        """
        if self._closed:
            return False
        if not self.capture_supported:
            self._report_unsupported("capture")
            return False
        if self._listening:
            return False

        old_state = self.state
        self.transcript = ""
        self.last_error = None
        self._listening = True

        try:
            self._capture.start(self.language, self.continuous)
        except Exception as e:
            self.logger.exception("Capture backend failed to start", error_type=type(e).__name__)
            self._listening = False
            self._fail_capture(VoiceErrorCategory.BACKEND_ERROR, old_state, detail=str(e))
            return False

        self.emitter.emit(
            "voice.capture.requested",
            self.session_id,
            language=self.language,
            continuous=self.continuous,
        )
        self._state_changed(old_state)
        return True

    def stop_listening(self) -> bool:
        """Ask the backend to stop; the final transcript arrives with CAPTURE_ENDED."""
        if not self._listening:
            return False

        self._capture.stop()
        self.emitter.emit("voice.capture.stop_requested", self.session_id)
        return True

    def reset_transcript(self) -> None:
        self.transcript = ""

    # --- playback requests ---

    def speak(self, text: str) -> Optional[Utterance]:
        """
        Read text aloud with the current settings.

        Any active utterance is cancelled first. Returns the new Utterance,
        or None when text is blank, the session is closed, or playback is
        unsupported.
        """
        if self._closed:
            return None
        if not self.playback_supported:
            self._report_unsupported("playback")
            return None
        if not text or not text.strip():
            return None

        old_state = self.state
        replaced = self._utterance
        if replaced is not None:
            self._playback.cancel()

        utterance = Utterance(
            utterance_id=self._next_utterance_id,
            text=text,
            rate=self.settings.rate,
            pitch=self.settings.pitch,
            volume=self.settings.volume,
            voice=self._resolve_voice(),
        )
        self._next_utterance_id += 1
        self._utterance = utterance
        self._paused = False

        try:
            self._playback.speak(utterance)
        except Exception as e:
            self.logger.exception("Playback backend failed to speak", error_type=type(e).__name__)
            self._utterance = None
            self._fail_playback(VoiceErrorCategory.BACKEND_ERROR, old_state, utterance.utterance_id)
            return None

        self.emitter.emit(
            "voice.playback.requested",
            self.session_id,
            correlation_id=f"utt_{utterance.utterance_id}",
            text_length=len(text),
            rate=utterance.rate,
            pitch=utterance.pitch,
            volume=utterance.volume,
            voice=utterance.voice.name if utterance.voice else None,
            replaced_utterance=replaced.utterance_id if replaced else None,
        )
        self._state_changed(old_state)
        return utterance

    def pause(self) -> bool:
        if self.state is not VoiceState.SPEAKING:
            return False
        old_state = self.state
        self._playback.pause()
        self._paused = True
        self._state_changed(old_state)
        return True

    def resume(self) -> bool:
        if self.state is not VoiceState.PAUSED:
            return False
        old_state = self.state
        self._playback.resume()
        self._paused = False
        self._state_changed(old_state)
        return True

    def stop_speaking(self) -> bool:
        if self._utterance is None:
            return False
        old_state = self.state
        self._playback.cancel()
        self.emitter.emit(
            "voice.playback.cancelled",
            self.session_id,
            correlation_id=f"utt_{self._utterance.utterance_id}",
        )
        self._utterance = None
        self._paused = False
        self._state_changed(old_state)
        return True

    def stop(self) -> bool:
        """Stop playback and capture. A no-op while IDLE."""
        stopped_playback = self.stop_speaking()
        stopped_capture = self.stop_listening()
        return stopped_playback or stopped_capture

    def update_settings(self, **changes) -> VoiceSettings:
        """Change playback settings; they apply from the next speak() on."""
        self.settings = dataclasses.replace(self.settings, **changes)
        self.logger.debug("Voice settings updated", **changes)
        return self.settings

    def available_voices(self) -> List[VoiceInfo]:
        if not self.playback_supported:
            return []
        return list(self._playback.voices())

    def close(self) -> None:
        """Abort everything and reset to IDLE. The session accepts no further requests."""
        if self._closed:
            return
        old_state = self.state
        if self._listening:
            self._capture.abort()
        if self._utterance is not None:
            self._playback.cancel()
        self._listening = False
        self._utterance = None
        self._paused = False
        self.transcript = ""
        self._closed = True
        self._state_changed(old_state)
        self.emitter.emit("voice.session.closed", self.session_id)

    # --- backend events ---

    def handle_event(self, event: VoiceEvent) -> None:
        """Single entry point for everything capture/playback backends report."""
        handler = self._handlers.get(event.type)
        if handler is None:
            self.logger.warning("Unknown voice event", event_type=str(event.type))
            return
        handler(self, event)

    def _on_capture_started(self, event: VoiceEvent) -> None:
        if not self._listening:
            return
        self.emitter.emit("voice.capture.started", self.session_id)
        if self.on_speech_start:
            self.on_speech_start()

    def _on_capture_result(self, event: VoiceEvent) -> None:
        if not self._listening:
            return
        self.transcript = event.transcript or ""
        if self.on_transcript:
            self.on_transcript(self.transcript)

    def _on_capture_ended(self, event: VoiceEvent) -> None:
        # Late end after an error or abort: nothing to deliver.
        if not self._listening:
            self.logger.debug("Ignoring capture end while not listening")
            return

        old_state = self.state
        final = event.transcript if event.transcript is not None else self.transcript
        self.transcript = final
        self._listening = False

        self.emitter.emit(
            "voice.capture.ended",
            self.session_id,
            transcript_length=len(final),
        )
        self._state_changed(old_state)
        if self.on_speech_end:
            self.on_speech_end(final)

    def _on_capture_error(self, event: VoiceEvent) -> None:
        if not self._listening:
            return
        old_state = self.state
        self._listening = False
        self._fail_capture(
            classify_capture_error(event.error),
            old_state,
            detail=event.message or event.error,
        )

    def _on_playback_started(self, event: VoiceEvent) -> None:
        if not self._is_current(event):
            return
        self.emitter.emit(
            "voice.playback.started",
            self.session_id,
            correlation_id=f"utt_{event.utterance_id}",
        )

    def _on_playback_ended(self, event: VoiceEvent) -> None:
        if not self._is_current(event):
            self.logger.debug("Ignoring end of replaced utterance", utterance_id=event.utterance_id)
            return
        old_state = self.state
        self._utterance = None
        self._paused = False
        self.emitter.emit(
            "voice.playback.ended",
            self.session_id,
            correlation_id=f"utt_{event.utterance_id}",
        )
        self._state_changed(old_state)

    def _on_playback_error(self, event: VoiceEvent) -> None:
        if not self._is_current(event):
            return
        old_state = self.state
        self._utterance = None
        self._paused = False
        if (event.error or "").lower() in _CANCEL_CODES:
            self._state_changed(old_state)
            return
        self._fail_playback(VoiceErrorCategory.BACKEND_ERROR, old_state, event.utterance_id)

    _handlers = {
        VoiceEventType.CAPTURE_STARTED: _on_capture_started,
        VoiceEventType.CAPTURE_RESULT: _on_capture_result,
        VoiceEventType.CAPTURE_ENDED: _on_capture_ended,
        VoiceEventType.CAPTURE_ERROR: _on_capture_error,
        VoiceEventType.PLAYBACK_STARTED: _on_playback_started,
        VoiceEventType.PLAYBACK_ENDED: _on_playback_ended,
        VoiceEventType.PLAYBACK_ERROR: _on_playback_error,
    }

    # --- helpers ---

    def _is_current(self, event: VoiceEvent) -> bool:
        return self._utterance is not None and event.utterance_id == self._utterance.utterance_id

    def _resolve_voice(self) -> Optional[VoiceInfo]:
        voices = list(self._playback.voices())
        return find_voice(voices, self.settings.voice) or select_default_voice(voices, self.language)

    def _state_changed(self, old_state: VoiceState) -> None:
        new_state = self.state
        if new_state is old_state:
            return
        self.emitter.emit(
            "voice.state_changed",
            self.session_id,
            from_state=old_state.value,
            to_state=new_state.value,
        )
        if self.on_state_change:
            self.on_state_change(old_state, new_state)

    def _fail_capture(self, category: str, old_state: VoiceState, detail: Optional[str] = None) -> None:
        self.last_error = category
        self.emitter.emit(
            "voice.error",
            self.session_id,
            severity=Severity.WARN,
            stream="capture",
            category=category,
            detail=detail,
        )
        self.logger.warning("Capture error", category=category, detail=detail)
        self._state_changed(old_state)
        self._notify(get_capture_notice(category))

    def _fail_playback(self, category: str, old_state: VoiceState, utterance_id: Optional[int]) -> None:
        self.last_error = category
        self.emitter.emit(
            "voice.error",
            self.session_id,
            severity=Severity.WARN,
            correlation_id=f"utt_{utterance_id}" if utterance_id else None,
            stream="playback",
            category=category,
        )
        self.logger.warning("Playback error", category=category, utterance_id=utterance_id)
        self._state_changed(old_state)
        self._notify(get_playback_notice(category))

    def _report_unsupported(self, stream: str) -> None:
        self.last_error = VoiceErrorCategory.UNSUPPORTED
        self.emitter.emit(
            "voice.error",
            self.session_id,
            severity=Severity.INFO,
            stream=stream,
            category=VoiceErrorCategory.UNSUPPORTED,
        )
        if stream == "capture":
            self._notify(get_capture_notice(VoiceErrorCategory.UNSUPPORTED))
        else:
            self._notify(get_playback_notice(VoiceErrorCategory.UNSUPPORTED))

    def _notify(self, notice: VoiceNotice) -> None:
        if self.on_notice:
            self.on_notice(notice)
