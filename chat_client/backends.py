"""
Capture and playback backend interfaces.

The host environment (browser bridge, desktop audio stack, test fakes)
supplies objects implementing these protocols. Backends never call back
into the session directly with state changes: they report what happened
as VoiceEvents through the `emit` callable handed to them at bind time,
and VoiceSession.handle_event() decides what it means.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Sequence, runtime_checkable


class VoiceEventType(str, Enum):
    CAPTURE_STARTED = "capture.started"
    CAPTURE_RESULT = "capture.result"
    CAPTURE_ENDED = "capture.ended"
    CAPTURE_ERROR = "capture.error"
    PLAYBACK_STARTED = "playback.started"
    PLAYBACK_ENDED = "playback.ended"
    PLAYBACK_ERROR = "playback.error"


@dataclass(frozen=True)
class VoiceEvent:
    """
    Something a backend observed.

    transcript: accumulated text for CAPTURE_RESULT, final text for CAPTURE_ENDED
    error: backend error code for *_ERROR events
    utterance_id: the Utterance a PLAYBACK_* event belongs to
    """

    type: VoiceEventType
    transcript: Optional[str] = None
    is_final: bool = False
    error: Optional[str] = None
    message: Optional[str] = None
    utterance_id: Optional[int] = None


EventSink = Callable[[VoiceEvent], None]


@dataclass(frozen=True)
class VoiceInfo:
    """A playback voice offered by the host."""

    name: str
    lang: str
    default: bool = False


@dataclass(frozen=True)
class Utterance:
    """Text plus the playback settings captured when it was requested."""

    utterance_id: int
    text: str
    rate: float
    pitch: float
    volume: float
    voice: Optional[VoiceInfo] = None


@runtime_checkable
class CaptureBackend(Protocol):
    """Speech-to-text facility."""

    def is_supported(self) -> bool: ...

    def bind(self, emit: EventSink) -> None: ...

    def start(self, language: str, continuous: bool) -> None: ...

    def stop(self) -> None:
        """Stop listening; CAPTURE_ENDED with the final transcript follows."""

    def abort(self) -> None:
        """Stop listening and discard pending results."""


@runtime_checkable
class PlaybackBackend(Protocol):
    """Text-to-speech facility."""

    def is_supported(self) -> bool: ...

    def bind(self, emit: EventSink) -> None: ...

    def voices(self) -> Sequence[VoiceInfo]: ...

    def speak(self, utterance: Utterance) -> None: ...

    def cancel(self) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...


def select_default_voice(voices: Sequence[VoiceInfo], language: str = "en-US") -> Optional[VoiceInfo]:
    """
    Pick the voice used when none is selected.

    Priority:
    1) the host's default voice for the language prefix
    2) any voice for the language prefix
    3) the first voice
    """
    if not voices:
        return None

    prefix = language.split("-")[0].lower()
    matching = [v for v in voices if v.lang.lower().startswith(prefix)]

    for voice in matching:
        if voice.default:
            return voice
    if matching:
        return matching[0]
    return voices[0]


def find_voice(voices: Sequence[VoiceInfo], name: Optional[str]) -> Optional[VoiceInfo]:
    if not name:
        return None
    for voice in voices:
        if voice.name == name:
            return voice
    return None
