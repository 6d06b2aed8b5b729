"""
Voice error handling.
Maps capture/playback backend error codes to stable categories and
user-facing notices. Classification never raises.
"""
from dataclasses import dataclass
from typing import Optional


class VoiceErrorCategory:
    """Stable voice error categories."""

    PERMISSION_DENIED = "permission-denied"
    NO_SPEECH = "no-speech"
    UNSUPPORTED = "unsupported"
    BACKEND_ERROR = "backend-error"


# Backend codes as reported by the Web Speech API and compatible engines
_PERMISSION_CODES = frozenset(["not-allowed", "service-not-allowed", "permission-denied"])
_NO_SPEECH_CODES = frozenset(["no-speech"])


@dataclass(frozen=True)
class VoiceNotice:
    """A user-visible, non-fatal notice."""

    category: str
    title: str
    description: str


def classify_capture_error(code: Optional[str]) -> str:
    """Classify a capture backend error code."""
    normalized = (code or "").strip().lower()

    if normalized in _PERMISSION_CODES:
        return VoiceErrorCategory.PERMISSION_DENIED
    if normalized in _NO_SPEECH_CODES:
        return VoiceErrorCategory.NO_SPEECH
    if normalized == VoiceErrorCategory.UNSUPPORTED:
        return VoiceErrorCategory.UNSUPPORTED
    return VoiceErrorCategory.BACKEND_ERROR


_CAPTURE_NOTICES = {
    VoiceErrorCategory.PERMISSION_DENIED: (
        "Microphone access denied",
        "Please allow microphone access to use voice features",
    ),
    VoiceErrorCategory.NO_SPEECH: (
        "No speech detected",
        "Please try speaking closer to your microphone",
    ),
    VoiceErrorCategory.UNSUPPORTED: (
        "Speech recognition not supported",
        "Speech recognition is not available in this environment.",
    ),
    VoiceErrorCategory.BACKEND_ERROR: (
        "Speech recognition error",
        "Voice input stopped unexpectedly. Please try again.",
    ),
}

_PLAYBACK_NOTICES = {
    VoiceErrorCategory.UNSUPPORTED: (
        "Text-to-speech not supported",
        "Text-to-speech is not available in this environment.",
    ),
    VoiceErrorCategory.BACKEND_ERROR: (
        "Speech synthesis error",
        "Failed to read the text aloud",
    ),
}


def get_capture_notice(category: str) -> VoiceNotice:
    title, description = _CAPTURE_NOTICES.get(
        category, _CAPTURE_NOTICES[VoiceErrorCategory.BACKEND_ERROR]
    )
    return VoiceNotice(category=category, title=title, description=description)


def get_playback_notice(category: str) -> VoiceNotice:
    title, description = _PLAYBACK_NOTICES.get(
        category, _PLAYBACK_NOTICES[VoiceErrorCategory.BACKEND_ERROR]
    )
    return VoiceNotice(category=category, title=title, description=description)


VOICE_MODE_UNAVAILABLE = VoiceNotice(
    category=VoiceErrorCategory.UNSUPPORTED,
    title="Voice features not available",
    description="Speech recognition and text-to-speech are both required for voice mode.",
)
