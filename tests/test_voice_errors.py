"""
Voice error classification tests.
"""
import pytest

from chat_client.voice_errors import (
    VOICE_MODE_UNAVAILABLE,
    VoiceErrorCategory,
    classify_capture_error,
    get_capture_notice,
    get_playback_notice,
)


@pytest.mark.parametrize("code, category", [
    ("not-allowed", VoiceErrorCategory.PERMISSION_DENIED),
    ("service-not-allowed", VoiceErrorCategory.PERMISSION_DENIED),
    ("NOT-ALLOWED", VoiceErrorCategory.PERMISSION_DENIED),
    ("no-speech", VoiceErrorCategory.NO_SPEECH),
    ("unsupported", VoiceErrorCategory.UNSUPPORTED),
    ("network", VoiceErrorCategory.BACKEND_ERROR),
    ("audio-capture", VoiceErrorCategory.BACKEND_ERROR),
    ("", VoiceErrorCategory.BACKEND_ERROR),
    (None, VoiceErrorCategory.BACKEND_ERROR),
])
def test_classify_capture_error(code, category):
    assert classify_capture_error(code) == category


def test_capture_notices():
    notice = get_capture_notice(VoiceErrorCategory.PERMISSION_DENIED)

    assert notice.category == VoiceErrorCategory.PERMISSION_DENIED
    assert notice.title == "Microphone access denied"
    assert "microphone" in notice.description


def test_unknown_category_falls_back_to_backend_error_notice():
    assert get_capture_notice("weird").title == "Speech recognition error"
    assert get_playback_notice("weird").title == "Speech synthesis error"


def test_voice_mode_unavailable_notice():
    assert VOICE_MODE_UNAVAILABLE.category == VoiceErrorCategory.UNSUPPORTED
