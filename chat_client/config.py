"""
Chat client configuration.

Loads client settings from environment variables. Playback settings are
user-adjustable at runtime through VoiceSession.update_settings().
"""
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Web Speech API accepted ranges
RATE_RANGE = (0.1, 10.0)
PITCH_RANGE = (0.0, 2.0)
VOLUME_RANGE = (0.0, 1.0)


def _parse_float_env(key: str, default: float) -> float:
    """
    Parse float environment variable, stripping comments and whitespace.

    "0.9  # slower" -> 0.9, unset or garbage -> default
    """
    value = os.environ.get(key)
    if not value:
        return default

    if "#" in value:
        value = value.split("#")[0]
    value = value.strip()

    if not value:
        return default

    try:
        return float(value)
    except ValueError:
        return default


def _parse_bool_env(key: str, default: bool) -> bool:
    value = os.environ.get(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class VoiceSettings:
    """Playback settings applied to the next utterance."""

    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 0.8
    voice: Optional[str] = None  # voice name; None picks the language default

    def __post_init__(self):
        for name, (low, high) in (
            ("rate", RATE_RANGE),
            ("pitch", PITCH_RANGE),
            ("volume", VOLUME_RANGE),
        ):
            value = getattr(self, name)
            if not low <= value <= high:
                raise ValueError(f"{name} must be between {low} and {high}, got {value}")


@dataclass
class ClientConfig:
    """Chat client configuration."""

    relay_url: str = "http://127.0.0.1:8000"
    language: str = "en-US"
    continuous: bool = False
    auto_read: bool = True
    request_timeout_seconds: float = 60.0
    voice_settings: VoiceSettings = field(default_factory=VoiceSettings)

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Load configuration from environment variables (and .env_local if present)."""
        load_dotenv(".env_local", override=False)
        return cls(
            relay_url=os.environ.get("RELAY_URL", "http://127.0.0.1:8000").rstrip("/"),
            language=os.environ.get("VOICE_LANGUAGE", "en-US"),
            continuous=_parse_bool_env("VOICE_CONTINUOUS", False),
            auto_read=_parse_bool_env("VOICE_AUTO_READ", True),
            request_timeout_seconds=_parse_float_env("RELAY_TIMEOUT_SECONDS", 60.0),
            voice_settings=VoiceSettings(
                rate=_parse_float_env("VOICE_RATE", 1.0),
                pitch=_parse_float_env("VOICE_PITCH", 1.0),
                volume=_parse_float_env("VOICE_VOLUME", 0.8),
                voice=os.environ.get("VOICE_NAME") or None,
            ),
        )
