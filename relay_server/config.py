"""
Relay server configuration.

Loads provider configuration from environment variables.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Be helpful, accurate, and engaging in your responses."
)

DEFAULT_ALLOWED_UPLOAD_TYPES = (
    "application/pdf",
    "text/plain",
    "text/csv",
    "application/json",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
)


def _parse_int_env(key: str, default: int) -> int:
    """
    Parse integer environment variable, stripping comments and whitespace.

    "4000  # comment" -> 4000, unset or garbage -> default
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
        return int(value)
    except ValueError:
        return default


@dataclass
class RelayConfig:
    """Relay server configuration."""

    anthropic_api_key: str
    anthropic_base_url: str = "https://api.anthropic.com"
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4000
    thinking_budget_tokens: int = 0  # 0 disables extended thinking
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    request_timeout_seconds: int = 120

    max_upload_bytes: int = 100 * 1024 * 1024
    allowed_upload_types: Tuple[str, ...] = field(default=DEFAULT_ALLOWED_UPLOAD_TYPES)

    cookie_secure: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    def __post_init__(self):
        if not self.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY is required")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        # Extended thinking budget must leave room for the answer.
        if self.thinking_budget_tokens and self.thinking_budget_tokens >= self.max_tokens:
            raise ValueError("thinking_budget_tokens must be smaller than max_tokens")

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Load configuration from environment variables."""
        return cls(
            anthropic_api_key=os.environ["ANTHROPIC_API_KEY"],
            anthropic_base_url=os.environ.get("ANTHROPIC_BASE_URL", "https://api.anthropic.com").rstrip("/"),
            model=os.environ.get("ASSISTANT_MODEL", "claude-sonnet-4-20250514"),
            max_tokens=_parse_int_env("ASSISTANT_MAX_TOKENS", default=4000),
            thinking_budget_tokens=_parse_int_env("ASSISTANT_THINKING_BUDGET", default=0),
            system_prompt=os.environ.get("ASSISTANT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            request_timeout_seconds=_parse_int_env("ASSISTANT_TIMEOUT_SECONDS", default=120),
            max_upload_bytes=_parse_int_env("MAX_UPLOAD_BYTES", default=100 * 1024 * 1024),
            cookie_secure=os.environ.get("COOKIE_SECURE", "").lower() in ("1", "true", "yes"),
            host=os.environ.get("RELAY_HOST", "0.0.0.0"),
            port=_parse_int_env("RELAY_PORT", default=8000),
        )


def load_env_files() -> None:
    """Load .env_local / .env.local from the repo root without overriding the environment."""
    root = Path(__file__).parent.parent
    for name in (".env_local", ".env.local"):
        p = root / name
        if p.exists():
            load_dotenv(p, override=False)


def get_config() -> RelayConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        load_env_files()
        _config = RelayConfig.from_env()
    return _config


# Global config instance (lazy loaded)
_config: Optional[RelayConfig] = None
