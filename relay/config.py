"""
Relay configuration.

Loads settings from the environment (and a local .env file) into a single
RelayConfig instance shared by the server and its components.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Retention windows in seconds
ACTIVE_MEETING_TTL = 24 * 60 * 60         # 24 hours while a meeting is live
COMPLETED_MEETING_TTL = 7 * 24 * 60 * 60  # 7 days once completed
MINIMUM_RETENTION_TTL = 3 * 24 * 60 * 60  # never keep a completed meeting less than 3 days


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}={raw!r}, using {default}")
        return default


@dataclass
class RetentionConfig:
    """TTL policy for stored transcripts."""
    active_ttl: int = ACTIVE_MEETING_TTL
    completed_ttl: int = COMPLETED_MEETING_TTL
    min_retention_ttl: int = MINIMUM_RETENTION_TTL


@dataclass
class RelayConfig:
    """Settings for the transcription relay."""
    gladia_api_key: str = ""
    gladia_api_url: str = "https://api.gladia.io"
    gladia_model: str = "accurate"
    languages: List[str] = field(default_factory=lambda: ["en"])
    meeting_baas_api_key: str = ""
    meeting_baas_api_url: str = "https://api.meetingbaas.com"
    redis_url: str = "redis://localhost:6379"
    event_bus: str = "redis"  # redis | memory
    host: str = "0.0.0.0"
    port: int = 5001
    public_webhook_url: Optional[str] = None
    log_level: str = "INFO"
    retention: RetentionConfig = field(default_factory=RetentionConfig)

    @classmethod
    def from_env(cls) -> "RelayConfig":
        languages = [
            lang.strip()
            for lang in os.getenv("GLADIA_LANGUAGES", "en").split(",")
            if lang.strip()
        ]
        return cls(
            gladia_api_key=os.getenv("GLADIA_API_KEY", ""),
            gladia_api_url=os.getenv("GLADIA_API_URL", "https://api.gladia.io"),
            gladia_model=os.getenv("GLADIA_MODEL", "accurate"),
            languages=languages or ["en"],
            meeting_baas_api_key=os.getenv("MEETING_BAAS_API_KEY", ""),
            meeting_baas_api_url=os.getenv("MEETING_BAAS_API_URL", "https://api.meetingbaas.com"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            event_bus=os.getenv("EVENT_BUS", "redis").lower(),
            host=os.getenv("RELAY_HOST", "0.0.0.0"),
            port=_int_env("RELAY_PORT", 5001),
            public_webhook_url=os.getenv("PUBLIC_WEBHOOK_URL") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            retention=RetentionConfig(
                active_ttl=_int_env("ACTIVE_TTL_SECONDS", ACTIVE_MEETING_TTL),
                completed_ttl=_int_env("COMPLETED_TTL_SECONDS", COMPLETED_MEETING_TTL),
                min_retention_ttl=_int_env("MIN_RETENTION_SECONDS", MINIMUM_RETENTION_TTL),
            ),
        )


# Global config instance
_config_instance: Optional[RelayConfig] = None


def get_config() -> RelayConfig:
    """Get the global relay configuration."""
    global _config_instance
    if _config_instance is None:
        _config_instance = RelayConfig.from_env()
    return _config_instance
