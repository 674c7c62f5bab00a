"""Environment-driven configuration.

Values come from the process environment, with a local .env file loaded
first. Nothing here is required to boot: without OPENAI_API_KEY the agent
answers from scripted fallbacks, and without FINAL_CALLBACK_URL reports are
logged and dropped.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


@dataclass
class Settings:
    port: int = 3000
    api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    callback_url: Optional[str] = None
    max_turns: int = 10
    lookup_window: int = 8
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            port=_int_env("PORT", 3000),
            api_key=os.environ.get("API_KEY") or None,
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            openai_model=os.environ.get("OPENAI_MODEL", "gpt-4o-mini"),
            callback_url=os.environ.get("FINAL_CALLBACK_URL") or None,
            max_turns=_int_env("MAX_TURNS", 10),
            lookup_window=_int_env("LOOKUP_WINDOW", 8),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


def validate_config(settings: Settings) -> None:
    """Log a warning for each unset variable that changes runtime behaviour."""
    checks = [
        ("OPENAI_API_KEY", settings.openai_api_key, "agent will use fallback responses"),
        ("FINAL_CALLBACK_URL", settings.callback_url, "final reports will not be delivered"),
        ("API_KEY", settings.api_key, "x-api-key authentication is disabled"),
    ]
    for var, value, consequence in checks:
        if not value:
            logger.warning("%s is not set: %s", var, consequence)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
