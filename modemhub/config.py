"""
Configuration for ModemHub.

Settings come from environment variables (optionally a local .env file).
No side effects at module level: call load_settings() at startup.
"""

import logging
import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)

ENV_PREFIX = "MODEMHUB_"


class Settings(BaseModel):
    """Runtime settings shared by the Vercel handlers and the FastAPI app."""

    log_level: str = "INFO"
    # Report validation/not-found errors as 400/404 instead of 500
    strict_status: bool = False
    seed_defaults: bool = True
    cors_origin: str = "*"
    # Include tracebacks in 500 responses
    debug: bool = False
    is_vercel: bool = False

    class Config:
        """Pydantic v2 config."""

        extra = "ignore"


def _is_vercel(env: Mapping[str, str]) -> bool:
    # Check both VERCEL and VERCEL_ENV for Vercel detection
    return bool(env.get("VERCEL") or env.get("VERCEL_ENV"))


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment.

    Args:
        env: Mapping to read instead of os.environ (tests). When omitted,
            a .env file in the working directory is loaded first.

    Returns:
        Validated Settings
    """
    if env is None:
        load_dotenv()
        env = os.environ

    raw = {
        "log_level": env.get(f"{ENV_PREFIX}LOG_LEVEL"),
        "strict_status": env.get(f"{ENV_PREFIX}STRICT_STATUS"),
        "seed_defaults": env.get(f"{ENV_PREFIX}SEED_DEFAULTS"),
        "cors_origin": env.get(f"{ENV_PREFIX}CORS_ORIGIN"),
        "debug": env.get(f"{ENV_PREFIX}DEBUG") or env.get("DEBUG"),
        "is_vercel": _is_vercel(env),
    }
    settings = Settings.model_validate({key: value for key, value in raw.items() if value not in (None, "")})
    settings.log_level = settings.log_level.upper()
    return settings


def configure_logging(settings: Settings) -> None:
    """Apply the configured log level to the root logger."""
    level = getattr(logging, settings.log_level, None)
    if not isinstance(level, int):
        logger.warning(f"Unknown log level {settings.log_level!r}, using INFO")
        level = logging.INFO
    logging.basicConfig(level=level)
    logging.getLogger().setLevel(level)
