"""Environment-driven runtime settings."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger("dreamvision")

MODULE_DIR = Path(__file__).resolve().parent
REPO_ROOT = MODULE_DIR.parent

# Existing process env wins over both files.
load_dotenv(dotenv_path=MODULE_DIR / ".env", override=False)
load_dotenv(dotenv_path=REPO_ROOT / ".env", override=False)

PLACEHOLDER_API_KEY = "your-openai-api-key"


def _is_truthy(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _first_nonempty_env(*keys: str) -> Optional[str]:
    for key in keys:
        value = os.getenv(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, str(default)).strip()
    try:
        return max(minimum, int(raw))
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        return default


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        return max(minimum, float(raw))
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        return default


def _resolve_api_key() -> str:
    key = _first_nonempty_env("OPENAI_API_KEY") or ""
    return "" if key == PLACEHOLDER_API_KEY else key


def resolve_openai_base_url() -> Optional[str]:
    configured = _first_nonempty_env("OPENAI_BASE_URL", "OPENAI_API_BASE")
    if not configured:
        return None
    lowered = configured.lower()
    if "localhost" in lowered or "127.0.0.1" in lowered:
        logger.error("Invalid OPENAI base URL '%s' detected; falling back to default OpenAI endpoint", configured)
        return None
    return configured


def resolve_proxy_url() -> Optional[str]:
    return _first_nonempty_env("OPENAI_PROXY_URL", "HTTPS_PROXY", "https_proxy", "ALL_PROXY", "all_proxy")


# ------------------------------------------------------------------------------
OPENAI_API_KEY = _resolve_api_key()
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
REMOTE_INTERPRETATION_ENABLED = _is_truthy(os.getenv("REMOTE_INTERPRETATION_ENABLED", "1"))
REMOTE_TIMEOUT_SEC = _env_float("REMOTE_TIMEOUT_SEC", 20.0, minimum=1.0)
REMOTE_MAX_TOKENS = _env_int("REMOTE_MAX_TOKENS", 1500, minimum=1)
REMOTE_TEMPERATURE = _env_float("REMOTE_TEMPERATURE", 0.7)

TRIAL_INTERPRETATIONS_ALLOWED = _env_int("TRIAL_INTERPRETATIONS_ALLOWED", 3)
DREAM_TIMEZONE = os.getenv("DREAM_TIMEZONE", "UTC").strip() or "UTC"
ALLOWED_ORIGINS = [origin.strip() for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if origin.strip()]
