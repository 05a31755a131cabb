"""Application configuration helpers.

Credentials are only read from the environment (optionally through a local
`.env` file). Missing keys are logged when settings load and raised as
`ConfigurationError` by the component that first needs them.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class ConfigurationError(RuntimeError):
    """Raised when mandatory configuration is missing."""


@dataclass(frozen=True)
class Settings:
    serper_api_key: str = ""
    openai_api_key: str = ""
    openai_model: str = DEFAULT_OPENAI_MODEL
    serper_gl: str = "mx"
    serper_hl: str = "es"
    search_delay_min_ms: int = 150
    search_delay_max_ms: int = 350
    enrich_workers: int = 4
    rate_limit_max_requests: int = 5
    rate_limit_window_seconds: int = 60
    database_url: str = ""
    workspace_id: Optional[str] = None
    worker_port: int = 9000


def require_setting(value: Optional[str], name: str) -> str:
    """Return `value` or raise `ConfigurationError` naming the env variable."""
    if not value:
        raise ConfigurationError(f"{name} must be set in the environment.")
    return value


def _first_env(*names: str) -> str:
    for name in names:
        value = os.getenv(name)
        if value:
            return value.strip()
    return ""


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    serper_api_key = _first_env("SERPER_API_KEY")
    openai_api_key = _first_env("OPENAI_API_KEY", "OPENAI_APIKEY", "OPENAI_KEY")
    openai_model = _first_env("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL
    database_url = os.getenv("DATABASE_URL", "")
    workspace_id = (os.getenv("DEFAULT_WORKSPACE_ID") or "").strip() or None

    if not serper_api_key:
        logger.warning("SERPER_API_KEY is not configured; search requests will fail.")
    if not openai_api_key:
        logger.warning("OPENAI_API_KEY is not configured; ranking and copy generation will fail.")
    if not database_url:
        logger.warning("DATABASE_URL is not set; search runs will not be persisted.")

    return Settings(
        serper_api_key=serper_api_key,
        openai_api_key=openai_api_key,
        openai_model=openai_model,
        serper_gl=os.getenv("SERPER_GL", "mx").strip().lower() or "mx",
        serper_hl=os.getenv("SERPER_HL", "es").strip().lower() or "es",
        search_delay_min_ms=int(os.getenv("SEARCH_DELAY_MIN_MS", "150")),
        search_delay_max_ms=int(os.getenv("SEARCH_DELAY_MAX_MS", "350")),
        enrich_workers=int(os.getenv("ENRICH_WORKERS", "4")),
        rate_limit_max_requests=int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "5")),
        rate_limit_window_seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60")),
        database_url=database_url,
        workspace_id=workspace_id,
        worker_port=int(os.getenv("WORKER_PORT", "9000")),
    )
