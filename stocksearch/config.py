"""Application configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


@dataclass(frozen=True)
class Settings:
    """Simple settings container with environment variable overrides.

    All timings are in milliseconds, matching the values operators tune in the
    console (debounce 300 ms, request budget 10 s, retry step 500 ms).
    """

    api_base_url: str = _get_env("API_BASE_URL", "http://localhost:8080/api/v1")
    debounce_ms: int = int(_get_env("DEBOUNCE_MS", "300"))
    page_size: int = int(_get_env("PAGE_SIZE", "50"))
    request_timeout_ms: int = int(_get_env("REQUEST_TIMEOUT_MS", "10000"))
    max_retries: int = int(_get_env("MAX_RETRIES", "2"))
    retry_delay_ms: int = int(_get_env("RETRY_DELAY_MS", "500"))
    min_search_length: int = int(_get_env("MIN_SEARCH_LENGTH", "0"))
    mock_latency_ms: int = int(_get_env("MOCK_LATENCY_MS", "150"))
    log_level: str = _get_env("LOG_LEVEL", "INFO")


settings = Settings()
