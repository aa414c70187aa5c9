from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_NAME_MAPPINGS = "config/name-mappings.json"
DEFAULT_LIST_DOCUMENT = "data/list.json"
DEFAULT_API_BASE_URL = "https://sg-wiki-api-static.hoyolab.com/hoyowiki/zzz/wapi/entry_page"

DEFAULT_BATCH_SIZE = 5
DEFAULT_DELAY_MS = 200
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000
DEFAULT_MIN_SUCCESS_RATE = 0.8


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class BatchConfig:
    """Batch run options."""
    batch_size: int = DEFAULT_BATCH_SIZE                    # concurrent items in flight.
    delay_ms: int = DEFAULT_DELAY_MS                        # minimum gap between upstream dispatches.
    max_retries: int = DEFAULT_MAX_RETRIES                  # retry passes, and in-place rate limit retries per fetch.
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS            # pause before each retry pass (and backoff base).
    min_success_rate: float = DEFAULT_MIN_SUCCESS_RATE      # gate for `validate_result`.

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_delay_ms < 0:
            raise ValueError("retry_delay_ms must be >= 0")
        if not 0.0 <= self.min_success_rate <= 1.0:
            raise ValueError("min_success_rate must be between 0 and 1")

    @property
    def delay_s(self) -> float:
        return self.delay_ms / 1000

    @property
    def retry_delay_s(self) -> float:
        return self.retry_delay_ms / 1000

    @classmethod
    def from_env(cls) -> BatchConfig:
        """Defaults, overridden by `WIKI_PIPELINE_*` environment variables."""
        return cls(
            batch_size=_env_int("WIKI_PIPELINE_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            delay_ms=_env_int("WIKI_PIPELINE_DELAY_MS", DEFAULT_DELAY_MS),
            max_retries=_env_int("WIKI_PIPELINE_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            retry_delay_ms=_env_int("WIKI_PIPELINE_RETRY_DELAY_MS", DEFAULT_RETRY_DELAY_MS),
            min_success_rate=_env_float("WIKI_PIPELINE_MIN_SUCCESS_RATE", DEFAULT_MIN_SUCCESS_RATE),
        )


def get_name_mappings_path() -> Path:
    """
    Path of the name mapping table.
    Set `WIKI_NAME_MAPPINGS` to override.
    """
    return Path(os.getenv("WIKI_NAME_MAPPINGS", DEFAULT_NAME_MAPPINGS))


def get_list_document_path() -> Path:
    """
    Path of the saved wiki list page used as a secondary source for some filters.
    Set `WIKI_LIST_DOCUMENT` to override.
    """
    return Path(os.getenv("WIKI_LIST_DOCUMENT", DEFAULT_LIST_DOCUMENT))


def get_api_base_url() -> str:
    return os.getenv("WIKI_API_BASE_URL", DEFAULT_API_BASE_URL)


def get_log_level() -> str:
    return os.getenv("WIKI_PIPELINE_LOG_LEVEL", "INFO")
