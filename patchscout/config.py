"""
Runtime configuration via environment variables.

Every setting can be overridden with a PATCHSCOUT_* variable or a .env file,
e.g. PATCHSCOUT_MAX_WORKERS=8 or PATCHSCOUT_BROWSER_HOSTS="msrc.microsoft.com,example.com".
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, List, Optional, Tuple, Union

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_list(v: Any) -> List[str]:
    """Parse a list from JSON or a comma-separated string. Never raises."""
    if v is None:
        return []
    if isinstance(v, (list, tuple, set)):
        return [x.strip() for x in v if isinstance(x, str) and x.strip()]
    if isinstance(v, str):
        if not v.strip():
            return []
        try:
            parsed = json.loads(v)
            if isinstance(parsed, list):
                return [x.strip() for x in parsed if isinstance(x, str) and x.strip()]
        except (json.JSONDecodeError, TypeError):
            pass
        return [x.strip() for x in v.split(",") if x.strip()]
    return []


class Settings(BaseSettings):
    """Scraper settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PATCHSCOUT_",
        env_file=".env",
        extra="ignore",
    )

    # HTTP
    request_timeout_s: float = 30.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )
    # Randomized delay before the first attempt on each URL
    first_request_delay_min_ms: int = 500
    first_request_delay_max_ms: int = 1500
    # Minimum spacing between requests to the same host
    min_host_interval_ms: int = 1000

    # Retry policy
    max_attempts: int = Field(default=3, ge=1)
    base_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=8000, ge=0)
    jitter_ms: int = Field(default=500, ge=0)

    # Headless browser
    use_browser: bool = False
    browser_settle_ms: int = 8000
    browser_timeout_s: int = 45
    # NOTE: Union[...] keeps pydantic-settings from JSON-decoding plain strings.
    browser_hosts: Union[str, List[str], None] = []

    # Vendor APIs
    use_vendor_apis: bool = True
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    msrc_api_url: str = "https://api.msrc.microsoft.com/cvrf/v3.0"

    # Batch
    max_workers: int = Field(default=4, ge=1)
    batch_timeout_s: Optional[float] = None

    # Output / scoring
    score_threshold: float = 40.0
    link_delimiter: str = " | "

    @field_validator("browser_hosts", mode="before")
    @classmethod
    def parse_browser_hosts(cls, v: Any) -> List[str]:
        return [h.lower() for h in _parse_list(v)]

    @model_validator(mode="after")
    def check_windows(self) -> "Settings":
        if self.first_request_delay_max_ms < self.first_request_delay_min_ms:
            self.first_request_delay_max_ms = self.first_request_delay_min_ms
        if self.max_delay_ms < self.base_delay_ms:
            self.max_delay_ms = self.base_delay_ms
        return self

    @property
    def first_request_delay_ms(self) -> Tuple[int, int]:
        return (self.first_request_delay_min_ms, self.first_request_delay_max_ms)


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
