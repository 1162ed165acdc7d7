from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    readwise_api_token: str
    readwise_base_url: str
    readwise_timeout: float
    max_pages: int | None
    max_duration: float | None
    log_level: str

    @staticmethod
    def from_env() -> "Settings":
        def _f(name: str, default: str) -> float:
            return float(os.getenv(name, default).strip())

        def _i(name: str, default: str) -> int:
            return int(os.getenv(name, default).strip())

        # 0 disables the pagination bound
        max_pages = _i("READWISE_MAX_PAGES", "1000")
        max_duration = _f("READWISE_MAX_DURATION", "0")

        return Settings(
            readwise_api_token=os.getenv("READWISE_API_TOKEN", "").strip(),
            readwise_base_url=os.getenv("READWISE_BASE_URL", "https://readwise.io/api").strip(),
            readwise_timeout=_f("READWISE_TIMEOUT", "30"),
            max_pages=max_pages or None,
            max_duration=max_duration or None,
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        )
