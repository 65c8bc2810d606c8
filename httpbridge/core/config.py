from __future__ import annotations

from pathlib import Path

import platformdirs
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Cookie persistence
    cookies_enabled: bool = True
    cookie_dir: Path | None = None  # defaults to the platform cache dir
    cookie_filename: str = "Cookies"
    cookie_save_attempts: int = 3

    # Request lifecycle
    stream_buffer_size: int = 64 * 1024
    reap_grace_seconds: float = 30.0

    # HTTP transport
    http_timeout: float = 30.0
    http_verify_ssl: bool = True
    http_follow_redirects: bool = True
    http_user_agent: str = "httpbridge/1.0"

    # Scope
    allowed_urls: list[str] = ["http://*", "https://*"]
    denied_urls: list[str] = []

    # Logging
    log_level: str = "INFO"

    @property
    def cookie_path(self) -> Path:
        base = self.cookie_dir or Path(platformdirs.user_cache_dir("httpbridge"))
        return base / self.cookie_filename


settings = Settings()
