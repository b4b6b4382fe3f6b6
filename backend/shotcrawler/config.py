from pydantic_settings import BaseSettings
from functools import lru_cache
import os

# Optional .env in the repo root (two levels up from backend/shotcrawler/)
_ENV_PATH = os.path.join(os.path.dirname(__file__), "..", "..", ".env")


class Settings(BaseSettings):
    # Crawl limits
    max_concurrent: int = 3  # each task holds its own rendered page
    max_pages: int = 100
    navigation_timeout_ms: int = 30000
    idle_wait_timeout_ms: int = 5000

    # Capture
    viewport_width: int = 1280
    viewport_height: int = 720
    screenshot_quality: int = 80  # JPEG
    screenshot_max_width: int | None = None  # downscale wider captures when set

    # Browser
    headless: bool = True
    chromium_executable_path: str | None = None
    chromium_args: list[str] = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-accelerated-2d-canvas",
        "--no-first-run",
        "--no-zygote",
        "--disable-gpu",
    ]

    # Event stream
    subscriber_queue_size: int = 256

    # Server
    cors_origins: list[str] = ["*"]
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    class Config:
        env_file = _ENV_PATH if os.path.exists(_ENV_PATH) else None
        env_file_encoding = "utf-8"
        env_prefix = "CRAWLER_"
        extra = "ignore"


@lru_cache()
def get_settings():
    return Settings()
