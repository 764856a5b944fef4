from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


# backend/api/tancms/config.py -> parents[1] == backend/api
API_DIR = Path(__file__).resolve().parents[1]


def load_env() -> None:
    """
    Loads .env from:
      1) ENV_PATH if provided
      2) backend/api/.env (project default)
      3) current working directory .env (fallback)
    """
    env_path = os.getenv("ENV_PATH")
    if env_path:
        p = Path(env_path)
        if p.exists():
            load_dotenv(p, override=False)
            return

    p2 = API_DIR / ".env"
    if p2.exists():
        load_dotenv(p2, override=False)
        return

    p3 = Path.cwd() / ".env"
    if p3.exists():
        load_dotenv(p3, override=False)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    database_url: str | None
    log_level: str
    log_format: str
    default_page_size: int
    max_page_size: int
    worker_interval_seconds: int


def get_settings() -> Settings:
    load_env()
    return Settings(
        database_url=os.getenv("DATABASE_URL") or os.getenv("DB_URL"),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        log_format=(os.getenv("LOG_FORMAT") or "console").strip().lower(),
        default_page_size=_int_env("DEFAULT_PAGE_SIZE", 10),
        max_page_size=_int_env("MAX_PAGE_SIZE", 100),
        worker_interval_seconds=_int_env("WORKER_INTERVAL_SECONDS", 30),
    )


def require_database_url(settings: Settings) -> str:
    if settings.database_url:
        return settings.database_url

    tried = [
        f"ENV_PATH={os.getenv('ENV_PATH')}",
        str(API_DIR / ".env"),
        str(Path.cwd() / ".env"),
    ]
    raise RuntimeError(
        "DATABASE_URL is not set. Ensure it exists in backend/api/.env or set ENV_PATH.\n"
        f"Tried: {', '.join(tried)}"
    )
