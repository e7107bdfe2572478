"""
Application settings

Values are read from the environment (a local .env file is loaded first).
"""

import logging
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    realtime_debounce_seconds: float = 0.5
    seed_on_startup: bool = False
    initial_admin_username: Optional[str] = None
    initial_admin_password: Optional[str] = None
    cors_origins: List[str] = ["*"]
    port: int = 8000
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME"),
        realtime_debounce_seconds=float(os.getenv("REALTIME_DEBOUNCE_SECONDS", "0.5")),
        seed_on_startup=_as_bool(os.getenv("SEED_ON_STARTUP")),
        initial_admin_username=os.getenv("INITIAL_ADMIN_USERNAME"),
        initial_admin_password=os.getenv("INITIAL_ADMIN_PASSWORD"),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        port=int(os.getenv("PORT", 8000)),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
