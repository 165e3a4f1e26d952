"""Environment-driven settings.

Values come from the process environment, optionally seeded from a `.env`
file. `get_settings()` builds the settings once per process.
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Settings(BaseModel):
    database_url: str = "sqlite:///spendsort.db"
    redis_url: Optional[str] = None
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    model_path: Optional[str] = None
    training_cache_seconds: float = Field(300.0, ge=0.0)
    rule_accept_threshold: float = Field(0.80, ge=0.0, le=1.0)
    embedding_top_k: int = Field(5, ge=1)
    training_schedule_hour: int = Field(2, ge=0, le=23)
    disable_beat: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL") or "sqlite:///spendsort.db",
            redis_url=os.getenv("REDIS_URL") or None,
            embedding_model=os.getenv("EMBEDDING_MODEL") or DEFAULT_EMBEDDING_MODEL,
            model_path=os.getenv("MODEL_PATH") or None,
            training_cache_seconds=_env_float("TRAINING_CACHE_SECONDS", 300.0),
            rule_accept_threshold=_env_float("RULE_ACCEPT_THRESHOLD", 0.80),
            embedding_top_k=_env_int("EMBEDDING_TOP_K", 5),
            training_schedule_hour=_env_int("TRAINING_SCHEDULE_HOUR", 2),
            disable_beat=os.getenv("CELERY_DISABLE_BEAT", "false").lower() == "true",
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


__all__ = ["Settings", "get_settings", "DEFAULT_EMBEDDING_MODEL"]
