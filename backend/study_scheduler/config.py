import os
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: Optional[str] = Field(None, alias="SCHEDULER_DATABASE_URL")
    database_pool_size: int = Field(10, alias="SCHEDULER_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="SCHEDULER_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="SCHEDULER_DATABASE_ECHO")
    debug_endpoints: bool = Field(False, alias="SCHEDULER_DEBUG_ENDPOINTS")
    legacy_model_cutoff: datetime = Field(
        datetime(2026, 1, 1, tzinfo=timezone.utc),
        alias="SCHEDULER_LEGACY_MODEL_CUTOFF",
    )
    behavior_batch_size: int = Field(10, ge=1, alias="SCHEDULER_BEHAVIOR_BATCH_SIZE")
    redistribution_max_tasks: int = Field(100, ge=1, alias="SCHEDULER_REDISTRIBUTION_MAX_TASKS")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid scheduler configuration: {exc}") from exc
