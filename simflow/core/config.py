from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SIMFLOW_",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "SimFlow Engineering Portal"
    environment: str = "dev"
    log_level: str = "INFO"

    # ─────────── API ───────────
    api_prefix: str = "/api/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str

    # ─────────── LIFECYCLE ───────────
    system_actor_name: str = "System"
    sweep_interval_seconds: int = 3600
    near_deadline_days: int = 7


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
