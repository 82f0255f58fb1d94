# app/config.py
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str
    env: Literal["dev", "stage", "prod"] = "dev"
    debug: bool = False
    log_level: str = "INFO"
    access_log: bool = True
    upstream_log_level: str = "WARNING"
    sql_echo: bool = False
    auto_init_db: bool = True

    # Upstream providers
    hiscores_base_url: str = "https://secure.runescape.com"
    cml_base_url: str = "https://crystalmathlabs.com/tracker/api.php"
    cml_history_period: str = "5y"
    upstream_timeout_seconds: float = 20.0
    user_agent: str = "hiscores-tracker/0.1"

    # Cooldowns
    track_cooldown_seconds: int = 60
    import_cooldown_hours: int = 24

    search_limit: int = 20

    # Background jobs
    job_max_attempts: int = 3
    job_retry_delay_seconds: float = 30.0

    @property
    def is_dev(self) -> bool:
        return self.env == "dev" or self.debug is True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
