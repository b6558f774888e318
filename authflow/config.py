from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_env_file() -> str | None:
    cur = Path(__file__).resolve()
    for parent in [cur.parent, *cur.parents]:
        candidate = parent / ".env"
        if candidate.exists():
            return str(candidate)
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_env_file() or ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # backend
    API_BASE_URL: str = "http://localhost:8080"
    HTTP_TIMEOUT_SEC: float = 8.0

    # storage
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    LOGIN_TTL_SEC: int = 600
    RESET_FLOW_TTL_SEC: int = 1800

    MIN_PASSWORD_LENGTH: int = 6
    LOG_LEVEL: str = "INFO"


settings = Settings()


class BotSettings(BaseSettings):
    """Telegram front end. Built lazily: BOT_TOKEN is only needed by the bot process."""

    model_config = SettingsConfigDict(
        env_file=_find_env_file() or ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    BOT_TOKEN: str
    BOTLOGIC_BASE_URL: str = "http://localhost:8000"
    HTTP_TIMEOUT_SEC: float = 8.0
    LOG_LEVEL: str = "INFO"
