import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    """Настройки приложения из переменных окружения (и .env)."""

    # База данных
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./lookmax.db")

    # Администрирование
    admin_key: str = os.getenv("ADMIN_KEY", "")
    admin_key_hash: str | None = os.getenv("ADMIN_KEY_HASH") or None

    # Комментарии
    comment_cooldown_ms: int = int(os.getenv("COMMENT_COOLDOWN_MS", "5000"))

    # Ограничение частоты запросов (slowapi)
    post_rate_limit: str = os.getenv("POST_RATE_LIMIT", "60/minute")
    testing: bool = os.getenv("TESTING", "").lower() == "true"

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def __post_init__(self) -> None:
        if self.comment_cooldown_ms < 0:
            raise ValueError(
                f"COMMENT_COOLDOWN_MS must be >= 0, got {self.comment_cooldown_ms}"
            )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
