from functools import lru_cache
from typing import Literal

from fastapi import Depends
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Annotated


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./taskboard.db"
    create_tables: bool = True

    redis_dsn: str = "redis://localhost:6379/0"
    redis_pool_size: int = 5
    cache_backend: Literal["redis", "memory", "none"] = "redis"
    memory_cache_maxsize: int = 2048
    users_cache_key: str = "users:all"
    users_cache_ttl_seconds: int = 300  # 5 minutes

    host: str = "0.0.0.0"
    port: int = 5000
    environment: str = "development"
    log_level: str = "INFO"
    log_json: bool = False

    # client side
    api_base_url: str = "http://localhost:5000/api"
    api_timeout_seconds: float = 10.0
    cache_poll_interval_seconds: int = 10

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    return Settings()


SettingsDep = Annotated[Settings, Depends(get_settings)]
