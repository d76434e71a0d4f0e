from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    MAX_EVENT_SIZE: int = 65536
    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"
    # Routing table source (YAML)
    ROUTING_CONFIG_PATH: str = "config/routing.yaml"
    FALLBACK_QUEUE: str = "fallback"
    # Transformation rules
    RULES_DIRECTORY: str = "rules"
    ENABLE_RULE_CACHING: bool = True
    RULE_CACHE_TTL_SECONDS: int = 300
    DEFAULT_RULE: str | None = None  # Rule name used when none is requested


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
