from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    WORKERS: int = 1
    LOG_LEVEL: str = "INFO"

    # Upstream sports data
    STREAMED_API_BASE: str = "https://streamed.pk/api"
    UPSTREAM_TIMEOUT_SECONDS: float = 15.0

    # Image cache
    IMAGE_CACHE_DIR: str = "/tmp/stream_image_cache"
    IMAGE_CACHE_MAX_AGE_SECONDS: int = 86400  # 1 day

    CORS_ALLOW_ORIGINS: str = "*"
    CORS_ALLOW_CREDENTIALS: bool = False

    # Request rate for the proxy routes (slowapi syntax)
    API_RATE_LIMIT: str = "120/minute"

    # IP / bot blocking
    IP_BLOCKER_ENABLED: bool = True
    IP_BLOCKER_MAX_FAILED_ATTEMPTS: int = 5
    IP_BLOCKER_BLOCK_DURATION_SECONDS: int = 15 * 60
    IP_BLOCKER_SWEEP_INTERVAL_SECONDS: int = 5 * 60
    IP_BLOCKER_STORE: str = "memory"  # memory or redis
    IP_BLOCKER_CLASSIFIER: str = "linear"  # linear or sorted

    # Redis (shared violation store)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None
    REDIS_KEY_PREFIX: str = "ipblock:"

    BUILD_GIT_SHA: Optional[str] = None
    BUILD_IMAGE_TAG: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
