from __future__ import annotations

import socket
from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SERVICE_NAME: Literal["users", "tasks"] = "tasks"

    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    # Full SQLAlchemy URL; overrides the POSTGRES_* parts when set.
    DATABASE_URL: str | None = None

    REDIS_URL: str = "redis://localhost:6379/0"

    BROKER_PARTITIONS: int = 3
    BROKER_STREAM_MAXLEN: int | None = 100_000
    USER_EVENTS_TOPIC: str = "user-events"
    TASK_EVENTS_TOPIC: str = "task-events"
    DLT_SUFFIX: str = ".DLT"

    OUTBOX_PUBLISHER_ENABLED: bool = True
    OUTBOX_POLL_INTERVAL: float = 5.0
    OUTBOX_BATCH_SIZE: int = 10
    OUTBOX_MAX_RETRIES: int = 3
    OUTBOX_STALE_AFTER_SECONDS: float = 60.0
    # Must stay below OUTBOX_STALE_AFTER_SECONDS
    OUTBOX_SEND_TIMEOUT: float = 30.0
    OUTBOX_RETENTION_HOURS: int = 24
    OUTBOX_CLEANUP_INTERVAL: float = 24 * 3600.0

    CONSUMER_ENABLED: bool = True
    CONSUMER_GROUP: str = "tasks-service-group"
    DLT_CONSUMER_GROUP: str = "tasks-service-dlt-group"
    CONSUMER_NAME: str = socket.gethostname()
    CONSUMER_BATCH_SIZE: int = 10
    CONSUMER_BLOCK_MS: int = 5000
    CONSUMER_CLAIM_IDLE_MS: int = 60_000
    CONSUMER_MAX_ATTEMPTS: int = 3
    CONSUMER_BACKOFF_SECONDS: float = 1.0
    CONSUMER_BACKOFF_MULTIPLIER: float = 2.0
    LEGACY_PAYLOAD_FALLBACK: bool = True

    USERS_SERVICE_URL: str = "http://api-users:8081"
    USERS_SERVICE_TIMEOUT: float = 5.0
    USER_CACHE_TTL_SECONDS: float = 300.0
    EXISTENCE_RETRY_ATTEMPTS: int = 3
    EXISTENCE_RETRY_BACKOFF_SECONDS: float = 0.2
    EXISTENCE_FAIL_OPEN: bool = True
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_RECOVERY_SECONDS: float = 30.0

    CORS_ORIGINS: list[str] = ["*"]

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
