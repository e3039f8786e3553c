import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class Settings:

    mongo_url: str
    mongo_db_name: str
    jwt_secret: str
    jwt_algorithm: str
    redis_url: str | None
    push_timeout_seconds: float
    notification_retention_days: int
    log_level: str


@lru_cache
def get_settings() -> Settings:
    return Settings(
        mongo_url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
        mongo_db_name=os.getenv("MONGO_DB_NAME", "bizchat"),
        jwt_secret=os.getenv("JWT_SECRET", "change-me"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        redis_url=os.getenv("REDIS_URL") or None,
        push_timeout_seconds=float(os.getenv("PUSH_TIMEOUT_SECONDS", "2.0")),
        notification_retention_days=int(os.getenv("NOTIFICATION_RETENTION_DAYS", "30")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
