from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "MediQueue"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_URL: Optional[str] = None

    # Queue estimation
    DEFAULT_SERVICE_DURATION_MINUTES: float = 15.0
    SERVICE_DURATION_TTL_SECONDS: int = 600
    SERVICE_DURATION_SMOOTHING: float = 0.2
    QUEUE_REFRESH_INTERVAL_SECONDS: float = 30.0
    AUTO_NOTIFY_ON_LEAVE_TIME: bool = False
    # retired entries kept for snapshot and history reads
    TERMINAL_HISTORY_LIMIT: int = 1000

    class Config:
        case_sensitive = True
        env_file = ".env"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if not self.REDIS_URL:
            self.REDIS_URL = f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/0"

settings = Settings()
