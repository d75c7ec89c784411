from pydantic_settings import BaseSettings
from typing import Optional, List

class Settings(BaseSettings):
    PROJECT_NAME: str = "Exam Portal"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: str = "5432"
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = ""
    DATABASE_NAME: str = "exam_portal"

    DATABASE_URL: str = ""
    TEST_DATABASE_URL: Optional[str] = None

    def __init__(self, **data):
        super().__init__(**data)
        if not self.DATABASE_URL:
            self.DATABASE_URL = (
                f'postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}'
                f'@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}'
            )

    # Timer policy (seconds)
    TIMER_WARNING_SECONDS: int = 300
    TIMER_CAUTION_SECONDS: int = 600

    # Client sync loop
    CLIENT_REFRESH_INTERVAL_SECONDS: float = 2.0
    CLIENT_TICK_INTERVAL_SECONDS: float = 1.0
    ANSWER_SAVE_DEBOUNCE_SECONDS: float = 0.5

    # Sessions
    SESSION_CODE_LENGTH: int = 6
    DEFAULT_MAX_STUDENTS: int = 50

    # Result notifications
    NOTIFICATION_DELAY_DAYS: int = 3
    NOTIFICATION_MAX_RETRIES: int = 3
    NOTIFICATION_BATCH_SIZE: int = 10
    NOTIFICATION_DISPATCH_INTERVAL_SECONDS: int = 60

    # Proctoring flag thresholds (incident counts); a critical incident always flags
    FLAG_HIGH_SEVERITY_INCIDENTS: int = 3
    FLAG_TOTAL_INCIDENTS: int = 5

    # Background reconciliation
    RECONCILE_INTERVAL_SECONDS: int = 30
    RECONCILE_BATCH_SIZE: int = 100

    LOG_DIR: str = "logs"

    class Config:
        env_file = ".env"

settings = Settings()
