from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List, Optional
from urllib.parse import quote_plus


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="loyaltyapi/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "Loyalty Points API"
    PROJECT_NAME: str = "Loyalty Points API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = ""
    POSTGRES_PORT: int = 5432
    POSTGRES_USERNAME: str = ""
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = ""
    POSTGRES_SCHEMA: str = "loyalty"

    # 설정되면 POSTGRES_* 대신 사용 (로컬 SQLite 등)
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @property
    def database_url(self) -> str:
        """Construct database URL from individual components"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # URL encode the password to handle special characters
        encoded_password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+psycopg2://{self.POSTGRES_USERNAME}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DATABASE}"

    # Security
    SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # CORS
    CORS_ALLOW_ORIGINS: List[str] = ["*"]

    # Ledger
    LEDGER_RETRY_ATTEMPTS: int = 3
    LEDGER_RETRY_BASE_DELAY: float = 0.05  # seconds, doubled per attempt
    GUARD_WINDOW_SECONDS: int = 60
    DUPLICATE_WINDOW_SECONDS: int = 60
    AUDIT_BATCH_SIZE: int = 200

    # Business Rules
    SIGNUP_BONUS_POINTS: int = 100
    REFERRAL_BONUS_POINTS: Dict[int, int] = {1: 500, 2: 200, 3: 100}
    REFERRAL_COMMISSION_RATES: Dict[int, float] = {1: 0.10, 2: 0.05, 3: 0.02}
    AD_BASE_POINTS: int = 50
    AD_MAX_PER_DAY: int = 10
    DAILY_AD_TASK_POINTS: int = 50
    CHECK_IN_DAY_REWARDS: List[int] = [20, 40, 80, 120, 150, 200]
    REWARD_DAY_UTC_OFFSET_HOURS: int = 0


settings = Settings()
