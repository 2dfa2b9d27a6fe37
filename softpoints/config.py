from decimal import Decimal
from typing import Dict, Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="softpoints/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "SoftPoints API"
    PROJECT_NAME: str = "SoftPoints Ledger & Reward Engine"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USERNAME: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = "softpoints"

    # Explicit URL wins over POSTGRES_* (e.g. sqlite+aiosqlite:///./softpoints.db)
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @property
    def database_url(self) -> str:
        """Construct async database URL from individual components"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # URL encode the password to handle special characters
        encoded_password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+asyncpg://{self.POSTGRES_USERNAME}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DATABASE}"

    # Security
    SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # AWS
    AWS_REGION: str = "eu-west-1"
    AWS_SQS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SQS_SECRET_ACCESS_KEY: Optional[str] = None
    SQS_ENDPOINT_URL: Optional[str] = None

    # Queue URLs (None = event is logged and skipped)
    SQS_NOTIFICATION_QUEUE_URL: Optional[str] = None
    SQS_WALLET_SYNC_QUEUE_URL: Optional[str] = None
    # 미설정이면 지급 요청을 큐에 넣지 못하므로 모든 출금이 차감 후 즉시 환불(failed)됨
    SQS_PAYOUT_QUEUE_URL: Optional[str] = None
    SQS_REWARD_DEADLETTER_QUEUE_URL: Optional[str] = None

    # Redis (session-scoped balance cache)
    REDIS_ENABLED: bool = False
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None
    BALANCE_CACHE_TTL_SECONDS: int = 300

    # Reward dispatch
    REWARD_TIMEOUT_SECONDS: float = 5.0
    REWARD_MAX_RETRIES: int = 1
    # 보상 1건당 메인 지갑 보너스 (source_type -> 금액), 지갑 서비스가 wallet-sync 이벤트로 적립
    # 예: WALLET_BONUS_BY_SOURCE='{"sales": "0.05"}'
    WALLET_BONUS_BY_SOURCE: Dict[str, Decimal] = {}

    # Withdrawal / conversion
    POINTS_PER_CURRENCY_UNIT: Dict[str, int] = {"USD": 100}  # 100 SP = $1.00
    WITHDRAWAL_MIN_AMOUNT: Decimal = Decimal("5")
    WITHDRAWAL_FEE_RATE: Decimal = Decimal("0.02")
    WITHDRAWAL_MIN_FEE: Decimal = Decimal("0.50")

    # Fraud / eligibility
    LARGE_TRANSACTION_THRESHOLD: Decimal = Decimal("500")
    RISK_MAX_REQUESTS_PER_HOUR: int = 60
    RISK_MAX_FAILED_VERIFICATIONS: int = 3
    RISK_MAX_WITHDRAWALS_PER_DAY: int = 3
    NEW_ACCOUNT_DAYS: int = 7
    MAX_PIONEER_BADGES: int = 500
    MIN_PIONEER_ELIGIBILITY_SCORE: int = 75

    # Calendar day used for daily login rewards
    TIMEZONE: str = "Africa/Lagos"


settings = Settings()
