import os
from typing import Optional
from pydantic_settings import BaseSettings


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseSettings):
    kafka_bootstrap: str = os.getenv("KAFKA_BOOTSTRAP", "kafka:9092")
    jwt_issuer: str = os.getenv("JWT_ISSUER", "grambank")
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change")
    jwt_ttl_seconds: int = int(os.getenv("JWT_TTL_SECONDS", "3600"))
    internal_jwt_ttl_seconds: int = int(os.getenv("INTERNAL_JWT_TTL_SECONDS", "300"))

    database_url: Optional[str] = os.getenv("DATABASE_URL")
    mysql_user: str = os.getenv("MYSQL_USER", "root")
    mysql_password: str = os.getenv("MYSQL_PASSWORD", "root")
    mysql_host: str = os.getenv("MYSQL_HOST", "mysql")
    mysql_db: str = os.getenv("MYSQL_DB", "ledger")
    mysql_port: int = int(os.getenv("MYSQL_PORT", "3306"))

    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    bank_name: str = os.getenv("BANK_NAME", "GramBank")
    otp_ttl_seconds: int = int(os.getenv("OTP_TTL_SECONDS", "300"))
    lookup_timeout_seconds: float = float(os.getenv("LOOKUP_TIMEOUT_SECONDS", "2.0"))
    notification_timeout_seconds: float = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5.0"))

    # optimistic balance updates
    cas_max_attempts: int = int(os.getenv("CAS_MAX_ATTEMPTS", "5"))
    cas_retry_delay: float = float(os.getenv("CAS_RETRY_DELAY", "0.01"))

    history_limit: int = int(os.getenv("HISTORY_LIMIT", "200"))

    # known gaps, off unless explicitly enabled
    enforce_frozen_accounts: bool = _flag("ENFORCE_FROZEN_ACCOUNTS")
    enforce_upi_blacklist: bool = _flag("ENFORCE_UPI_BLACKLIST")

    enable_demo_endpoints: bool = _flag("ENABLE_DEMO_ENDPOINTS", "true")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+mysqldb://{self.mysql_user}:{self.mysql_password}"
            f"@{self.mysql_host}:{self.mysql_port}/{self.mysql_db}"
        )

settings = Settings()
