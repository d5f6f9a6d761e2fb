from pydantic_settings import BaseSettings
from pydantic import ConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    SECRET_KEY: str
    ENCRYPTION_KEY: str
    CRON_SECRET: str = ""
    LOG_LEVEL: str = "INFO"

    TRADING_DAY_ROLLOVER_HOUR_UTC: int = 21
    DEFAULT_PERSONAL_DAILY_LOSS_LIMIT_PCT: float = 3.0
    DAILY_LOSS_WARNING_USAGE_PCT: float = 70.0
    DEADLINE_WARNING_DAYS: str = "7,3,1"
    RISK_VALIDATION_LOG_RETENTION_DAYS: int = 30
    DRAWDOWN_ALERT_RETENTION_DAYS: int = 90

    ACCESS_TOKEN_TTL_MINUTES: int = 60
    REFRESH_TOKEN_TTL_DAYS: int = 7

    OTP_TTL_MINUTES: int = 10
    OTP_MAX_SENDS_PER_HOUR: int = 5
    OTP_MAX_VERIFY_ATTEMPTS_PER_HOUR: int = 10

    # VAPID key as PEM or base64url DER; push is skipped when empty
    VAPID_PRIVATE_KEY: str = ""
    VAPID_CLAIMS_SUB: str = "mailto:alerts@traderedgepro.com"

    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Trader Edge Pro <noreply@traderedgepro.com>"
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""
    DISCORD_WEBHOOK_URL: str = ""
    HTTP_TIMEOUT_SECONDS: float = 8.0

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @property
    def deadline_warning_days(self) -> set[int]:
        return {
            int(x.strip())
            for x in (self.DEADLINE_WARNING_DAYS or "").split(",")
            if x.strip()
        }


settings = Settings()
