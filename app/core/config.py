from datetime import time

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://engagement:engagement@db:5432/engagement"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # Timezone assigned to users created without one.
    DEFAULT_TIMEZONE: str = "UTC"

    # --- Check-in recorder ---
    # How far ahead of the server clock a client timestamp may be.
    CHECKIN_CLOCK_SKEW_SECONDS: int = 300
    # Oldest offline action accepted, in days before the user's local today.
    CHECKIN_MAX_BACKDATE_DAYS: int = 7
    CHECKIN_UPSERT_ATTEMPTS: int = 3

    # --- Risk evaluator ---
    # Fraction of the local day after which an unprotected streak is at risk.
    # 0.75 is 18:00 on a 24-hour day.
    STREAK_RISK_THRESHOLD: float = 0.75

    # --- Notification scheduler ---
    NOTIFICATION_DEFAULT_TIME: time = time(7, 0)
    NOTIFICATION_MAX_ATTEMPTS: int = 3
    NOTIFICATION_BACKOFF_SECONDS: float = 2.0
    NOTIFICATION_WORKERS: int = 4
    # "log" writes payloads to the application log, "webhook" POSTs them.
    NOTIFICATION_TRANSPORT: str = "log"
    NOTIFICATION_WEBHOOK_URL: str = ""
    NOTIFICATION_WEBHOOK_TOKEN: str = ""
    NOTIFICATION_WEBHOOK_TIMEOUT: float = 10.0

    # Shared secret for the cron hook. Empty disables the check.
    INTERNAL_TOKEN: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
