import os
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="../.env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    GIGS_DB_USER: str          = os.getenv("GIGS_DB_USER", "")
    GIGS_DB_PASSWORD: str      = os.getenv("GIGS_DB_PASSWORD", "")
    GIGS_DB_NAME: str          = os.getenv("GIGS_DB_NAME", "")
    GIGS_DB_HOST: str          = os.getenv("GIGS_DB_HOST", "")
    GIGS_DB_PORT: int          = int(os.getenv("GIGS_DB_PORT", "5432"))
    # full URL override, e.g. sqlite+aiosqlite:///./gigs.db for local runs
    GIGS_DATABASE_URL: str     = os.getenv("GIGS_DATABASE_URL", "")
    DB_ECHO: bool              = False

    STRIPE_SECRET_KEY: str     = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_MAX_NETWORK_RETRIES: int = 0
    PLATFORM_FEE_PERCENT: float = 0.065
    DEFAULT_CURRENCY: str      = "gbp"

    RABBIT_USER: str           = os.getenv("RABBIT_USER", "")
    RABBIT_PASSWORD: str       = os.getenv("RABBIT_PASSWORD", "")
    RABBIT_HOST: str           = os.getenv("RABBIT_HOST", "")
    RABBIT_PORT: int           = int(os.getenv("RABBIT_PORT", "5672"))

    OUTBOX_POLL_INTERVAL: int  = int(os.getenv("OUTBOX_POLL_INTERVAL", "1"))

    @property
    def database_url(self) -> str:
        if self.GIGS_DATABASE_URL:
            return self.GIGS_DATABASE_URL
        return (
            f"postgresql+asyncpg://"
            f"{self.GIGS_DB_USER}:"
            f"{self.GIGS_DB_PASSWORD}"
            f"@{self.GIGS_DB_HOST}:"
            f"{self.GIGS_DB_PORT}/"
            f"{self.GIGS_DB_NAME}"
        )

    @property
    def rabbit_url(self) -> str:
        return f"amqp://{self.RABBIT_USER}:{self.RABBIT_PASSWORD}@{self.RABBIT_HOST}:{self.RABBIT_PORT}/"

settings = Settings()
