from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./quotes.db"
    LOG_LEVEL: str = "INFO"

    # Ledger. One VAT policy per process: "fixed_rate" | "ratio_preserving"
    VAT_POLICY: str = "fixed_rate"
    FIXED_VAT_RATE: float = 0.18
    LEDGER_MAX_ATTEMPTS: int = 3  # optimistic retries on concurrent header writes

    # Quotes
    QUOTE_NUMBER_PREFIX: str = "QT"
    ENFORCE_STATUS_TRANSITIONS: bool = True

    # Startup
    SEED_HEALTH_TESTS: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
