from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DATA_SOURCE: str = "apify"
    APIFY_API_TOKEN: str | None = None
    APIFY_ACTOR_ID: str = "2rJKkhh7vjpX7pvjg"

    ENRICHMENT: str = "none"
    ICYPEAS_API_KEY: str | None = None
    CRAWL4AI_BASE_URL: str = "http://localhost:11235"
    CRAWL4AI_API_TOKEN: str | None = None

    EMAIL_VERIFICATION: str = "none"
    REOON_API_KEY: str | None = None

    MONTHLY_CREDIT_CAP: int = 500

    DB_URL: str = "sqlite:///./hiresignal.db"
    LOG_LEVEL: str = "INFO"

    POLL_INTERVAL_SECONDS: float = 2.0
    MAX_POLL_RETRIES: int = 3
    MAX_RUN_SECONDS: float = 300.0
    DEFAULT_MAX_RESULTS: int = 150

    ENRICH_CONCURRENCY: int = 3
    ENRICH_DELAY_SECONDS: float = 1.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
