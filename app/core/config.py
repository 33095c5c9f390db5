import os
from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

load_dotenv()


class Settings(BaseModel):
    """Application settings loaded from environment: store backend and Firebase credentials, collection names, cache TTL, OpenAI model, rate limits, and cron secret.
    Why available: Single source of configuration so the tracker, cache, and endpoints agree on collections and limits."""
    store_backend: str = os.getenv("STORE_BACKEND", "memory")
    firebase_project_id: str = os.getenv("FIREBASE_PROJECT_ID", "")
    service_account_json: str = os.getenv("SERVICE_ACCOUNT_JSON", "")
    jobs_collection: str = os.getenv("JOBS_COLLECTION", "ai_jobs")
    cache_collection: str = os.getenv("CACHE_COLLECTION", "ai_cache")
    usage_collection: str = os.getenv("USAGE_COLLECTION", "ai_usage")
    cache_ttl_seconds: int = int(os.getenv("CACHE_TTL_SECONDS", "1800"))  # 30 minutes
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    chat_model: str = os.getenv("CHAT_MODEL", "gpt-4o-mini")
    prompt_version: str = os.getenv("PROMPT_VERSION", "v1")
    max_input_chars: int = int(os.getenv("MAX_INPUT_CHARS", "50000"))
    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "20"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    cron_secret: str = os.getenv("CRON_SECRET", "")
    stale_job_minutes: int = int(os.getenv("STALE_JOB_MINUTES", "15"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @field_validator(
        "cache_ttl_seconds",
        "max_input_chars",
        "rate_limit_requests",
        "rate_limit_window_seconds",
        "stale_job_minutes",
    )
    @classmethod
    def must_be_positive(cls, v):
        """Ensure TTLs, limits and windows are positive integers. Prevents invalid config from env."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("store_backend")
    @classmethod
    def known_backend(cls, v):
        v = (v or "").strip().lower()
        if v not in ("memory", "firestore"):
            raise ValueError("must be 'memory' or 'firestore'")
        return v


settings = Settings()
