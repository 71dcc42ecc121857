from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # Embeddings
    EMBEDDING_PROVIDER: str = "gemini"
    EMBEDDING_MODEL: str = "text-embedding-004"
    EMBEDDING_DIM: int = 768
    EMBEDDING_TIMEOUT_S: float = 10.0
    EMBEDDING_MAX_RETRIES: int = 2
    EMBEDDING_BACKOFF_S: float = 0.5
    EMBEDDING_BACKOFF_MAX_S: float = 4.0

    # Gemini (embeddings over REST, chat through google-genai)
    GEMINI_API_KEY: str = ""
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com"
    GEMINI_API_VERSION: str = "v1beta"
    CHAT_MODEL: str = "gemini-2.0-flash"
    CHAT_TIMEOUT_S: float = 30.0

    # Matching
    MATCH_THRESHOLD: float = 0.5
    MATCH_LIMIT: int = 10
    MATCH_LIMIT_MAX: int = 100
    SEARCH_BACKEND: str = "app"   # app | pgvector

    # Cache for the stateless /embed endpoint; empty URL disables it
    REDIS_URL: str = "redis://localhost:6379/0"
    EMBED_CACHE_TTL_SECONDS: int = 3600


settings = Settings()
