"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = True
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    HTTP_TIMEOUT: float = 30.0
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]  # Web app origins

    # LLM Configuration
    BACKEND: str = "anthropic"  # Options: anthropic, openai
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-20241022"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"

    # Tool loop
    MAX_ITERATIONS: int = 5
    HISTORY_WINDOW: int = 50  # Verbatim turns kept; older ones live in the summary

    # Data store (PostgREST / Supabase)
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_ANON_KEY: str | None = None
    QUERY_DEFAULT_LIMIT: int = 50
    QUERY_MAX_LIMIT: int = 100

    # Object store for attachments
    OBJECT_STORE: str = "supabase"  # Options: supabase, local
    LOCAL_STORAGE_DIR: str = "./data/storage"
    PERMANENT_BUCKET: str = "chatkin-files"
    TEMP_BUCKET: str = "chatkin-temp"
    TEMP_FILES_PATH: str = "/api/temp-files/"

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
