"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = True
    DATA_DIR: str = "/data"
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    PLANNER: str = "openai"  # Options: openai, anthropic, tgi
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None  # e.g. https://api.groq.com/openai/v1
    ANTHROPIC_API_KEY: str | None = None
    TGI_ENDPOINT: str = "http://tgi:8080/generate"
    PLANNER_MODEL: str = "gpt-4o-mini"
    SUMMARY_MODEL: str | None = None  # Falls back to PLANNER_MODEL
    LLM_TIMEOUT_SECONDS: float = 30.0

    # Agent loop
    MAX_ITERATIONS: int = 7
    MAX_CONSECUTIVE_FAILURES: int = 0  # 0 disables the early stop

    # Rate / budget governor
    RATE_LIMIT_REQUESTS: int = 3
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0
    TOKENS_PER_DAY: int = 100_000

    # Datastore
    TODO_STORE: str = "memory"  # Options: memory, json

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
