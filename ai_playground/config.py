"""
Configuration Management Module

Configures application parameters via environment variables or .env file.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application Configuration Class

    All configuration items can be overridden by environment variables, with names matching fields (uppercase).
    """

    # Application Config
    APP_NAME: str = "AI Playground Gateway"
    DEBUG: bool = False

    # Anthropic Config
    ANTHROPIC_BASE_URL: str = "https://api.anthropic.com/v1"
    ANTHROPIC_VERSION: str = "2023-06-01"
    # max_tokens is mandatory upstream, applied when the caller omits it
    ANTHROPIC_DEFAULT_MAX_TOKENS: int = 4096
    # budget_tokens used when thinking is enabled without an explicit budget
    ANTHROPIC_DEFAULT_THINKING_BUDGET: int = 1024

    # Gemini Config
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    # OpenRouter (OpenAI-compatible) Config
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    # Attribution headers required by the routing proxy
    OPENROUTER_REFERER: str = "http://localhost:3000"
    OPENROUTER_TITLE: str = "AI Playground"

    # HTTP Client Config (seconds)
    HTTP_CONNECT_TIMEOUT: float = 10.0
    # Bound on response headers plus the first body chunk
    HTTP_FIRST_BYTE_TIMEOUT: float = 60.0
    # Bound on the whole upstream exchange, streaming included
    HTTP_TOTAL_TIMEOUT: float = 600.0

    # Stream Config
    # Largest partial frame kept in memory while waiting for its terminator
    STREAM_MAX_FRAME_BYTES: int = 1024 * 1024

    # CORS Config
    # Comma-separated list of allowed origins for CORS
    # Example: "http://localhost:3000,https://example.com"
    ALLOWED_ORIGINS: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def cors_origins(self) -> list[str]:
        """
        Parsed ALLOWED_ORIGINS

        Falls back to the local dev server origins when DEBUG is on and
        nothing is configured; empty otherwise.
        """
        origins = [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]
        if not origins and self.DEBUG:
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        return origins


@lru_cache()
def get_settings() -> Settings:
    """
    Get application configuration (Singleton)

    Uses lru_cache to ensure configuration is loaded only once.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
