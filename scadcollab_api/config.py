"""Application configuration using pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service settings
    service_host: str = Field(default="0.0.0.0", description="Host to bind the service")
    service_port: int = Field(default=8765, description="Port to bind the service")
    service_workers: int = Field(default=1, description="Number of worker processes")
    log_level: str = Field(default="info", description="Logging level")

    # Document store
    store_backend: str = Field(
        default="memory",
        description="Document store backend: memory, postgres",
    )
    database_url: str | None = Field(
        default=None,
        description="Full database connection URL (overrides individual fields)",
    )
    database_user: str = Field(default="scadcollab", description="Database username")
    database_password: str = Field(default="dev_password", description="Database password")
    database_host: str = Field(default="localhost", description="Database host")
    database_port: int = Field(default=5432, description="Database port")
    database_name: str = Field(default="scadcollab", description="Database name")
    database_pool_min_size: int = Field(
        default=2,
        description="Minimum database connection pool size",
    )
    database_pool_max_size: int = Field(
        default=10,
        description="Maximum database connection pool size",
    )
    database_ssl_mode: str = Field(
        default="prefer",
        description="SSL mode: disable, prefer, require",
    )
    optimistic_concurrency: bool = Field(
        default=False,
        description="Use versioned compare-and-set for collaborator merges "
        "instead of plain read-modify-write (changes observable behaviour)",
    )

    # CORS
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8080",
        description="Allowed CORS origins (comma-separated)",
    )

    def get_allowed_origins(self) -> list[str]:
        """Get allowed origins as a list."""
        if isinstance(self.allowed_origins, str):
            return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]
        return self.allowed_origins

    # Text generation provider (Gemini)
    gemini_api_key: str | None = Field(default=None, description="Gemini API key")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini REST base URL",
    )
    gemini_model: str = Field(default="gemini-3-flash-preview", description="Gemini model")
    generation_temperature: float = Field(default=0.7, description="Sampling temperature")
    generation_top_k: int = Field(default=40, description="Top-k sampling")
    generation_top_p: float = Field(default=0.95, description="Nucleus sampling")
    generation_max_output_tokens: int = Field(default=8192, description="Max output tokens")

    # Vision provider (OpenAI-compatible chat completions, Groq by default)
    groq_api_key: str | None = Field(default=None, description="Vision provider API key")
    vision_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Chat completions base URL for image prompts",
    )
    vision_model: str = Field(
        default="meta-llama/llama-4-scout-17b-16e-instruct",
        description="Vision-capable chat model",
    )

    # Orthographic sketcher
    sketcher_api_key: str | None = Field(default=None, description="Sketcher API key")
    sketcher_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Chat completions base URL for sketches",
    )
    sketcher_model: str = Field(default="openai/gpt-oss-20b", description="Sketcher model")

    provider_timeout_seconds: float | None = Field(
        default=None,
        description="Client-side provider timeout (None leaves timeouts to the provider)",
    )

    # Rendering
    openscad_path: str = Field(default="openscad", description="OpenSCAD executable")
    render_retry_attempts: int = Field(default=3, description="Render attempts per generation")
    render_retry_base_delay: float = Field(
        default=1.0,
        description="Base delay in seconds; attempt N waits N * base",
    )
    render_debounce_seconds: float = Field(
        default=0.5,
        description="Delay applied to non-immediate renders",
    )

    # Presence
    presence_stale_after_seconds: int = Field(
        default=0,
        description="Expire collaborators idle longer than this (0 disables expiry)",
    )

    # Sharing
    share_base_url: str = Field(
        default="http://localhost:3000",
        description="Origin used to build shareable session links",
    )

    # Client-side cache
    client_cache_path: Path | None = Field(
        default=None,
        description="JSON file backing the per-tab client cache (None keeps it in memory)",
    )

    def get_database_url(self) -> str:
        """
        Get PostgreSQL connection URL.

        If database_url is set, use it directly.
        Otherwise, construct from individual components.
        """
        from urllib.parse import quote_plus

        if self.database_url:
            return self.database_url

        user = quote_plus(self.database_user)
        password = quote_plus(self.database_password)

        ssl_param = ""
        if self.database_ssl_mode == "require":
            ssl_param = "?sslmode=require"
        elif self.database_ssl_mode == "prefer":
            ssl_param = "?sslmode=prefer"

        return (
            f"postgresql://{user}:{password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}{ssl_param}"
        )

    def get_api_keys(self) -> dict[str, str]:
        """Get all configured provider keys."""
        keys = {}
        if self.gemini_api_key:
            keys["GEMINI_API_KEY"] = self.gemini_api_key
        if self.groq_api_key:
            keys["GROQ_API_KEY"] = self.groq_api_key
        if self.sketcher_api_key:
            keys["SKETCHER_API_KEY"] = self.sketcher_api_key
        return keys


# Global settings instance
settings = Settings()
