"""
Telemetry Configuration

Connection, identity and privacy settings for telemetry, loaded from
TELEMETRY_* environment variables.
"""

from pydantic_settings import BaseSettings


class TelemetryConfig(BaseSettings):
    """Telemetry configuration loaded from environment variables."""

    # Connection
    app_insights_connection_string: str | None = None
    enabled: bool = True

    # Application identity (included in all events)
    app_id: str = "scadcollab-api"
    environment: str = "development"

    # Privacy: prompts and generated code are truncated before export
    max_property_length: int = 2_000

    # Development
    enable_dev_logger: bool = True

    model_config = {
        "env_prefix": "TELEMETRY_",
        "env_file": ".env",
        "extra": "ignore",
    }


_config: TelemetryConfig | None = None


def get_telemetry_config() -> TelemetryConfig:
    """Get the global telemetry configuration instance."""
    global _config
    if _config is None:
        _config = TelemetryConfig()
    return _config
