"""Settings for the sentry-kubernetes watcher."""

from typing import Optional
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised at startup when the process cannot be configured."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SENTRY_KUBERNETES_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    dsn: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SENTRY_KUBERNETES_DSN", "DSN"),
        description="Sentry DSN events are delivered to",
    )
    environment: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SENTRY_KUBERNETES_ENVIRONMENT", "ENV"),
        description="Sentry environment tag",
    )
    namespace: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SENTRY_KUBERNETES_NAMESPACE", "NAMESPACE"),
        description="Namespace to watch. Empty or unset watches all namespaces.",
    )
    debug: bool = Field(default=False)

    # Dedup
    dedup_enabled: bool = Field(
        default=True,
        description="Report each distinct termination once instead of on every pod update",
    )
    dedup_max_entries: int = Field(default=10_000, ge=1)
    report_empty_messages: bool = Field(
        default=True,
        description="Send terminations whose composed message is empty (exit 0, no reason)",
    )

    # Watch behavior
    watch_timeout_seconds: int = Field(default=60, ge=1)
    reconnect_delay_seconds: float = Field(default=2.0, ge=0)

    metrics_port: Optional[int] = Field(default=None, description="Port for the Prometheus metrics server")
    mock_log_file: Optional[str] = Field(
        default=None,
        description="Write alert events to this file instead of sending them to Sentry",
    )
    flush_timeout_seconds: float = Field(default=2.0, ge=0)

    @field_validator("namespace")
    @classmethod
    def _blank_namespace_means_all(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    def validate_sink(self) -> None:
        if not self.dsn and not self.mock_log_file:
            raise ConfigurationError(
                "Missing Sentry DSN: set SENTRY_KUBERNETES_DSN (or DSN), "
                "or SENTRY_KUBERNETES_MOCK_LOG_FILE for local runs"
            )


def get_settings() -> Settings:
    """Return settings read from the environment."""
    return Settings()
