"""
Configuration with Pydantic Settings and validation.

Every field can be overridden from the environment with the `SENTIFLOW_`
prefix and `__` as nested delimiter, e.g.:

    SENTIFLOW_WORKFLOW__TIMEOUT_SECONDS=60
    SENTIFLOW_CAPABILITIES__CLASSIFIER__URL=http://classifier:8080/invoke
    SENTIFLOW_OBSERVABILITY__LOG_FORMAT=json
    SENTIFLOW_RECORDS='[{"age": "34", "text": "I hate this"}]'
"""

from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkflowConfig(BaseModel):
    """Shape of the triage workflow."""

    name: str = Field("sentiment-triage", min_length=1)
    timeout_seconds: float = Field(900.0, gt=0, description="Whole-execution budget")
    lookup_key: str = Field("age", min_length=1, description="Record store partition key")
    branch_field: str = Field("emotion", min_length=1)
    branch_value: str = Field("NEGATIVE")


class CapabilityEndpoint(BaseModel):
    """Where and how a capability is reached."""

    kind: Literal["memory", "http"] = "memory"
    url: str | None = Field(None, description="Invocation URL for http capabilities")
    timeout: float = Field(300.0, gt=0, description="Per-invocation timeout in seconds")
    result_path: str | None = Field("Payload", description="Response key holding the output")
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v


class CapabilitiesConfig(BaseModel):
    """Endpoints for the three capabilities the workflow consumes."""

    record_store: CapabilityEndpoint = Field(default_factory=CapabilityEndpoint)
    classifier: CapabilityEndpoint = Field(
        default_factory=lambda: CapabilityEndpoint(
            kind="http", url="http://localhost:8080/classify"
        )
    )
    notifier: CapabilityEndpoint = Field(default_factory=CapabilityEndpoint)


class NotificationConfig(BaseModel):
    """Notification channel used by the in-memory notifier."""

    topic_name: str = Field("MyTopic")
    display_name: str = Field("My Sample SNS Topic")
    email: str | None = Field(None, description="Subscriber address")


class ObservabilityConfig(BaseModel):
    """Configuration for observability and monitoring."""

    enable_tracing: bool = Field(True)
    enable_metrics: bool = Field(True)
    enable_logging: bool = Field(True)
    log_level: str = Field("INFO")
    log_format: Literal["json", "console"] = Field("console")

    otlp_endpoint: str | None = Field(None)
    service_name: str = Field("sentiflow")
    service_version: str = Field("0.1.0")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


class APIConfig(BaseModel):
    """Configuration for API server."""

    host: str = Field("0.0.0.0")
    port: int = Field(8000, gt=0, le=65535)
    reload: bool = Field(False)
    workers: int = Field(1, gt=0)
    enable_cors: bool = Field(True)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    cors_methods: list[str] = Field(default_factory=lambda: ["*"])
    cors_headers: list[str] = Field(
        default_factory=lambda: [
            "Origin",
            "X-Api-Key",
            "X-Requested-With",
            "Content-Type",
            "Accept",
            "Authorization",
            "access-control-allow-origin",
        ]
    )
    allow_credentials: bool = Field(True)
    enable_docs: bool = Field(True)


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="SENTIFLOW_", env_nested_delimiter="__", case_sensitive=False, extra="ignore"
    )

    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    capabilities: CapabilitiesConfig = Field(default_factory=CapabilitiesConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    records: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Records seeded into the in-memory record store, as a JSON list",
    )
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    environment: str = Field(
        "development", description="Environment: development, staging, production"
    )
    debug: bool = Field(False)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    def is_production(self) -> bool:
        return self.environment == "production"

    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
