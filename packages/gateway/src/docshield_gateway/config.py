"""
DocShield Gateway Configuration

Settings and configuration management.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_INPUT_SIZE = 50 * 1024  # 50 KiB
MAX_INPUT_SIZE = 100 * 1024  # 100 KiB hard ceiling


class GatewayConfig(BaseModel):
    """Per-gateway policy, passed by value into the orchestrator."""

    model_config = ConfigDict(frozen=True)

    max_input_size: int = DEFAULT_MAX_INPUT_SIZE
    allow_extra_fields: bool = False
    strict_validation: bool = True
    redact_sensitive_data: bool = True

    @field_validator("max_input_size")
    @classmethod
    def _clamp_max_input_size(cls, value: int) -> int:
        # Out-of-range values fall back to the default rather than the ceiling
        if value <= 0 or value > MAX_INPUT_SIZE:
            return DEFAULT_MAX_INPUT_SIZE
        return value


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="DOCSHIELD_", env_file=".env")

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # CORS settings
    allowed_origins: List[str] = ["*"]

    # Database settings
    database_url: str = "sqlite:///./docshield.db"
    audit_enabled: bool = True

    # Authentication
    jwt_secret: str = "docshield-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"

    # Upstream LLM
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None

    # Gateway policy
    max_input_size: int = DEFAULT_MAX_INPUT_SIZE
    allow_extra_fields: bool = False
    strict_validation: bool = True
    redact_sensitive_data: bool = True

    # Logging
    log_level: str = "info"

    def gateway_config(self) -> GatewayConfig:
        """Build the gateway policy from the environment."""
        return GatewayConfig(
            max_input_size=self.max_input_size,
            allow_extra_fields=self.allow_extra_fields,
            strict_validation=self.strict_validation,
            redact_sensitive_data=self.redact_sensitive_data,
        )


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
