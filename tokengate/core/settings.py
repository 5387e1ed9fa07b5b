"""Application settings loaded from environment variables."""

from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from tokengate.crypto.secret_store import parse_jwt_secrets

LOG_LEVEL_DEFAULT = "INFO"


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class JWTSettings(BaseSettings):
    """Secrets, token types and verification policy."""

    model_config = SettingsConfigDict(env_prefix="JWT_")

    secrets: str = ""
    default_key_id: str = ""
    token_types: dict[str, dict[str, Any]] = {}
    required_types: str = ""
    debug: bool = False

    def get_secrets(self) -> dict[str, str]:
        """Parse the ``kid=secret|kid2=secret2`` secrets string."""
        return parse_jwt_secrets(self.secrets)

    def get_required_types(self) -> list[str]:
        """Parse comma-separated mandatory token type names."""
        return _split_csv(self.required_types)


class AppSettings(BaseSettings):
    """HTTP application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_")

    title: str = "tokengate"
    version: str = "0.1.0"
    description: str = ""
    cors_origins: str = ""
    log_level: str = LOG_LEVEL_DEFAULT

    def get_cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins."""
        return _split_csv(self.cors_origins)
