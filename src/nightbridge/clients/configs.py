"""Connection settings for the source and sink clients.

Secrets are never read from configuration files: each config names the
environment variable holding the secret (``*_env`` fields) and a
``mode="before"`` model validator resolves it into a ``SecretStr`` at
validation time, so a missing credential fails at startup rather than on
the first request.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, SecretStr, model_validator


def _resolve_secret(data: dict[str, Any], field: str, default_env: str) -> None:
    if field in data:
        return
    env_var = data.get(f"{field}_env", default_env)
    value = os.getenv(env_var)
    if not value:
        raise ValueError(f"{env_var} environment variable not set")
    data[field] = SecretStr(value)


class DiasendConfig(BaseModel):
    """Diasend account and API settings.

    Attributes:
        base_url: API root; patient data is read from ``/1/patient/data``.
        token_url: OAuth2 token endpoint (password grant).
        timeout: Total timeout of one HTTP request in seconds.
        max_response_size: Largest accepted response body in bytes.
        username, password, client_id, client_secret: Resolved from the
            environment variables named by the matching ``*_env`` fields.
    """

    base_url: str = Field(default="https://api.diasend.com", description="Diasend API root")
    token_url: str = Field(
        default="https://api.diasend.com/1/oauth2/token",
        description="OAuth2 token endpoint",
    )
    scope: str = Field(
        default="PATIENT DIASEND_MOBILE_DEVICE_DATA_RW",
        description="OAuth2 scope requested with the token",
    )
    timeout: float = Field(default=30.0, gt=0.0, description="Request timeout in seconds")
    max_response_size: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Largest accepted response body in bytes",
    )
    token_refresh_margin: float = Field(
        default=60.0,
        ge=0.0,
        description="Seconds before expiry at which a cached token is renewed",
    )

    username_env: str = Field(default="DIASEND_USERNAME", min_length=1)
    password_env: str = Field(default="DIASEND_PASSWORD", min_length=1)  # pragma: allowlist secret
    client_id_env: str = Field(default="DIASEND_CLIENT_ID", min_length=1)
    client_secret_env: str = Field(  # pragma: allowlist secret
        default="DIASEND_CLIENT_SECRET", min_length=1
    )

    username: SecretStr = Field(description="Account name (loaded from username_env)")
    password: SecretStr = Field(description="Account password (loaded from password_env)")
    client_id: SecretStr = Field(description="OAuth2 client id (loaded from client_id_env)")
    client_secret: SecretStr = Field(
        description="OAuth2 client secret (loaded from client_secret_env)"
    )

    @model_validator(mode="before")
    @classmethod
    def resolve_credentials(cls, data: Any) -> Any:
        """Resolve every credential from its environment variable."""
        if isinstance(data, dict):
            data = dict(data)
            _resolve_secret(data, "username", "DIASEND_USERNAME")
            _resolve_secret(data, "password", "DIASEND_PASSWORD")  # pragma: allowlist secret
            _resolve_secret(data, "client_id", "DIASEND_CLIENT_ID")
            _resolve_secret(data, "client_secret", "DIASEND_CLIENT_SECRET")
        return data


class NightscoutConfig(BaseModel):
    """Nightscout site settings.

    Attributes:
        url: Site root, e.g. ``https://my-site.example.org``.
        api_secret: Resolved from ``api_secret_env``; sent SHA-1 hashed.
    """

    url: str = Field(min_length=1, description="Nightscout site root URL")
    timeout: float = Field(default=30.0, gt=0.0, description="Request timeout in seconds")
    max_response_size: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Largest accepted response body in bytes",
    )
    api_secret_env: str = Field(  # pragma: allowlist secret
        default="NIGHTSCOUT_API_SECRET", min_length=1
    )
    api_secret: SecretStr = Field(description="API secret (loaded from api_secret_env)")

    @model_validator(mode="before")
    @classmethod
    def resolve_api_secret(cls, data: Any) -> Any:
        """Resolve the API secret from the environment variable."""
        if isinstance(data, dict):
            data = dict(data)
            _resolve_secret(data, "api_secret", "NIGHTSCOUT_API_SECRET")  # pragma: allowlist secret
        return data
