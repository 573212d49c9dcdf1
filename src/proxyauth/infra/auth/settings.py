"""Authentication configuration settings.

Loaded from environment variables (and an optional ``.env`` file).
Follows Pydantic BaseSettings pattern for type-safe configuration.

Environment Variables (verifier, ``ENTRA_`` prefix):
    ENTRA_TENANT_ID: Directory tenant identifier
    ENTRA_CLIENT_ID: Expected audience (application client id)
    ENTRA_JWKS_URL: Key-discovery URL (defaults to the multi-tenant endpoint)
    ENTRA_ALLOWED_ISSUERS: Comma-separated issuers (defaults derived from tenant)
    ENTRA_REQUIRED_SCOPES: Comma- or space-separated scopes
    ENTRA_CACHE_EXPIRATION: Key-set cache lifetime in seconds
    ENTRA_JWKS_TIMEOUT: Key-set fetch timeout in seconds
    ENTRA_LEEWAY: Clock skew tolerated on exp/nbf in seconds
    ENTRA_STATIC_USERS: Comma-separated ``user:pass`` entries or env var names
    ENTRA_DEBUG: Enable debug logging

Environment Variables (token provider, ``ENTRA_PROVIDER_`` prefix):
    ENTRA_PROVIDER_CLIENT_ID: Application client id
    ENTRA_PROVIDER_CLIENT_SECRET: Application client secret
    ENTRA_PROVIDER_TENANT_ID: Directory tenant identifier
    ENTRA_PROVIDER_SCOPE: Requested scope (e.g. ``api://kafka/.default``)
    ENTRA_PROVIDER_TOKEN_URL: Token endpoint (defaults derived from tenant)
    ENTRA_PROVIDER_TIMEOUT: Token request timeout in seconds
    ENTRA_PROVIDER_DEBUG: Enable debug logging
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from proxyauth.foundation.domain.policy import Policy
from proxyauth.infra.auth.static_credentials import StaticCredentialTable

DEFAULT_JWKS_URL = "https://login.microsoftonline.com/common/discovery/v2.0/keys"
_V2_ISSUER_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/v2.0"
_V1_ISSUER_TEMPLATE = "https://sts.windows.net/{tenant_id}/"
_TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class VerifierSettings(BaseSettings):
    """Token verification configuration loaded from environment variables.

    List-valued options are plain strings parsed by helper methods, so they
    can be set from a shell without JSON quoting.

    Example:
        >>> settings = VerifierSettings(tenant_id="t1", client_id="c1")
        >>> settings.resolved_allowed_issuers()
        ['https://login.microsoftonline.com/t1/v2.0', 'https://sts.windows.net/t1/']
    """

    model_config = SettingsConfigDict(
        env_prefix="ENTRA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    tenant_id: str = Field(default="", description="Directory tenant identifier")
    client_id: str = Field(default="", description="Expected audience (client id)")
    jwks_url: str = Field(default="", description="Key-discovery URL")
    allowed_issuers: str = Field(
        default="",
        description="Comma-separated allowed issuers",
    )
    required_scopes: str = Field(
        default="",
        description="Comma- or space-separated required scopes",
    )
    cache_expiration: int = Field(
        default=3600,
        ge=30,
        le=86400,
        description="Key-set cache lifetime in seconds",
    )
    jwks_timeout: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Key-set fetch timeout in seconds",
    )
    leeway: int = Field(
        default=0,
        ge=0,
        le=300,
        description="Clock skew tolerated on exp/nbf in seconds",
    )
    static_users: str = Field(
        default="",
        repr=False,  # Security: entries may hold literal passwords
        description="Comma-separated 'user:pass' entries or env var names",
    )
    debug: bool = Field(default=False, description="Enable debug logging")

    def resolved_jwks_url(self) -> str:
        """Configured JWKS URL, or the multi-tenant discovery endpoint."""
        return self.jwks_url or DEFAULT_JWKS_URL

    def resolved_allowed_issuers(self) -> list[str]:
        """Configured issuers, or the v1 and v2 issuers of the tenant.

        Returns an empty list (accept any issuer) when neither issuers nor
        a tenant id are configured.
        """
        issuers = _split_list(self.allowed_issuers)
        if issuers or not self.tenant_id:
            return issuers
        return [
            _V2_ISSUER_TEMPLATE.format(tenant_id=self.tenant_id),
            _V1_ISSUER_TEMPLATE.format(tenant_id=self.tenant_id),
        ]

    def required_scope_list(self) -> list[str]:
        return self.required_scopes.replace(",", " ").split()

    def static_user_entries(self) -> list[str]:
        return _split_list(self.static_users)

    def static_credentials(self) -> StaticCredentialTable:
        """Build the static username/password table from ``static_users``."""
        return StaticCredentialTable.from_entries(self.static_user_entries())

    def to_policy(self) -> Policy:
        """Build the immutable acceptance policy.

        Raises:
            ValueError: If no client id is configured.
        """
        return Policy(
            audience=self.client_id,
            allowed_issuers=frozenset(self.resolved_allowed_issuers()),
            required_scopes=frozenset(self.required_scope_list()),
            cache_lifetime=float(self.cache_expiration),
        )


class ProviderSettings(BaseSettings):
    """Outbound token (client-credentials grant) configuration.

    Example:
        >>> settings = ProviderSettings(tenant_id="t1")
        >>> settings.resolved_token_url()
        'https://login.microsoftonline.com/t1/oauth2/v2.0/token'
    """

    model_config = SettingsConfigDict(
        env_prefix="ENTRA_PROVIDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    client_id: str = Field(default="", description="Application client id")
    client_secret: str = Field(
        default="",
        repr=False,  # Security: never log client secret
        description="Application client secret",
    )
    tenant_id: str = Field(default="", description="Directory tenant identifier")
    scope: str = Field(default="", description="Requested scope")
    token_url: str = Field(default="", description="Token endpoint URL")
    timeout: float = Field(
        default=30.0,
        gt=0,
        le=120,
        description="Token request timeout in seconds",
    )
    debug: bool = Field(default=False, description="Enable debug logging")

    def resolved_token_url(self) -> str:
        if self.token_url:
            return self.token_url
        return _TOKEN_URL_TEMPLATE.format(tenant_id=self.tenant_id)

    def validate_config(self) -> None:
        """Validate that every required field is set.

        Raises:
            ValueError: Naming each missing field.
        """
        required = ["client_id", "client_secret", "scope"]
        if not self.token_url:
            required.insert(2, "tenant_id")
        missing = [f"ENTRA_PROVIDER_{name.upper()}" for name in required if not getattr(self, name)]
        if missing:
            raise ValueError(f"Missing required token provider settings: {', '.join(missing)}")


@lru_cache(maxsize=1)
def get_verifier_settings() -> VerifierSettings:
    """Get singleton VerifierSettings instance.

    Clear cache with ``get_verifier_settings.cache_clear()`` for testing.
    """
    return VerifierSettings()


@lru_cache(maxsize=1)
def get_provider_settings() -> ProviderSettings:
    """Get singleton ProviderSettings instance.

    Clear cache with ``get_provider_settings.cache_clear()`` for testing.
    """
    return ProviderSettings()
