"""Proxyauth Infra Auth -- JWKS, JWT verification, SASL authentication, client credentials.

Provides the JWKS key source and cache, bearer token verification, the
SASL/PLAIN password authenticator with static-credential fallback, the
client-credentials token client, and the host-facing services built on them.
"""

from proxyauth.infra.auth.authenticator import PasswordAuthenticator, is_jwt_shaped
from proxyauth.infra.auth.jwks import (
    KeySet,
    KeySource,
    KeyStore,
    VerificationKey,
    decode_base64url_int,
    decode_key_set,
)
from proxyauth.infra.auth.services import (
    BearerTokenInfo,
    OutboundTokenProvider,
    create_password_authenticator,
    create_token_info,
    create_token_provider,
)
from proxyauth.infra.auth.settings import (
    ProviderSettings,
    VerifierSettings,
    get_provider_settings,
    get_verifier_settings,
)
from proxyauth.infra.auth.static_credentials import StaticCredentialTable
from proxyauth.infra.auth.token_client import (
    ClientCredentialsClient,
    TokenResponse,
    obtain_token,
)
from proxyauth.infra.auth.verifier import RSA_ALGORITHMS, TokenVerifier

__all__ = [
    "RSA_ALGORITHMS",
    "BearerTokenInfo",
    "ClientCredentialsClient",
    "KeySet",
    "KeySource",
    "KeyStore",
    "OutboundTokenProvider",
    "PasswordAuthenticator",
    "ProviderSettings",
    "StaticCredentialTable",
    "TokenResponse",
    "TokenVerifier",
    "VerificationKey",
    "VerifierSettings",
    "create_password_authenticator",
    "create_token_info",
    "create_token_provider",
    "decode_base64url_int",
    "decode_key_set",
    "get_provider_settings",
    "get_verifier_settings",
    "is_jwt_shaped",
    "obtain_token",
]
