"""Proxyauth Foundation Domain -- claims, policy, status codes, error hierarchy.

Pure value objects shared by the verification engine and the host-facing
services. No I/O and no third-party dependencies.
"""

from proxyauth.foundation.domain.claims import TokenClaims
from proxyauth.foundation.domain.exceptions import (
    AuthError,
    EmptyTokenError,
    InvalidTokenError,
    KeyNotFoundError,
    KeySourceError,
    TokenEndpointError,
    TokenEndpointUnavailableError,
    TokenExpiredError,
    TokenIssuanceError,
    TokenResponseError,
    TokenVerificationError,
    UnauthorizedTokenError,
    VerificationStage,
)
from proxyauth.foundation.domain.policy import Policy
from proxyauth.foundation.domain.results import AuthResult, TokenResult
from proxyauth.foundation.domain.status import AuthStatus, FailureKind, status_for

__all__ = [
    "AuthError",
    "AuthResult",
    "AuthStatus",
    "EmptyTokenError",
    "FailureKind",
    "InvalidTokenError",
    "KeyNotFoundError",
    "KeySourceError",
    "Policy",
    "TokenClaims",
    "TokenEndpointError",
    "TokenEndpointUnavailableError",
    "TokenExpiredError",
    "TokenIssuanceError",
    "TokenResponseError",
    "TokenResult",
    "TokenVerificationError",
    "UnauthorizedTokenError",
    "VerificationStage",
    "status_for",
]
