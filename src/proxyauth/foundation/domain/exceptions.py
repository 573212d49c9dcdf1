"""Error hierarchy for credential verification and token issuance.

Every error carries a machine-readable ``error_code`` and a structured
``context`` dict for logging. Verification errors additionally carry the
``FailureKind`` used to pick a host status code and the ``VerificationStage``
that rejected the token.

Example:
    >>> from proxyauth.foundation.domain.exceptions import KeyNotFoundError
    >>> raise KeyNotFoundError("kid-1")
    KeyNotFoundError: Signing key not found: kid-1 (kid=kid-1, stage=resolve_key)
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from proxyauth.foundation.domain.status import FailureKind

__all__ = [
    "AuthError",
    "EmptyTokenError",
    "InvalidTokenError",
    "KeyNotFoundError",
    "KeySourceError",
    "TokenEndpointError",
    "TokenEndpointUnavailableError",
    "TokenExpiredError",
    "TokenIssuanceError",
    "TokenResponseError",
    "TokenVerificationError",
    "UnauthorizedTokenError",
    "VerificationStage",
]


class VerificationStage(StrEnum):
    """Stages a bearer token passes through, in order."""

    PARSE = "parse"
    RESOLVE_KEY = "resolve_key"
    CHECK_SIGNATURE = "check_signature"
    CHECK_ISSUER = "check_issuer"
    CHECK_AUDIENCE = "check_audience"
    CHECK_SCOPES = "check_scopes"
    EXTRACT_CLAIMS = "extract_claims"


class AuthError(Exception):
    """Base class for all proxyauth errors.

    Attributes:
        error_code: Machine-readable error code.
        message: Human-readable error description.
        context: Structured debugging information. Never holds secrets.
    """

    error_code: str = "AUTH_ERROR"

    #: Whether retrying the same operation later may succeed.
    transient: bool = False

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """String representation including context for logging."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class TokenVerificationError(AuthError):
    """A bearer token was rejected.

    Attributes:
        kind: Failure kind, mapped to a host status code by the caller.
        stage: Verification stage that rejected the token.
    """

    error_code: str = "TOKEN_REJECTED"
    kind: FailureKind = FailureKind.INVALID

    def __init__(
        self,
        message: str,
        stage: VerificationStage,
        **context: Any,
    ) -> None:
        self.stage = stage
        super().__init__(message, {**context, "stage": stage.value})


class EmptyTokenError(TokenVerificationError):
    """No credential was presented."""

    error_code: str = "EMPTY_TOKEN"
    kind: FailureKind = FailureKind.EMPTY

    def __init__(self) -> None:
        super().__init__("Token is empty", VerificationStage.PARSE)


class InvalidTokenError(TokenVerificationError):
    """Token is malformed, uses a forbidden algorithm, or fails its signature."""

    error_code: str = "INVALID_TOKEN"
    kind: FailureKind = FailureKind.INVALID


class KeyNotFoundError(InvalidTokenError):
    """No verification key matches the token's key identifier.

    Treated exactly like any other invalid token: an unknown key and a
    tampered token are equally untrustworthy.
    """

    error_code: str = "KEY_NOT_FOUND"

    def __init__(self, kid: str) -> None:
        self.kid = kid
        super().__init__(f"Signing key not found: {kid}", VerificationStage.RESOLVE_KEY, kid=kid)


class TokenExpiredError(TokenVerificationError):
    """Token signature is valid but its ``exp`` has passed."""

    error_code: str = "TOKEN_EXPIRED"
    kind: FailureKind = FailureKind.EXPIRED

    def __init__(self) -> None:
        super().__init__("Token has expired", VerificationStage.CHECK_SIGNATURE)


class UnauthorizedTokenError(TokenVerificationError):
    """Token is authentic but not issued for this service (issuer, audience, scopes)."""

    error_code: str = "UNAUTHORIZED_TOKEN"
    kind: FailureKind = FailureKind.UNAUTHORIZED


class KeySourceError(AuthError):
    """Key-set document could not be fetched or decoded.

    Transient: the remote endpoint may recover, and the store keeps serving
    its previous keys meanwhile.
    """

    error_code: str = "KEY_SOURCE_ERROR"
    transient: bool = True


class TokenIssuanceError(AuthError):
    """Base class for outbound token request failures."""

    error_code: str = "TOKEN_ISSUANCE_ERROR"


class TokenEndpointError(TokenIssuanceError):
    """Token endpoint answered with a non-200 status.

    Attributes:
        status_code: HTTP status from the identity provider.
        error: OAuth 2.0 error code (e.g., "invalid_client").
        error_description: Human-readable error from the provider.
    """

    error_code: str = "TOKEN_ENDPOINT_ERROR"

    def __init__(self, status_code: int, error: str, error_description: str) -> None:
        self.status_code = status_code
        self.error = error
        self.error_description = error_description
        self.transient = status_code >= 500 or status_code == 429
        super().__init__(
            f"Token request failed: {error} ({status_code})",
            {"status_code": status_code, "error": error},
        )


class TokenEndpointUnavailableError(TokenIssuanceError):
    """Token endpoint could not be reached or did not answer in time."""

    error_code: str = "TOKEN_ENDPOINT_UNAVAILABLE"
    transient: bool = True


class TokenResponseError(TokenIssuanceError):
    """Token endpoint answered 200 with an unusable body."""

    error_code: str = "TOKEN_RESPONSE_INVALID"
