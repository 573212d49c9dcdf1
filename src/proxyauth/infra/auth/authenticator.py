"""Username/secret authenticator with JWT and static-credential modes.

Dispatch:
  - secret starts with the JWT header prefix ("eyJ") AND has exactly two
    "." delimiters -> JWT mode, verified by TokenVerifier. The username is
    ignored; identity comes from the token.
  - anything else -> static-credential mode against StaticCredentialTable.

Design decisions:
  - Dispatch counts delimiters rather than trusting the prefix alone, so a
    password that merely starts with "eyJ" still goes to static mode.
  - The verifier is promoted lazily on the first JWT-mode call, exactly once
    under concurrency, so an unreachable identity provider never blocks
    startup of password-mode clients.
  - An empty static table rejects everything: missing configuration never
    turns into "no check".
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from proxyauth.foundation.domain.exceptions import TokenVerificationError
from proxyauth.foundation.domain.results import AuthResult
from proxyauth.foundation.domain.status import AuthStatus, status_for
from proxyauth.infra.observability import get_logger

if TYPE_CHECKING:
    import structlog

    from proxyauth.infra.auth.static_credentials import StaticCredentialTable
    from proxyauth.infra.auth.verifier import TokenVerifier

JWT_HEADER_PREFIX = "eyJ"
_JWT_DELIMITER = "."


def is_jwt_shaped(secret: str) -> bool:
    """Check whether a secret should be treated as a JWT."""
    return secret.startswith(JWT_HEADER_PREFIX) and secret.count(_JWT_DELIMITER) == 2


class PasswordAuthenticator:
    """Authenticates SASL/PLAIN style username/secret pairs.

    Args:
        credentials: Static username/password table for the fallback mode.
        verifier_factory: Builds the TokenVerifier on first JWT-mode use.
        logger: Structured logger (defaults to this module's logger).
    """

    def __init__(
        self,
        credentials: StaticCredentialTable,
        verifier_factory: Callable[[], TokenVerifier],
        logger: structlog.typing.WrappedLogger | None = None,
    ) -> None:
        self._credentials = credentials
        self._verifier_factory = verifier_factory
        self._logger = logger or get_logger(__name__)
        self._verifier: TokenVerifier | None = None
        self._verifier_lock = threading.Lock()

    @property
    def verifier_initialized(self) -> bool:
        return self._verifier is not None

    def authenticate(self, username: str, secret: str) -> AuthResult:
        """Decide whether the caller may proceed.

        Args:
            username: Caller-supplied username (ignored in JWT mode).
            secret: Password or JWT.

        Returns:
            AuthResult with OK, or the rejection status.
        """
        self._logger.debug("authenticate_called", username=username, credential_length=len(secret))

        if not secret:
            return AuthResult.rejected(AuthStatus.EMPTY_CREDENTIAL)

        if is_jwt_shaped(secret):
            return self._authenticate_jwt(secret)
        try:
            return self._authenticate_static(username, secret)
        except Exception:
            self._logger.exception("static_authentication_unexpected_error")
            return AuthResult.rejected(AuthStatus.INTERNAL_ERROR)

    def _authenticate_jwt(self, token: str) -> AuthResult:
        try:
            claims = self._get_verifier().verify(token)
        except TokenVerificationError as exc:
            self._logger.info(
                "jwt_authentication_failed",
                error_code=exc.error_code,
                stage=exc.stage.value,
                kind=exc.kind.value,
            )
            return AuthResult.rejected(status_for(exc.kind))
        except Exception:
            self._logger.exception("jwt_authentication_unexpected_error")
            return AuthResult.rejected(AuthStatus.INTERNAL_ERROR)

        self._logger.debug("jwt_authentication_succeeded", subject=claims.subject)
        return AuthResult.ok()

    def _authenticate_static(self, username: str, secret: str) -> AuthResult:
        if not len(self._credentials):
            self._logger.error("static_authentication_unconfigured")
            return AuthResult.rejected(AuthStatus.INVALID_CREDENTIAL)

        if username not in self._credentials:
            self._logger.info("static_authentication_unknown_user", username=username)
            return AuthResult.rejected(AuthStatus.INVALID_CREDENTIAL)

        if not self._credentials.verify(username, secret):
            self._logger.info("static_authentication_wrong_password", username=username)
            return AuthResult.rejected(AuthStatus.INVALID_CREDENTIAL)

        self._logger.debug("static_authentication_succeeded", username=username)
        return AuthResult.ok()

    def _get_verifier(self) -> TokenVerifier:
        """Return the verifier, building it once on first use."""
        verifier = self._verifier
        if verifier is not None:
            return verifier
        with self._verifier_lock:
            if self._verifier is None:
                self._logger.debug("jwt_verifier_initializing")
                self._verifier = self._verifier_factory()
            return self._verifier
