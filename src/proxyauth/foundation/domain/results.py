"""Results returned to the host for each call contract."""

from __future__ import annotations

from dataclasses import dataclass

from proxyauth.foundation.domain.status import AuthStatus


@dataclass(frozen=True, slots=True)
class AuthResult:
    """Outcome of a credential check.

    Attributes:
        accepted: True only when ``status`` is OK.
        status: Host status code.
    """

    accepted: bool
    status: AuthStatus

    @classmethod
    def ok(cls) -> AuthResult:
        return cls(accepted=True, status=AuthStatus.OK)

    @classmethod
    def rejected(cls, status: AuthStatus) -> AuthResult:
        return cls(accepted=False, status=status)


@dataclass(frozen=True, slots=True)
class TokenResult:
    """Outcome of an outbound token request.

    Attributes:
        token: Access token, empty on failure.
        status: Host status code.
        expires_in: Token lifetime in seconds, 0 on failure.
        retryable: Whether the failure is transient and worth retrying.
    """

    token: str
    status: AuthStatus
    expires_in: int = 0
    retryable: bool = False

    @property
    def success(self) -> bool:
        return self.status is AuthStatus.OK
