"""Status codes returned to the host and the failure kinds that map onto them.

The integer values of ``AuthStatus`` are a contract with the host process
and must never be renumbered.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class AuthStatus(IntEnum):
    """Closed set of status codes reported to the host."""

    OK = 0
    EMPTY_CREDENTIAL = 1
    INVALID_CREDENTIAL = 2
    EXPIRED_CREDENTIAL = 3
    UNAUTHORIZED = 4
    INTERNAL_ERROR = 5


class FailureKind(StrEnum):
    """Why a credential was rejected.

    Set at the point the failure is detected and carried on the raised
    error, so callers never inspect message text to classify a failure.
    """

    EMPTY = "empty"
    INVALID = "invalid"
    EXPIRED = "expired"
    UNAUTHORIZED = "unauthorized"
    INTERNAL = "internal"


_STATUS_BY_KIND: dict[FailureKind, AuthStatus] = {
    FailureKind.EMPTY: AuthStatus.EMPTY_CREDENTIAL,
    FailureKind.INVALID: AuthStatus.INVALID_CREDENTIAL,
    FailureKind.EXPIRED: AuthStatus.EXPIRED_CREDENTIAL,
    FailureKind.UNAUTHORIZED: AuthStatus.UNAUTHORIZED,
    FailureKind.INTERNAL: AuthStatus.INTERNAL_ERROR,
}


def status_for(kind: FailureKind) -> AuthStatus:
    """Map a failure kind to the host status code.

    Args:
        kind: Failure kind carried by a rejection error.

    Returns:
        The matching ``AuthStatus``.
    """
    return _STATUS_BY_KIND[kind]
