"""Normalized claims of a verified bearer token.

Pure domain object with no external dependencies. Immutable (frozen dataclass).
Produced by the token verifier only after every check has passed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Identity asserted by a verified token.

    Attributes:
        subject: 'sub' claim -- principal identifier from the identity provider.
        issuer: 'iss' claim as presented in the token.
        audiences: 'aud' claim normalized to a tuple.
        expires_at: 'exp' as an aware UTC datetime. None if absent.
        issued_at: 'iat' as an aware UTC datetime. None if absent.
        email: First of 'email', 'preferred_username', 'upn'. None if absent.
        name: Display name from 'name'. None if absent.
        roles: String entries of the 'roles' array. Empty tuple if absent.
        scopes: Space-delimited 'scp' claim split into a tuple.
        app_id: Client application from 'appid', falling back to 'azp'.
        tenant_id: Directory tenant from 'tid'.
    """

    subject: str
    issuer: str
    audiences: tuple[str, ...] = ()
    expires_at: datetime | None = None
    issued_at: datetime | None = None
    email: str | None = None
    name: str | None = None
    roles: tuple[str, ...] = ()
    scopes: tuple[str, ...] = ()
    app_id: str | None = None
    tenant_id: str | None = None
