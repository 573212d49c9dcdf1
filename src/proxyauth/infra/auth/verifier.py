"""Bearer token verification against a cached JWKS.

Verification flow (each stage rejects with a tagged error):
1. PARSE            -> header must declare an RSA algorithm and a kid
2. RESOLVE_KEY      -> KeyStore lookup, refreshing on miss
3. CHECK_SIGNATURE  -> PyJWT signature + exp/nbf validation
4. CHECK_ISSUER     -> allowed issuers (one trailing slash ignored)
5. CHECK_AUDIENCE   -> client id or api://client id
6. CHECK_SCOPES     -> every required scope present in 'scp'
7. EXTRACT_CLAIMS   -> normalized TokenClaims

Design decisions:
- The algorithm allow-list is checked before any key lookup, so 'none' and
  HMAC tokens are rejected without touching the key store.
- Issuer and audience are matched here rather than by PyJWT, which has no
  notion of trailing-slash issuers or the ``api://`` audience form.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import jwt as pyjwt

from proxyauth.foundation.domain.claims import TokenClaims
from proxyauth.foundation.domain.exceptions import (
    EmptyTokenError,
    InvalidTokenError,
    TokenExpiredError,
    UnauthorizedTokenError,
    VerificationStage,
)
from proxyauth.infra.observability import get_logger

if TYPE_CHECKING:
    import structlog

    from proxyauth.foundation.domain.policy import Policy
    from proxyauth.infra.auth.jwks import KeyStore

RSA_ALGORITHMS: frozenset[str] = frozenset({"RS256", "RS384", "RS512"})


class TokenVerifier:
    """Verifies bearer tokens and enforces the acceptance policy.

    Safe to share between threads: the only mutable state lives in the
    key store.

    Args:
        policy: Issuer, audience and scope requirements.
        key_store: Source of verification keys.
        leeway: Clock skew in seconds tolerated on exp/nbf.
        logger: Structured logger (defaults to this module's logger).

    Example:
        >>> verifier = TokenVerifier(policy, key_store)
        >>> claims = verifier.verify(token)
        >>> claims.subject
        'b2f7...'
    """

    def __init__(
        self,
        policy: Policy,
        key_store: KeyStore,
        leeway: int = 0,
        logger: structlog.typing.WrappedLogger | None = None,
    ) -> None:
        self._policy = policy
        self._key_store = key_store
        self._leeway = leeway
        self._logger = logger or get_logger(__name__)

        if policy.accepts_any_issuer:
            self._logger.warning(
                "verifier_issuer_check_disabled",
                detail="No allowed issuers configured; tokens from any issuer are accepted.",
            )

    @property
    def policy(self) -> Policy:
        return self._policy

    @property
    def key_store(self) -> KeyStore:
        return self._key_store

    def verify(self, token: str) -> TokenClaims:
        """Verify a raw JWT and return its normalized claims.

        Args:
            token: Raw JWT string (no "Bearer " prefix).

        Returns:
            TokenClaims for a token that passed every check.

        Raises:
            EmptyTokenError: If the token is empty.
            InvalidTokenError: Malformed token, forbidden algorithm, missing
                kid, unknown key (KeyNotFoundError) or bad signature.
            TokenExpiredError: Signature valid but token expired.
            UnauthorizedTokenError: Issuer, audience or scope check failed.
        """
        if not token:
            raise EmptyTokenError()

        algorithm, kid = self._parse_header(token)
        key = self._key_store.get_key(kid)
        payload = self._decode(token, key.public_key, algorithm)

        issuer = _string_claim(payload, "iss") or ""
        if not self._policy.allows_issuer(issuer):
            raise UnauthorizedTokenError(
                "Issuer is not allowed", VerificationStage.CHECK_ISSUER, issuer=issuer
            )

        audiences = _audience_list(payload.get("aud"))
        if not self._policy.accepts_audience(audiences):
            raise UnauthorizedTokenError(
                "Audience does not match",
                VerificationStage.CHECK_AUDIENCE,
                audiences=list(audiences),
            )

        scp = payload.get("scp")
        scopes = tuple(scp.split()) if isinstance(scp, str) else ()
        missing = self._policy.missing_scopes(scopes)
        if missing:
            raise UnauthorizedTokenError(
                "Missing required scopes",
                VerificationStage.CHECK_SCOPES,
                missing=sorted(missing),
            )

        claims = _extract_claims(payload, issuer, audiences, scopes)
        self._logger.debug(
            "token_verified",
            subject=claims.subject,
            email=claims.email,
            scopes=list(claims.scopes),
        )
        return claims

    def _parse_header(self, token: str) -> tuple[str, str]:
        try:
            header = pyjwt.get_unverified_header(token)
        except pyjwt.InvalidTokenError as exc:
            raise InvalidTokenError("Token is malformed", VerificationStage.PARSE) from exc

        algorithm = header.get("alg")
        if algorithm not in RSA_ALGORITHMS:
            raise InvalidTokenError(
                "Unexpected signing method", VerificationStage.PARSE, alg=algorithm
            )

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise InvalidTokenError("Token header has no kid", VerificationStage.PARSE)
        return algorithm, kid

    def _decode(self, token: str, key: Any, algorithm: str) -> dict[str, Any]:
        stage = VerificationStage.CHECK_SIGNATURE
        try:
            payload: dict[str, Any] = pyjwt.decode(
                token,
                key,
                algorithms=[algorithm],
                leeway=self._leeway,
                options={
                    "verify_aud": False,
                    "verify_iss": False,
                    "verify_iat": False,
                },
            )
        except pyjwt.ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except pyjwt.InvalidSignatureError as exc:
            raise InvalidTokenError("Token signature verification failed", stage) from exc
        except pyjwt.ImmatureSignatureError as exc:
            raise InvalidTokenError("Token is not yet valid", stage) from exc
        except pyjwt.DecodeError as exc:
            raise InvalidTokenError("Token is malformed", stage) from exc
        except pyjwt.InvalidTokenError as exc:
            raise InvalidTokenError("Token validation failed", stage) from exc
        return payload


def _string_claim(payload: dict[str, Any], *names: str) -> str | None:
    """Return the first claim among ``names`` holding a string."""
    for name in names:
        value = payload.get(name)
        if isinstance(value, str):
            return value
    return None


def _string_list(value: Any) -> tuple[str, ...]:
    if isinstance(value, list):
        return tuple(item for item in value if isinstance(item, str))
    return ()


def _audience_list(value: Any) -> tuple[str, ...]:
    """Normalize an 'aud' claim (string or array of strings) to a tuple."""
    if isinstance(value, str):
        return (value,)
    return _string_list(value)


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


def _extract_claims(
    payload: dict[str, Any],
    issuer: str,
    audiences: tuple[str, ...],
    scopes: tuple[str, ...],
) -> TokenClaims:
    return TokenClaims(
        subject=_string_claim(payload, "sub") or "",
        issuer=issuer,
        audiences=audiences,
        expires_at=_timestamp(payload.get("exp")),
        issued_at=_timestamp(payload.get("iat")),
        email=_string_claim(payload, "email", "preferred_username", "upn"),
        name=_string_claim(payload, "name"),
        roles=_string_list(payload.get("roles")),
        scopes=scopes,
        app_id=_string_claim(payload, "appid", "azp"),
        tenant_id=_string_claim(payload, "tid"),
    )
