"""Acceptance policy applied to every verified token.

Matching rules are deliberately narrow: issuers, audiences and scopes are
compared case-sensitively and exactly, except that a single trailing slash
is ignored on issuers.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

API_AUDIENCE_PREFIX = "api://"


def _trim_slash(value: str) -> str:
    return value[:-1] if value.endswith("/") else value


@dataclass(frozen=True, slots=True)
class Policy:
    """Issuer, audience and scope requirements for accepted tokens.

    Attributes:
        audience: Expected audience (the application's client id).
        allowed_issuers: Acceptable issuers. Empty means any issuer passes.
        required_scopes: Scopes that must all be present in 'scp'.
        cache_lifetime: Seconds a fetched key set stays fresh.

    Raises:
        ValueError: If audience is empty or cache_lifetime is not positive.

    Example:
        >>> policy = Policy(audience="client-1", allowed_issuers=frozenset({"https://idp/x"}))
        >>> policy.allows_issuer("https://idp/x/")
        True
    """

    audience: str
    allowed_issuers: frozenset[str] = field(default_factory=frozenset)
    required_scopes: frozenset[str] = field(default_factory=frozenset)
    cache_lifetime: float = 3600.0

    def __post_init__(self) -> None:
        if not self.audience:
            raise ValueError("Policy audience (client id) is required")
        if self.cache_lifetime <= 0:
            raise ValueError("Policy cache_lifetime must be positive")

    @property
    def accepts_any_issuer(self) -> bool:
        return not self.allowed_issuers

    def allows_issuer(self, issuer: str) -> bool:
        """Check an issuer against the allowed set.

        Exactly one trailing slash is trimmed from both sides before the
        case-sensitive comparison. An empty allowed set accepts anything.
        """
        if self.accepts_any_issuer:
            return True
        candidate = _trim_slash(issuer)
        return any(candidate == _trim_slash(allowed) for allowed in self.allowed_issuers)

    def accepts_audience(self, audiences: Iterable[str]) -> bool:
        """Check whether any audience is the client id or its ``api://`` form."""
        expected = {self.audience, f"{API_AUDIENCE_PREFIX}{self.audience}"}
        return any(aud in expected for aud in audiences)

    def missing_scopes(self, scopes: Iterable[str]) -> frozenset[str]:
        """Return required scopes absent from ``scopes`` (empty when satisfied)."""
        return self.required_scopes.difference(scopes)
