"""Shared fixtures: RSA signing keys, a fake JWKS endpoint, a wired verifier."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import jwt
import pytest
import structlog
from cryptography.hazmat.primitives.asymmetric import rsa
from helpers import (
    CLIENT_ID,
    ISSUER,
    JWKS_URL,
    FakeClock,
    FakeJWKSEndpoint,
    default_claims,
    rsa_jwk,
)

from proxyauth.foundation.domain.policy import Policy
from proxyauth.infra.auth.jwks import KeySource, KeyStore
from proxyauth.infra.auth.settings import get_provider_settings, get_verifier_settings
from proxyauth.infra.auth.verifier import TokenVerifier
from proxyauth.infra.observability.logging import get_logging_settings


def _clear_caches() -> None:
    structlog.reset_defaults()
    get_logging_settings.cache_clear()
    get_verifier_settings.cache_clear()
    get_provider_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_global_state() -> Iterator[None]:
    """Reset structlog configuration and cached settings around each test."""
    _clear_caches()
    yield
    _clear_caches()


@pytest.fixture(scope="session")
def signing_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_signing_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture()
def jwks_endpoint(signing_key: rsa.RSAPrivateKey) -> FakeJWKSEndpoint:
    return FakeJWKSEndpoint({"keys": [rsa_jwk(signing_key, "key-1")]})


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def key_store(jwks_endpoint: FakeJWKSEndpoint, clock: FakeClock) -> Iterator[KeyStore]:
    with jwks_endpoint.client() as client:
        source = KeySource(JWKS_URL, client=client)
        yield KeyStore(source, cache_lifetime=3600, clock=clock)


@pytest.fixture()
def policy() -> Policy:
    return Policy(audience=CLIENT_ID, allowed_issuers=frozenset({ISSUER}))


@pytest.fixture()
def verifier(policy: Policy, key_store: KeyStore) -> TokenVerifier:
    return TokenVerifier(policy, key_store)


@pytest.fixture()
def make_token(signing_key: rsa.RSAPrivateKey) -> Callable[..., str]:
    """Sign a token with ``signing_key`` under kid ``key-1`` by default.

    Keyword arguments other than kid/algorithm/key override claims.
    """

    def _make(
        *,
        kid: str | None = "key-1",
        algorithm: str = "RS256",
        key: Any = None,
        **claim_overrides: Any,
    ) -> str:
        headers = {"kid": kid} if kid is not None else {}
        return jwt.encode(
            default_claims(**claim_overrides),
            key if key is not None else signing_key,
            algorithm=algorithm,
            headers=headers,
        )

    return _make
