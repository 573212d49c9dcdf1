"""Test helpers: JWK encoding, a manual clock and a fake JWKS endpoint."""

from __future__ import annotations

import base64
import threading
import time
from typing import Any

import httpx
from cryptography.hazmat.primitives.asymmetric import rsa

TENANT_ID = "11111111-2222-3333-4444-555555555555"
CLIENT_ID = "kafka-proxy"
ISSUER = f"https://login.microsoftonline.com/{TENANT_ID}/v2.0"
JWKS_URL = "https://idp.example.com/discovery/v2.0/keys"
TOKEN_URL = f"https://login.microsoftonline.com/{TENANT_ID}/oauth2/v2.0/token"


def b64url_uint(value: int) -> str:
    """Encode an unsigned integer as unpadded big-endian base64url."""
    raw = value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def rsa_jwk(private_key: rsa.RSAPrivateKey, kid: str) -> dict[str, str]:
    numbers = private_key.public_key().public_numbers()
    return {
        "kid": kid,
        "kty": "RSA",
        "use": "sig",
        "n": b64url_uint(numbers.n),
        "e": b64url_uint(numbers.e),
    }


def default_claims(**overrides: Any) -> dict[str, Any]:
    """Valid claim set for ``CLIENT_ID``/``ISSUER``; overrides set to None are dropped."""
    now = int(time.time())
    claims: dict[str, Any] = {
        "sub": "user-object-id",
        "iss": ISSUER,
        "aud": CLIENT_ID,
        "iat": now,
        "nbf": now,
        "exp": now + 600,
        "email": "alice@example.com",
        "name": "Alice",
        "roles": ["Kafka.Reader"],
        "scp": "read write",
        "appid": "caller-app",
        "tid": TENANT_ID,
    }
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeJWKSEndpoint:
    """JWKS endpoint served through ``httpx.MockTransport``.

    ``document`` is returned as JSON with ``status_code``. Set ``raw_body``
    to serve a non-JSON body, or ``fail`` to raise a transport error.
    """

    def __init__(self, document: dict[str, Any] | None = None) -> None:
        self.document: dict[str, Any] = document if document is not None else {"keys": []}
        self.status_code = 200
        self.raw_body: bytes | None = None
        self.fail = False
        self.delay = 0.0
        self.requests = 0
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests += 1
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise httpx.ConnectError("connection refused", request=request)
        if self.raw_body is not None:
            return httpx.Response(self.status_code, content=self.raw_body)
        return httpx.Response(self.status_code, json=self.document)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))
