"""JWKS key source and key store for JWT signature verification.

Provides:
- ``KeySource``: fetches a JWKS document over HTTP and decodes its RSA keys
- ``KeyStore``: thread-safe cache of the current key set with TTL refresh,
  refresh on kid miss (key rotation), and stale-on-error fallback

Refreshes are serialized behind the store's exclusive lock, so any number of
concurrent cache misses produce at most one in-flight fetch. A failed fetch
never clears keys that were already cached.

Lifecycle: one store per verifier, created at startup and shared by every
verification call.
"""

from __future__ import annotations

import base64
import binascii
import re
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import httpx
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from jwt.algorithms import RSAAlgorithm
from jwt.exceptions import InvalidKeyError

from proxyauth.foundation.domain.exceptions import KeyNotFoundError, KeySourceError
from proxyauth.infra.observability import get_logger

if TYPE_CHECKING:
    import structlog

_RSA_KEY_TYPE = "RSA"
_DEFAULT_TIMEOUT = 10.0
_BASE64URL_ALPHABET = re.compile(r"[A-Za-z0-9_-]+")


def decode_base64url_int(value: str) -> int:
    """Decode unpadded base64url into a big-endian unsigned integer.

    Accepts any byte length; no fixed width is assumed for the exponent.

    Raises:
        ValueError: If the value is empty or not valid base64url.
    """
    if not value:
        raise ValueError("empty base64url value")
    if not _BASE64URL_ALPHABET.fullmatch(value):
        raise ValueError("base64url value contains characters outside the URL-safe alphabet")
    padded = value + "=" * (-len(value) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except binascii.Error as exc:
        raise ValueError(f"malformed base64url value: {exc}") from exc
    return int.from_bytes(raw, "big")


@dataclass(frozen=True, slots=True)
class VerificationKey:
    """RSA public key published in a JWKS document.

    Attributes:
        kid: Key identifier referenced by token headers.
        modulus: RSA modulus ``n``.
        exponent: RSA public exponent ``e``.
        public_key: ``cryptography`` key object used for signature checks.
        kty: Key type, always ``RSA``.
    """

    kid: str
    modulus: int
    exponent: int
    public_key: RSAPublicKey = field(repr=False, compare=False)
    kty: str = _RSA_KEY_TYPE


def _decode_rsa_entry(kid: str, entry: dict[str, Any]) -> VerificationKey:
    n = str(entry.get("n", ""))
    e = str(entry.get("e", ""))
    # PyJWT's own decoder tolerates "+" and "/", so the alphabet is checked here.
    modulus = decode_base64url_int(n)
    exponent = decode_base64url_int(e)
    try:
        public_key = RSAAlgorithm.from_jwk({"kty": _RSA_KEY_TYPE, "n": n, "e": e})
    except InvalidKeyError as exc:
        raise ValueError(str(exc)) from exc
    if not isinstance(public_key, RSAPublicKey):
        raise ValueError("JWK did not yield an RSA public key")
    return VerificationKey(kid=kid, modulus=modulus, exponent=exponent, public_key=public_key)


def decode_key_set(document: Any) -> dict[str, VerificationKey]:
    """Decode a parsed JWKS document into RSA verification keys.

    Non-RSA entries are skipped. A repeated ``kid`` keeps the later entry.

    Args:
        document: Parsed JSON body, expected shape ``{"keys": [...]}``.

    Returns:
        Mapping of kid to VerificationKey.

    Raises:
        KeySourceError: If the document or any RSA entry is malformed.
    """
    if not isinstance(document, dict) or not isinstance(document.get("keys"), list):
        raise KeySourceError("JWKS document has no 'keys' array")

    keys: dict[str, VerificationKey] = {}
    for entry in document["keys"]:
        if not isinstance(entry, dict) or entry.get("kty") != _RSA_KEY_TYPE:
            continue
        kid = entry.get("kid")
        if not isinstance(kid, str) or not kid:
            raise KeySourceError("JWKS RSA entry has no 'kid'")
        try:
            keys[kid] = _decode_rsa_entry(kid, entry)
        except ValueError as exc:
            raise KeySourceError(
                "Failed to decode JWKS RSA entry", {"kid": kid, "reason": str(exc)}
            ) from exc
    return keys


class KeySource:
    """Fetches and decodes a JWKS document from a fixed URL.

    Supports both per-fetch and shared httpx.Client modes:
    - If ``client`` is provided, it is reused across fetches (caller manages
      lifecycle).
    - Otherwise a short-lived client is created for each fetch.

    Args:
        url: JWKS endpoint URL.
        timeout: HTTP request timeout in seconds.
        client: Optional shared httpx.Client instance.
    """

    def __init__(
        self,
        url: str,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        if not url:
            raise ValueError("JWKS URL is required")
        self._url = url
        self._timeout = timeout
        self._client = client

    @property
    def url(self) -> str:
        return self._url

    def fetch(self) -> dict[str, VerificationKey]:
        """GET the JWKS document and decode it.

        Returns:
            Mapping of kid to VerificationKey (possibly empty).

        Raises:
            KeySourceError: On network failure, non-200 status, or malformed body.
        """
        try:
            if self._client is not None:
                response = self._client.get(self._url, timeout=self._timeout)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.get(self._url)
        except httpx.HTTPError as exc:
            raise KeySourceError(
                "Failed to fetch JWKS", {"url": self._url, "reason": str(exc)}
            ) from exc

        if response.status_code != httpx.codes.OK:
            raise KeySourceError(
                "JWKS endpoint returned an error status",
                {"url": self._url, "status_code": response.status_code},
            )

        try:
            document = response.json()
        except ValueError as exc:
            raise KeySourceError("JWKS response is not valid JSON", {"url": self._url}) from exc

        return decode_key_set(document)


@dataclass(frozen=True, slots=True)
class KeySet:
    """Immutable snapshot of the keys from one successful fetch.

    Attributes:
        keys: Read-only mapping of kid to VerificationKey.
        fetched_at: Monotonic clock reading taken when the fetch succeeded.
    """

    keys: Mapping[str, VerificationKey]
    fetched_at: float

    def __contains__(self, kid: object) -> bool:
        return kid in self.keys

    def __len__(self) -> int:
        return len(self.keys)


class _ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class KeyStore:
    """Thread-safe cache of verification keys backed by a ``KeySource``.

    Lookup path:
    1. Under the shared lock, serve the key if present and the set is fresh.
    2. Otherwise refresh under the exclusive lock. A caller that queued
       behind another caller's fetch reuses that outcome instead of fetching
       again, so a failing source is hit once per wave of misses.
    3. Re-check under the shared lock. If the refresh failed, a key that is
       still in the (expired) cached set is served rather than rejecting
       valid traffic.

    Freshness is measured on a monotonic clock from the last successful
    fetch, never from the last attempt.

    Args:
        source: Remote key source.
        cache_lifetime: Seconds a fetched key set stays fresh.
        clock: Monotonic clock, injectable for tests.
        logger: Structured logger (defaults to this module's logger).
    """

    def __init__(
        self,
        source: KeySource,
        cache_lifetime: float,
        clock: Callable[[], float] = time.monotonic,
        logger: structlog.typing.WrappedLogger | None = None,
    ) -> None:
        self._source = source
        self._cache_lifetime = cache_lifetime
        self._clock = clock
        self._logger = logger or get_logger(__name__)
        self._lock = _ReadWriteLock()
        self._key_set: KeySet | None = None
        self._attempts = 0
        self._last_error: KeySourceError | None = None

    def get_key(self, kid: str) -> VerificationKey:
        """Return the verification key for ``kid``.

        Raises:
            KeyNotFoundError: If the key is absent after a refresh attempt.
                Chained to the ``KeySourceError`` when the refresh failed.
        """
        # Taken before the shared lock: a caller blocked behind an in-flight
        # fetch must see that fetch as already attempted on its behalf.
        attempt = self._attempts
        with self._lock.read():
            observed = self._key_set
            if observed is not None and kid in observed and self._is_fresh(observed):
                return observed.keys[kid]

        fetch_error: KeySourceError | None = None
        try:
            self._refresh_unless_attempted(attempt)
        except KeySourceError as exc:
            fetch_error = exc
            self._logger.warning("jwks_refresh_failed", kid=kid, error=str(exc))

        with self._lock.read():
            current = self._key_set
            if current is not None and kid in current:
                if fetch_error is not None:
                    self._logger.info("jwks_serving_stale_key", kid=kid)
                return current.keys[kid]
            if current is not None:
                self._logger.debug("jwks_key_not_found", kid=kid, available=sorted(current.keys))

        raise KeyNotFoundError(kid) from fetch_error

    def refresh(self) -> KeySet:
        """Fetch the key set now, replacing the current one on success.

        Raises:
            KeySourceError: If the fetch fails. The current set is kept.
        """
        with self._lock.write():
            return self._fetch_locked()

    def warm(self) -> bool:
        """Perform an initial fetch without raising.

        Returns:
            True if keys were fetched, False if the source was unavailable.
            A failed warm-up is retried by the first lookup.
        """
        try:
            self.refresh()
        except KeySourceError as exc:
            self._logger.warning("jwks_warm_up_failed", url=self._source.url, error=str(exc))
            return False
        return True

    @property
    def key_ids(self) -> list[str]:
        with self._lock.read():
            return sorted(self._key_set.keys) if self._key_set is not None else []

    @property
    def last_fetch(self) -> float | None:
        """Monotonic time of the last successful fetch, or None."""
        with self._lock.read():
            return self._key_set.fetched_at if self._key_set is not None else None

    def _is_fresh(self, key_set: KeySet) -> bool:
        return self._clock() - key_set.fetched_at < self._cache_lifetime

    def _refresh_unless_attempted(self, attempt: int) -> None:
        with self._lock.write():
            if self._attempts != attempt:
                # Another caller fetched while this one waited for the lock;
                # its outcome, success or failure, is shared.
                if self._last_error is not None:
                    raise KeySourceError(
                        self._last_error.message, self._last_error.context
                    ) from self._last_error
                return
            self._fetch_locked()

    def _fetch_locked(self) -> KeySet:
        self._attempts += 1
        try:
            keys = self._source.fetch()
        except KeySourceError as exc:
            self._last_error = exc
            raise
        self._last_error = None
        key_set = KeySet(keys=MappingProxyType(keys), fetched_at=self._clock())
        self._key_set = key_set
        self._logger.debug("jwks_refreshed", url=self._source.url, key_count=len(key_set))
        return key_set
