"""Async client for the OAuth 2.0 client-credentials grant.

Obtains short-lived bearer tokens that this process presents to an upstream
service. Uses httpx.AsyncClient with an explicit timeout and structured
error handling.

Design decisions:
- No retry here. Every failure is raised as a TokenIssuanceError subclass
  whose ``transient`` flag tells the caller whether a retry can help.
- Per-call httpx.AsyncClient unless a shared one is injected, because token
  requests happen once per token lifetime, not per request.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import httpx

from proxyauth.foundation.domain.exceptions import (
    TokenEndpointError,
    TokenEndpointUnavailableError,
    TokenResponseError,
)

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_DEFAULT_TIMEOUT = 30.0
_ERROR_BODY_LIMIT = 500
_GRANT_TYPE = "client_credentials"


@dataclass(frozen=True, slots=True)
class TokenResponse:
    """Parsed response from the token endpoint.

    Attributes:
        access_token: Bearer token to present upstream.
        expires_in: Token TTL in seconds (0 if the provider omitted it).
        token_type: Usually "Bearer".
    """

    access_token: str
    expires_in: int
    token_type: str


class ClientCredentialsClient:
    """Token endpoint client bound to one application registration.

    Supports both per-request and shared httpx.AsyncClient modes:
    - If ``client`` is provided, it is reused across calls (caller manages lifecycle).
    - If ``client`` is omitted, an internal client is created lazily on first use.
      Call :meth:`aclose` to release the internal client when done.

    Args:
        token_url: Token endpoint URL.
        client_id: Application client id.
        client_secret: Application client secret.
        scope: Requested scope (e.g. "api://kafka/.default").
        timeout: HTTP request timeout in seconds.
        client: Optional shared httpx.AsyncClient instance.
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: str,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._scope = scope
        self._timeout = timeout
        self._external_client = client is not None
        self._client: httpx.AsyncClient | None = client

    @property
    def token_url(self) -> str:
        return self._token_url

    async def obtain_token(self) -> TokenResponse:
        """Request a token with the client-credentials grant.

        Returns:
            Parsed TokenResponse with a non-empty access token.

        Raises:
            TokenEndpointError: On non-200 responses.
            TokenEndpointUnavailableError: On network failure or timeout.
            TokenResponseError: On an unparseable body or empty access token.
        """
        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "scope": self._scope,
            "grant_type": _GRANT_TYPE,
        }
        client = self._get_client()
        try:
            response = await client.post(
                self._token_url,
                data=data,
                headers={"Content-Type": _FORM_CONTENT_TYPE},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise TokenEndpointUnavailableError(
                "Token endpoint unreachable",
                {"url": self._token_url, "reason": str(exc)},
            ) from exc

        if response.status_code != httpx.codes.OK:
            raise _endpoint_error(response)

        try:
            body: Any = response.json()
        except ValueError as exc:
            raise TokenResponseError(
                "Token response is not valid JSON", {"url": self._token_url}
            ) from exc
        if not isinstance(body, dict):
            raise TokenResponseError("Token response is not a JSON object", {"url": self._token_url})

        access_token = body.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise TokenResponseError("Received empty access token", {"url": self._token_url})

        return TokenResponse(
            access_token=access_token,
            expires_in=self._parse_expires_in(body.get("expires_in")),
            token_type=str(body.get("token_type", "Bearer")),
        )

    def _parse_expires_in(self, raw: Any) -> int:
        """Seconds until expiry; absent means 0. Numbers and numeric strings are accepted."""
        if raw is None:
            return 0
        if isinstance(raw, (int, float)) and not isinstance(raw, bool) and math.isfinite(raw):
            return int(raw)
        if isinstance(raw, str):
            try:
                return int(raw.strip())
            except ValueError:
                pass
        raise TokenResponseError(
            "Token response has a non-numeric expires_in", {"url": self._token_url}
        )

    def _get_client(self) -> httpx.AsyncClient:
        """Return the shared or lazily-created httpx.AsyncClient."""
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        """Close the internal httpx.AsyncClient if we own it.

        No-op if the client was provided externally or not yet created.
        """
        if self._client is not None and not self._external_client:
            await self._client.aclose()
            self._client = None


def _endpoint_error(response: httpx.Response) -> TokenEndpointError:
    content_type = response.headers.get("content-type", "")
    body: dict[str, Any] = {}
    if content_type.startswith("application/json"):
        try:
            parsed = response.json()
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            body = parsed

    description = body.get("error_description")
    if not isinstance(description, str):
        text = response.text
        description = text if len(text) <= _ERROR_BODY_LIMIT else f"{text[:_ERROR_BODY_LIMIT]}..."
    return TokenEndpointError(
        status_code=response.status_code,
        error=str(body.get("error", "unknown")),
        error_description=description,
    )


async def obtain_token(
    token_url: str,
    client_id: str,
    client_secret: str,
    scope: str,
    timeout: float = _DEFAULT_TIMEOUT,
    client: httpx.AsyncClient | None = None,
) -> tuple[str, int]:
    """One-shot client-credentials request.

    Returns:
        ``(access_token, expires_in_seconds)``.

    Raises:
        TokenIssuanceError: See :meth:`ClientCredentialsClient.obtain_token`.
    """
    token_client = ClientCredentialsClient(
        token_url, client_id, client_secret, scope, timeout=timeout, client=client
    )
    try:
        token = await token_client.obtain_token()
    finally:
        await token_client.aclose()
    return token.access_token, token.expires_in
