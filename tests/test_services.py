"""Tests for the host-facing services and their factories."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx
import pytest
import structlog
from helpers import CLIENT_ID, ISSUER, TENANT_ID, TOKEN_URL
from structlog.testing import capture_logs

from proxyauth.foundation.domain import AuthStatus
from proxyauth.foundation.domain.exceptions import KeySourceError
from proxyauth.infra.auth.jwks import KeySource
from proxyauth.infra.auth.services import (
    BearerTokenInfo,
    OutboundTokenProvider,
    create_password_authenticator,
    create_token_info,
    create_token_provider,
)
from proxyauth.infra.auth.settings import ProviderSettings, VerifierSettings
from proxyauth.infra.auth.token_client import ClientCredentialsClient
from proxyauth.infra.auth.verifier import TokenVerifier

MakeToken = Callable[..., str]


class _BrokenVerifier:
    def verify(self, token: str) -> None:
        raise KeyError("unexpected")


@pytest.mark.unit
class TestBearerTokenInfo:
    def test_valid_token(self, verifier: TokenVerifier, make_token: MakeToken) -> None:
        result = BearerTokenInfo(verifier).verify_bearer_token(make_token())
        assert result.accepted
        assert result.status is AuthStatus.OK

    def test_empty_token(self, verifier: TokenVerifier) -> None:
        result = BearerTokenInfo(verifier).verify_bearer_token("")
        assert result.status is AuthStatus.EMPTY_CREDENTIAL

    def test_garbage_token(self, verifier: TokenVerifier) -> None:
        result = BearerTokenInfo(verifier).verify_bearer_token("not-a-jwt")
        assert result.status is AuthStatus.INVALID_CREDENTIAL

    def test_expired_token(self, verifier: TokenVerifier, make_token: MakeToken) -> None:
        now = int(time.time())
        result = BearerTokenInfo(verifier).verify_bearer_token(
            make_token(exp=now - 10, iat=now - 100)
        )
        assert result.status is AuthStatus.EXPIRED_CREDENTIAL

    def test_wrong_issuer(self, verifier: TokenVerifier, make_token: MakeToken) -> None:
        result = BearerTokenInfo(verifier).verify_bearer_token(make_token(iss="https://evil"))
        assert result.status is AuthStatus.UNAUTHORIZED

    def test_unexpected_error_is_internal(self) -> None:
        service = BearerTokenInfo(_BrokenVerifier())  # type: ignore[arg-type]
        with capture_logs() as logs:
            result = service.verify_bearer_token("anything")
        assert result.status is AuthStatus.INTERNAL_ERROR
        assert logs[-1]["event"] == "bearer_token_unexpected_error"
        assert logs[-1]["log_level"] == "error"

    def test_rejection_log_does_not_contain_token(
        self, verifier: TokenVerifier, make_token: MakeToken
    ) -> None:
        token = make_token(aud="other")
        with capture_logs() as logs:
            BearerTokenInfo(verifier).verify_bearer_token(token)
        assert token not in repr(logs)


@pytest.mark.unit
class TestOutboundTokenProvider:
    @pytest.fixture()
    def provider(self) -> OutboundTokenProvider:
        client = ClientCredentialsClient(TOKEN_URL, "proxy-app", "proxy-secret", "api://kafka/.default")
        return OutboundTokenProvider(client)

    @staticmethod
    def _patch_post(monkeypatch: pytest.MonkeyPatch, response: httpx.Response | Exception) -> None:
        async def mock_post(self_client: httpx.AsyncClient, *args: Any, **kwargs: Any) -> httpx.Response:
            if isinstance(response, Exception):
                raise response
            return response

        monkeypatch.setattr(httpx.AsyncClient, "post", mock_post)

    @pytest.mark.asyncio
    async def test_success(
        self, provider: OutboundTokenProvider, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self._patch_post(
            monkeypatch,
            httpx.Response(
                200,
                json={"access_token": "at", "expires_in": 3600},
                request=httpx.Request("POST", TOKEN_URL),
            ),
        )
        result = await provider.obtain_outbound_token()
        await provider.aclose()
        assert result.success
        assert result.token == "at"
        assert result.expires_in == 3600
        assert not result.retryable

    @pytest.mark.asyncio
    async def test_rejected_credentials_are_unauthorized(
        self, provider: OutboundTokenProvider, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self._patch_post(
            monkeypatch,
            httpx.Response(
                401,
                json={"error": "invalid_client"},
                request=httpx.Request("POST", TOKEN_URL),
            ),
        )
        result = await provider.obtain_outbound_token()
        assert result.status is AuthStatus.UNAUTHORIZED
        assert result.token == ""
        assert not result.retryable

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(
        self, provider: OutboundTokenProvider, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self._patch_post(
            monkeypatch,
            httpx.Response(503, text="busy", request=httpx.Request("POST", TOKEN_URL)),
        )
        result = await provider.obtain_outbound_token()
        assert result.status is AuthStatus.INTERNAL_ERROR
        assert result.retryable

    @pytest.mark.asyncio
    async def test_throttling_is_retryable_internal_error(
        self, provider: OutboundTokenProvider, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self._patch_post(
            monkeypatch,
            httpx.Response(429, text="slow down", request=httpx.Request("POST", TOKEN_URL)),
        )
        result = await provider.obtain_outbound_token()
        assert result.status is AuthStatus.INTERNAL_ERROR
        assert result.retryable

    @pytest.mark.asyncio
    async def test_network_failure_is_retryable(
        self, provider: OutboundTokenProvider, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self._patch_post(monkeypatch, httpx.ConnectError("refused"))
        with capture_logs() as logs:
            result = await provider.obtain_outbound_token()
        assert result.status is AuthStatus.INTERNAL_ERROR
        assert result.retryable
        assert logs[-1]["event"] == "outbound_token_failed"

    @pytest.mark.asyncio
    async def test_empty_access_token_is_permanent(
        self, provider: OutboundTokenProvider, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        self._patch_post(
            monkeypatch,
            httpx.Response(
                200, json={"access_token": ""}, request=httpx.Request("POST", TOKEN_URL)
            ),
        )
        result = await provider.obtain_outbound_token()
        assert result.status is AuthStatus.INTERNAL_ERROR
        assert not result.retryable


@pytest.mark.unit
class TestFactories:
    def test_create_token_info_warms_cache(self, monkeypatch: pytest.MonkeyPatch) -> None:
        fetched: list[str] = []

        def fake_fetch(self: KeySource) -> dict[str, Any]:
            fetched.append(self.url)
            return {}

        monkeypatch.setattr(KeySource, "fetch", fake_fetch)
        settings = VerifierSettings(
            _env_file=None,
            client_id=CLIENT_ID,
            tenant_id=TENANT_ID,
            jwks_url="https://idp.example.com/keys",
        )

        service = create_token_info(settings)

        assert fetched == ["https://idp.example.com/keys"]
        assert ISSUER in service.verifier.policy.allowed_issuers
        assert service.verifier.key_store.last_fetch is not None

    def test_create_token_info_survives_failed_warm_up(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def failing_fetch(self: KeySource) -> dict[str, Any]:
            raise KeySourceError("down")

        monkeypatch.setattr(KeySource, "fetch", failing_fetch)
        service = create_token_info(VerifierSettings(_env_file=None, client_id=CLIENT_ID))
        assert service.verifier.key_store.last_fetch is None

    def test_create_token_info_requires_client_id(self) -> None:
        with pytest.raises(ValueError, match="audience"):
            create_token_info(VerifierSettings(_env_file=None))

    def test_create_password_authenticator_is_lazy(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fetched: list[str] = []

        def fake_fetch(self: KeySource) -> dict[str, Any]:
            fetched.append(self.url)
            return {}

        monkeypatch.setattr(KeySource, "fetch", fake_fetch)
        authenticator = create_password_authenticator(
            VerifierSettings(_env_file=None, client_id=CLIENT_ID, static_users="alice:secret1")
        )

        assert authenticator.authenticate("alice", "secret1").accepted
        assert fetched == []
        assert not authenticator.verifier_initialized

        result = authenticator.authenticate("alice", "eyJa.eyJb.c2ln")
        assert result.status is AuthStatus.INVALID_CREDENTIAL
        assert authenticator.verifier_initialized
        assert len(fetched) == 1

    def test_create_password_authenticator_fails_fast_on_bad_policy(self) -> None:
        with pytest.raises(ValueError):
            create_password_authenticator(VerifierSettings(_env_file=None))

    def test_create_token_provider_validates(self) -> None:
        with pytest.raises(ValueError, match="ENTRA_PROVIDER_CLIENT_SECRET"):
            create_token_provider(ProviderSettings(_env_file=None, client_id="c1"))

    def test_create_token_provider(self) -> None:
        provider = create_token_provider(
            ProviderSettings(
                _env_file=None,
                client_id="c1",
                client_secret="s1",
                tenant_id=TENANT_ID,
                scope="api://kafka/.default",
            )
        )
        assert isinstance(provider, OutboundTokenProvider)

    def test_debug_toggle_configures_logging(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(KeySource, "fetch", lambda self: {})
        create_token_info(VerifierSettings(_env_file=None, client_id=CLIENT_ID, debug=True))
        assert structlog.is_configured()

    @pytest.mark.parametrize("debug", [False, True])
    def test_logging_configured_on_stderr_with_debug_toggle(
        self,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
        debug: bool,
    ) -> None:
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        authenticator = create_password_authenticator(
            VerifierSettings(
                _env_file=None, client_id=CLIENT_ID, static_users="alice:secret1", debug=debug
            )
        )

        assert authenticator.authenticate("alice", "secret1").accepted

        captured = capsys.readouterr()
        assert captured.out == ""
        assert ("authenticate_called" in captured.err) is debug
        assert "secret1" not in captured.err
