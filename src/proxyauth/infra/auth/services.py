"""Host-facing services and their startup wiring.

Three contracts are exposed to the proxy host:

- ``BearerTokenInfo.verify_bearer_token``: OAUTHBEARER token check
- ``PasswordAuthenticator.authenticate``: SASL/PLAIN check (JWT or static)
- ``OutboundTokenProvider.obtain_outbound_token``: client-credentials token

Every contract answers with a status code. Bad input never raises; an
unexpected exception is logged and reported as ``INTERNAL_ERROR``. Only
impossible configuration (``ValueError`` from settings or policy) is raised,
and only from the ``create_*`` factories at startup.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from proxyauth.foundation.domain.exceptions import (
    TokenEndpointError,
    TokenIssuanceError,
    TokenVerificationError,
)
from proxyauth.foundation.domain.results import AuthResult, TokenResult
from proxyauth.foundation.domain.status import AuthStatus, status_for
from proxyauth.infra.auth.authenticator import PasswordAuthenticator
from proxyauth.infra.auth.jwks import KeySource, KeyStore
from proxyauth.infra.auth.settings import (
    ProviderSettings,
    VerifierSettings,
    get_provider_settings,
    get_verifier_settings,
)
from proxyauth.infra.auth.token_client import ClientCredentialsClient
from proxyauth.infra.auth.verifier import TokenVerifier
from proxyauth.infra.observability import configure_logging, get_logger

if TYPE_CHECKING:
    import structlog

    from proxyauth.foundation.domain.policy import Policy


class BearerTokenInfo:
    """Validates bearer tokens presented by connecting clients.

    Args:
        verifier: Shared token verifier.
        logger: Structured logger (defaults to this module's logger).
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        logger: structlog.typing.WrappedLogger | None = None,
    ) -> None:
        self._verifier = verifier
        self._logger = logger or get_logger(__name__)

    @property
    def verifier(self) -> TokenVerifier:
        return self._verifier

    def verify_bearer_token(self, token: str) -> AuthResult:
        """Check a raw bearer token and report the host status."""
        try:
            claims = self._verifier.verify(token)
        except TokenVerificationError as exc:
            self._logger.info(
                "bearer_token_rejected",
                error_code=exc.error_code,
                stage=exc.stage.value,
                kind=exc.kind.value,
            )
            return AuthResult.rejected(status_for(exc.kind))
        except Exception:
            self._logger.exception("bearer_token_unexpected_error")
            return AuthResult.rejected(AuthStatus.INTERNAL_ERROR)

        self._logger.debug("bearer_token_accepted", subject=claims.subject, app_id=claims.app_id)
        return AuthResult.ok()


class OutboundTokenProvider:
    """Supplies this process's own bearer token for upstream connections.

    Args:
        client: Client-credentials token client.
        logger: Structured logger (defaults to this module's logger).
    """

    def __init__(
        self,
        client: ClientCredentialsClient,
        logger: structlog.typing.WrappedLogger | None = None,
    ) -> None:
        self._client = client
        self._logger = logger or get_logger(__name__)

    async def obtain_outbound_token(self) -> TokenResult:
        """Request a fresh token and report the host status.

        Rejected client credentials (4xx other than 429) map to
        ``UNAUTHORIZED``; every other failure maps to ``INTERNAL_ERROR``
        with ``retryable`` taken from the error's ``transient`` flag.
        """
        try:
            response = await self._client.obtain_token()
        except TokenIssuanceError as exc:
            self._logger.warning(
                "outbound_token_failed",
                error_code=exc.error_code,
                transient=exc.transient,
                detail=str(exc),
            )
            return TokenResult(
                token="",
                status=_issuance_status(exc),
                retryable=exc.transient,
            )
        except Exception:
            self._logger.exception("outbound_token_unexpected_error")
            return TokenResult(token="", status=AuthStatus.INTERNAL_ERROR)

        self._logger.debug("outbound_token_obtained", expires_in=response.expires_in)
        return TokenResult(
            token=response.access_token,
            status=AuthStatus.OK,
            expires_in=response.expires_in,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _issuance_status(exc: TokenIssuanceError) -> AuthStatus:
    if isinstance(exc, TokenEndpointError) and not exc.transient and 400 <= exc.status_code < 500:
        return AuthStatus.UNAUTHORIZED
    return AuthStatus.INTERNAL_ERROR


def _build_verifier(settings: VerifierSettings, policy: Policy) -> TokenVerifier:
    source = KeySource(settings.resolved_jwks_url(), timeout=settings.jwks_timeout)
    key_store = KeyStore(source, cache_lifetime=policy.cache_lifetime)
    key_store.warm()
    return TokenVerifier(policy, key_store, leeway=settings.leeway)


def create_token_info(settings: VerifierSettings | None = None) -> BearerTokenInfo:
    """Build the bearer-token service and warm its key cache.

    A failed warm-up is logged and retried by the first lookup.

    Raises:
        ValueError: If the acceptance policy is misconfigured.
    """
    if settings is None:
        settings = get_verifier_settings()
    configure_logging(debug=settings.debug)

    verifier = _build_verifier(settings, settings.to_policy())
    return BearerTokenInfo(verifier)


def create_password_authenticator(
    settings: VerifierSettings | None = None,
) -> PasswordAuthenticator:
    """Build the password authenticator.

    The static table and the policy are built now, so misconfiguration fails
    at startup. The verifier (and its key fetch) waits for the first
    JWT-mode call.

    Raises:
        ValueError: If the acceptance policy is misconfigured.
    """
    if settings is None:
        settings = get_verifier_settings()
    configure_logging(debug=settings.debug)

    policy = settings.to_policy()
    credentials = settings.static_credentials()

    def verifier_factory() -> TokenVerifier:
        return _build_verifier(settings, policy)

    return PasswordAuthenticator(credentials, verifier_factory)


def create_token_provider(settings: ProviderSettings | None = None) -> OutboundTokenProvider:
    """Build the outbound token provider.

    Raises:
        ValueError: Naming each missing required setting.
    """
    if settings is None:
        settings = get_provider_settings()
    configure_logging(debug=settings.debug)

    settings.validate_config()
    client = ClientCredentialsClient(
        token_url=settings.resolved_token_url(),
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        scope=settings.scope,
        timeout=settings.timeout,
    )
    return OutboundTokenProvider(client)
