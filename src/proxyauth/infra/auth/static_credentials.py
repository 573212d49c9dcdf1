"""Static username/password table for the password-mode fallback.

Built once at startup from configuration entries. Each entry is either a
literal ``user:pass`` pair or the name of an environment variable (no colon,
all upper case) holding comma-separated ``user:pass`` pairs. Later entries
override earlier ones for the same username.

Malformed entries are skipped with a warning that never echoes the entry,
since it may contain a password.
"""

from __future__ import annotations

import hmac
import os
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING

from proxyauth.infra.observability import get_logger

if TYPE_CHECKING:
    import structlog


def _is_env_reference(entry: str) -> bool:
    return ":" not in entry and entry.upper() == entry


def _encode(value: str) -> bytes:
    # Lone surrogates are legal in str but not in strict UTF-8.
    return value.encode("utf-8", errors="surrogatepass")


class StaticCredentialTable:
    """Immutable mapping of username to expected password.

    Example:
        >>> table = StaticCredentialTable({"alice": "secret1"})
        >>> table.verify("alice", "secret1")
        True
        >>> StaticCredentialTable({}).verify("alice", "secret1")
        False
    """

    def __init__(self, credentials: Mapping[str, str] | None = None) -> None:
        self._credentials: Mapping[str, str] = MappingProxyType(dict(credentials or {}))

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[str],
        environ: Mapping[str, str] | None = None,
        logger: structlog.typing.WrappedLogger | None = None,
    ) -> StaticCredentialTable:
        """Parse configuration entries into a table.

        Args:
            entries: Literal ``user:pass`` pairs or environment variable names.
            environ: Environment to resolve variable names against
                (defaults to ``os.environ``).
            logger: Logger for skipped-entry warnings.

        Returns:
            Table holding every well-formed pair.
        """
        log = logger or get_logger(__name__)
        env = os.environ if environ is None else environ
        credentials: dict[str, str] = {}

        for raw_entry in entries:
            entry = raw_entry.strip()
            if not entry:
                continue
            if _is_env_reference(entry):
                value = env.get(entry, "")
                if not value:
                    log.warning("static_users_env_var_empty", env_var=entry)
                    continue
                pairs = [pair.strip() for pair in value.split(",")]
                loaded = 0
                for pair in pairs:
                    if pair and cls._add_pair(credentials, pair, log, source=entry):
                        loaded += 1
                log.debug("static_users_loaded_from_env", env_var=entry, count=loaded)
            else:
                cls._add_pair(credentials, entry, log, source="literal")

        return cls(credentials)

    @staticmethod
    def _add_pair(
        credentials: dict[str, str],
        pair: str,
        log: structlog.typing.WrappedLogger,
        source: str,
    ) -> bool:
        username, sep, password = pair.partition(":")
        if not sep or not username:
            log.warning("static_user_entry_invalid", source=source)
            return False
        if not password:
            log.warning("static_user_entry_empty_password", username=username, source=source)
            return False
        credentials[username] = password
        return True

    def verify(self, username: str, secret: str) -> bool:
        """Check a username/secret pair with a constant-time comparison.

        An empty table rejects every pair.
        """
        expected = self._credentials.get(username)
        if expected is None:
            return False
        return hmac.compare_digest(_encode(expected), _encode(secret))

    def __contains__(self, username: object) -> bool:
        return username in self._credentials

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def usernames(self) -> list[str]:
        return sorted(self._credentials)
