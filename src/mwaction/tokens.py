"""Per-site cache of anti-forgery tokens, refreshed on demand."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from enum import Enum

from mwaction.exceptions import LoginStateMismatch
from mwaction.logging import get_logger

LOG = get_logger(__name__)


class TokenKind(str, Enum):
    """Token families issued by ``action=query&meta=tokens``.

    The value is the lower-cased wire name passed as ``type=``.
    """

    CREATE_ACCOUNT = "createaccount"
    CSRF = "csrf"
    LOGIN = "login"
    PATROL = "patrol"
    ROLLBACK = "rollback"
    USER_RIGHTS = "userrights"
    WATCH = "watch"

    @property
    def response_key(self) -> str:
        """Key of this token inside ``query.tokens`` of the response."""
        return f"{self.value}token"


# Login tokens are single-use and fetched right before logging in, never cached.
REFRESHABLE_KINDS: tuple[TokenKind, ...] = tuple(k for k in TokenKind if k is not TokenKind.LOGIN)

TokenFetcher = Callable[[tuple[TokenKind, ...]], Mapping[TokenKind, str]]
LoginAssertion = Callable[[], bool]


class TokenStore:
    """Cached tokens for one site connection, at most one per kind.

    Reads are lock-free lookups in a dict that is only ever replaced
    wholesale. ``refresh()`` is serialized by a lock and coalesces
    concurrent callers: a caller that passes the generation it observed
    skips the fetch when another thread refreshed in the meantime.

    Args:
        fetcher: Fetches fresh tokens for the given kinds in one request.
        assert_login: Returns True while the session is still logged in
            as expected. Checked before every refresh.
        kinds: Kinds fetched by ``refresh()``.
    """

    def __init__(
        self,
        fetcher: TokenFetcher,
        assert_login: LoginAssertion,
        kinds: Iterable[TokenKind] = REFRESHABLE_KINDS,
    ) -> None:
        self._fetcher = fetcher
        self._assert_login = assert_login
        self._kinds = tuple(kinds)
        self._tokens: dict[TokenKind, str] = {}
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        """Number of completed refreshes."""
        return self._generation

    def get(self, kind: TokenKind) -> str | None:
        """Return the cached token for *kind*, or None if never fetched."""
        return self._tokens.get(kind)

    def __contains__(self, kind: object) -> bool:
        return kind in self._tokens

    def fetch(self, *kinds: TokenKind) -> dict[TokenKind, str]:
        """Fetch tokens without caching them (used for login tokens)."""
        return dict(self._fetcher(kinds))

    def refresh(self, *, seen_generation: int | None = None) -> int:
        """Re-fetch every refreshable token kind in one pass.

        Args:
            seen_generation: Generation the caller's stale token came from.
                If a refresh has completed since, the fresh tokens are
                reused and no request is made.

        Returns:
            The generation of the tokens now cached.

        Raises:
            LoginStateMismatch: If the login assertion fails.
        """
        with self._lock:
            if seen_generation is not None and seen_generation != self._generation:
                LOG.debug(
                    "token_refresh_coalesced",
                    seen=seen_generation,
                    current=self._generation,
                )
                return self._generation

            if not self._assert_login():
                raise LoginStateMismatch("Login information does not match the session")

            fresh = self._fetcher(self._kinds)
            missing = [kind.value for kind in self._kinds if not fresh.get(kind)]
            if missing:
                LOG.warning("token_kinds_not_returned", kinds=missing)

            self._tokens = {kind: value for kind, value in fresh.items() if value}
            self._generation += 1
            LOG.info(
                "tokens_refreshed",
                generation=self._generation,
                kinds=sorted(kind.value for kind in self._tokens),
            )
            return self._generation

    def clear(self) -> None:
        """Forget every cached token (e.g. after logging out)."""
        with self._lock:
            self._tokens = {}
