"""Site connection: the entry point that ties the protocol engine together.

A ``Site`` owns one HTTP transport and one token store. It builds calls,
checks their permission rules, sends them, and wraps each physical
response in a ``ResponseEnvelope`` that knows how to re-issue the call
after a token refresh.

Example::

    from mwaction import Site, operations

    with Site("https://wiki.example.org/w/api.php") as site:
        site.login("Bot@task", "bot-password")
        operations.edit(site, "Sandbox", "Hello", summary="test")
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Literal

from mwaction import actions
from mwaction.actions import ActionDescriptor
from mwaction.call import Call
from mwaction.config import MwActionSettings, get_settings
from mwaction.exceptions import LoginFailedError, MwActionError
from mwaction.logging import get_logger
from mwaction.modules import TokensMeta, UserInfoMeta
from mwaction.query import Query
from mwaction.response import Declined, ErrorHandler, ResponseEnvelope, declining
from mwaction.tokens import REFRESHABLE_KINDS, TokenKind, TokenStore
from mwaction.totp import totp_supplier
from mwaction.transport import HttpClient, RawResponse, RequestsTransport

LOG = get_logger(__name__)

LoginAssert = Literal["none", "user", "bot"]

# Value sent as ``assert=`` for each login assertion.
_ASSERT_PARAM: dict[str, str] = {"none": "anon", "user": "user", "bot": "bot"}

# clientlogin requires a return URL even though API clients never follow it.
LOGIN_RETURN_URL = "https://example.com/"

# messagecode of a clientlogin UI response asking for an OATHAuth code.
TWO_FACTOR_MESSAGE_CODE = "oathauth-auth-ui"


class Site:
    """A connection to one wiki's action API.

    Args:
        api_url: Full URL of ``api.php``.
        transport: HTTP collaborator; a requests-backed one by default.
        login_assert: Identity the session must keep: ``"none"``
            (anonymous), ``"user"`` or ``"bot"``.
        timeout: Timeout for the default transport.
        user_agent: User-Agent for the default transport.
    """

    def __init__(
        self,
        api_url: str,
        *,
        transport: HttpClient | None = None,
        login_assert: LoginAssert = "none",
        timeout: float = 120.0,
        user_agent: str | None = None,
    ) -> None:
        if login_assert not in _ASSERT_PARAM:
            raise ValueError(f"login_assert must be one of {sorted(_ASSERT_PARAM)}, got {login_assert!r}")
        self.api_url = api_url
        self.login_assert: LoginAssert = login_assert
        self.transport = (
            transport
            if transport is not None
            else RequestsTransport(timeout=timeout, user_agent=user_agent)
        )
        self.tokens = TokenStore(self._fetch_tokens, self.assert_logged)
        self.username: str | None = None

    def __repr__(self) -> str:
        return f"Site({self.api_url!r}, login_assert={self.login_assert!r})"

    @classmethod
    def from_settings(
        cls,
        settings: MwActionSettings | None = None,
        *,
        transport: HttpClient | None = None,
    ) -> Site:
        """Build a site from settings, logging in when credentials are set.

        Raises:
            ValueError: If the settings lack a usable site configuration.
        """
        settings = settings or get_settings()
        config = settings.get_site_config()
        site = cls(**config, transport=transport)
        if settings.login_assert == "none":
            return site
        if settings.username is None or settings.password is None:
            raise ValueError("MWACTION_USERNAME and MWACTION_PASSWORD are required to log in")
        password = settings.password.get_secret_value()
        if settings.totp_secret is not None:
            otp = totp_supplier(settings.totp_secret.get_secret_value())
            site.client_login(settings.username, password, otp=otp)
        else:
            site.login(settings.username, password)
        return site

    # -- building and sending ----------------------------------------------------

    def new_call(self, descriptor: ActionDescriptor, description: str | None = None) -> Call:
        return Call(descriptor, description)

    def query(self, description: str = "query information", *, keep_responses: bool = False) -> Query:
        """Start a continuation-driven query against this site."""
        return Query(self, description, keep_responses=keep_responses)

    def check_permissions(self, call: Call) -> None:
        """Check the call's rules; rights are only fetched if it has any."""
        call.requirements.check(self.capabilities, call.description)

    def _dispatch(self, call: Call, extra_query: Mapping[str, str] | None) -> tuple[RawResponse, int | None]:
        prepared = call.build(self.tokens, extra_query)
        LOG.debug(
            "call_dispatch",
            action=call.description,
            method=prepared.method.value,
            params=sorted(prepared.query),
        )
        raw = self.transport.execute(prepared.method.value, self.api_url, prepared.query, prepared.form)
        return raw, prepared.token_generation

    def send(
        self,
        call: Call,
        *,
        extra_query: Mapping[str, str] | None = None,
        handlers: Mapping[str, ErrorHandler] | None = None,
        parser: Callable[[Mapping[str, Any]], Any] | None = None,
    ) -> ResponseEnvelope[Any]:
        """Send *call* once, without a permission check.

        The returned envelope re-issues the same call (with the same
        extra query parameters) if the server reports a stale token that
        came from the token store.
        """
        raw, generation = self._dispatch(call, extra_query)
        reissue: Callable[[], RawResponse] | None = None
        # A caller-supplied token has no generation; resending it cannot help.
        if call.descriptor.token_kind in REFRESHABLE_KINDS and generation is not None:
            pinned = dict(extra_query) if extra_query else None

            def reissue() -> RawResponse:
                return self._dispatch(call, pinned)[0]

        return ResponseEnvelope(
            call,
            raw,
            handlers=handlers,
            parser=parser,
            reissue=reissue,
            tokens=self.tokens,
            token_generation=generation,
        )

    def execute(
        self,
        call: Call,
        *,
        handlers: Mapping[str, ErrorHandler] | None = None,
        parser: Callable[[Mapping[str, Any]], Any] | None = None,
    ) -> ResponseEnvelope[Any]:
        """Check permissions, then send a single (non-continued) call."""
        self.check_permissions(call)
        return self.send(call, handlers=handlers, parser=parser)

    # -- identity and tokens -------------------------------------------------------

    def capabilities(self) -> frozenset[str]:
        """Fetch the rights of the acting identity."""
        query = self.query("get user rights")
        userinfo = query.add(UserInfoMeta(props=("rights",)))
        query.run()
        return userinfo.result.rights if userinfo.result is not None else frozenset()

    def assert_logged(self) -> bool:
        """Ask the server whether the session still has the expected identity."""
        value = _ASSERT_PARAM[self.login_assert]
        call = self.new_call(actions.QUERY, "assert login state")
        call.update_query({"meta": "userinfo", "assert": value})
        envelope = self.send(call, handlers={f"assert{value}failed": declining})
        return not isinstance(envelope.outcome(), Declined)

    def _fetch_tokens(self, kinds: tuple[TokenKind, ...]) -> dict[TokenKind, str]:
        query = self.query("obtain tokens")
        tokens = query.add(TokensMeta(kinds))
        query.run()
        return tokens.result

    # -- session lifecycle -----------------------------------------------------------

    def _login_token(self) -> str:
        token = self.tokens.fetch(TokenKind.LOGIN).get(TokenKind.LOGIN)
        if not token:
            raise LoginFailedError("Failed to login: the server issued no login token")
        return token

    def _commit_login(self, username: str) -> None:
        """Adopt the new identity and fetch its tokens, or leave the site untouched."""
        previous = (self.username, self.login_assert)
        self.username = username
        if self.login_assert == "none":
            self.login_assert = "user"
        try:
            self.tokens.refresh()
        except MwActionError:
            self.username, self.login_assert = previous
            raise
        LOG.info("login_succeeded", user=self.username, site=self.api_url)

    def login(self, username: str, password: str) -> None:
        """Log in with ``action=login`` (bot passwords or main credentials).

        On success every refreshable token is fetched. If that fetch
        fails the site keeps its previous identity.

        Raises:
            LoginFailedError: If the server refuses the credentials.
        """
        call = self.new_call(actions.LOGIN, "log in")
        call.update_form({"lgname": username, "lgpassword": password, "lgtoken": self._login_token()})
        result = self.execute(call, parser=lambda body: body.get("login") or {}).parse() or {}

        status = result.get("result")
        if status == "Success":
            self._commit_login(result.get("lgusername", username))
            return
        if status == "Failed":
            reason = result.get("reason") or "Incorrect username or password entered"
            raise LoginFailedError(f"Failed to login: {reason}")
        if status == "Aborted":
            raise LoginFailedError(
                "Failed to login: authentication requires user interaction; use a bot password"
            )
        raise LoginFailedError(f"Failed to login: {result.get('reason') or status or result}")

    def _client_login_step(self, form: Mapping[str, Any], description: str) -> dict[str, Any]:
        call = self.new_call(actions.CLIENT_LOGIN, description)
        call.update_form({**form, "logintoken": self._login_token()})
        return self.execute(call, parser=lambda body: body.get("clientlogin") or {}).parse() or {}

    def client_login(
        self,
        username: str,
        password: str,
        *,
        otp: Callable[[], str] | None = None,
    ) -> None:
        """Log in with ``action=clientlogin`` using the main account credentials.

        Accounts with two-factor authentication get a second step that
        submits the code returned by *otp* (see ``mwaction.totp``).

        Raises:
            LoginFailedError: If the server refuses the credentials or the
                code, or asks for a code and *otp* is not given.
        """
        result = self._client_login_step(
            {"username": username, "password": password, "loginreturnurl": LOGIN_RETURN_URL},
            "log in",
        )
        if result.get("status") == "UI" and result.get("messagecode") == TWO_FACTOR_MESSAGE_CODE:
            if otp is None:
                raise LoginFailedError("Failed to login: the account requires a two-factor code")
            LOG.info("two_factor_requested", user=username)
            result = self._client_login_step(
                {"OATHToken": otp(), "logincontinue": True},
                "log in with a two-factor code",
            )

        if result.get("status") == "PASS":
            self._commit_login(result.get("username", username))
            return
        raise LoginFailedError(f"Failed to login: {_client_login_failure(result)}")

    def logout(self) -> None:
        """End the server session and forget cached tokens."""
        if self.username is None:
            return
        self.execute(self.new_call(actions.LOGOUT, "log out")).parse()
        self.tokens.clear()
        LOG.info("logout", user=self.username)
        self.username = None
        self.login_assert = "none"

    def close(self) -> None:
        """Close the transport if it supports closing."""
        close = getattr(self.transport, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> Site:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _client_login_failure(result: Mapping[str, Any]) -> str:
    code = result.get("messagecode", "")
    if code == "login-throttled":
        return "too many recent login attempts; wait 5 minutes before trying again"
    if code == "wrongpassword":
        return "Incorrect username or password entered"
    message = str(result.get("message") or result.get("status") or result).replace("\n", " ")
    return f"{message} ({code})" if code else message
