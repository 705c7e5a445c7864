"""Response envelope: lazy body access, error classification, stale-token retry.

Classification yields an explicit outcome instead of leaning on
exceptions for control flow:

- ``Success(value)``: no error object, or none that mattered.
- ``Declined(code, info)``: a declared, benign condition (e.g. a
  create-only edit of an existing page).
- ``Failure(error)``: any other API error, as a typed ``ApiError``.

``ResponseEnvelope.parse()`` unwraps the outcome and raises the error
held by a ``Failure``.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from mwaction.exceptions import ApiError, StaleTokenError, TransportError
from mwaction.logging import get_logger
from mwaction.transport import RawResponse

if TYPE_CHECKING:
    from mwaction.call import Call
    from mwaction.tokens import TokenStore

LOG = get_logger(__name__)

T = TypeVar("T")

# Error code the server uses when a submitted token has expired.
STALE_TOKEN_CODE = "badtoken"


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    ok = True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Declined:
    """A declared error code that the action treats as a normal result."""

    code: str
    info: str = ""

    ok = False

    def unwrap(self) -> None:
        return None


@dataclass(frozen=True)
class Failure:
    error: ApiError

    ok = False

    def unwrap(self) -> Any:
        raise self.error


Outcome = Success[Any] | Declined | Failure

# Called with (code, info, structured body). Returning None declines the
# result; raising an ApiError (or returning an Outcome) decides it explicitly.
ErrorHandler = Callable[[str, str, Mapping[str, Any]], "Outcome | None"]


def raising(factory: Callable[[str, str], ApiError]) -> ErrorHandler:
    """Build a handler that fails with the exception *factory* creates."""

    def _handler(code: str, info: str, body: Mapping[str, Any]) -> Outcome:
        return Failure(factory(code, info))

    return _handler


def declining(code: str, info: str, body: Mapping[str, Any]) -> None:
    """Handler that accepts the error code as a benign, unsuccessful result."""
    return None


class ResponseEnvelope(Generic[T]):
    """Wraps one logical response to a call.

    The raw body is read on first access and parsed at most once per
    physical exchange. A stale-token error triggers exactly one token
    refresh and one re-issue of the call; the re-issued exchange replaces
    this envelope's body. A second stale-token error is a ``Failure``.

    Args:
        call: The call that produced the response.
        raw: The unread physical response.
        handlers: Declared error codes and their handlers.
        parser: Turns a successful structured body into the typed result.
        reissue: Re-sends the call with fresh tokens; None disables retry.
        tokens: Store refreshed before re-issuing.
        token_generation: Generation of the token the call was sent with.
    """

    def __init__(
        self,
        call: Call,
        raw: RawResponse,
        *,
        handlers: Mapping[str, ErrorHandler] | None = None,
        parser: Callable[[Mapping[str, Any]], T] | None = None,
        reissue: Callable[[], RawResponse] | None = None,
        tokens: TokenStore | None = None,
        token_generation: int | None = None,
    ) -> None:
        self.call = call
        self.handlers: Mapping[str, ErrorHandler] = MappingProxyType(dict(handlers or {}))
        self._raw = raw
        self._parser = parser
        self._reissue = reissue
        self._tokens = tokens
        self._token_generation = token_generation
        self._body: str | None = None
        self._structured: dict[str, Any] | None = None
        self._outcome: Outcome | None = None
        self._retried = False
        self.exchanges = 1

    def __repr__(self) -> str:
        return f"ResponseEnvelope({self.call.description!r}, exchanges={self.exchanges})"

    # -- body access -----------------------------------------------------------

    def body(self) -> str:
        """Return the raw body text, reading it on first access.

        Raises:
            TransportError: If the body is empty or cannot be read.
        """
        if self._body is None:
            data = self._raw.read()
            if not data:
                raise TransportError(f"Failed to {self.call.description}: empty response body")
            try:
                self._body = data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise TransportError(
                    f"Failed to {self.call.description}: response body is not UTF-8"
                ) from exc
        return self._body

    def structured(self) -> dict[str, Any]:
        """Return the parsed JSON object, parsing it on first access.

        Raises:
            TransportError: If the body is not a JSON object.
        """
        if self._structured is None:
            try:
                parsed = json.loads(self.body())
            except json.JSONDecodeError as exc:
                raise TransportError(
                    f"Failed to {self.call.description}: response is not JSON ({exc})"
                ) from exc
            if not isinstance(parsed, dict):
                raise TransportError(
                    f"Failed to {self.call.description}: expected a JSON object, "
                    f"got {type(parsed).__name__}"
                )
            self._structured = parsed
            self._log_warnings(parsed)
        return self._structured

    @property
    def is_read(self) -> bool:
        return self._body is not None

    @property
    def retried(self) -> bool:
        """Whether a stale token forced a second physical exchange."""
        return self._retried

    def discard(self) -> None:
        """Release an unread body without downloading it."""
        if self._body is None:
            self._raw.close()

    def _log_warnings(self, parsed: Mapping[str, Any]) -> None:
        warnings = parsed.get("warnings")
        if warnings:
            LOG.warning("api_warnings", action=self.call.description, warnings=warnings)

    # -- classification ----------------------------------------------------------

    def error(self) -> tuple[str, str] | None:
        """Return ``(code, info)`` of the top-level error object, if any."""
        error = self.structured().get("error")
        if not isinstance(error, Mapping):
            return None
        return str(error.get("code", "")), str(error.get("info", ""))

    def _replace(self, raw: RawResponse) -> None:
        self._raw = raw
        self._body = None
        self._structured = None
        self.exchanges += 1

    def _retry_with_fresh_tokens(self, tokens: TokenStore, reissue: Callable[[], RawResponse]) -> None:
        LOG.info("stale_token_retry", action=self.call.description)
        # Marked before any I/O: a failed refresh or reissue is never attempted again.
        self._retried = True
        tokens.refresh(seen_generation=self._token_generation)
        self._replace(reissue())

    def outcome(self) -> Outcome:
        """Classify the response, refreshing and re-issuing once on a stale token.

        The call is frozen as soon as classification starts.
        """
        if self._outcome is not None:
            return self._outcome

        self.call.freeze()
        error = self.error()
        tokens, reissue = self._tokens, self._reissue
        if (
            error is not None
            and error[0] == STALE_TOKEN_CODE
            and not self._retried
            and reissue is not None
            and tokens is not None
        ):
            self._retry_with_fresh_tokens(tokens, reissue)
            error = self.error()

        self._outcome = self._classify(error)
        return self._outcome

    def _classify(self, error: tuple[str, str] | None) -> Outcome:
        if error is None:
            body = self.structured()
            return Success(self._parser(body) if self._parser is not None else None)

        code, info = error
        if code == STALE_TOKEN_CODE:
            return Failure(StaleTokenError(code, info))

        handler = self.handlers.get(code)
        if handler is None:
            LOG.debug("api_error_undeclared", action=self.call.description, code=code)
            return Failure(ApiError(code, info))

        try:
            result = handler(code, info, self.structured())
        except ApiError as exc:
            return Failure(exc)
        if result is None:
            return Declined(code, info)
        return result

    def parse(self) -> T | None:
        """Return the typed result, raising the error of a ``Failure``."""
        return self.outcome().unwrap()
