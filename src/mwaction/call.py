"""Call builder: turns an action descriptor plus caller parameters into a request."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from mwaction.actions import ActionDescriptor, HttpMethod
from mwaction.exceptions import AuthenticationRequired, CallFrozenError
from mwaction.permissions import PermissionRule, Requirements
from mwaction.tokens import TokenStore

# Every call asks for JSON; this is always the first query parameter.
FORMAT_PARAMS: Mapping[str, str] = MappingProxyType({"format": "json"})


def format_param(value: Any) -> str | None:
    """Convert a Python value to its API wire form.

    ``None`` and ``False`` mean "omit the parameter" since the API treats
    any present boolean flag as true. Sequences become pipe-joined lists
    and datetimes become UTC ISO 8601 timestamps (naive ones are taken as UTC).
    """
    if value is None or value is False:
        return None
    if value is True:
        return "true"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    if isinstance(value, str):
        return value
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, Iterable):
        parts = [part for part in (format_param(v) for v in value) if part is not None]
        return "|".join(parts)
    raise TypeError(f"Unsupported parameter value: {value!r}")


@dataclass(frozen=True)
class PreparedCall:
    """A transport-ready request."""

    method: HttpMethod
    query: Mapping[str, str]
    form: Mapping[str, str] | None
    token_generation: int | None = None


class Call:
    """One invocation of an action, owned by its caller until dispatch.

    Parameters may be added freely until the response begins parsing;
    after ``freeze()`` any mutation raises ``CallFrozenError``.

    Args:
        descriptor: The action being invoked.
        description: Human-readable verb phrase for errors and logs
            (e.g. ``"block user"``). Defaults to the action name.
    """

    def __init__(self, descriptor: ActionDescriptor, description: str | None = None) -> None:
        self.descriptor = descriptor
        self.description = description or descriptor.name
        self.requirements = Requirements()
        self._query: dict[str, str] = {**FORMAT_PARAMS, **descriptor.base_params}
        self._form: dict[str, str] = {}
        self._frozen = False

    def __repr__(self) -> str:
        return f"Call({self.descriptor.name!r}, query={self._query!r}, form={sorted(self._form)!r})"

    # -- mutation ------------------------------------------------------------

    def _check_mutable(self) -> None:
        if self._frozen:
            raise CallFrozenError(
                f"Cannot change parameters of '{self.description}' after its response began parsing"
            )

    def set_query(self, key: str, value: Any) -> Call:
        """Set a URL query parameter; ``None``/``False`` values are skipped."""
        self._check_mutable()
        formatted = format_param(value)
        if formatted is not None:
            self._query[key] = formatted
        return self

    def update_query(self, params: Mapping[str, Any]) -> Call:
        for key, value in params.items():
            self.set_query(key, value)
        return self

    def set_form(self, key: str, value: Any) -> Call:
        """Set a body field (sent in the query string for GET actions)."""
        self._check_mutable()
        formatted = format_param(value)
        if formatted is not None:
            self._form[key] = formatted
        return self

    def update_form(self, params: Mapping[str, Any]) -> Call:
        for key, value in params.items():
            self.set_form(key, value)
        return self

    def require(self, *capabilities: str) -> Call:
        """Require every listed right before the call may be sent."""
        self._check_mutable()
        self.requirements.require(*capabilities)
        return self

    def require_rule(self, rule: PermissionRule) -> Call:
        self._check_mutable()
        self.requirements.add(rule)
        return self

    def freeze(self) -> None:
        """Forbid further mutation; called once parsing begins."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -- inspection ----------------------------------------------------------

    @property
    def query_params(self) -> Mapping[str, str]:
        return MappingProxyType(self._query)

    @property
    def form_params(self) -> Mapping[str, str]:
        return MappingProxyType(self._form)

    # -- building ------------------------------------------------------------

    def build(
        self,
        tokens: TokenStore | None = None,
        extra_query: Mapping[str, str] | None = None,
    ) -> PreparedCall:
        """Assemble the request without performing I/O.

        Args:
            tokens: Token store to draw the descriptor's token from.
            extra_query: Parameters layered over the call's own query
                parameters (e.g. a continuation cursor).

        Returns:
            The prepared request.

        Raises:
            AuthenticationRequired: If the descriptor needs a token that
                is neither cached nor supplied by the caller.
        """
        query = dict(self._query)
        if extra_query:
            query.update(extra_query)

        form = dict(self._form)
        generation = None
        kind = self.descriptor.token_kind
        if kind is not None:
            param = self.descriptor.token_param
            # An explicitly supplied token (e.g. a one-off login token) wins.
            if param not in form:
                token = tokens.get(kind) if tokens is not None else None
                if not token:
                    raise AuthenticationRequired(kind.value, self.description)
                form[param] = token
                generation = tokens.generation if tokens is not None else None

        if self.descriptor.method is HttpMethod.GET:
            query.update(form)
            return PreparedCall(HttpMethod.GET, query, None, generation)
        return PreparedCall(HttpMethod.POST, query, form, generation)
