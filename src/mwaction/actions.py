"""Descriptors for server-side actions.

A descriptor is immutable metadata shared by every call of one action:
its name, HTTP method, base parameters, and which token it needs.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Final

from mwaction.tokens import TokenKind


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"


@dataclass(frozen=True)
class ActionDescriptor:
    """Metadata describing one server-side action."""

    name: str
    method: HttpMethod
    base_params: Mapping[str, str] = field(default_factory=dict)
    token_kind: TokenKind | None = None
    token_param: str = "token"

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("ActionDescriptor.name must be non-empty")
        if not isinstance(self.method, HttpMethod):
            raise ValueError(f"ActionDescriptor.method must be an HttpMethod, got {self.method!r}")
        if self.token_kind is not None and not self.token_param:
            raise ValueError("ActionDescriptor with a token_kind requires token_param")
        # Freeze a private copy so shared descriptors can't be altered through the caller's dict.
        object.__setattr__(self, "base_params", MappingProxyType(dict(self.base_params)))

    def __hash__(self) -> int:
        return hash((self.name, self.method, tuple(self.base_params.items()), self.token_kind))

    @property
    def needs_token(self) -> bool:
        return self.token_kind is not None

    @classmethod
    def action(
        cls,
        name: str,
        method: HttpMethod = HttpMethod.POST,
        token_kind: TokenKind | None = None,
        token_param: str = "token",
        **extra: str,
    ) -> ActionDescriptor:
        """Create a descriptor whose base parameters are ``action=<name>`` plus *extra*."""
        return cls(
            name=name,
            method=method,
            base_params={"action": name, **extra},
            token_kind=token_kind,
            token_param=token_param,
        )


BLOCK: Final = ActionDescriptor.action("block", token_kind=TokenKind.CSRF)
UNBLOCK: Final = ActionDescriptor.action("unblock", token_kind=TokenKind.CSRF)
EDIT: Final = ActionDescriptor.action("edit", token_kind=TokenKind.CSRF)
PATROL: Final = ActionDescriptor.action("patrol", token_kind=TokenKind.PATROL)
LOGIN: Final = ActionDescriptor.action("login", token_kind=TokenKind.LOGIN, token_param="lgtoken")
CLIENT_LOGIN: Final = ActionDescriptor.action(
    "clientlogin", token_kind=TokenKind.LOGIN, token_param="logintoken"
)
LOGOUT: Final = ActionDescriptor.action("logout", token_kind=TokenKind.CSRF)
QUERY: Final = ActionDescriptor.action("query", method=HttpMethod.GET)
COMPARE: Final = ActionDescriptor.action("compare", method=HttpMethod.GET)
