"""Custom exceptions for mwaction package."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mwaction.permissions import PermissionRule


class MwActionError(Exception):
    """Base exception class for all mwaction errors."""


class TransportError(MwActionError):
    """Raised when the HTTP exchange fails or yields an unusable body."""


class AuthenticationRequired(MwActionError):  # noqa: N818 — name is part of the public API
    """Raised when an action needs a token that has never been fetched.

    Attributes:
        kind: Wire name of the missing token kind (e.g. ``"csrf"``).
    """

    def __init__(self, kind: str, action: str | None = None) -> None:
        self.kind = kind
        self.action = action
        target = f" to {action}" if action else ""
        super().__init__(f"A '{kind}' token is required{target}; log in first")


class LoginStateMismatch(MwActionError):  # noqa: N818 — name is part of the public API
    """Raised when the login assertion fails while refreshing tokens."""


class LoginFailedError(MwActionError):
    """Raised when the server rejects a login attempt."""


class InsufficientPermissions(MwActionError):  # noqa: N818 — name is part of the public API
    """Raised before any network call when the caller lacks required rights.

    Attributes:
        action: Human-readable description of the attempted action.
        missing: The rules the caller failed to satisfy.
    """

    def __init__(self, action: str | None, missing: Iterable[PermissionRule]) -> None:
        from mwaction.permissions import describe_rules

        self.action = action
        self.missing = frozenset(missing)
        super().__init__(
            f"Insufficient permissions to {action or 'perform this action'}. "
            f"Missing permissions: {describe_rules(self.missing)}."
        )


class ProtocolMisuseError(MwActionError):
    """Raised when the protocol engine is driven incorrectly."""


class DuplicateSubmoduleError(ProtocolMisuseError):
    """Raised when two submodules of the same kind join one query."""


class CallFrozenError(ProtocolMisuseError):
    """Raised when a call is mutated after its response started parsing."""


class ApiError(MwActionError):
    """An error object reported by the API.

    Attributes:
        code: The machine-readable error code.
        info: The human-readable error description.
    """

    def __init__(self, code: str, info: str = "") -> None:
        self.code = code
        self.info = info
        super().__init__(f"{code}: {info}" if info else code)


class StaleTokenError(ApiError):
    """The server rejected a token again after it had been refreshed."""


class AlreadyBlockedError(ApiError):
    """Raised when blocking a user who is already blocked."""

    def __init__(self, user: str, info: str = "") -> None:
        self.user = user
        super().__init__("alreadyblocked", info or f"'{user}' is already blocked")


class NoSuchUserError(ApiError):
    """Raised when the target user does not exist."""

    def __init__(self, user: str, info: str = "") -> None:
        self.user = user
        super().__init__("nosuchuser", info or f"User '{user}' does not exist")


class NotBlockedError(ApiError):
    """Raised when unblocking a user who is not blocked."""

    def __init__(self, user: str, info: str = "") -> None:
        self.user = user
        super().__init__("cantunblock", info or f"'{user}' is not blocked")


class BlockedAsRangeError(ApiError):
    """Raised when the target is only blocked as part of a range block."""


class EditConflictError(ApiError):
    """Raised when an edit collides with a concurrent revision."""


class ProtectedPageError(ApiError):
    """Raised when the page is protected against the attempted action."""


class InvalidParameterError(ApiError, ValueError):
    """Raised when the server rejects a parameter value or combination."""


class ArticleExistsError(ApiError):
    """Raised when creating a page that already exists."""


class AbuseFilterDisallowedError(ApiError):
    """Raised when an abuse filter blocks the action.

    Attributes:
        filter_id: Id of the triggering filter, when the server reports it.
        actions: Actions the filter took (e.g. ``("disallow",)``).
        description: Public description of the filter.
    """

    def __init__(
        self,
        info: str,
        filter_id: int | None = None,
        actions: tuple[str, ...] = (),
        description: str = "",
    ) -> None:
        self.filter_id = filter_id
        self.actions = actions
        self.description = description
        super().__init__("abusefilter-disallowed", info)
