"""mwaction - a client for the MediaWiki action API.

This package provides:
- Permission rules checked before any request is sent
- Cached anti-forgery tokens with a single refresh-and-retry on expiry
- Continuation-driven queries composed of list/meta/prop submodules
- Ready-made operations (block, unblock, edit, patrol, page text, diffs,
  abuse logs and listings)
- Password or two-factor (TOTP) login

Example:
    >>> from mwaction import Site, operations
    >>> site = Site("https://wiki.example.org/w/api.php")
    >>> site.login("Bot@task", "bot-password")
    >>> operations.block(site, "Vandal", "1 week", reason="spam")
"""

from mwaction.actions import ActionDescriptor, HttpMethod
from mwaction.call import Call, PreparedCall
from mwaction.config import MwActionSettings, get_settings
from mwaction.exceptions import (
    AbuseFilterDisallowedError,
    AlreadyBlockedError,
    ApiError,
    ArticleExistsError,
    AuthenticationRequired,
    BlockedAsRangeError,
    CallFrozenError,
    DuplicateSubmoduleError,
    EditConflictError,
    InsufficientPermissions,
    InvalidParameterError,
    LoginFailedError,
    LoginStateMismatch,
    MwActionError,
    NoSuchUserError,
    NotBlockedError,
    ProtectedPageError,
    ProtocolMisuseError,
    StaleTokenError,
    TransportError,
)
from mwaction.permissions import PermissionRule, RuleKind, evaluate, pass_or_fail
from mwaction.query import ContinuationState, Query, ResponseChain, Submodule
from mwaction.response import Declined, Failure, ResponseEnvelope, Success
from mwaction.site import Site
from mwaction.tasks import BulkResult, run_bulk
from mwaction.tokens import TokenKind, TokenStore

__version__ = "0.3.0"

__all__ = [
    # Version
    "__version__",
    # Connection
    "Site",
    "MwActionSettings",
    "get_settings",
    # Protocol engine
    "ActionDescriptor",
    "HttpMethod",
    "Call",
    "PreparedCall",
    "PermissionRule",
    "RuleKind",
    "evaluate",
    "pass_or_fail",
    "TokenKind",
    "TokenStore",
    "ResponseEnvelope",
    "Success",
    "Declined",
    "Failure",
    "Query",
    "Submodule",
    "ContinuationState",
    "ResponseChain",
    # Bulk
    "run_bulk",
    "BulkResult",
    # Exceptions
    "MwActionError",
    "TransportError",
    "AuthenticationRequired",
    "LoginStateMismatch",
    "LoginFailedError",
    "InsufficientPermissions",
    "ProtocolMisuseError",
    "DuplicateSubmoduleError",
    "CallFrozenError",
    "ApiError",
    "StaleTokenError",
    "AlreadyBlockedError",
    "NoSuchUserError",
    "NotBlockedError",
    "BlockedAsRangeError",
    "EditConflictError",
    "InvalidParameterError",
    "ProtectedPageError",
    "ArticleExistsError",
    "AbuseFilterDisallowedError",
]
