"""Typed records parsed from query results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an API timestamp such as ``2024-05-01T12:00:00Z``."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class PageRef:
    """A page identified by id, namespace and title."""

    title: str
    namespace: int = 0
    page_id: int | None = None
    redirect: bool = False

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> PageRef:
        return cls(
            title=data["title"],
            namespace=int(data.get("ns", 0)),
            page_id=data.get("pageid"),
            redirect="redirect" in data and data["redirect"] is not False,
        )


@dataclass(frozen=True)
class RecentChange:
    """One entry of ``list=recentchanges``."""

    rcid: int
    type: str
    title: str
    namespace: int = 0
    page_id: int | None = None
    revid: int | None = None
    old_revid: int | None = None
    user: str | None = None
    comment: str | None = None
    timestamp: datetime | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> RecentChange:
        return cls(
            rcid=int(data["rcid"]),
            type=data.get("type", ""),
            title=data.get("title", ""),
            namespace=int(data.get("ns", 0)),
            page_id=data.get("pageid"),
            revid=data.get("revid"),
            old_revid=data.get("old_revid"),
            user=data.get("user"),
            comment=data.get("comment"),
            timestamp=parse_timestamp(data.get("timestamp")),
        )


@dataclass(frozen=True)
class LogEntry:
    """One entry of ``list=logevents``."""

    logid: int
    type: str
    action: str
    title: str | None = None
    user: str | None = None
    comment: str | None = None
    timestamp: datetime | None = None
    params: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> LogEntry:
        return cls(
            logid=int(data["logid"]),
            type=data.get("type", ""),
            action=data.get("action", ""),
            title=data.get("title"),
            user=data.get("user"),
            comment=data.get("comment"),
            timestamp=parse_timestamp(data.get("timestamp")),
            params=dict(data.get("params") or {}),
        )


@dataclass(frozen=True)
class UserRecord:
    """One entry of ``list=allusers`` or ``list=users``."""

    name: str
    user_id: int | None = None
    groups: frozenset[str] = frozenset()
    edit_count: int | None = None
    registration: datetime | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> UserRecord:
        return cls(
            name=data["name"],
            user_id=data.get("userid"),
            groups=frozenset(data.get("groups") or ()),
            edit_count=data.get("editcount"),
            registration=parse_timestamp(data.get("registration")),
        )


@dataclass(frozen=True)
class UserInfo:
    """The acting identity, from ``meta=userinfo``."""

    name: str
    user_id: int = 0
    anonymous: bool = False
    rights: frozenset[str] = frozenset()
    groups: frozenset[str] = frozenset()

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> UserInfo:
        return cls(
            name=data.get("name", ""),
            user_id=int(data.get("id", 0)),
            anonymous="anon" in data,
            rights=frozenset(data.get("rights") or ()),
            groups=frozenset(data.get("groups") or ()),
        )


@dataclass(frozen=True)
class Revision:
    """One page revision; ``content`` is only set when it was requested."""

    revid: int
    parent_id: int | None = None
    title: str | None = None
    user: str | None = None
    comment: str | None = None
    timestamp: datetime | None = None
    content: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any], title: str | None = None) -> Revision:
        return cls(
            revid=int(data["revid"]),
            parent_id=data.get("parentid"),
            title=title,
            user=data.get("user"),
            comment=data.get("comment"),
            timestamp=parse_timestamp(data.get("timestamp")),
            content=_revision_content(data),
        )


def _revision_content(data: dict[str, Any]) -> str | None:
    # With rvslots the text sits under slots.main; older servers put it on the revision.
    main = (data.get("slots") or {}).get("main") or data
    content = main.get("*", main.get("content"))
    return content if isinstance(content, str) else None


@dataclass(frozen=True)
class AbuseFilter:
    """An abuse filter from ``list=abusefilters``.

    Flags the server omits (for lack of rights) read as False.
    """

    id: int
    description: str = ""
    actions: tuple[str, ...] = ()
    enabled: bool = False
    deleted: bool = False
    private: bool = False

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> AbuseFilter:
        actions = data.get("actions") or ()
        # Older servers send a comma-separated string.
        if isinstance(actions, str):
            actions = [action for action in actions.split(",") if action]
        return cls(
            id=int(data["id"]),
            description=data.get("description", ""),
            actions=tuple(actions),
            enabled="enabled" in data,
            deleted="deleted" in data,
            private="private" in data,
        )


@dataclass(frozen=True)
class AbuseLogEntry:
    """One hit from ``list=abuselog``; without ``details`` only the summary fields are set."""

    filter: str
    id: int | None = None
    filter_id: str | None = None
    user: str | None = None
    title: str | None = None
    namespace: int = 0
    action: str | None = None
    result: str | None = None
    revid: int | None = None
    timestamp: datetime | None = None
    details: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> AbuseLogEntry:
        revid = data.get("revid")
        return cls(
            filter=data.get("filter", ""),
            id=data.get("id"),
            filter_id=str(data["filter_id"]) if data.get("filter_id") not in (None, "") else None,
            user=data.get("user"),
            title=data.get("title"),
            namespace=int(data.get("ns", 0)),
            action=data.get("action"),
            result=data.get("result"),
            revid=int(revid) if revid not in (None, "") else None,
            timestamp=parse_timestamp(data.get("timestamp")),
            details=dict(data.get("details") or {}),
        )


@dataclass(frozen=True)
class Comparison:
    """The result of ``action=compare``: both sides and the diff as HTML table rows."""

    diff_html: str
    from_page_id: int | None = None
    from_revid: int | None = None
    from_namespace: int | None = None
    from_title: str | None = None
    to_page_id: int | None = None
    to_revid: int | None = None
    to_namespace: int | None = None
    to_title: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Comparison:
        return cls(
            diff_html=data.get("*", data.get("body", "")),
            from_page_id=data.get("fromid"),
            from_revid=data.get("fromrevid"),
            from_namespace=data.get("fromns"),
            from_title=data.get("fromtitle"),
            to_page_id=data.get("toid"),
            to_revid=data.get("torevid"),
            to_namespace=data.get("tons"),
            to_title=data.get("totitle"),
        )
