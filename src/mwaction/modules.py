"""Concrete query submodules."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from mwaction.logging import get_logger
from mwaction.permissions import PermissionRule
from mwaction.query import Submodule
from mwaction.records import (
    AbuseFilter,
    AbuseLogEntry,
    LogEntry,
    PageRef,
    RecentChange,
    Revision,
    UserInfo,
    UserRecord,
)
from mwaction.response import ResponseEnvelope
from mwaction.tokens import TokenKind

LOG = get_logger(__name__)


class ListModule(Submodule[list[Any]]):
    """A ``list=`` module; asks for the largest page size by default."""

    module_type = "list"

    def __init__(self) -> None:
        super().__init__()
        self.limit(-1)

    def new_result(self) -> list[Any]:
        return []

    def parse_item(self, item: dict[str, Any]) -> Any:
        raise NotImplementedError

    def parse(self, response: ResponseEnvelope[Any]) -> None:
        items = self.section(response, "query", self.module_name)
        if not items:
            return
        self.result.extend(self.parse_item(item) for item in items)


class RecentChangesList(ListModule):
    module_name = "recentchanges"
    prefix = "rc"

    def __init__(self) -> None:
        super().__init__()
        self.set("prop", ["title", "timestamp", "ids", "user", "comment"])

    def start(self, when: datetime) -> RecentChangesList:
        self.set("start", when)
        return self

    def end(self, when: datetime) -> RecentChangesList:
        self.set("end", when)
        return self

    def namespaces(self, *namespaces: int) -> RecentChangesList:
        self.set("namespace", namespaces)
        return self

    def show(self, *flags: str) -> RecentChangesList:
        """Filter by flags such as ``"!bot"``, ``"minor"`` or ``"!patrolled"``.

        Flags touching patrol state need the ``patrol`` or ``patrolmarks`` right.
        """
        if any("patrolled" in flag for flag in flags):
            self.require_rule(PermissionRule.any_of("patrol", "patrolmarks"))
        self.set("show", flags)
        return self

    def types(self, *types: str) -> RecentChangesList:
        self.set("type", types)
        return self

    def user(self, name: str) -> RecentChangesList:
        self.set("user", name)
        return self

    def parse_item(self, item: dict[str, Any]) -> RecentChange:
        return RecentChange.from_json(item)


class AllPagesList(ListModule):
    module_name = "allpages"
    prefix = "ap"

    def namespace(self, namespace: int) -> AllPagesList:
        self.set("namespace", namespace)
        return self

    def prefix_filter(self, prefix: str) -> AllPagesList:
        self.set("prefix", prefix)
        return self

    def start_from(self, title: str) -> AllPagesList:
        self.set("from", title)
        return self

    def filter_redirects(self, mode: str) -> AllPagesList:
        """``"all"``, ``"redirects"`` or ``"nonredirects"``."""
        if mode not in ("all", "redirects", "nonredirects"):
            raise ValueError(f"Unknown redirect filter: {mode!r}")
        self.set("filterredir", mode)
        return self

    def parse_item(self, item: dict[str, Any]) -> PageRef:
        return PageRef.from_json(item)


class AllUsersList(ListModule):
    module_name = "allusers"
    prefix = "au"

    def __init__(self) -> None:
        super().__init__()
        self.set("prop", ["groups", "editcount"])

    def groups(self, *groups: str) -> AllUsersList:
        if groups:
            self.set("group", groups)
        return self

    def start_from(self, user: str) -> AllUsersList:
        self.set("from", user)
        return self

    def end_at(self, user: str) -> AllUsersList:
        self.set("to", user)
        return self

    def prefix_filter(self, prefix: str) -> AllUsersList:
        self.set("prefix", prefix)
        return self

    def with_edits_only(self) -> AllUsersList:
        self.set("witheditsonly", True)
        return self

    def active_users(self) -> AllUsersList:
        self.set("activeusers", True)
        return self

    def parse_item(self, item: dict[str, Any]) -> UserRecord:
        return UserRecord.from_json(item)


class LogEventsList(ListModule):
    module_name = "logevents"
    prefix = "le"

    def __init__(self) -> None:
        super().__init__()
        self.set("prop", ["ids", "title", "type", "user", "timestamp", "comment", "details"])

    def type(self, log_type: str) -> LogEventsList:
        self.set("type", log_type)
        return self

    def user(self, name: str) -> LogEventsList:
        self.set("user", name)
        return self

    def start(self, when: datetime) -> LogEventsList:
        self.set("start", when)
        return self

    def end(self, when: datetime) -> LogEventsList:
        self.set("end", when)
        return self

    def parse_item(self, item: dict[str, Any]) -> LogEntry:
        return LogEntry.from_json(item)


class LinksHereProp(Submodule[dict[str, list[PageRef]]]):
    """``prop=linkshere``: pages linking to the given titles."""

    module_type = "prop"
    module_name = "linkshere"
    prefix = "lh"

    def __init__(self, *titles: str) -> None:
        super().__init__()
        if not titles:
            raise ValueError("LinksHereProp needs at least one title")
        self.set("titles", titles, prefixed=False)
        self.limit(-1)

    def new_result(self) -> dict[str, list[PageRef]]:
        return {}

    def namespaces(self, *namespaces: int) -> LinksHereProp:
        self.set("namespace", namespaces)
        return self

    def parse(self, response: ResponseEnvelope[Any]) -> None:
        pages = self.section(response, "query", "pages")
        if isinstance(pages, Mapping):
            pages = pages.values()
        for page in pages or ():
            links = self.result.setdefault(page["title"], [])
            links.extend(PageRef.from_json(link) for link in page.get("linkshere", ()))


class AllRevisionsList(ListModule):
    """``list=allrevisions``: revisions across all pages, grouped by page in the response."""

    module_name = "allrevisions"
    prefix = "arv"

    def __init__(self) -> None:
        super().__init__()
        self.set("prop", ["ids", "timestamp", "user", "comment"])

    def user(self, name: str) -> AllRevisionsList:
        self.set("user", name)
        return self

    def start(self, when: datetime) -> AllRevisionsList:
        self.set("start", when)
        return self

    def end(self, when: datetime) -> AllRevisionsList:
        self.set("end", when)
        return self

    def namespaces(self, *namespaces: int) -> AllRevisionsList:
        self.set("namespace", namespaces)
        return self

    def parse(self, response: ResponseEnvelope[Any]) -> None:
        for page in self.section(response, "query", self.module_name) or ():
            title = page.get("title")
            self.result.extend(Revision.from_json(rev, title) for rev in page.get("revisions", ()))


class AbuseFiltersList(ListModule):
    """``list=abusefilters``: abuse filter definitions, by ascending id."""

    module_name = "abusefilters"
    prefix = "abf"

    def __init__(self) -> None:
        super().__init__()
        self.set("prop", ["actions", "comments", "description", "id", "pattern", "private", "status"])

    def start_id(self, filter_id: int) -> AbuseFiltersList:
        self.set("startid", filter_id)
        return self

    def end_id(self, filter_id: int) -> AbuseFiltersList:
        self.set("endid", filter_id)
        return self

    def parse_item(self, item: dict[str, Any]) -> AbuseFilter:
        return AbuseFilter.from_json(item)


# Properties of a full abuse log entry, and of the summary that only needs abusefilter-log.
ABUSE_LOG_PROPS = ("action", "details", "filter", "hidden", "ids", "result", "revid", "timestamp", "title", "user")
ABUSE_LOG_SUMMARY_PROPS = ("user", "title", "action", "result", "filter", "timestamp")


class AbuseLogList(ListModule):
    """``list=abuselog``: actions caught by abuse filters.

    Needs ``abusefilter-log``; full entries also need
    ``abusefilter-log-detail``, and hits of private filters need
    ``abusefilter-log-private``.
    """

    module_name = "abuselog"
    prefix = "afl"

    def __init__(self, *, details: bool = True) -> None:
        super().__init__()
        self.require("abusefilter-log")
        if details:
            self.require("abusefilter-log-detail")
        self.set("prop", ABUSE_LOG_PROPS if details else ABUSE_LOG_SUMMARY_PROPS)

    def log_id(self, log_id: int) -> AbuseLogList:
        self.set("logid", log_id)
        return self

    def user(self, name: str) -> AbuseLogList:
        self.set("user", name)
        return self

    def title(self, title: str) -> AbuseLogList:
        self.set("title", title)
        return self

    def start(self, when: datetime) -> AbuseLogList:
        self.set("start", when)
        return self

    def end(self, when: datetime) -> AbuseLogList:
        self.set("end", when)
        return self

    def filters(self, *filters: AbuseFilter | int) -> AbuseLogList:
        """Only show hits of these filters, given as records or ids."""
        if any(isinstance(f, AbuseFilter) and f.private for f in filters):
            self.require("abusefilter-log-private")
        self.set("filter", [f.id if isinstance(f, AbuseFilter) else f for f in filters])
        return self

    def parse_item(self, item: dict[str, Any]) -> AbuseLogEntry:
        return AbuseLogEntry.from_json(item)


class UsersList(Submodule[dict[str, UserRecord | None]]):
    """``list=users``: details of named users; unknown names map to None."""

    module_type = "list"
    module_name = "users"
    prefix = "us"

    def __init__(self, *names: str, props: Iterable[str] = ("groups", "editcount", "registration")) -> None:
        super().__init__()
        if not names:
            raise ValueError("UsersList needs at least one user name")
        self.set("users", names)
        self.set("prop", tuple(props))

    def new_result(self) -> dict[str, UserRecord | None]:
        return {}

    def parse(self, response: ResponseEnvelope[Any]) -> None:
        for item in self.section(response, "query", "users") or ():
            name = item["name"]
            if "missing" in item or "invalid" in item:
                LOG.warning("user_missing", user=name)
                self.result[name] = None
            else:
                self.result[name] = UserRecord.from_json(item)


class RevisionsProp(Submodule[dict[str, list[Revision]]]):
    """``prop=revisions``: the latest revision of each title, optionally with its text.

    Missing pages map to an empty list.
    """

    module_type = "prop"
    module_name = "revisions"
    prefix = "rv"

    def __init__(self, *titles: str, content: bool = False) -> None:
        super().__init__()
        if not titles:
            raise ValueError("RevisionsProp needs at least one title")
        self.set("titles", titles, prefixed=False)
        props = ["ids", "timestamp", "user", "comment"]
        if content:
            props.append("content")
            self.set("slots", "main")
        self.set("prop", props)

    def new_result(self) -> dict[str, list[Revision]]:
        return {}

    def parse(self, response: ResponseEnvelope[Any]) -> None:
        pages = self.section(response, "query", "pages")
        if isinstance(pages, Mapping):
            pages = pages.values()
        for page in pages or ():
            title = page["title"]
            revisions = self.result.setdefault(title, [])
            revisions.extend(Revision.from_json(rev, title) for rev in page.get("revisions", ()))


class UserInfoMeta(Submodule[UserInfo | None]):
    """``meta=userinfo``: the acting identity and its rights."""

    module_type = "meta"
    module_name = "userinfo"
    prefix = "ui"

    def __init__(self, props: Iterable[str] = ("rights", "groups")) -> None:
        super().__init__()
        self.set("prop", tuple(props))

    def new_result(self) -> UserInfo | None:
        return None

    def parse(self, response: ResponseEnvelope[Any]) -> None:
        data = self.section(response, "query", "userinfo")
        if data:
            self.result = UserInfo.from_json(data)


class SiteInfoMeta(Submodule[dict[str, Any]]):
    """``meta=siteinfo``: general site metadata."""

    module_type = "meta"
    module_name = "siteinfo"
    prefix = "si"

    def __init__(self, props: Iterable[str] = ("general", "namespaces", "statistics")) -> None:
        super().__init__()
        self.set("prop", tuple(props))

    def new_result(self) -> dict[str, Any]:
        return {}

    def parse(self, response: ResponseEnvelope[Any]) -> None:
        data = self.section(response, "query")
        if not data:
            return
        for prop, value in data.items():
            if prop in ("userinfo", "tokens", "pages"):
                continue
            self.result[prop] = value


class TokensMeta(Submodule[dict[TokenKind, str]]):
    """``meta=tokens``: fetch anti-forgery tokens of several kinds at once."""

    module_type = "meta"
    module_name = "tokens"

    def __init__(self, kinds: Iterable[TokenKind]) -> None:
        super().__init__()
        self.kinds = tuple(kinds)
        if not self.kinds:
            raise ValueError("TokensMeta needs at least one token kind")
        self.set("type", self.kinds, prefixed=False)

    def new_result(self) -> dict[TokenKind, str]:
        return {}

    def parse(self, response: ResponseEnvelope[Any]) -> None:
        tokens = self.section(response, "query", "tokens") or {}
        for kind in self.kinds:
            value = tokens.get(kind.response_key)
            if value:
                self.result[kind] = value
