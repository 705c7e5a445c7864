"""Ready-made actions and queries built on the protocol engine.

Each function builds one call (or one query), declares the error codes
the action expects, and returns a plain Python result. Declared domain
errors surface as typed exceptions; benign declared conditions (such as
a create-only edit of an existing page) come back as an unsuccessful
result instead.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from mwaction import actions
from mwaction.exceptions import (
    AbuseFilterDisallowedError,
    AlreadyBlockedError,
    ArticleExistsError,
    BlockedAsRangeError,
    EditConflictError,
    InvalidParameterError,
    NoSuchUserError,
    NotBlockedError,
    ProtectedPageError,
)
from mwaction.logging import get_logger
from mwaction.modules import (
    AbuseFiltersList,
    AbuseLogList,
    AllPagesList,
    AllRevisionsList,
    AllUsersList,
    LinksHereProp,
    LogEventsList,
    RecentChangesList,
    RevisionsProp,
    SiteInfoMeta,
    UsersList,
)
from mwaction.records import (
    AbuseFilter,
    AbuseLogEntry,
    Comparison,
    LogEntry,
    PageRef,
    RecentChange,
    Revision,
    UserRecord,
)
from mwaction.response import Declined, ErrorHandler, Failure, declining, raising
from mwaction.site import Site

LOG = get_logger(__name__)

# The API rejects more than this many page or namespace restrictions per block.
MAX_BLOCK_RESTRICTIONS = 10

# Values per multi-value parameter (users, filter ids) the API accepts from regular accounts.
MAX_VALUES_PER_PARAM = 50

DIFF_TYPES = ("inline", "table", "unified")


def _exactly_one(**candidates: Any) -> str:
    given = [name for name, value in candidates.items() if value is not None]
    if len(given) != 1:
        raise ValueError(f"Exactly one of {', '.join(candidates)} is required, got {len(given)}")
    return given[0]


def _chunks(values: list[Any], size: int = MAX_VALUES_PER_PARAM) -> Iterable[list[Any]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


def block(
    site: Site,
    user: str,
    expiry: str = "infinite",
    *,
    reason: str | None = None,
    anon_only: bool = False,
    no_create: bool = False,
    allow_user_talk: bool = False,
    reblock: bool = False,
    watch_user: bool = False,
    page_restrictions: Iterable[str] = (),
    namespace_restrictions: Iterable[int] = (),
) -> dict[str, Any]:
    """Block a user, IP address or range. Needs the ``block`` right.

    Passing page or namespace restrictions makes the block partial.

    Returns:
        The ``block`` object of the response.

    Raises:
        AlreadyBlockedError: If the target is already blocked and
            ``reblock`` is not set.
        NoSuchUserError: If the target user does not exist.
        InvalidParameterError: If a restricted page does not exist, or
            user talk page access cannot be revoked for this block.
        ValueError: If more than 10 restrictions of one kind are given.
    """
    pages = list(page_restrictions)
    namespaces = list(namespace_restrictions)
    if len(pages) > MAX_BLOCK_RESTRICTIONS or len(namespaces) > MAX_BLOCK_RESTRICTIONS:
        raise ValueError(f"At most {MAX_BLOCK_RESTRICTIONS} page and namespace restrictions are allowed")

    call = site.new_call(actions.BLOCK, "block user").require("block")
    call.update_form(
        {
            "user": user,
            "expiry": expiry,
            "reason": reason or None,
            "anononly": anon_only,
            "nocreate": no_create,
            "allowusertalk": allow_user_talk,
            "reblock": reblock,
            "watchuser": watch_user,
        }
    )
    if pages or namespaces:
        call.update_form(
            {
                "partial": True,
                "pagerestrictions": pages or None,
                "namespacerestrictions": namespaces or None,
            }
        )

    handlers: dict[str, ErrorHandler] = {
        "alreadyblocked": raising(lambda code, info: AlreadyBlockedError(user, info)),
        "nosuchuser": raising(lambda code, info: NoSuchUserError(user, info)),
        "missingtitle": raising(InvalidParameterError),
        "ipb-prevent-user-talk-edit": raising(InvalidParameterError),
    }
    envelope = site.execute(call, handlers=handlers, parser=lambda body: body.get("block") or {})
    result = envelope.parse()
    LOG.info("user_blocked", user=user, expiry=expiry)
    return result


def unblock(site: Site, user: str, *, reason: str | None = None, watch_user: bool = False) -> None:
    """Lift a block. Needs the ``block`` right.

    Raises:
        NotBlockedError: If the target is not blocked.
        BlockedAsRangeError: If the target is only covered by a range block.
    """
    call = site.new_call(actions.UNBLOCK, "unblock user").require("block")
    call.update_form({"user": user, "reason": reason or None, "watchuser": watch_user})
    handlers: dict[str, ErrorHandler] = {
        "cantunblock": raising(lambda code, info: NotBlockedError(user, info)),
        "blockedasrange": raising(BlockedAsRangeError),
    }
    site.execute(call, handlers=handlers).parse()
    LOG.info("user_unblocked", user=user)


# ---------------------------------------------------------------------------
# Edits and patrol
# ---------------------------------------------------------------------------


def _abuse_filter_failure(code: str, info: str, body: Mapping[str, Any]) -> Failure:
    details = body.get("error", {}).get("abusefilter") or {}
    return Failure(
        AbuseFilterDisallowedError(
            info,
            filter_id=details.get("id"),
            actions=tuple(details.get("actions") or ()),
            description=details.get("description", ""),
        )
    )


def edit(
    site: Site,
    title: str | None = None,
    text: str = "",
    *,
    page_id: int | None = None,
    summary: str = "",
    minor: bool = False,
    create_only: bool = False,
) -> bool:
    """Create or edit a page, addressed by title or by page id.

    Edits made by a site asserting ``bot`` are flagged as bot edits.

    Returns:
        True if the edit went through. False when ``create_only`` is set
        and the page already exists.

    Raises:
        ArticleExistsError: If the page exists and ``create_only`` is unset
            (only reachable when the server enforces creation itself).
        EditConflictError: On an edit conflict.
        ProtectedPageError: If the page is protected.
        AbuseFilterDisallowedError: If an abuse filter blocked the edit.
    """
    _exactly_one(title=title, page_id=page_id)

    call = site.new_call(actions.EDIT, "edit").require("edit")
    call.update_form(
        {
            "title": title,
            "pageid": page_id,
            "text": text,
            "summary": summary,
            "minor": minor,
            "createonly": create_only,
            "bot": site.login_assert == "bot",
        }
    )

    handlers: dict[str, ErrorHandler] = {
        "abusefilter-disallowed": _abuse_filter_failure,
        "protectedpage": raising(ProtectedPageError),
        "editconflict": raising(EditConflictError),
        "articleexists": declining if create_only else raising(ArticleExistsError),
    }
    envelope = site.execute(
        call,
        handlers=handlers,
        parser=lambda body: (body.get("edit") or {}).get("result") == "Success",
    )
    outcome = envelope.outcome()
    if isinstance(outcome, Declined):
        LOG.info("edit_declined", target=title or page_id, code=outcome.code)
        return False
    return bool(outcome.unwrap())


def patrol(site: Site, *, rcid: int | None = None, revid: int | None = None) -> bool:
    """Mark a recent change (or a revision) as patrolled. Needs ``patrol``."""
    _exactly_one(rcid=rcid, revid=revid)
    call = site.new_call(actions.PATROL, "patrol").require("patrol")
    call.update_form({"rcid": rcid, "revid": revid})
    return bool(site.execute(call, parser=lambda body: "patrol" in body).parse())


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def recent_changes(
    site: Site,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    namespaces: Iterable[int] = (),
    show: Iterable[str] = (),
    limit: int = -1,
) -> list[RecentChange]:
    """List recent changes, newest first, across as many pages as needed."""
    query = site.query("list recent changes")
    module = query.add(RecentChangesList())
    module.limit(limit)
    if start is not None:
        module.start(start)
    if end is not None:
        module.end(end)
    if namespaces := tuple(namespaces):
        module.namespaces(*namespaces)
    if show := tuple(show):
        module.show(*show)
    query.run()
    return module.result


def all_pages(
    site: Site,
    *,
    prefix: str | None = None,
    namespace: int = 0,
    filter_redirects: str = "all",
) -> list[PageRef]:
    """List every page of a namespace, optionally by title prefix."""
    query = site.query("list all pages")
    module = query.add(AllPagesList())
    module.namespace(namespace).filter_redirects(filter_redirects)
    if prefix:
        module.prefix_filter(prefix)
    query.run()
    return module.result


def all_users(site: Site, *, groups: Iterable[str] = (), edits_only: bool = False) -> list[UserRecord]:
    """List registered users, optionally restricted to groups."""
    query = site.query("list all users")
    module = query.add(AllUsersList())
    module.groups(*groups)
    if edits_only:
        module.with_edits_only()
    query.run()
    return module.result


def log_events(
    site: Site,
    *,
    log_type: str | None = None,
    user: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[LogEntry]:
    """List log entries, optionally filtered by type, performer and time."""
    query = site.query("list log events")
    module = query.add(LogEventsList())
    if log_type:
        module.type(log_type)
    if user:
        module.user(user)
    if start is not None:
        module.start(start)
    if end is not None:
        module.end(end)
    query.run()
    return module.result


def links_here(site: Site, title: str, *, namespaces: Iterable[int] = ()) -> list[PageRef]:
    """List pages that link to *title*."""
    query = site.query("list links here")
    module = query.add(LinksHereProp(title))
    if namespaces := tuple(namespaces):
        module.namespaces(*namespaces)
    query.run()
    return [link for links in module.result.values() for link in links]


def site_info(site: Site, props: Iterable[str] = ("general", "namespaces", "statistics")) -> dict[str, Any]:
    """Fetch site metadata."""
    query = site.query("get site info")
    module = query.add(SiteInfoMeta(props))
    query.run()
    return module.result


def all_revisions(
    site: Site,
    *,
    user: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    namespaces: Iterable[int] = (),
) -> list[Revision]:
    """List revisions across all pages, newest first."""
    query = site.query("list all revisions")
    module = query.add(AllRevisionsList())
    if user:
        module.user(user)
    if start is not None:
        module.start(start)
    if end is not None:
        module.end(end)
    if namespaces := tuple(namespaces):
        module.namespaces(*namespaces)
    query.run()
    return module.result


def page_text(site: Site, title: str) -> str:
    """Return the current wikitext of *title*, or ``""`` if the page does not exist."""
    query = site.query("get page text")
    module = query.add(RevisionsProp(title, content=True))
    query.run()
    # The server may normalize the title, so take the single page it returned.
    revisions = next(iter(module.result.values()), [])
    if not revisions:
        return ""
    return revisions[0].content or ""


def users(
    site: Site,
    names: Iterable[str],
    props: Iterable[str] = ("groups", "editcount", "registration"),
) -> dict[str, UserRecord | None]:
    """Look up users by name; names of unknown users map to None."""
    found: dict[str, UserRecord | None] = {}
    props = tuple(props)
    for batch in _chunks(list(dict.fromkeys(names))):
        query = site.query("get users")
        module = query.add(UsersList(*batch, props=props))
        query.run()
        found.update(module.result)
    return found


def compare(
    site: Site,
    *,
    from_title: str | None = None,
    from_rev: int | None = None,
    to_title: str | None = None,
    to_rev: int | None = None,
    diff_type: str | None = None,
) -> Comparison:
    """Diff two pages or revisions, each side given by title or revision id.

    Raises:
        ValueError: If a side is given both or neither way, or the diff
            type is unknown.
        InvalidParameterError: If a page or revision does not exist.
    """
    _exactly_one(from_title=from_title, from_rev=from_rev)
    _exactly_one(to_title=to_title, to_rev=to_rev)
    if diff_type is not None and diff_type not in DIFF_TYPES:
        raise ValueError(f"Unknown diff type: {diff_type!r}")

    call = site.new_call(actions.COMPARE, "compare pages")
    call.update_query(
        {
            "fromtitle": from_title,
            "fromrev": from_rev,
            "totitle": to_title,
            "torev": to_rev,
            "difftype": diff_type,
        }
    )
    handlers: dict[str, ErrorHandler] = {
        code: raising(InvalidParameterError) for code in ("missingtitle", "nosuchrevid", "missingcontent")
    }
    return site.execute(
        call,
        handlers=handlers,
        parser=lambda body: Comparison.from_json(body.get("compare") or {}),
    ).parse()


# ---------------------------------------------------------------------------
# Abuse filters
# ---------------------------------------------------------------------------


def all_abuse_filters(
    site: Site,
    *,
    start_id: int | None = None,
    end_id: int | None = None,
) -> dict[int, AbuseFilter]:
    """Fetch abuse filters keyed by id, optionally within an id range."""
    query = site.query("list abuse filters")
    module = query.add(AbuseFiltersList())
    if start_id is not None:
        module.start_id(start_id)
    if end_id is not None:
        module.end_id(end_id)
    query.run()
    return {flt.id: flt for flt in module.result}


def abuse_filter(site: Site, filter_id: int) -> AbuseFilter | None:
    """Fetch one abuse filter, or None if it does not exist."""
    return all_abuse_filters(site, start_id=filter_id, end_id=filter_id).get(filter_id)


def abuse_log(
    site: Site,
    *,
    log_id: int | None = None,
    user: str | None = None,
    title: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    filters: Iterable[AbuseFilter | int] = (),
    details: bool = True,
) -> list[AbuseLogEntry]:
    """List abuse filter hits, newest first.

    With ``details=False`` only summary fields are fetched, which needs
    just the ``abusefilter-log`` right. Long filter lists are split
    over several queries.
    """
    entries: list[AbuseLogEntry] = []
    for batch in list(_chunks(list(filters))) or [[]]:
        query = site.query("list abuse log")
        module = query.add(AbuseLogList(details=details))
        if log_id is not None:
            module.log_id(log_id)
        if user:
            module.user(user)
        if title:
            module.title(title)
        if start is not None:
            module.start(start)
        if end is not None:
            module.end(end)
        if batch:
            module.filters(*batch)
        query.run()
        entries.extend(module.result)
    return entries


__all__ = [
    "MAX_BLOCK_RESTRICTIONS",
    "MAX_VALUES_PER_PARAM",
    "abuse_filter",
    "abuse_log",
    "all_abuse_filters",
    "all_pages",
    "all_revisions",
    "all_users",
    "block",
    "compare",
    "edit",
    "links_here",
    "log_events",
    "page_text",
    "patrol",
    "recent_changes",
    "site_info",
    "unblock",
    "users",
]
