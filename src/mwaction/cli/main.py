"""mwaction CLI - query a MediaWiki action API from the terminal.

The site comes from MWACTION_* environment variables (or a ``.env``
file); set MWACTION_LOGIN_ASSERT=user or bot to log in first.
"""

import dataclasses
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Annotated, Any, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel

import mwaction
from mwaction import console as mw_console
from mwaction import operations
from mwaction.config import get_settings
from mwaction.exceptions import MwActionError
from mwaction.logging import bind_site, configure_logging, enable_http_debug, get_logger
from mwaction.site import Site

# Configure logging early using env vars directly; the -v and --log-format
# flags in main_callback() may reconfigure later.
configure_logging(
    level=os.environ.get("MWACTION_LOG_LEVEL", "WARNING"),
    json_output=os.environ.get("MWACTION_LOG_FORMAT", "console") == "json",
)

LOG = get_logger(__name__)

T = TypeVar("T")

app = typer.Typer(
    name="mwaction",
    help="""
    mwaction - a client for the MediaWiki action API

    \b
    Quick start:
      export MWACTION_API_URL=https://en.wikipedia.org/w/api.php
      mwaction recent --limit 20      Latest recent changes
      mwaction pages --prefix Foo     Pages whose title starts with Foo
      mwaction rights                 Rights of the configured account
      mwaction text "Main Page"       Wikitext of a page
    """,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()


@app.callback(invoke_without_command=True)
def main_callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v for info, -vv for debug)",
        ),
    ] = 0,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            help="Log output format: console (human-readable) or json (structured)",
        ),
    ] = None,
    http_debug: Annotated[
        bool,
        typer.Option("--http-debug", help="Log the raw HTTP exchange (urllib3, requests)"),
    ] = False,
) -> None:
    """mwaction - a client for the MediaWiki action API."""
    settings = get_settings()
    json_output = (log_format or settings.log_format) == "json"

    if verbose >= 2:
        configure_logging(level="DEBUG", json_output=json_output)
    elif verbose >= 1:
        configure_logging(level="INFO", json_output=json_output)
    elif log_format is not None:
        configure_logging(level=settings.log_level, json_output=json_output)

    if http_debug:
        enable_http_debug()


@contextmanager
def _open_site() -> Iterator[Site]:
    """Connect to the configured site, turning failures into exit code 1."""
    try:
        site = Site.from_settings()
    except ValueError as exc:
        mw_console.error(str(exc))
        raise typer.Exit(1) from None
    except MwActionError as exc:
        mw_console.error(f"Could not connect: {exc}")
        raise typer.Exit(1) from None
    bind_site(site.api_url)
    with site:
        yield site


def _run(fn: Callable[[Site], T]) -> T:
    with _open_site() as site:
        try:
            return fn(site)
        except MwActionError as exc:
            LOG.debug("command_failed", error_type=type(exc).__name__)
            mw_console.error(str(exc))
            raise typer.Exit(1) from None


def _emit(title: str, columns: list[str], records: list[Any], row: Callable[[Any], list[Any]], as_json: bool) -> None:
    if as_json:
        mw_console.print_json([dataclasses.asdict(record) for record in records])
        return
    if not records:
        mw_console.info(f"No {title.lower()} found")
        return
    mw_console.records_table(title, columns, (row(record) for record in records))


JsonOption = Annotated[bool, typer.Option("--json", help="Print JSON instead of a table")]


@app.command("version")
def version() -> None:
    """Show mwaction version and the configured site."""
    settings = get_settings()
    console.print(
        Panel(
            f"[bold cyan]mwaction[/bold cyan] v{mwaction.__version__}\n\n"
            f"[dim]Site:[/dim]   {settings.api_url or 'not configured'}\n"
            f"[dim]Assert:[/dim] {settings.login_assert}",
            title="MediaWiki action API client",
            border_style="cyan",
        )
    )


@app.command("rights")
def rights(as_json: JsonOption = False) -> None:
    """List the rights of the configured account (or of anonymous users)."""
    granted = sorted(_run(lambda site: site.capabilities()))
    if as_json:
        mw_console.print_json(granted)
        return
    mw_console.records_table("Rights", ["Right"], ([name] for name in granted))


@app.command("recent")
def recent(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Page size per request (0 for max)")] = 50,
    namespace: Annotated[
        list[int] | None, typer.Option("--namespace", "-N", help="Restrict to namespace (repeatable)")
    ] = None,
    show: Annotated[
        list[str] | None, typer.Option("--show", help="Flag filter such as !bot or !patrolled (repeatable)")
    ] = None,
    since: Annotated[
        datetime | None, typer.Option("--since", help="Oldest change to include (UTC)")
    ] = None,
    as_json: JsonOption = False,
) -> None:
    """List recent changes, newest first."""
    changes = _run(
        lambda site: operations.recent_changes(
            site,
            end=since,
            namespaces=namespace or (),
            show=show or (),
            limit=limit,
        )
    )
    _emit(
        "Recent changes",
        ["Time", "Type", "Title", "User", "Comment"],
        changes,
        lambda rc: [rc.timestamp, rc.type, rc.title, rc.user, rc.comment],
        as_json,
    )


@app.command("pages")
def pages(
    prefix: Annotated[str | None, typer.Option("--prefix", "-p", help="Title prefix")] = None,
    namespace: Annotated[int, typer.Option("--namespace", "-N", help="Namespace id")] = 0,
    redirects: Annotated[
        str, typer.Option("--redirects", help="all, redirects or nonredirects")
    ] = "all",
    as_json: JsonOption = False,
) -> None:
    """List pages of a namespace."""
    if redirects not in ("all", "redirects", "nonredirects"):
        mw_console.error(f"Unknown redirect filter: {redirects}")
        raise typer.Exit(1)
    found = _run(
        lambda site: operations.all_pages(
            site, prefix=prefix, namespace=namespace, filter_redirects=redirects
        )
    )
    _emit(
        "Pages",
        ["Page id", "Namespace", "Title"],
        found,
        lambda page: [page.page_id, page.namespace, page.title],
        as_json,
    )


@app.command("logs")
def logs(
    log_type: Annotated[str | None, typer.Option("--type", "-t", help="Log type, e.g. block")] = None,
    user: Annotated[str | None, typer.Option("--user", "-u", help="Performing user")] = None,
    as_json: JsonOption = False,
) -> None:
    """List log entries, newest first."""
    entries = _run(lambda site: operations.log_events(site, log_type=log_type, user=user))
    _emit(
        "Log entries",
        ["Time", "Type", "Action", "Title", "User"],
        entries,
        lambda entry: [entry.timestamp, entry.type, entry.action, entry.title, entry.user],
        as_json,
    )


@app.command("text")
def text(title: Annotated[str, typer.Argument(help="Page title")]) -> None:
    """Print the current wikitext of a page."""
    content = _run(lambda site: operations.page_text(site, title))
    if not content:
        mw_console.warn(f"{title} does not exist or is empty")
        return
    mw_console.print_text(content)


@app.command("abuselog")
def abuselog(
    user: Annotated[str | None, typer.Option("--user", "-u", help="Acting user")] = None,
    title: Annotated[str | None, typer.Option("--title", help="Target page")] = None,
    abuse_filter: Annotated[
        list[int] | None, typer.Option("--filter", "-f", help="Abuse filter id (repeatable)")
    ] = None,
    details: Annotated[
        bool, typer.Option("--details/--summary", help="Fetch full entries (needs abusefilter-log-detail)")
    ] = False,
    as_json: JsonOption = False,
) -> None:
    """List abuse filter hits, newest first."""
    entries = _run(
        lambda site: operations.abuse_log(
            site, user=user, title=title, filters=abuse_filter or (), details=details
        )
    )
    _emit(
        "Abuse log entries",
        ["Time", "Filter", "User", "Title", "Action", "Result"],
        entries,
        lambda entry: [entry.timestamp, entry.filter, entry.user, entry.title, entry.action, entry.result],
        as_json,
    )
