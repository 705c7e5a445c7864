"""HTTP transport for the action API, built on requests.

The protocol engine only depends on the ``HttpClient`` protocol; the
requests-backed implementation streams responses so that a body is not
downloaded until something reads it.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

import requests

from mwaction.exceptions import TransportError
from mwaction.logging import get_logger

LOG = get_logger(__name__)


@runtime_checkable
class RawResponse(Protocol):
    """One physical HTTP response whose body is read on demand."""

    status: int

    def read(self) -> bytes: ...

    def close(self) -> None: ...


@runtime_checkable
class HttpClient(Protocol):
    """Executes one HTTP exchange.

    Implementations raise ``TransportError`` for network failures and
    non-2xx statuses; API-level errors arrive as normal responses.
    """

    def execute(
        self,
        method: str,
        url: str,
        query: Mapping[str, str],
        form: Mapping[str, str] | None = None,
    ) -> RawResponse: ...


class StreamedResponse:
    """Adapts a streamed ``requests.Response`` to ``RawResponse``."""

    __slots__ = ("_response", "status")

    def __init__(self, response: requests.Response) -> None:
        self._response = response
        self.status = response.status_code

    def read(self) -> bytes:
        """Download the whole body.

        Raises:
            TransportError: If the connection drops while reading.
        """
        try:
            return self._response.content
        except requests.RequestException as exc:
            raise TransportError(f"Failed to read response body: {exc}") from exc
        finally:
            self._response.close()

    def close(self) -> None:
        """Release the connection without reading the body."""
        self._response.close()


class RequestsTransport:
    """``HttpClient`` backed by a ``requests.Session``.

    The session keeps login cookies across calls. Safe to share between
    threads for independent calls, as requests sessions are in practice.

    Args:
        session: Session to use; a new one is created if omitted.
        timeout: Connect/read timeout in seconds for every request.
        user_agent: User-Agent header; the API etiquette asks for one.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: float = 120.0,
        user_agent: str | None = None,
    ) -> None:
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        if user_agent:
            self.session.headers["User-Agent"] = user_agent

    def execute(
        self,
        method: str,
        url: str,
        query: Mapping[str, str],
        form: Mapping[str, str] | None = None,
    ) -> StreamedResponse:
        """Send one request and return its unread response.

        Raises:
            TransportError: On connection failure, timeout, or non-2xx status.
        """
        try:
            response = self.session.request(
                method,
                url,
                params=dict(query),
                data=dict(form) if form is not None else None,
                timeout=self.timeout,
                stream=True,
            )
        except requests.RequestException as exc:
            LOG.warning("http_request_failed", method=method, url=url, error=str(exc))
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        if not response.ok:
            status = response.status_code
            reason = response.reason
            response.close()
            raise TransportError(f"{method} {url} returned HTTP {status} {reason}")

        return StreamedResponse(response)

    def close(self) -> None:
        """Close the underlying session."""
        self.session.close()
