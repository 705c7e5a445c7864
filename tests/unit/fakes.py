"""Fakes and canned API bodies shared by the unit tests."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

API_URL = "https://wiki.example.org/w/api.php"


class FakeResponse:
    """A ``RawResponse`` over a canned body that counts reads."""

    def __init__(self, body: Any, status: int = 200) -> None:
        if isinstance(body, bytes):
            self._data = body
        else:
            self._data = json.dumps(body).encode("utf-8")
        self.status = status
        self.reads = 0
        self.closed = False

    def read(self) -> bytes:
        self.reads += 1
        self.closed = True
        return self._data

    def close(self) -> None:
        self.closed = True


@dataclass
class SentRequest:
    method: str
    url: str
    query: dict[str, str]
    form: dict[str, str] | None


@dataclass
class FakeTransport:
    """``HttpClient`` that replays queued bodies and records every request.

    Queue bodies with ``reply()``; each request pops the next one. Running
    out of replies fails the test loudly.
    """

    replies: list[FakeResponse] = field(default_factory=list)
    sent: list[SentRequest] = field(default_factory=list)
    closed: bool = False

    def reply(self, *bodies: Any) -> FakeTransport:
        self.replies.extend(b if isinstance(b, FakeResponse) else FakeResponse(b) for b in bodies)
        return self

    def execute(
        self,
        method: str,
        url: str,
        query: Mapping[str, str],
        form: Mapping[str, str] | None = None,
    ) -> FakeResponse:
        self.sent.append(SentRequest(method, url, dict(query), dict(form) if form is not None else None))
        if not self.replies:
            raise AssertionError(f"Unexpected request: {method} {dict(query)} {form}")
        return self.replies.pop(0)

    def close(self) -> None:
        self.closed = True


def userinfo_body(*rights: str, name: str = "Admin") -> dict[str, Any]:
    """A ``meta=userinfo`` response granting *rights*."""
    return {"batchcomplete": "", "query": {"userinfo": {"id": 7, "name": name, "rights": list(rights)}}}


def tokens_body(**tokens: str) -> dict[str, Any]:
    """A ``meta=tokens`` response, e.g. ``tokens_body(csrf="abc+\\\\")``."""
    return {"batchcomplete": "", "query": {"tokens": {f"{kind}token": value for kind, value in tokens.items()}}}


def error_body(code: str, info: str = "", **extra: Any) -> dict[str, Any]:
    return {"error": {"code": code, "info": info, **extra}}


