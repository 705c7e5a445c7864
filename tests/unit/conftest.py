"""Shared fixtures for unit tests."""

from __future__ import annotations

import pytest
from fakes import API_URL, FakeTransport

from mwaction.site import Site
from mwaction.tokens import TokenKind


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def site(transport: FakeTransport) -> Site:
    """An anonymous site over the fake transport."""
    return Site(API_URL, transport=transport)


@pytest.fixture
def logged_site(transport: FakeTransport) -> Site:
    """A site logged in as a user, with a cached CSRF and patrol token."""
    site = Site(API_URL, transport=transport, login_assert="user")
    site.username = "Admin"
    site.tokens._tokens = {TokenKind.CSRF: "csrf-1+\\", TokenKind.PATROL: "patrol-1+\\"}
    return site
