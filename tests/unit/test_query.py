"""Tests for the continuation engine and submodule aggregation."""

from __future__ import annotations

from typing import Any
from unittest.mock import patch

import pytest
from fakes import FakeTransport, error_body, userinfo_body

from mwaction.exceptions import (
    ApiError,
    DuplicateSubmoduleError,
    InsufficientPermissions,
    ProtocolMisuseError,
)
from mwaction.modules import AllPagesList, RecentChangesList, UserInfoMeta
from mwaction.query import ContinuationState, Submodule
from mwaction.site import Site


class CountingList(Submodule[list[Any]]):
    """Collects ``query.things`` and counts parse() calls."""

    module_type = "list"
    module_name = "things"
    prefix = "th"

    def __init__(self) -> None:
        super().__init__()
        self.parses = 0

    def new_result(self) -> list[Any]:
        return []

    def parse(self, response) -> None:
        self.parses += 1
        self.result.extend(self.section(response, "query", "things") or ())


def _page(things: list[str], cont: dict[str, str] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"query": {"things": things}}
    if cont is not None:
        body["continue"] = cont
    return body


class TestContinuationState:
    def test_starts_open_and_empty(self) -> None:
        state = ContinuationState()
        assert not state.exhausted
        assert dict(state.cursor) == {}

    def test_advance_replaces_cursor(self) -> None:
        state = ContinuationState()
        state.advance({"apcontinue": "B", "continue": "-||"})
        state.advance({"apcontinue": "C", "continue": "-||"})
        assert dict(state.cursor) == {"apcontinue": "C", "continue": "-||"}

    def test_none_marker_exhausts(self) -> None:
        state = ContinuationState()
        state.advance(None)
        assert state.exhausted
        assert dict(state.cursor) == {}

    def test_advance_after_exhaustion_is_misuse(self) -> None:
        state = ContinuationState()
        state.advance(None)
        with pytest.raises(ProtocolMisuseError):
            state.advance({"x": "y"})


class TestQueryRounds:
    def test_k_rounds_mean_k_calls_and_k_parses(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(
            _page(["a"], {"thcontinue": "b", "continue": "-||"}),
            _page(["b"], {"thcontinue": "c", "continue": "-||"}),
            _page(["c"]),
        )
        query = site.query("list things")
        things = query.add(CountingList())

        chain = query.run()

        assert len(transport.sent) == 3
        assert things.parses == 3
        assert things.result == ["a", "b", "c"]
        assert chain.rounds == 3

    def test_cursor_is_sent_verbatim_in_next_round(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(_page(["a"], {"thcontinue": "b|7", "continue": "-||"}), _page(["b"]))
        query = site.query()
        query.add(CountingList())
        query.run()

        first, second = transport.sent
        assert "thcontinue" not in first.query
        assert second.query["thcontinue"] == "b|7"
        assert second.query["continue"] == "-||"
        assert second.query["list"] == "things"

    def test_single_round_without_continue(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(_page(["a"]))
        query = site.query()
        query.add(CountingList())
        chain = query.run()

        assert chain.rounds == 1
        assert chain.complete
        assert len(transport.sent) == 1

    def test_only_head_is_stored_by_default(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(_page(["a"], {"thcontinue": "b"}), _page(["b"]))
        query = site.query()
        query.add(CountingList())
        chain = query.run()

        assert len(chain) == 1
        assert not chain.complete
        assert chain.head.structured()["query"]["things"] == ["a"]

    def test_keep_responses(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(_page(["a"], {"thcontinue": "b"}), _page(["b"]))
        query = site.query(keep_responses=True)
        query.add(CountingList())
        chain = query.run()

        assert len(chain) == 2
        assert chain.complete
        assert [env.structured()["query"]["things"] for env in chain] == [["a"], ["b"]]

    def test_iter_responses_is_lazy(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(_page(["a"], {"thcontinue": "b"}), _page(["b"]))
        query = site.query()
        things = query.add(CountingList())

        rounds = query.iter_responses()
        next(rounds)
        assert len(transport.sent) == 1
        assert things.result == ["a"]

    def test_query_runs_only_once(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(_page([]))
        query = site.query()
        query.add(CountingList())
        query.run()
        with pytest.raises(ProtocolMisuseError, match="already run"):
            query.run()

    def test_error_aborts_continuation(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(_page(["a"], {"thcontinue": "b"}), error_body("readapidenied", "no"))
        query = site.query()
        things = query.add(CountingList())

        with pytest.raises(ApiError, match="readapidenied"):
            query.run()
        assert things.result == ["a"]


class TestSubmodules:
    def test_duplicate_submodule_fails_before_any_request(self, site: Site, transport: FakeTransport) -> None:
        query = site.query()
        query.add(AllPagesList())
        with pytest.raises(DuplicateSubmoduleError):
            query.add(AllPagesList())
        assert transport.sent == []

    def test_add_after_start_is_misuse(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(_page([]))
        query = site.query()
        query.add(CountingList())
        query.run()
        with pytest.raises(ProtocolMisuseError):
            query.add(AllPagesList())

    def test_module_names_share_slots(self, site: Site, transport: FakeTransport) -> None:
        transport.reply({"query": {}})
        query = site.query()
        query.add(AllPagesList())
        query.add(CountingList())
        query.add(UserInfoMeta())
        query.run()

        sent = transport.sent[0].query
        assert sent["list"] == "allpages|things"
        assert sent["meta"] == "userinfo"
        assert sent["aplimit"] == "max"
        assert sent["uiprop"] == "rights|groups"

    def test_late_parameter_is_ignored_with_warning(self, site: Site, transport: FakeTransport) -> None:
        class LateSetter(CountingList):
            def parse(self, response) -> None:
                super().parse(response)
                self.set("extra", "1")

        transport.reply(_page(["a"], {"thcontinue": "b"}), _page(["b"]))
        query = site.query()
        module = query.add(LateSetter())

        with patch("mwaction.query.LOG") as mock_log:
            query.run()

        assert "thextra" not in module.params
        assert "thextra" not in transport.sent[1].query
        mock_log.warning.assert_called()
        assert mock_log.warning.call_args.args[0] == "submodule_late_parameter"

    def test_limit(self) -> None:
        module = AllPagesList()
        assert module.params["aplimit"] == "max"
        module.limit(20)
        assert module.params["aplimit"] == "20"


class TestQueryPermissions:
    def test_checked_once_before_first_round(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(
            userinfo_body("read", "patrol"),
            {"query": {"recentchanges": []}, "continue": {"rccontinue": "x", "continue": "-||"}},
            {"query": {"recentchanges": []}},
        )
        query = site.query()
        query.add(RecentChangesList()).show("!patrolled")
        query.run()

        assert len(transport.sent) == 3
        assert transport.sent[0].query["meta"] == "userinfo"
        assert transport.sent[1].query["list"] == "recentchanges"

    def test_missing_any_rule_fails_before_query(self, site: Site, transport: FakeTransport) -> None:
        transport.reply(userinfo_body("read"))
        query = site.query("list recent changes")
        query.add(RecentChangesList()).show("!patrolled")

        with pytest.raises(InsufficientPermissions, match="any one of patrol or patrolmarks"):
            query.run()
        assert len(transport.sent) == 1

    def test_no_rules_no_rights_lookup(self, site: Site, transport: FakeTransport) -> None:
        transport.reply({"query": {"allpages": []}})
        query = site.query()
        query.add(AllPagesList())
        query.run()
        assert len(transport.sent) == 1
